"""Billing period reconciliation."""
import logging
from datetime import datetime, timezone
from unittest.mock import Mock

from flowforge.features.billing.periods import (
    add_months,
    add_years,
    compute_period,
    derive_period,
    period_from_subscription_object,
)
from flowforge.features.billing.provider import BillingProviderError
from flowforge.tests.mocks import PLUS_MONTHLY, PLUS_YEARLY, ts


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


def test_add_months_clamps_to_month_end():
    assert add_months(utc(2024, 1, 31)) == utc(2024, 2, 29)
    assert add_months(utc(2023, 1, 31)) == utc(2023, 2, 28)
    assert add_months(utc(2024, 12, 15)) == utc(2025, 1, 15)


def test_add_years_handles_leap_day():
    assert add_years(utc(2024, 2, 29)) == utc(2025, 2, 28)
    assert add_years(utc(2024, 1, 1)) == utc(2025, 1, 1)


def test_derive_period_follows_billing_cycle():
    start = utc(2024, 1, 1)
    assert derive_period(start, PLUS_YEARLY).end == utc(2025, 1, 1)
    assert derive_period(start, PLUS_MONTHLY).end == utc(2024, 2, 1)
    # Unknown cycle falls back to monthly
    assert derive_period(start, "price_unknown").end == utc(2024, 2, 1)


def test_invoice_period_is_authoritative():
    provider = Mock()
    provider.retrieve_subscription.return_value = {
        "start_date": ts(2024, 1, 1),
        "latest_invoice": {"period_start": ts(2024, 3, 1), "period_end": ts(2024, 4, 1)},
    }

    period = compute_period(provider, "sub_1", PLUS_MONTHLY)

    assert period.authoritative is True
    assert period.start == utc(2024, 3, 1)
    assert period.end == utc(2024, 4, 1)
    provider.retrieve_subscription.assert_called_once_with("sub_1", expand_latest_invoice=True)


def test_yearly_subscription_without_usable_invoice_derives_one_year():
    provider = Mock()
    provider.retrieve_subscription.return_value = {
        "start_date": ts(2024, 1, 1),
        # First invoice of a new subscription: zero-length period
        "latest_invoice": {"period_start": ts(2024, 1, 1), "period_end": ts(2024, 1, 1)},
    }

    period = compute_period(provider, "sub_1", PLUS_YEARLY)

    assert period.authoritative is False
    assert period.start == utc(2024, 1, 1)
    assert period.end == utc(2025, 1, 1)


def test_unexpanded_invoice_id_is_ignored():
    provider = Mock()
    provider.retrieve_subscription.return_value = {"start_date": ts(2024, 5, 31), "latest_invoice": "in_123"}

    period = compute_period(provider, "sub_1", PLUS_MONTHLY)

    assert period.end == utc(2024, 6, 30)


def test_provider_failure_falls_back_to_now_plus_one_month(caplog):
    provider = Mock()
    provider.retrieve_subscription.side_effect = BillingProviderError("Stripe down")
    now = utc(2024, 1, 31, 12, 0)

    with caplog.at_level(logging.WARNING, logger="flowforge.billing"):
        period = compute_period(provider, "sub_1", PLUS_YEARLY, now=now)

    assert period.start == now
    assert period.end == utc(2024, 2, 29, 12, 0)
    assert period.authoritative is False
    assert any("billing.period.fallback" in r.getMessage() for r in caplog.records)


def test_period_from_subscription_payload():
    cancelling = period_from_subscription_object({"start_date": ts(2024, 1, 1), "cancel_at": ts(2024, 6, 1)})
    assert cancelling.end == utc(2024, 6, 1)

    ended = period_from_subscription_object({"start_date": ts(2024, 1, 1), "ended_at": ts(2024, 3, 3)})
    assert ended.end == utc(2024, 3, 3)

    open_ended = period_from_subscription_object({"start_date": ts(2024, 1, 31)})
    assert open_ended.end == utc(2024, 2, 29)
