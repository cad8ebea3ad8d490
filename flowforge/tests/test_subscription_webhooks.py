"""
Subscription state machine driven by Stripe events.

At most one ACTIVE subscription per user at any point, and the user's
design quota always follows the ACTIVE plan.
"""
from datetime import datetime, timezone

from sqlalchemy import select

from flowforge.core.database import get_db_session, subscriptions
from flowforge.features.users.service import get_user, get_user_by_customer_id
from flowforge.features.webhooks.dispatcher import dispatch
from flowforge.models.plan import PlanType
from flowforge.models.subscription import SubscriptionStatus
from flowforge.tests.mocks import (
    PLUS_MONTHLY,
    PRO_PLUS_MONTHLY,
    invoice_object,
    stripe_event,
    subscription_object,
    ts,
)


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


def _rows(user_id):
    with get_db_session() as session:
        return session.execute(
            select(subscriptions).where(subscriptions.c.user_id == user_id).order_by(subscriptions.c.id)
        ).fetchall()


def _active(user_id):
    return [row for row in _rows(user_id) if row.status == SubscriptionStatus.ACTIVE.value]


def _created(sub_id="sub_1", price_id=PLUS_MONTHLY, **extra):
    dispatch(stripe_event("customer.subscription.created", subscription_object(sub_id=sub_id, price_id=price_id, **extra)))


def test_new_user_starts_on_free_plan(make_user):
    user = make_user()

    active = _active(user.id)
    assert len(active) == 1
    assert active[0].plan_type == PlanType.FREE.value
    assert active[0].stripe_subscription_id is None
    assert active[0].current_period_end is None
    assert user.max_designs == 3


def test_subscription_created_replaces_active_plan(make_user):
    user = make_user(stripe_customer_id="cus_1")

    _created(cancel_at=ts(2024, 7, 1))

    rows = _rows(user.id)
    assert [row.status for row in rows] == ["CANCELLED", "ACTIVE"]
    paid = rows[-1]
    assert paid.plan_type == PlanType.PLUS.value
    assert paid.stripe_subscription_id == "sub_1"
    assert paid.stripe_price_id == PLUS_MONTHLY
    assert paid.current_period_start.replace(tzinfo=timezone.utc) == utc(2024, 1, 15)
    assert paid.current_period_end.replace(tzinfo=timezone.utc) == utc(2024, 7, 1)
    assert get_user(user.id).max_designs == 20


def test_second_paid_subscription_keeps_one_active_row(make_user):
    user = make_user(stripe_customer_id="cus_1")

    _created(sub_id="sub_1")
    _created(sub_id="sub_2", price_id=PRO_PLUS_MONTHLY)

    active = _active(user.id)
    assert len(active) == 1
    assert active[0].stripe_subscription_id == "sub_2"
    assert get_user(user.id).max_designs == -1


def test_subscription_created_replay_is_a_noop(make_user):
    user = make_user(stripe_customer_id="cus_1")

    _created()
    _created()

    assert len(_rows(user.id)) == 2
    assert len(_active(user.id)) == 1


def test_subscription_created_for_unknown_customer_changes_nothing(make_user):
    user = make_user(stripe_customer_id="cus_other")

    _created()

    assert len(_rows(user.id)) == 1


def test_subscription_created_with_unknown_price_changes_nothing(make_user):
    user = make_user(stripe_customer_id="cus_1")

    _created(price_id="price_not_registered")

    assert len(_rows(user.id)) == 1
    assert get_user(user.id).max_designs == 3


def test_subscription_updated_schedules_cancellation(make_user):
    user = make_user(stripe_customer_id="cus_1")
    _created()

    update = subscription_object(cancel_at_period_end=True, cancel_at=ts(2024, 2, 15))
    dispatch(stripe_event("customer.subscription.updated", update))
    dispatch(stripe_event("customer.subscription.updated", update, event_id="evt_replay"))

    row = _active(user.id)[0]
    assert row.cancel_at_period_end is True
    assert row.status == "ACTIVE"
    assert row.expires_at.replace(tzinfo=timezone.utc) == utc(2024, 2, 15)
    assert row.current_period_end.replace(tzinfo=timezone.utc) == utc(2024, 2, 15)


def test_subscription_updated_without_end_defaults_to_one_month(make_user):
    user = make_user(stripe_customer_id="cus_1")
    _created()

    dispatch(stripe_event("customer.subscription.updated", subscription_object(start_date=ts(2024, 1, 31))))

    row = _active(user.id)[0]
    assert row.current_period_end.replace(tzinfo=timezone.utc) == utc(2024, 2, 29)
    assert row.cancel_at_period_end is False


def test_subscription_updated_follows_price_change(make_user):
    user = make_user(stripe_customer_id="cus_1")
    _created()

    dispatch(stripe_event("customer.subscription.updated", subscription_object(price_id=PRO_PLUS_MONTHLY)))

    row = _active(user.id)[0]
    assert row.plan_type == PlanType.PRO_PLUS.value
    assert row.stripe_price_id == PRO_PLUS_MONTHLY
    assert get_user(user.id).max_designs == -1


def test_subscription_updated_before_created_is_a_noop(make_user):
    user = make_user(stripe_customer_id="cus_1")

    dispatch(stripe_event("customer.subscription.updated", subscription_object(sub_id="sub_late")))

    assert len(_rows(user.id)) == 1


def test_subscription_deleted_downgrades_to_free(make_user):
    user = make_user(stripe_customer_id="cus_1")
    _created()

    deleted = subscription_object(ended_at=ts(2024, 2, 15))
    dispatch(stripe_event("customer.subscription.deleted", deleted))

    rows = _rows(user.id)
    expired = next(row for row in rows if row.stripe_subscription_id == "sub_1")
    assert expired.status == "EXPIRED"
    assert expired.cancel_at_period_end is False
    assert expired.expires_at is None
    assert expired.ended_at.replace(tzinfo=timezone.utc) == utc(2024, 2, 15)

    active = _active(user.id)
    assert len(active) == 1
    assert active[0].plan_type == PlanType.FREE.value
    assert active[0].stripe_subscription_id is None
    assert get_user(user.id).max_designs == 3

    # Replay changes nothing
    dispatch(stripe_event("customer.subscription.deleted", deleted, event_id="evt_again"))
    assert len(_rows(user.id)) == len(rows)


def test_deleting_superseded_subscription_keeps_current_plan(make_user):
    user = make_user(stripe_customer_id="cus_1")
    _created(sub_id="sub_1")
    _created(sub_id="sub_2", price_id=PRO_PLUS_MONTHLY)

    dispatch(stripe_event("customer.subscription.deleted", subscription_object(sub_id="sub_1")))

    active = _active(user.id)
    assert len(active) == 1
    assert active[0].stripe_subscription_id == "sub_2"
    assert get_user(user.id).max_designs == -1


def test_payment_succeeded_sets_invoice_period(make_user):
    user = make_user(stripe_customer_id="cus_1")
    _created()

    dispatch(stripe_event(
        "invoice.payment_succeeded",
        invoice_object(period_start=ts(2024, 2, 15), period_end=ts(2024, 3, 15)),
    ))

    row = _active(user.id)[0]
    assert row.current_period_start.replace(tzinfo=timezone.utc) == utc(2024, 2, 15)
    assert row.current_period_end.replace(tzinfo=timezone.utc) == utc(2024, 3, 15)
    assert row.last_payment_at is not None


def test_payment_succeeded_reads_parent_subscription_details(make_user):
    user = make_user(stripe_customer_id="cus_1")
    _created()

    invoice = invoice_object(sub_id=None, period_start=ts(2024, 2, 15), period_end=ts(2024, 3, 15))
    invoice["parent"] = {"subscription_details": {"subscription": "sub_1"}}
    dispatch(stripe_event("invoice.payment_succeeded", invoice))

    assert _active(user.id)[0].last_payment_at is not None


def test_payment_failed_is_read_only(make_user, caplog):
    user = make_user(email="payer@example.com", stripe_customer_id="cus_1")
    _created()
    before = _rows(user.id)

    dispatch(stripe_event("invoice.payment_failed", invoice_object()))

    assert _rows(user.id) == before
    assert "payer@example.com" in caplog.text


def test_customer_updated_syncs_email(make_user):
    user = make_user(email="old@example.com", stripe_customer_id="cus_1")

    dispatch(stripe_event("customer.updated", {"id": "cus_1", "email": "New@Example.com"}))

    assert get_user(user.id).email == "new@example.com"


def test_customer_deleted_removes_user_and_subscriptions(make_user):
    user = make_user(stripe_customer_id="cus_1")
    _created()

    dispatch(stripe_event("customer.deleted", {"id": "cus_1"}))

    assert get_user_by_customer_id("cus_1") is None
    assert _rows(user.id) == []


def _row(user_id, sub_id):
    return next(row for row in _rows(user_id) if row.stripe_subscription_id == sub_id)


def test_invoice_without_period_keeps_stored_period(make_user):
    user = make_user(stripe_customer_id="cus_1")
    _created(cancel_at=ts(2024, 7, 1))

    dispatch(stripe_event("invoice.payment_succeeded", invoice_object(period_start=0, period_end=0)))
    missing = invoice_object()
    del missing["period_start"], missing["period_end"]
    dispatch(stripe_event("invoice.payment_succeeded", missing, event_id="evt_2"))

    row = _active(user.id)[0]
    assert row.current_period_start.replace(tzinfo=timezone.utc) == utc(2024, 1, 15)
    assert row.current_period_end.replace(tzinfo=timezone.utc) == utc(2024, 7, 1)
    assert row.last_payment_at is not None


def test_late_invoice_after_deletion_keeps_free_plan(make_user):
    user = make_user(stripe_customer_id="cus_1")
    _created()
    dispatch(stripe_event("customer.subscription.deleted", subscription_object(), event_id="evt_2"))

    dispatch(stripe_event(
        "invoice.payment_succeeded",
        invoice_object(period_start=ts(2024, 2, 15), period_end=ts(2024, 3, 15)),
        event_id="evt_3",
    ))

    active = _active(user.id)
    assert len(active) == 1
    assert active[0].plan_type == PlanType.FREE.value
    expired = _row(user.id, "sub_1")
    assert expired.status == "EXPIRED"
    assert expired.last_payment_at is not None
    assert get_user(user.id).max_designs == 3


def test_late_invoice_for_superseded_subscription_keeps_it_cancelled(make_user):
    user = make_user(stripe_customer_id="cus_1")
    _created(sub_id="sub_1")
    _created(sub_id="sub_2", price_id=PRO_PLUS_MONTHLY)

    dispatch(stripe_event(
        "invoice.payment_succeeded",
        invoice_object(sub_id="sub_1", period_start=ts(2024, 2, 15), period_end=ts(2024, 3, 15)),
    ))

    active = _active(user.id)
    assert len(active) == 1
    assert active[0].stripe_subscription_id == "sub_2"
    assert _row(user.id, "sub_1").status == "CANCELLED"
    assert get_user(user.id).max_designs == -1


def test_late_cancel_update_for_superseded_subscription_keeps_current_plan(make_user):
    user = make_user(stripe_customer_id="cus_1")
    _created(sub_id="sub_1")
    _created(sub_id="sub_2", price_id=PRO_PLUS_MONTHLY)

    late = subscription_object(sub_id="sub_1", cancel_at_period_end=True, cancel_at=ts(2024, 2, 15))
    dispatch(stripe_event("customer.subscription.updated", late))

    active = _active(user.id)
    assert len(active) == 1
    assert active[0].stripe_subscription_id == "sub_2"
    superseded = _row(user.id, "sub_1")
    assert superseded.status == "CANCELLED"
    assert superseded.cancel_at_period_end is False
    assert superseded.expires_at is None
    assert get_user(user.id).max_designs == -1


def test_late_update_after_deletion_stays_expired(make_user):
    user = make_user(stripe_customer_id="cus_1")
    _created()
    dispatch(stripe_event("customer.subscription.deleted", subscription_object(), event_id="evt_2"))

    late = subscription_object(cancel_at_period_end=True, cancel_at=ts(2024, 2, 15), price_id=PRO_PLUS_MONTHLY)
    dispatch(stripe_event("customer.subscription.updated", late, event_id="evt_3"))

    expired = _row(user.id, "sub_1")
    assert expired.status == "EXPIRED"
    assert expired.expires_at is None
    active = _active(user.id)
    assert len(active) == 1
    assert active[0].plan_type == PlanType.FREE.value
    assert get_user(user.id).max_designs == 3
