"""
Billing period reconciliation.

Computes subscription period boundaries by cross-referencing Stripe's
subscription and latest invoice. Resolution order:

1. Latest invoice period (authoritative) when start and end differ.
2. Subscription start date plus one calendar month or year, following the
   billing cycle of the price id (monthly when the cycle is unknown).
3. now .. now + 1 month when Stripe cannot be reached. Period dates are
   display data, so this path degrades instead of failing; it is logged as
   billing.period.fallback for later reconciliation.
"""
import calendar
import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from flowforge.features.billing.provider import BillingProvider
from flowforge.features.plans.validator import validate_price_id
from flowforge.models.subscription import BillingPeriod

logger = logging.getLogger("flowforge.billing")


def utc_now() -> datetime:
    """Timezone-aware UTC now."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def from_unix(ts: Optional[int]) -> Optional[datetime]:
    """Convert a Stripe unix timestamp to an aware datetime."""
    if not ts:
        return None
    return datetime.fromtimestamp(int(ts), tz=timezone.utc)


def add_months(dt: datetime, months: int = 1) -> datetime:
    """Add calendar months, clamping to the last day of the target month."""
    month = dt.month - 1 + months
    year = dt.year + month // 12
    month = month % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def add_years(dt: datetime, years: int = 1) -> datetime:
    try:
        return dt.replace(year=dt.year + years)
    except ValueError:
        # Feb 29 -> Feb 28
        return dt.replace(year=dt.year + years, day=28)


def _invoice_period(invoice: Any) -> Optional[BillingPeriod]:
    # An unexpanded latest_invoice is just an id string
    if invoice is None or isinstance(invoice, str):
        return None
    start = invoice.get("period_start")
    end = invoice.get("period_end")
    if not start or not end or start == end:
        return None
    return BillingPeriod(start=from_unix(start), end=from_unix(end), authoritative=True)


def derive_period(start: datetime, price_id: Optional[str]) -> BillingPeriod:
    """Default period from a start date and the price id's billing cycle."""
    validated = validate_price_id(price_id)
    if validated is not None and validated.billing_cycle == "yearly":
        end = add_years(start)
    else:
        end = add_months(start)
    return BillingPeriod(start=start, end=end, authoritative=False)


def compute_period(
    provider: BillingProvider,
    subscription_id: str,
    price_id: Optional[str],
    now: Optional[datetime] = None,
) -> BillingPeriod:
    """
    Compute the current period for a Stripe subscription.

    Never raises for lookup failures; see module docstring for the order.
    """
    now = now or utc_now()

    try:
        subscription = provider.retrieve_subscription(subscription_id, expand_latest_invoice=True)
    except Exception as e:
        logger.warning(
            f"billing.period.fallback subscription={subscription_id} error={e}",
            extra={"error_code": "period_lookup_failed"},
        )
        return BillingPeriod(start=now, end=add_months(now), authoritative=False)

    period = _invoice_period(subscription.get("latest_invoice"))
    if period is not None:
        return period

    start = from_unix(subscription.get("start_date")) or now
    period = derive_period(start, price_id)
    logger.info(f"Derived billing period for {subscription_id}: {period.start.isoformat()} to {period.end.isoformat()}")
    return period


def period_from_subscription_object(subscription: Mapping[str, Any]) -> BillingPeriod:
    """
    Period carried by a subscription webhook payload.

    End is cancel_at, else ended_at, else start + 1 calendar month as a
    placeholder until an invoice supplies the real boundary.
    """
    start = from_unix(subscription.get("start_date")) or utc_now()
    end = from_unix(subscription.get("cancel_at")) or from_unix(subscription.get("ended_at"))
    if end is None:
        return BillingPeriod(start=start, end=add_months(start), authoritative=False)
    return BillingPeriod(start=start, end=end, authoritative=True)
