"""invoice.payment_* handlers."""
import logging
from typing import Any, Dict, Optional

from sqlalchemy import select

from flowforge.core.database import get_db_session, users
from flowforge.features.billing.periods import from_unix, utc_now
from flowforge.features.billing.subscriptions import get_by_stripe_id, update_subscription
from flowforge.models.subscription import SubscriptionStatus

logger = logging.getLogger("flowforge.webhooks")


def invoice_subscription_id(invoice: Dict[str, Any]) -> Optional[str]:
    """Subscription id from either the classic or the parent-details invoice shape."""
    sub = invoice.get("subscription")
    if isinstance(sub, dict):
        return sub.get("id")
    if sub:
        return sub
    details = ((invoice.get("parent") or {}).get("subscription_details") or {})
    return details.get("subscription")


def handle_payment_succeeded(invoice: Dict[str, Any]) -> None:
    sub_id = invoice_subscription_id(invoice)
    if not sub_id:
        return

    with get_db_session() as session:
        existing = get_by_stripe_id(session, sub_id)
        if existing is None:
            logger.warning(f"Payment for unknown subscription {sub_id}, invoice {invoice.get('id')}")
            return

        start = from_unix(invoice.get("period_start"))
        end = from_unix(invoice.get("period_end"))
        values: Dict[str, Any] = {"last_payment_at": utc_now()}
        # A zero or missing bound keeps the stored one
        if start is not None:
            values["current_period_start"] = start
        if end is not None:
            values["current_period_end"] = end
        # Status is left alone: a late invoice must not revive an expired or superseded row
        update_subscription(session, existing.id, **values)

    if existing.status != SubscriptionStatus.ACTIVE:
        logger.info(
            f"Payment recorded for {existing.status.value} subscription {sub_id}, status unchanged",
            extra={"user_id": existing.user_id},
        )
        return

    logger.info(
        f"Subscription {sub_id} billing period updated: {start} to {end}",
        extra={"user_id": existing.user_id},
    )


def handle_payment_failed(invoice: Dict[str, Any]) -> None:
    sub_id = invoice_subscription_id(invoice)
    if not sub_id:
        return

    with get_db_session() as session:
        existing = get_by_stripe_id(session, sub_id)
        if existing is None:
            return
        email = session.execute(
            select(users.c.email).where(users.c.id == existing.user_id)
        ).scalar()

    logger.warning(
        f"Payment failed for user {email}",
        extra={"user_id": existing.user_id, "error_code": "payment_failed"},
    )
