"""
customer.subscription.* handlers.

Handlers key off the Stripe subscription id so they tolerate replays and
out-of-order delivery. Each handler runs in one transaction.
"""
import logging
from typing import Any, Dict, Optional

from flowforge.core.database import get_db_session
from flowforge.features.billing.periods import from_unix, period_from_subscription_object, utc_now
from flowforge.features.billing.subscriptions import (
    activate_plan,
    get_by_stripe_id,
    set_user_quota,
    update_subscription,
)
from flowforge.features.plans.validator import get_free_plan, validate_price_id
from flowforge.features.users.service import get_user_by_customer_id
from flowforge.models.subscription import SubscriptionStatus

logger = logging.getLogger("flowforge.webhooks")


def first_price_id(subscription: Dict[str, Any]) -> Optional[str]:
    items = (subscription.get("items") or {}).get("data") or []
    if not items:
        return None
    price = items[0].get("price") or {}
    return price.get("id") if isinstance(price, dict) else price


def handle_subscription_created(subscription: Dict[str, Any]) -> None:
    sub_id = subscription["id"]
    customer_id = subscription.get("customer")

    user = get_user_by_customer_id(customer_id) if customer_id else None
    if user is None:
        logger.warning(f"No user for customer {customer_id}, subscription {sub_id} ignored")
        return
    user_id = user.id

    with get_db_session() as session:
        if get_by_stripe_id(session, sub_id) is not None:
            logger.info(f"Subscription {sub_id} already exists, skipping")
            return

        price_id = first_price_id(subscription)
        validated = validate_price_id(price_id)
        if validated is None:
            logger.error(
                f"Subscription {sub_id} has unknown price {price_id}",
                extra={"user_id": user_id, "error_code": "invalid_price_id"},
            )
            return

        activate_plan(
            session,
            user_id,
            validated.plan_config,
            stripe_subscription_id=sub_id,
            stripe_price_id=price_id,
            period_start=from_unix(subscription.get("start_date")) or utc_now(),
            period_end=from_unix(subscription.get("cancel_at")),
        )

    logger.info(
        f"Activated {validated.plan_config.plan_type.value} for subscription {sub_id}",
        extra={"user_id": user_id},
    )


def handle_subscription_updated(subscription: Dict[str, Any]) -> None:
    sub_id = subscription["id"]
    period = period_from_subscription_object(subscription)

    with get_db_session() as session:
        existing = get_by_stripe_id(session, sub_id)
        if existing is None:
            logger.warning(f"Update for unknown subscription {sub_id}, nothing to do")
            return

        values: Dict[str, Any] = {
            "current_period_start": period.start,
            "current_period_end": period.end,
        }
        # Only the current plan enters the grace period; superseded and expired rows keep their status
        if subscription.get("cancel_at_period_end") and existing.status == SubscriptionStatus.ACTIVE:
            values.update(cancel_at_period_end=True, expires_at=period.end)
            logger.info(f"Subscription {sub_id} will expire on {period.end.isoformat()}")

        price_id = first_price_id(subscription)
        validated = validate_price_id(price_id)
        if validated is not None and price_id != existing.stripe_price_id:
            values.update(stripe_price_id=price_id, plan_type=validated.plan_config.plan_type.value)
            if existing.status == SubscriptionStatus.ACTIVE:
                set_user_quota(session, existing.user_id, validated.plan_config)

        update_subscription(session, existing.id, **values)


def handle_subscription_deleted(subscription: Dict[str, Any]) -> None:
    """
    Expire the subscription and fall back to the free plan.

    This is the only path that downgrades automatically. A row that was
    already superseded (CANCELLED) is expired without touching the user's
    current plan, and an EXPIRED row means the event was already applied.
    """
    sub_id = subscription["id"]

    with get_db_session() as session:
        existing = get_by_stripe_id(session, sub_id)
        if existing is None:
            logger.warning(f"Deletion for unknown subscription {sub_id}, nothing to do")
            return
        if existing.status == SubscriptionStatus.EXPIRED:
            logger.info(f"Subscription {sub_id} already expired")
            return

        update_subscription(
            session,
            existing.id,
            status=SubscriptionStatus.EXPIRED.value,
            cancel_at_period_end=False,
            expires_at=None,
            ended_at=from_unix(subscription.get("ended_at")) or utc_now(),
        )

        if existing.status != SubscriptionStatus.ACTIVE:
            return

        activate_plan(session, existing.user_id, get_free_plan())

    logger.info(f"Subscription {sub_id} expired, free plan activated", extra={"user_id": existing.user_id})
