"""
Subscription state store.

Session-scoped helpers shared by the webhook handlers and the plan-change
service. Callers own the transaction: every helper runs on the session it
is given, so cancel-then-create sequences commit or roll back together.

This module and its callers are the only writers of app_users.max_designs.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import select, insert, update
from sqlalchemy.orm import Session

from flowforge.core.database import subscriptions, users
from flowforge.features.billing.periods import as_utc, utc_now
from flowforge.models.plan import PlanConfig, PlanType
from flowforge.models.subscription import Subscription, SubscriptionStatus


def row_to_subscription(row) -> Subscription:
    return Subscription(
        id=row.id,
        user_id=row.user_id,
        stripe_subscription_id=row.stripe_subscription_id,
        stripe_price_id=row.stripe_price_id,
        plan_type=PlanType(row.plan_type),
        status=SubscriptionStatus(row.status),
        current_period_start=as_utc(row.current_period_start),
        current_period_end=as_utc(row.current_period_end),
        cancel_at_period_end=bool(row.cancel_at_period_end),
        expires_at=as_utc(row.expires_at),
        last_payment_at=as_utc(row.last_payment_at),
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
        ended_at=as_utc(row.ended_at),
    )


def get_active_subscription(session: Session, user_id: str) -> Optional[Subscription]:
    row = session.execute(
        select(subscriptions)
        .where(
            subscriptions.c.user_id == user_id,
            subscriptions.c.status == SubscriptionStatus.ACTIVE.value,
        )
        .order_by(subscriptions.c.updated_at.desc(), subscriptions.c.id.desc())
        .limit(1)
    ).first()
    return row_to_subscription(row) if row else None


def get_by_stripe_id(session: Session, stripe_subscription_id: str) -> Optional[Subscription]:
    row = session.execute(
        select(subscriptions).where(subscriptions.c.stripe_subscription_id == stripe_subscription_id)
    ).first()
    return row_to_subscription(row) if row else None


def cancel_active_subscriptions(session: Session, user_id: str, now: Optional[datetime] = None) -> int:
    """Mark every ACTIVE row of the user CANCELLED. Returns rows touched."""
    result = session.execute(
        update(subscriptions)
        .where(
            subscriptions.c.user_id == user_id,
            subscriptions.c.status == SubscriptionStatus.ACTIVE.value,
        )
        .values(status=SubscriptionStatus.CANCELLED.value, updated_at=now or utc_now())
    )
    return result.rowcount


def set_user_quota(session: Session, user_id: str, plan: PlanConfig) -> None:
    session.execute(
        update(users).where(users.c.id == user_id).values(max_designs=plan.max_designs)
    )


def activate_plan(
    session: Session,
    user_id: str,
    plan: PlanConfig,
    stripe_subscription_id: Optional[str] = None,
    stripe_price_id: Optional[str] = None,
    period_start: Optional[datetime] = None,
    period_end: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> int:
    """
    Cancel the user's ACTIVE rows, insert a new ACTIVE row and sync the quota.

    Locally provisioned free rows are created without Stripe ids and
    without a period end.

    Returns:
        Id of the new subscription row
    """
    now = now or utc_now()
    cancel_active_subscriptions(session, user_id, now)

    result = session.execute(
        insert(subscriptions).values(
            user_id=user_id,
            stripe_subscription_id=stripe_subscription_id,
            stripe_price_id=stripe_price_id,
            plan_type=plan.plan_type.value,
            status=SubscriptionStatus.ACTIVE.value,
            current_period_start=period_start or now,
            current_period_end=period_end,
            cancel_at_period_end=False,
            created_at=now,
            updated_at=now,
        )
    )
    set_user_quota(session, user_id, plan)
    return result.inserted_primary_key[0]


def update_subscription(session: Session, subscription_id: int, **values) -> None:
    values.setdefault("updated_at", utc_now())
    session.execute(
        update(subscriptions).where(subscriptions.c.id == subscription_id).values(**values)
    )
