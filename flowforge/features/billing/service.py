"""
Billing service.

Coordinates the billing provider and the local subscription store:
- Checkout sessions (new subscriptions and plan-change flows)
- Plan changes, including the downgrade to the free plan
- Billing status for the current user

All Stripe-specific code is in stripe_provider.py. Webhook-driven state
changes live in flowforge.features.webhooks.
"""
import logging
import os
from typing import Any, Dict, Optional

from flowforge.core.config import settings
from flowforge.core.database import get_db_session
from flowforge.core.errors import ConflictError, NotFoundError, ValidationError
from flowforge.features.billing.periods import compute_period
from flowforge.features.billing.provider import BillingProvider, BillingProviderError
from flowforge.features.billing.stripe_provider import StripeProvider
from flowforge.features.billing.subscriptions import (
    activate_plan,
    get_active_subscription,
    get_by_stripe_id,
    set_user_quota,
    update_subscription,
)
from flowforge.features.plans.validator import get_free_plan, get_valid_price_ids, validate_price_id
from flowforge.features.users.service import get_user, set_stripe_customer_id
from flowforge.models.plan import PlanType
from flowforge.models.subscription import SubscriptionStatus
from flowforge.models.user import User

logger = logging.getLogger("flowforge.billing")

_provider: Optional[BillingProvider] = None


def billing_enabled() -> bool:
    """Check if billing is enabled (Stripe configured)."""
    return bool(os.getenv("STRIPE_SECRET_KEY") or settings.STRIPE_SECRET_KEY)


def get_provider() -> BillingProvider:
    """
    Get the process-wide billing provider.

    Raises:
        BillingProviderError: If Stripe is not configured
    """
    global _provider
    if _provider is None:
        if not billing_enabled():
            raise BillingProviderError("Billing is not enabled", status_code=503)
        _provider = StripeProvider(
            secret_key=settings.STRIPE_SECRET_KEY,
            webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
        )
    return _provider


def set_provider(provider: Optional[BillingProvider]) -> None:
    """Install a provider (tests) or clear the cached one."""
    global _provider
    _provider = provider


def _require_user(user_id: str) -> User:
    user = get_user(user_id)
    if user is None:
        raise NotFoundError("User not found.")
    return user


def _validate_checkout_price(price_id: Optional[str]):
    if not price_id:
        raise ValidationError("Price Id not found")
    if price_id not in get_valid_price_ids():
        raise ValidationError("Invalid price ID for checkout", code="INVALID_PRICE_ID")


def create_checkout_session(user_id: str, price_id: Optional[str]) -> Dict[str, Any]:
    """
    Start a subscription checkout for a paid price.

    Reuses the user's Stripe customer when one exists, otherwise pre-fills
    the customer email.

    Returns:
        {"sessionId": ..., "url": ...}
    """
    _validate_checkout_price(price_id)
    user = _require_user(user_id)
    public_url = settings.PUBLIC_URL.rstrip("/")

    session = get_provider().create_checkout_session(
        price_id=price_id,
        success_url=f"{public_url}/success?session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=f"{public_url}/cancel?session_id={{CHECKOUT_SESSION_ID}}",
        customer_id=user.stripe_customer_id,
        customer_email=user.email,
        metadata={"userId": user.id},
    )
    logger.info(f"Checkout session {session['id']} created", extra={"user_id": user.id})
    return {"sessionId": session["id"], "url": session.get("url")}


def create_plan_change_checkout(user_id: str, target_price_id: Optional[str]) -> Dict[str, Any]:
    """Checkout used when a plan change needs a payment method first."""
    _validate_checkout_price(target_price_id)
    user = _require_user(user_id)
    public_url = settings.PUBLIC_URL.rstrip("/")

    session = get_provider().create_checkout_session(
        price_id=target_price_id,
        success_url=f"{public_url}/success?session_id={{CHECKOUT_SESSION_ID}}&plan_change=true",
        cancel_url=f"{public_url}/pricing?canceled=true",
        customer_id=user.stripe_customer_id,
        customer_email=user.email,
        metadata={"userId": user.id, "planChangeFlow": "true"},
    )
    logger.info(f"Plan change checkout session {session['id']} created", extra={"user_id": user.id})
    return {"sessionId": session["id"], "url": session.get("url")}


def retrieve_checkout_session(session_id: Optional[str]) -> Dict[str, Any]:
    if not session_id:
        raise NotFoundError("Session id not found")
    return get_provider().retrieve_checkout_session(session_id)


def _downgrade_to_free(user: User, current_stripe_subscription_id: Optional[str]) -> Dict[str, Any]:
    free_plan = get_free_plan()
    if current_stripe_subscription_id:
        get_provider().cancel_subscription(current_stripe_subscription_id)

    with get_db_session() as session:
        activate_plan(session, user.id, free_plan)

    logger.info("Downgraded to free plan", extra={"user_id": user.id})
    return {
        "message": "Successfully downgraded to free plan",
        "data": {
            "newPlan": free_plan.plan_type.value,
            "billingCycle": None,
            "subscriptionStatus": SubscriptionStatus.ACTIVE.value,
        },
    }


def _ensure_customer(provider: BillingProvider, user: User) -> str:
    if user.stripe_customer_id:
        return user.stripe_customer_id
    customer_id = provider.create_customer(user.email, metadata={"userId": user.id})
    set_stripe_customer_id(user.id, customer_id)
    return customer_id


def change_plan(user_id: str, target_price_id: Optional[str]) -> Dict[str, Any]:
    """
    Move the user to the plan behind target_price_id.

    Raises:
        ValidationError: Unknown price (INVALID_PRICE_ID) or no card on file
            (PAYMENT_METHOD_REQUIRED, with requiresCheckout)
        ConflictError: Already on the target plan
        BillingProviderError: Stripe call failed
    """
    if not target_price_id:
        raise ValidationError("Missing required parameters targetPriceId")

    validated = validate_price_id(target_price_id)
    if validated is None:
        raise ValidationError("Selected plan is not available", code="INVALID_PRICE_ID")

    user = _require_user(user_id)
    plan, billing_cycle = validated.plan_config, validated.billing_cycle

    with get_db_session() as session:
        current = get_active_subscription(session, user.id)
    current_plan_type = current.plan_type if current else PlanType.FREE
    current_stripe_id = current.stripe_subscription_id if current else None

    if current_plan_type == plan.plan_type:
        raise ConflictError("You are already on this plan")

    if plan.is_free:
        return _downgrade_to_free(user, current_stripe_id)

    provider = get_provider()
    customer_id = _ensure_customer(provider, user)

    payment_methods = provider.list_card_payment_methods(customer_id)
    if not payment_methods:
        raise ValidationError(
            "Payment method required for plan upgrade",
            code="PAYMENT_METHOD_REQUIRED",
            details={"requiresCheckout": True},
        )

    if current_stripe_id:
        provider.change_subscription_price(current_stripe_id, target_price_id)
        period = compute_period(provider, current_stripe_id, target_price_id)
        with get_db_session() as session:
            update_subscription(
                session,
                current.id,
                stripe_price_id=target_price_id,
                plan_type=plan.plan_type.value,
                current_period_start=period.start,
                current_period_end=period.end,
            )
            set_user_quota(session, user.id, plan)
    else:
        subscription = provider.create_subscription(
            customer_id,
            target_price_id,
            payment_methods[0],
            metadata={"userId": user.id},
        )
        period = compute_period(provider, subscription["id"], target_price_id)
        with get_db_session() as session:
            # The created webhook may have stored the subscription while Stripe was answering
            existing = get_by_stripe_id(session, subscription["id"])
            if existing is None:
                activate_plan(
                    session,
                    user.id,
                    plan,
                    stripe_subscription_id=subscription["id"],
                    stripe_price_id=target_price_id,
                    period_start=period.start,
                    period_end=period.end,
                )
            else:
                update_subscription(
                    session,
                    existing.id,
                    stripe_price_id=target_price_id,
                    plan_type=plan.plan_type.value,
                    current_period_start=period.start,
                    current_period_end=period.end,
                )
                if existing.status == SubscriptionStatus.ACTIVE:
                    set_user_quota(session, user.id, plan)

    logger.info(
        f"Plan changed to {plan.plan_type.value} ({billing_cycle})",
        extra={"user_id": user.id},
    )
    return {
        "message": "Plan updated successfully",
        "data": {
            "newPlan": plan.plan_type.value,
            "billingCycle": billing_cycle,
            "subscriptionStatus": SubscriptionStatus.ACTIVE.value,
            "nextBillingDate": period.end,
        },
    }


def get_billing_status(user_id: str) -> Dict[str, Any]:
    """
    Current plan and billing period for the user.

    Returns:
        {
            "planType": str,
            "status": str | None,
            "currentPeriodStart": datetime | None,
            "currentPeriodEnd": datetime | None,
            "cancelAtPeriodEnd": bool,
            "expiresAt": datetime | None,
            "maxDesigns": int
        }
    """
    user = _require_user(user_id)
    with get_db_session() as session:
        current = get_active_subscription(session, user.id)

    if current is None:
        return {
            "planType": get_free_plan().plan_type.value,
            "status": None,
            "currentPeriodStart": None,
            "currentPeriodEnd": None,
            "cancelAtPeriodEnd": False,
            "expiresAt": None,
            "maxDesigns": user.max_designs,
        }

    return {
        "planType": current.plan_type.value,
        "status": current.status.value,
        "currentPeriodStart": current.current_period_start,
        "currentPeriodEnd": current.current_period_end,
        "cancelAtPeriodEnd": current.cancel_at_period_end,
        "expiresAt": current.expires_at,
        "maxDesigns": user.max_designs,
    }
