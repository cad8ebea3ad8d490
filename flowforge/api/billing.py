"""
Billing API routes.

- POST /api/billing/checkout: Create checkout session
- POST /api/billing/change-plan-checkout: Checkout for a plan change
- POST /api/billing/change-plan: Change plan directly
- GET  /api/billing/session: Retrieve a checkout session
- GET  /api/billing/status: Current plan and billing period
- GET  /api/billing/webhook-events/failed: Failed webhook events (admin)
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from flowforge.core.admin_auth import require_admin
from flowforge.core.auth import get_current_user_id
from flowforge.features.billing import service as billing_service
from flowforge.features.webhooks.store import list_failed_events


router = APIRouter(prefix="/billing", tags=["billing"])


class CheckoutRequest(BaseModel):
    price_id: Optional[str] = Field(default=None, alias="priceId")


class PlanChangeRequest(BaseModel):
    target_price_id: Optional[str] = Field(default=None, alias="targetPriceId")


class BillingStatusResponse(BaseModel):
    planType: str
    status: Optional[str] = None
    currentPeriodStart: Optional[datetime] = None
    currentPeriodEnd: Optional[datetime] = None
    cancelAtPeriodEnd: bool = False
    expiresAt: Optional[datetime] = None
    maxDesigns: int


@router.post("/checkout", status_code=201)
def create_checkout(request: CheckoutRequest, user_id: str = Depends(get_current_user_id)):
    """
    Create a Stripe checkout session for a paid price.

    Errors:
        400: Missing or unknown price id
        503: Billing disabled (STRIPE_SECRET_KEY not set)
    """
    session = billing_service.create_checkout_session(user_id, request.price_id)
    return {"status": True, **session}


@router.post("/change-plan-checkout", status_code=201)
def create_plan_change_checkout(request: PlanChangeRequest, user_id: str = Depends(get_current_user_id)):
    session = billing_service.create_plan_change_checkout(user_id, request.target_price_id)
    return {"status": True, **session}


@router.post("/change-plan")
def change_plan(request: PlanChangeRequest, user_id: str = Depends(get_current_user_id)):
    """
    Errors:
        400: INVALID_PRICE_ID, or PAYMENT_METHOD_REQUIRED with requiresCheckout
        409: Already on the target plan
    """
    result = billing_service.change_plan(user_id, request.target_price_id)
    return {"status": True, **result}


@router.get("/session")
def retrieve_session(
    session_id: Optional[str] = Query(None),
    user_id: str = Depends(get_current_user_id),
):
    session = billing_service.retrieve_checkout_session(session_id)
    return {"status": True, "session": session}


@router.get("/status", response_model=BillingStatusResponse)
def billing_status(user_id: str = Depends(get_current_user_id)):
    return billing_service.get_billing_status(user_id)


@router.get("/webhook-events/failed", dependencies=[Depends(require_admin)])
def failed_webhook_events(limit: int = Query(100, ge=1, le=500)) -> Dict[str, Any]:
    events: List[Dict[str, Any]] = [
        event.model_dump(mode="json", exclude={"payload"}) for event in list_failed_events(limit)
    ]
    return {"status": True, "count": len(events), "events": events}
