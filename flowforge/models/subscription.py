"""
Subscription models.

Status spelling is CANCELLED everywhere (the API never emits CANCELED).
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict

from flowforge.models.plan import PlanType


class SubscriptionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


class Subscription(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    user_id: str
    stripe_subscription_id: Optional[str] = None
    stripe_price_id: Optional[str] = None
    plan_type: PlanType
    status: SubscriptionStatus
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    expires_at: Optional[datetime] = None
    last_payment_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None


class BillingPeriod(BaseModel):
    """Period boundaries; authoritative is False when derived or defaulted."""
    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime
    authoritative: bool = False
