"""
flowforge/models/plan.py

Billing plan models.

A PlanConfig maps a frontend plan name to its billing tier, the two Stripe
price ids that sell it, and the design quota it grants.
"""

from enum import Enum
from typing import Literal
from pydantic import BaseModel, ConfigDict


UNLIMITED_DESIGNS = -1


class PlanType(str, Enum):
    FREE = "FREE"
    PLUS = "PLUS"
    PRO_PLUS = "PRO_PLUS"


BillingCycle = Literal["monthly", "yearly"]


class PriceIds(BaseModel):
    model_config = ConfigDict(frozen=True)

    monthly: str
    yearly: str


class PlanConfig(BaseModel):
    """
    PlanConfig represents one entry of the plan registry.

    max_designs == -1 means the plan has no design quota.
    """
    model_config = ConfigDict(frozen=True)

    frontend_id: str
    plan_type: PlanType
    title: str
    price_ids: PriceIds
    max_designs: int
    is_free: bool = False

    @property
    def unlimited(self) -> bool:
        return self.max_designs == UNLIMITED_DESIGNS


class ValidatedPlan(BaseModel):
    model_config = ConfigDict(frozen=True)

    plan_config: PlanConfig
    billing_cycle: BillingCycle
