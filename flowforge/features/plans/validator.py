"""
Plan validator.

Resolves Stripe price ids against the plan registry. A price id that is
not registered resolves to None and the caller must reject the operation.
"""

from typing import List, Optional

from flowforge.features.plans.registry import get_registry
from flowforge.models.plan import PlanConfig, ValidatedPlan


def validate_price_id(price_id: Optional[str]) -> Optional[ValidatedPlan]:
    """
    Resolve a price id to its plan and billing cycle.

    The cycle is "monthly" when the id is the plan's monthly price, else "yearly".
    """
    if not price_id:
        return None

    plan_config = get_registry().by_price_id.get(price_id)
    if plan_config is None:
        return None

    billing_cycle = "monthly" if price_id == plan_config.price_ids.monthly else "yearly"
    return ValidatedPlan(plan_config=plan_config, billing_cycle=billing_cycle)


def get_valid_price_ids() -> List[str]:
    """Price ids that can be sold through checkout (free plan excluded)."""
    return [
        price_id
        for price_id, plan in get_registry().by_price_id.items()
        if not plan.is_free
    ]


def get_free_plan() -> PlanConfig:
    return get_registry().free_plan
