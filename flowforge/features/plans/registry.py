"""
flowforge/features/plans/registry.py

Plan registry.

Holds the billing plans sold through Stripe and two read-only reverse
indices built once from them:
- price id -> plan (both monthly and yearly ids)
- frontend id -> plan

The built-in plans can be replaced without code changes by pointing
PLAN_REGISTRY_PATH at a JSON file holding a list with the same shape as
DEFAULT_PLANS.
"""

import json
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from flowforge.core.config import settings
from flowforge.models.plan import PlanConfig, PlanType

logger = logging.getLogger("flowforge.plans")


DEFAULT_PLANS: List[Dict[str, Any]] = [
    {
        "frontend_id": "starter",
        "plan_type": "FREE",
        "title": "Starter",
        "price_ids": {
            "monthly": "price_1Rv04OSsg21IEsaK7P0UvyZV",
            "yearly": "price_1Rv04OSsg21IEsaK7P0UvyZV",
        },
        "max_designs": 3,
        "is_free": True,
    },
    {
        "frontend_id": "plus",
        "plan_type": "PLUS",
        "title": "Plus",
        "price_ids": {
            "monthly": "price_1Rs5IOSsg21IEsaKPQhRl4aX",
            "yearly": "price_1Rs5QcSsg21IEsaKymrRCdNw",
        },
        "max_designs": 20,
        "is_free": False,
    },
    {
        "frontend_id": "pro-plus",
        "plan_type": "PRO_PLUS",
        "title": "Pro Plus",
        "price_ids": {
            "monthly": "price_1Rs5OqSsg21IEsaKMvE6F6dZ",
            "yearly": "price_1Rs5RCSsg21IEsaKpbAWq3Du",
        },
        "max_designs": -1,
        "is_free": False,
    },
]


class PlanRegistryError(RuntimeError):
    """Raised when a plan registry definition is inconsistent."""


class PlanRegistry:
    """Immutable set of plans plus their lookup indices."""

    def __init__(self, plans: Iterable[PlanConfig]):
        self._plans: Tuple[PlanConfig, ...] = tuple(plans)

        by_price: Dict[str, PlanConfig] = {}
        by_frontend: Dict[str, PlanConfig] = {}
        for plan in self._plans:
            if plan.frontend_id in by_frontend:
                raise PlanRegistryError(f"Duplicate frontend id: {plan.frontend_id}")
            by_frontend[plan.frontend_id] = plan
            for price_id in {plan.price_ids.monthly, plan.price_ids.yearly}:
                owner = by_price.get(price_id)
                if owner is not None and owner.frontend_id != plan.frontend_id:
                    raise PlanRegistryError(
                        f"Price id {price_id} is shared by {owner.frontend_id} and {plan.frontend_id}"
                    )
                by_price[price_id] = plan

        free_plans = [p for p in self._plans if p.is_free]
        if len(free_plans) != 1:
            raise PlanRegistryError(f"Exactly one free plan is required, found {len(free_plans)}")

        self._free_plan = free_plans[0]
        self._by_price_id: Mapping[str, PlanConfig] = MappingProxyType(by_price)
        self._by_frontend_id: Mapping[str, PlanConfig] = MappingProxyType(by_frontend)

    @property
    def plans(self) -> Tuple[PlanConfig, ...]:
        return self._plans

    @property
    def by_price_id(self) -> Mapping[str, PlanConfig]:
        return self._by_price_id

    @property
    def by_frontend_id(self) -> Mapping[str, PlanConfig]:
        return self._by_frontend_id

    @property
    def free_plan(self) -> PlanConfig:
        return self._free_plan

    def get_by_type(self, plan_type: PlanType) -> Optional[PlanConfig]:
        for plan in self._plans:
            if plan.plan_type == plan_type:
                return plan
        return None


def build_registry(definitions: Iterable[Dict[str, Any]]) -> PlanRegistry:
    """Validate raw plan definitions and build a registry from them."""
    return PlanRegistry(PlanConfig.model_validate(item) for item in definitions)


def load_registry(path: Optional[str] = None) -> PlanRegistry:
    """
    Load the registry from a JSON file, or from DEFAULT_PLANS when no path is given.

    Raises:
        PlanRegistryError: If the file is unreadable or the definitions are inconsistent
    """
    if not path:
        return build_registry(DEFAULT_PLANS)

    try:
        definitions = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise PlanRegistryError(f"Cannot load plan registry from {path}: {e}") from e

    registry = build_registry(definitions)
    logger.info(f"Loaded {len(registry.plans)} plans from {path}")
    return registry


_registry: Optional[PlanRegistry] = None


def get_registry() -> PlanRegistry:
    """Process-wide registry, loaded on first use."""
    global _registry
    if _registry is None:
        _registry = load_registry(settings.PLAN_REGISTRY_PATH)
    return _registry


def set_registry(registry: Optional[PlanRegistry]) -> None:
    """Install a registry at startup (or reset to lazy loading with None)."""
    global _registry
    _registry = registry
