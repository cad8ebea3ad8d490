"""Stripe-shaped payload builders shared by the tests."""
from datetime import datetime, timezone
from typing import Any, Dict, Optional

FREE_PRICE = "price_1Rv04OSsg21IEsaK7P0UvyZV"
PLUS_MONTHLY = "price_1Rs5IOSsg21IEsaKPQhRl4aX"
PLUS_YEARLY = "price_1Rs5QcSsg21IEsaKymrRCdNw"
PRO_PLUS_MONTHLY = "price_1Rs5OqSsg21IEsaKMvE6F6dZ"
PRO_PLUS_YEARLY = "price_1Rs5RCSsg21IEsaKpbAWq3Du"


def ts(year: int, month: int, day: int) -> int:
    return int(datetime(year, month, day, tzinfo=timezone.utc).timestamp())


def stripe_event(event_type: str, obj: Dict[str, Any], event_id: str = "evt_1") -> Dict[str, Any]:
    return {"id": event_id, "object": "event", "type": event_type, "data": {"object": obj}}


def subscription_object(
    sub_id: str = "sub_1",
    customer: str = "cus_1",
    price_id: str = PLUS_MONTHLY,
    start_date: Optional[int] = None,
    **extra: Any,
) -> Dict[str, Any]:
    obj = {
        "id": sub_id,
        "object": "subscription",
        "customer": customer,
        "start_date": start_date or ts(2024, 1, 15),
        "cancel_at": None,
        "ended_at": None,
        "cancel_at_period_end": False,
        "items": {"data": [{"id": "si_1", "price": {"id": price_id}}]},
    }
    obj.update(extra)
    return obj


def invoice_object(sub_id: str = "sub_1", period_start: int = 0, period_end: int = 0, **extra: Any) -> Dict[str, Any]:
    obj = {
        "id": "in_1",
        "object": "invoice",
        "subscription": sub_id,
        "period_start": period_start,
        "period_end": period_end,
    }
    obj.update(extra)
    return obj
