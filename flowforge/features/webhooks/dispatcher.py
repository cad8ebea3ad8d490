"""
Stripe event routing.

Maps event types to handlers. Types on the benign allow-list are
acknowledged without work; anything else is logged as not handled.
Neither case is an error.
"""
import logging
from typing import Any, Callable, Dict

from flowforge.features.webhooks.handlers.customer import handle_customer_deleted, handle_customer_updated
from flowforge.features.webhooks.handlers.payment import handle_payment_failed, handle_payment_succeeded
from flowforge.features.webhooks.handlers.subscription import (
    handle_subscription_created,
    handle_subscription_deleted,
    handle_subscription_updated,
)

logger = logging.getLogger("flowforge.webhooks")

Handler = Callable[[Dict[str, Any]], None]

EVENT_HANDLERS: Dict[str, Handler] = {
    "customer.subscription.created": handle_subscription_created,
    "customer.subscription.updated": handle_subscription_updated,
    "customer.subscription.deleted": handle_subscription_deleted,
    "invoice.payment_succeeded": handle_payment_succeeded,
    "invoice.payment_failed": handle_payment_failed,
    "customer.updated": handle_customer_updated,
    "customer.deleted": handle_customer_deleted,
}

BENIGN_EVENT_TYPES = frozenset({
    "payment_intent.succeeded",
    "charge.succeeded",
    "checkout.session.completed",
    "invoice.created",
    "invoice.finalized",
    "invoice.paid",
})


def dispatch(event: Dict[str, Any]) -> bool:
    """
    Route an event to its handler.

    Returns:
        True if a handler ran
    """
    event_type = event.get("type", "")
    handler = EVENT_HANDLERS.get(event_type)
    if handler is None:
        if event_type in BENIGN_EVENT_TYPES:
            logger.info(f"No action needed for {event_type}", extra={"event_id": event.get("id")})
        else:
            logger.info(f"Event type {event_type} not handled", extra={"event_id": event.get("id")})
        return False

    handler(event["data"]["object"])
    return True
