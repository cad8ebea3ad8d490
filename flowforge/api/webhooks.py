"""
Stripe webhook endpoint.

POST /webhooks/stripe verifies the signature and acknowledges at once;
the event itself is processed after the response has been sent. The
response never reflects the processing outcome.
"""
import logging

from fastapi import APIRouter, BackgroundTasks, Header, Request
from typing import Optional

from flowforge.features.billing import service as billing_service
from flowforge.features.billing.provider import BillingWebhookError
from flowforge.features.webhooks.processor import process_webhook_event

logger = logging.getLogger("flowforge.webhooks")

router = APIRouter(tags=["webhooks"])


@router.post("/webhooks/stripe")
async def stripe_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
):
    """
    Returns:
        200 {"received": true} once the signature checks out

    Errors:
        400: Missing or invalid signature, malformed payload
    """
    body = await request.body()
    try:
        event = billing_service.get_provider().construct_event(body, stripe_signature)
    except BillingWebhookError as e:
        logger.warning(f"Webhook rejected: {e.message}", extra={"error_code": "webhook_error"})
        raise BillingWebhookError(f"Webhook Error: {e.message}") from e

    logger.info(
        f"Webhook received: {event.get('type')}",
        extra={"event_id": event.get("id"), "event_type": event.get("type")},
    )
    background_tasks.add_task(process_webhook_event, event)
    return {"received": True}
