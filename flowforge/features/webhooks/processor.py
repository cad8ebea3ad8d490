"""
Webhook event processing.

Runs after the HTTP acknowledgement has been sent. Lifecycle per event id:
UNSEEN -> PENDING -> PROCESSED | FAILED. Failures are recorded on the
ledger and logged; they never propagate.
"""
import logging
from typing import Any, Dict

from flowforge.core.logging import log_event
from flowforge.features.webhooks import store
from flowforge.features.webhooks.dispatcher import dispatch

logger = logging.getLogger("flowforge.webhooks")


def process_webhook_event(event: Dict[str, Any]) -> None:
    event_id = event["id"]
    event_type = event.get("type", "")
    log_extra = {"event_id": event_id, "event_type": event_type}

    if store.get_event(event_id) is not None:
        logger.info(f"Event {event_id} already recorded, skipping", extra=log_extra)
        return

    if not store.record_pending(event_id, event_type, event):
        logger.info(f"Event {event_id} claimed by a concurrent delivery", extra=log_extra)
        return

    try:
        dispatch(event)
    except Exception as e:
        log_event(
            "error",
            f"Webhook handler failed for {event_type}: {e}",
            event_id=event_id,
            event_type=event_type,
            error_code="webhook_handler_failed",
            exc_info=True,
        )
        store.mark_failed(event_id, str(e) or e.__class__.__name__)
        return

    store.mark_processed(event_id)
    logger.info(f"Event {event_id} processed", extra=log_extra)
