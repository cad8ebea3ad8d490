"""
Webhook event ledger.

One row per Stripe event id. The unique constraint on event_id is what
makes concurrent duplicate deliveries safe: the losing insert raises
IntegrityError and the caller drops the event.
"""
from typing import Any, Dict, List, Optional

from sqlalchemy import select, insert, update
from sqlalchemy.exc import IntegrityError

from flowforge.core.database import get_db_session, webhook_events
from flowforge.features.billing.periods import as_utc, utc_now
from flowforge.models.webhook import WebhookEvent, WebhookStatus


def _row_to_event(row) -> WebhookEvent:
    return WebhookEvent(
        event_id=row.event_id,
        event_type=row.event_type,
        status=WebhookStatus(row.status),
        retry_count=row.retry_count or 0,
        error_message=row.error_message,
        payload=row.payload,
        created_at=as_utc(row.created_at),
        processed_at=as_utc(row.processed_at),
    )


def get_event(event_id: str) -> Optional[WebhookEvent]:
    with get_db_session() as session:
        row = session.execute(
            select(webhook_events).where(webhook_events.c.event_id == event_id)
        ).first()
        return _row_to_event(row) if row else None


def record_pending(event_id: str, event_type: str, payload: Optional[Dict[str, Any]] = None) -> bool:
    """
    Insert the event as PENDING.

    Returns:
        False when another delivery already recorded this event id
    """
    try:
        with get_db_session() as session:
            session.execute(
                insert(webhook_events).values(
                    event_id=event_id,
                    event_type=event_type,
                    payload=payload,
                    status=WebhookStatus.PENDING.value,
                    retry_count=0,
                    created_at=utc_now(),
                )
            )
    except IntegrityError:
        return False
    return True


def mark_processed(event_id: str) -> None:
    with get_db_session() as session:
        session.execute(
            update(webhook_events)
            .where(webhook_events.c.event_id == event_id)
            .values(
                status=WebhookStatus.PROCESSED.value,
                processed_at=utc_now(),
                error_message=None,
            )
        )


def mark_failed(event_id: str, error_message: str) -> None:
    with get_db_session() as session:
        session.execute(
            update(webhook_events)
            .where(webhook_events.c.event_id == event_id)
            .values(
                status=WebhookStatus.FAILED.value,
                retry_count=webhook_events.c.retry_count + 1,
                error_message=error_message[:2000],
            )
        )


def list_failed_events(limit: int = 100) -> List[WebhookEvent]:
    """FAILED events, newest first. Replay is a manual operator action."""
    with get_db_session() as session:
        rows = session.execute(
            select(webhook_events)
            .where(webhook_events.c.status == WebhookStatus.FAILED.value)
            .order_by(webhook_events.c.created_at.desc(), webhook_events.c.id.desc())
            .limit(limit)
        ).fetchall()
        return [_row_to_event(row) for row in rows]
