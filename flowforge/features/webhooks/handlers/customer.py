"""customer.* handlers."""
import logging
from typing import Any, Dict

from sqlalchemy import delete, update

from flowforge.core.database import get_db_session, users

logger = logging.getLogger("flowforge.webhooks")


def handle_customer_updated(customer: Dict[str, Any]) -> None:
    email = customer.get("email")
    if not email:
        return
    with get_db_session() as session:
        result = session.execute(
            update(users)
            .where(users.c.stripe_customer_id == customer["id"])
            .values(email=email.strip().lower())
        )
    logger.info(f"Customer {customer['id']} updated ({result.rowcount} user rows)")


def handle_customer_deleted(customer: Dict[str, Any]) -> None:
    # Subscriptions, ownership rows and image records cascade
    with get_db_session() as session:
        result = session.execute(
            delete(users).where(users.c.stripe_customer_id == customer["id"])
        )
    logger.info(f"Customer {customer['id']} deleted ({result.rowcount} user rows)")
