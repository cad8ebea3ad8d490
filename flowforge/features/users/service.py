"""
User domain service.
- create_user(email, name) provisions the user on the free plan
- get_user(user_id) / get_user_by_email / get_user_by_customer_id
- get_profile / update_profile
"""

from typing import Optional
from uuid import uuid4
from sqlalchemy import select, insert, update

from flowforge.core.database import get_db_session, users
from flowforge.core.errors import ConflictError, NotFoundError, ValidationError
from flowforge.features.billing.periods import as_utc, utc_now
from flowforge.features.billing.subscriptions import activate_plan, get_active_subscription
from flowforge.features.plans.validator import get_free_plan
from flowforge.models.user import User


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        name=row.name,
        stripe_customer_id=row.stripe_customer_id,
        max_designs=row.max_designs,
        created_at=as_utc(row.created_at),
    )


def get_user(user_id: str) -> Optional[User]:
    with get_db_session() as session:
        row = session.execute(select(users).where(users.c.id == user_id)).first()
        return _row_to_user(row) if row else None


def get_user_by_email(email: str) -> Optional[User]:
    with get_db_session() as session:
        row = session.execute(select(users).where(users.c.email == email.strip().lower())).first()
        return _row_to_user(row) if row else None


def get_user_by_customer_id(stripe_customer_id: str) -> Optional[User]:
    with get_db_session() as session:
        row = session.execute(
            select(users).where(users.c.stripe_customer_id == stripe_customer_id)
        ).first()
        return _row_to_user(row) if row else None


def create_user(email: str, name: Optional[str] = None, user_id: Optional[str] = None) -> User:
    """
    Create a user together with an ACTIVE free-tier subscription.

    Raises:
        ValidationError: If email is empty
        ConflictError: If the email is already registered
    """
    email = (email or "").strip().lower()
    if not email:
        raise ValidationError("Email is required")
    if get_user_by_email(email):
        raise ConflictError("A user with this email already exists")

    user_id = user_id or str(uuid4())
    now = utc_now()
    with get_db_session() as session:
        session.execute(
            insert(users).values(
                id=user_id,
                email=email,
                name=name,
                max_designs=get_free_plan().max_designs,
                created_at=now,
            )
        )
    ensure_free_subscription(user_id)

    return get_user(user_id)


def ensure_free_subscription(user_id: str) -> bool:
    """
    Give the user an ACTIVE free subscription if they have no ACTIVE one.

    Returns:
        True if a free subscription was created
    """
    with get_db_session() as session:
        if get_active_subscription(session, user_id) is not None:
            return False
        activate_plan(session, user_id, get_free_plan())
    return True


def get_profile(user_id: str) -> dict:
    user = get_user(user_id)
    if not user:
        raise NotFoundError("User not found.")
    return {"name": user.name, "email": user.email}


def update_profile(user_id: str, name: Optional[str]) -> dict:
    if get_user(user_id) is None:
        raise NotFoundError("User not found.")

    with get_db_session() as session:
        session.execute(update(users).where(users.c.id == user_id).values(name=name))

    return get_profile(user_id)


def set_stripe_customer_id(user_id: str, stripe_customer_id: str) -> None:
    with get_db_session() as session:
        session.execute(
            update(users).where(users.c.id == user_id).values(stripe_customer_id=stripe_customer_id)
        )
