"""Tests for the user domain: provisioning and profile."""
import pytest

from flowforge.core.errors import ConflictError, ValidationError
from flowforge.features.users.service import (
    create_user,
    ensure_free_subscription,
    get_user_by_email,
    get_user_by_customer_id,
)
from flowforge.core.database import get_db_session
from flowforge.features.billing.subscriptions import cancel_active_subscriptions, get_active_subscription


def test_create_user_normalizes_email_and_rejects_duplicates():
    user = create_user("  Ada@Example.COM ", name="Ada")
    assert user.email == "ada@example.com"
    assert get_user_by_email("ADA@example.com").id == user.id

    with pytest.raises(ConflictError):
        create_user("ada@example.com")
    with pytest.raises(ValidationError):
        create_user("   ")


def test_ensure_free_subscription_only_when_missing(make_user):
    user = make_user()
    assert ensure_free_subscription(user.id) is False

    with get_db_session() as session:
        cancel_active_subscriptions(session, user.id)
    assert ensure_free_subscription(user.id) is True

    with get_db_session() as session:
        assert get_active_subscription(session, user.id).plan_type.value == "FREE"


def test_customer_lookup(make_user):
    user = make_user(stripe_customer_id="cus_42")
    assert get_user_by_customer_id("cus_42").id == user.id
    assert get_user_by_customer_id("cus_missing") is None


def test_profile_read_and_update(client, make_user):
    user = make_user(email="pat@example.com", name="Pat")
    headers = {"X-User-Id": user.id}

    resp = client.get("/api/profile", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["data"] == {"name": "Pat", "email": "pat@example.com"}

    resp = client.patch("/api/profile", json={"name": "Pat Q"}, headers=headers)
    assert resp.json()["data"]["name"] == "Pat Q"


def test_profile_for_unknown_user_is_404(client):
    resp = client.get("/api/profile", headers={"X-User-Id": "nobody"})
    assert resp.status_code == 404
