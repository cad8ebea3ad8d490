# flowforge/conftest.py
import os
import pytest
from unittest.mock import Mock, patch

# Settings are read at import time; pin a test environment first
os.environ.setdefault("SKIP_ENV_VALIDATION", "1")
os.environ.setdefault("ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("ADMIN_KEY", "test-admin-key")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_dummy")

TEST_DB_URL = "sqlite://"


@pytest.fixture(scope="function", autouse=True)
def reset_db():
    """
    Fresh in-memory database per test.

    StaticPool keeps the single connection alive, so every session in the
    test sees the same database.
    """
    from flowforge.core.database import init_engine, dispose_engine, create_all_tables

    dispose_engine()
    init_engine(TEST_DB_URL)
    create_all_tables()
    yield
    dispose_engine()


@pytest.fixture(scope="function", autouse=True)
def reset_singletons():
    """Drop cached registry, provider and graph store between tests."""
    from flowforge.features.plans.registry import set_registry
    from flowforge.features.billing.service import set_provider
    from flowforge.features.designs.graph_store import set_graph_store

    yield
    set_registry(None)
    set_provider(None)
    set_graph_store(None)


@pytest.fixture
def mock_provider():
    """Mock billing provider installed where the services look it up."""
    with patch("flowforge.features.billing.service.get_provider") as mock_get:
        provider = Mock()
        mock_get.return_value = provider
        yield provider


@pytest.fixture
def make_user():
    """Factory creating users on the free plan."""
    from flowforge.features.users.service import create_user

    counter = {"n": 0}

    def _make(email=None, name="Test User", stripe_customer_id=None, user_id=None):
        counter["n"] += 1
        user = create_user(email or f"user{counter['n']}@example.com", name=name, user_id=user_id)
        if stripe_customer_id:
            from flowforge.features.users.service import set_stripe_customer_id, get_user
            set_stripe_customer_id(user.id, stripe_customer_id)
            user = get_user(user.id)
        return user

    return _make


@pytest.fixture
def client():
    from fastapi.testclient import TestClient
    from flowforge.main import app

    return TestClient(app, raise_server_exceptions=False)
