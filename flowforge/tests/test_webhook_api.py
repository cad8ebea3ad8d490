import json

from sqlalchemy import select

from flowforge.core.database import get_db_session, webhook_events
from flowforge.features.billing.provider import BillingWebhookError
from flowforge.tests.mocks import stripe_event, subscription_object


def _ledger():
    with get_db_session() as session:
        return session.execute(select(webhook_events)).fetchall()


def test_invalid_signature_is_rejected(client, mock_provider):
    mock_provider.construct_event.side_effect = BillingWebhookError("Invalid signature: bad")

    resp = client.post("/webhooks/stripe", content=b"{}", headers={"Stripe-Signature": "t=1,v1=bad"})

    assert resp.status_code == 400
    body = resp.json()
    assert body["error"]["code"] == "webhook_error"
    assert body["message"].startswith("Webhook Error:")
    assert _ledger() == []


def test_valid_event_is_acknowledged_and_processed(client, mock_provider, make_user):
    user = make_user(stripe_customer_id="cus_1")
    event = stripe_event("customer.subscription.created", subscription_object(), event_id="evt_api")
    mock_provider.construct_event.return_value = event

    resp = client.post(
        "/webhooks/stripe",
        content=json.dumps(event).encode(),
        headers={"Stripe-Signature": "t=1,v1=good"},
    )

    assert resp.status_code == 200
    assert resp.json() == {"received": True}
    mock_provider.construct_event.assert_called_once()
    assert mock_provider.construct_event.call_args[0][1] == "t=1,v1=good"

    rows = _ledger()
    assert len(rows) == 1
    assert rows[0].event_id == "evt_api"
    assert rows[0].status == "PROCESSED"

    status = client.get("/api/billing/status", headers={"X-User-Id": user.id}).json()
    assert status["planType"] == "PLUS"
    assert status["maxDesigns"] == 20


def test_handler_failure_still_acknowledges(client, mock_provider, make_user):
    make_user(stripe_customer_id="cus_1")
    event = stripe_event("customer.subscription.created", {"customer": "cus_1"}, event_id="evt_broken")
    mock_provider.construct_event.return_value = event

    resp = client.post("/webhooks/stripe", content=b"{}", headers={"Stripe-Signature": "sig"})

    assert resp.status_code == 200
    rows = _ledger()
    assert rows[0].status == "FAILED"
    assert rows[0].retry_count == 1


def test_failed_events_listing_requires_admin_key(client, mock_provider):
    event = stripe_event("customer.subscription.created", {"customer": "cus_x"}, event_id="evt_fail")
    mock_provider.construct_event.return_value = event
    client.post("/webhooks/stripe", content=b"{}", headers={"Stripe-Signature": "sig"})

    assert client.get("/api/billing/webhook-events/failed").status_code == 401

    resp = client.get("/api/billing/webhook-events/failed", headers={"X-Admin-Key": "test-admin-key"})
    assert resp.status_code == 200
    events = resp.json()["events"]
    assert [e["event_id"] for e in events] == ["evt_fail"]
    assert "payload" not in events[0]
