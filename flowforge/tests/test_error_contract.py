"""Tests for normalized error responses."""

from fastapi import FastAPI
from fastapi.testclient import TestClient

from flowforge.core.errors import (
    AppError,
    app_error_handler,
    unhandled_exception_handler,
)
from flowforge.core.middleware.request_id import RequestIdMiddleware


def _assert_standard_shape(resp, code):
    body = resp.json()
    rid = resp.headers.get("x-request-id")
    assert body["status"] is False
    assert body["error"]["code"] == code
    assert body["error"]["request_id"] == rid
    assert body["message"] == body["error"]["message"]
    return body


def test_validation_error_has_standard_shape(client, make_user):
    user = make_user()
    resp = client.post(
        "/api/designs",
        headers={"X-User-Id": user.id},
        json={"nodes": [], "edges": []},
    )
    assert resp.status_code == 400
    body = _assert_standard_shape(resp, "validation_error")
    assert "prompt" in body["message"]


def test_not_found_for_unknown_user(client):
    resp = client.get("/api/profile", headers={"X-User-Id": "ghost"})
    assert resp.status_code == 404
    _assert_standard_shape(resp, "not_found")


def test_missing_auth_is_401(client):
    resp = client.get("/api/profile")
    assert resp.status_code == 401
    _assert_standard_shape(resp, "http_error")


def test_unknown_route_is_normalized(client):
    resp = client.get("/api/nope")
    assert resp.status_code == 404
    _assert_standard_shape(resp, "not_found")


def test_unhandled_exception_becomes_application_error():
    test_app = FastAPI()
    test_app.add_middleware(RequestIdMiddleware)
    test_app.add_exception_handler(AppError, app_error_handler)
    test_app.add_exception_handler(Exception, unhandled_exception_handler)

    @test_app.get("/boom")
    def boom():
        raise RuntimeError("database password is hunter2")

    client = TestClient(test_app, raise_server_exceptions=False)
    resp = client.get("/boom")

    assert resp.status_code == 500
    body = resp.json()
    assert body["status"] is False
    assert body["error"]["code"] == "internal_error"
    assert body["message"] == "Application Error"
    assert "hunter2" not in resp.text


def test_app_error_details_are_merged_into_body():
    test_app = FastAPI()
    test_app.add_middleware(RequestIdMiddleware)
    test_app.add_exception_handler(AppError, app_error_handler)

    @test_app.get("/needs-card")
    def needs_card():
        raise AppError(
            "Payment method required for plan upgrade",
            code="PAYMENT_METHOD_REQUIRED",
            status_code=400,
            details={"requiresCheckout": True},
        )

    resp = TestClient(test_app).get("/needs-card")

    assert resp.status_code == 400
    body = _assert_standard_shape(resp, "PAYMENT_METHOD_REQUIRED")
    assert body["requiresCheckout"] is True
