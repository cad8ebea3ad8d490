"""
Admin authentication.

Admin endpoints are gated by a shared secret sent as X-Admin-Key and
compared against ADMIN_KEY. With no key configured every admin request is
refused.
"""
import hmac
import os
from typing import Optional

from fastapi import HTTPException, Request

from flowforge.core.config import settings


def get_admin_api_key() -> Optional[str]:
    """Prefer ADMIN_KEY from the environment; fall back to settings."""
    return os.getenv("ADMIN_KEY") or settings.ADMIN_KEY


def require_admin(request: Request) -> None:
    """
    FastAPI dependency: require a valid X-Admin-Key header.

    Raises:
        HTTPException 503: No admin key configured
        HTTPException 401: Header missing or wrong
    """
    expected_key = get_admin_api_key()
    if not expected_key:
        raise HTTPException(status_code=503, detail="Admin authentication not configured")

    header_key = request.headers.get("X-Admin-Key", "").strip()
    if not header_key or not hmac.compare_digest(header_key, expected_key):
        raise HTTPException(status_code=401, detail="Unauthorized: invalid or missing admin key")
