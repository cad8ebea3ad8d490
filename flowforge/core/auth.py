"""
Auth utilities for the FlowForge API.

Validates HS256 bearer JWTs signed with JWT_SECRET and extracts the user id
from the 'sub' claim. Outside production the X-User-Id header is accepted
as a fallback (tests, local tooling). Token issuance lives elsewhere.
"""
from fastapi import Header, HTTPException, Request
from typing import Optional
from flowforge.core.config import settings
import jwt
import logging

logger = logging.getLogger(__name__)


def verify_jwt(token: str) -> str:
    """
    Verify a bearer JWT and extract user_id.

    Returns:
        user_id from the 'sub' claim

    Raises:
        HTTPException 401: Invalid or expired token
    """
    if not settings.JWT_SECRET:
        logger.warning("JWT_SECRET not configured, rejecting bearer token")
        raise HTTPException(status_code=401, detail="Authentication not configured")

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=["HS256"],
            options={"verify_signature": True, "verify_exp": True},
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError as e:
        logger.debug(f"Invalid token: {e}")
        raise HTTPException(status_code=401, detail="Invalid token")

    user_id = payload.get("sub") or payload.get("userId")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token")
    return str(user_id)


def _header_fallback_allowed() -> bool:
    return settings.ENV.lower() not in ("production", "prod")


def _resolve_user_id(request: Request, x_user_id: Optional[str]) -> Optional[str]:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        user_id = verify_jwt(auth_header[7:].strip())
    elif x_user_id and _header_fallback_allowed():
        user_id = x_user_id
    else:
        return None

    request.state.user_id = user_id
    return user_id


async def get_current_user_id(
    request: Request,
    x_user_id: Optional[str] = Header(None, description="Test user ID (non-production only)"),
) -> str:
    """
    Extract current user ID from request context.

    Priority:
    1. Bearer JWT from Authorization header
    2. X-User-Id header (non-production only)
    3. Raise 401 Unauthorized
    """
    user_id = _resolve_user_id(request, x_user_id)
    if not user_id:
        raise HTTPException(
            status_code=401,
            detail="Missing Authorization (Bearer JWT) or X-User-Id header",
        )
    return user_id


async def get_optional_user_id(
    request: Request,
    x_user_id: Optional[str] = Header(None, description="Test user ID (non-production only)"),
) -> Optional[str]:
    """Like get_current_user_id, but anonymous callers get None."""
    return _resolve_user_id(request, x_user_id)
