"""
Health endpoints.

/healthz is a dependency-free liveness check. /readyz reports whether the
instance can serve traffic: database reachable with every table present,
plan registry loaded. Billing being disabled is reported but does not
fail readiness, since design and profile routes still work without it.
"""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import inspect

from flowforge.core.database import get_engine, metadata
from flowforge.features.billing.service import billing_enabled
from flowforge.features.plans.registry import PlanRegistryError, get_registry

logger = logging.getLogger("flowforge")

root_router = APIRouter(tags=["health"])


def _not_ready(detail: str) -> JSONResponse:
    logger.warning(f"[readyz] {detail}")
    return JSONResponse(status_code=503, content={"status": "error", "detail": detail})


@root_router.get("/healthz")
def healthz():
    """Lightweight liveness check (no deps)."""
    return {"status": "ok"}


@root_router.get("/readyz")
def readyz():
    try:
        engine = get_engine()
        with engine.connect() as conn:
            conn.exec_driver_sql("SELECT 1")
        inspector = inspect(engine)
        missing = [t for t in sorted(metadata.tables) if not inspector.has_table(t)]
    except Exception as e:
        logger.error(f"[readyz] readiness check failed: {e}")
        return _not_ready("database unreachable")

    if missing:
        return _not_ready(f"missing tables: {', '.join(missing)}")

    try:
        plans = len(get_registry().plans)
    except PlanRegistryError as e:
        return _not_ready(f"plan registry unavailable: {e}")

    return {
        "status": "ok",
        "plans": plans,
        "billing": "enabled" if billing_enabled() else "disabled",
    }
