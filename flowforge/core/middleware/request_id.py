"""
Request correlation middleware.

Every request gets a request id (the caller's X-Request-Id when it is
well formed, a fresh uuid4 otherwise) that is bound to the logging
context, echoed in the response header and attached to the completion
log line together with the authenticated user, if any.
"""
import logging
import re
import time
from typing import Iterable
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware

from flowforge.core.logging import request_id_ctx_var, latency_bucket_ms

_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")

QUIET_PATHS = ("/healthz", "/readyz")

logger = logging.getLogger("flowforge")


def accept_request_id(incoming: str) -> bool:
    """Caller-supplied ids end up in logs verbatim, so only plain tokens pass."""
    return bool(incoming and _VALID_REQUEST_ID.match(incoming))


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Attach a request_id to each request and log completion."""

    def __init__(self, app, header_name: str = "x-request-id", quiet_paths: Iterable[str] = QUIET_PATHS):
        super().__init__(app)
        self.header_name = header_name
        self.quiet_paths = frozenset(quiet_paths)

    async def dispatch(self, request, call_next):
        incoming = request.headers.get(self.header_name, "")
        rid = incoming if accept_request_id(incoming) else str(uuid4())
        request.state.request_id = rid
        token = request_id_ctx_var.set(rid)

        start = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            request_id_ctx_var.reset(token)
        duration_ms = (time.perf_counter() - start) * 1000

        response.headers[self.header_name] = rid

        # Probes hit every few seconds
        level = logging.DEBUG if request.url.path in self.quiet_paths else logging.INFO
        logger.log(
            level,
            "request.complete",
            extra={
                "request_id": rid,
                "user_id": getattr(request.state, "user_id", None),
                "path": request.url.path,
                "method": request.method,
                "status": getattr(response, "status_code", None),
                "latency_bucket": latency_bucket_ms(duration_ms),
            },
        )

        return response
