"""FastAPI middleware for request context injection.

Binds request_id into structlog context for every request, so all logs
of one request (including a synchronous chapter analysis) correlate.
"""

from __future__ import annotations

import time
import uuid
from typing import TYPE_CHECKING

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from app.core.logging import get_logger, request_id_var

if TYPE_CHECKING:
    from starlette.requests import Request
    from starlette.responses import Response

logger = get_logger(__name__)

# SSE connections stay open for minutes; logging them as requests is noise
_QUIET_PREFIXES = ("/api/stream/", "/api/health")


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Middleware that binds a unique request_id to every request.

    Also logs request completion with its duration.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4())[:8])
        token = request_id_var.set(request_id)
        quiet = request.url.path.startswith(_QUIET_PREFIXES)

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            method=request.method,
            path=request.url.path,
        )

        started = time.perf_counter()
        try:
            response = await call_next(request)
            if not quiet:
                logger.info(
                    "request_completed",
                    status_code=response.status_code,
                    duration_ms=round((time.perf_counter() - started) * 1000, 1),
                )
            response.headers["X-Request-ID"] = request_id
            return response
        except Exception:
            logger.exception("request_failed")
            raise
        finally:
            structlog.contextvars.clear_contextvars()
            request_id_var.reset(token)
