"""
Per-request logging context.

Every request gets a request id (taken from ``X-Request-ID`` when the
caller sends one) that is bound into the structlog context, so the job
and capture log lines of a document request carry it too.
"""

import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from pagebinder.core.logging_config import bind_context, clear_context, get_logger

logger = get_logger(__name__)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Binds request_id/method/path, times the request and echoes the id back."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get('X-Request-ID') or uuid.uuid4().hex
        request.state.request_id = request_id
        bind_context(request_id=request_id, method=request.method, path=request.url.path)
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "request_failed",
                error_type=type(e).__name__,
                duration_ms=round((time.perf_counter() - started) * 1000, 1),
            )
            raise
        else:
            response.headers['X-Request-ID'] = request_id
            logger.info(
                "request_completed",
                status_code=response.status_code,
                duration_ms=round((time.perf_counter() - started) * 1000, 1),
                pages_succeeded=response.headers.get('X-Pages-Succeeded'),
                pages_failed=response.headers.get('X-Pages-Failed'),
            )
            return response
        finally:
            clear_context()
