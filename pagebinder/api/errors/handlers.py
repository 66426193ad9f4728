"""
Exception handlers producing the error envelope:

    {"error": {"code", "message", "details", "timestamp", "request_id"}}
"""

import time
import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from pagebinder.api.errors.exceptions import APIException, RendererUnavailableException
from pagebinder.core.exceptions import ContextStartError

logger = logging.getLogger(__name__)


def error_response(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None
) -> JSONResponse:
    """Build the JSON error envelope for a request."""
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "code": code,
                "message": message,
                "details": details or {},
                "timestamp": time.time(),
                "request_id": getattr(request.state, "request_id", None)
            }
        }
    )


async def api_exception_handler(request: Request, exc: APIException) -> JSONResponse:
    logger.warning(f"{exc.code} on {request.url.path}: {exc.message}")
    return error_response(request, exc.status_code, exc.code, exc.message, exc.details)


async def context_start_handler(request: Request, exc: ContextStartError) -> JSONResponse:
    """A job aborted because the renderer could not start."""
    logger.error(f"Renderer unavailable for {request.url.path}: {exc.message}")
    unavailable = RendererUnavailableException(exc.message)
    return error_response(request, unavailable.status_code, unavailable.code, unavailable.message)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return error_response(request, exc.status_code, f"HTTP_{exc.status_code}", str(exc.detail))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report every invalid field; request validation errors are always 400."""
    errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"]
        }
        for error in exc.errors()
    ]
    logger.warning(f"Invalid request to {request.url.path}: {errors}")
    return error_response(
        request,
        status.HTTP_400_BAD_REQUEST,
        "VALIDATION_ERROR",
        "Request validation failed",
        {"errors": errors}
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled {type(exc).__name__} on {request.url.path}: {exc}")
    return error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "INTERNAL_SERVER_ERROR",
        "An unexpected error occurred"
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(APIException, api_exception_handler)
    app.add_exception_handler(ContextStartError, context_start_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
