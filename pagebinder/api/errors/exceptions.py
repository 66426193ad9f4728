"""
Exceptions raised by the document endpoints.

Each subclass fixes its HTTP status and error code; raising one from a
route produces the standard error envelope.
"""

from typing import Optional, Dict, Any
from fastapi import HTTPException, status


class APIException(HTTPException):
    """Base class: an HTTP error with a machine-readable code."""

    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "API_ERROR"
    default_message = "Request failed"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(status_code=self.http_status, detail=self.message)


class ValidationException(APIException):
    """Bad slug, URL list or override."""

    http_status = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION_ERROR"
    default_message = "Request validation failed"


class RendererUnavailableException(APIException):
    """No capture context could be opened, so no document was produced."""

    http_status = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "RENDERER_UNAVAILABLE"
    default_message = "Renderer is unavailable"


class NoPagesRenderedException(APIException):
    """Every URL of the job failed."""

    http_status = 422
    code = "NO_PAGES_RENDERED"
    default_message = "None of the requested pages could be rendered"
