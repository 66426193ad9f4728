"""
API error handling: exception types and FastAPI handlers.
"""

from .exceptions import (
    APIException,
    ValidationException,
    RendererUnavailableException,
    NoPagesRenderedException
)
from .handlers import register_exception_handlers

__all__ = [
    'APIException',
    'ValidationException',
    'RendererUnavailableException',
    'NoPagesRenderedException',
    'register_exception_handlers',
]
