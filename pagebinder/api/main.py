"""
FastAPI application factory.

    uvicorn --factory pagebinder.api.main:create_app
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pagebinder import __version__
from pagebinder.core.config import get_config
from pagebinder.core.logging_config import configure_structlog
from pagebinder.api.middleware import RequestContextMiddleware
from pagebinder.api.errors.handlers import register_exception_handlers
from pagebinder.api.routers import documents, health
from pagebinder.services.browser_session import Renderer, PlaywrightRenderer

logger = logging.getLogger(__name__)

DESCRIPTION = """
Renders an ordered list of web pages into one merged PDF, one PDF page per
web page, each sized to the page's full content. Pages that fail are left
out and reported; see `X-Pages-Succeeded` / `X-Pages-Failed`.

Errors use the envelope
`{"error": {"code", "message", "details", "timestamp", "request_id"}}`.
"""


@asynccontextmanager
async def lifespan(app: FastAPI):
    config = get_config()
    renderer = app.state.renderer
    logger.info(
        f"PageBinder API starting ({config.environment}) on {config.api.host}:{config.api.port} "
        f"with {type(renderer).__name__}, batch size {config.render.batch_size}"
    )
    yield
    logger.info("PageBinder API stopped")


def create_app(renderer: Optional[Renderer] = None) -> FastAPI:
    """
    Create the application.

    Args:
        renderer: Opens capture contexts for every job (Playwright by default)
    """
    config = get_config()
    configure_structlog(
        log_level=config.monitoring.log_level,
        json_logs=(config.monitoring.log_format == 'json'),
        development_mode=(config.environment == 'development')
    )

    app = FastAPI(
        title="PageBinder API",
        description=DESCRIPTION,
        version=__version__,
        docs_url="/api/docs",
        openapi_url="/api/openapi.json",
        lifespan=lifespan
    )
    app.state.renderer = renderer or PlaywrightRenderer(config.render)

    if config.api.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.api.cors_origins,
            allow_methods=["GET", "POST"],
            allow_headers=["*"],
            expose_headers=["Content-Disposition", "X-Request-ID", "X-Job-ID", "X-Pages-Succeeded", "X-Pages-Failed"]
        )
    app.add_middleware(RequestContextMiddleware)

    app.include_router(documents.router, prefix="/api/v1", tags=["Documents"])
    app.include_router(health.router, tags=["Health"])
    if config.monitoring.enable_metrics:
        app.include_router(health.metrics_router)

    register_exception_handlers(app)
    return app
