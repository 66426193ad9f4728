"""
Document rendering endpoints.

Renders a site's page list (or an explicit URL list) into one merged PDF.
"""

import base64
import logging
from typing import List, Optional, Tuple

from fastapi import APIRouter, Query, Request, status
from fastapi.responses import Response
from pydantic import BaseModel, Field, field_validator

from pagebinder.api.errors.exceptions import (
    NoPagesRenderedException,
    ValidationException,
)
from pagebinder.core.config import get_config
from pagebinder.models.capture import JobConfig, JobReport
from pagebinder.services.render_job import RenderJob, build_job_config
from pagebinder.services.site_urls import resolve_site_urls

logger = logging.getLogger(__name__)

router = APIRouter()


class DocumentRequest(BaseModel):
    """Request model for rendering an explicit URL list."""

    urls: List[str] = Field(..., min_length=1, max_length=200, description="Ordered URLs to render")
    batch_size: Optional[int] = Field(None, ge=1, le=50, description="URLs per capture context")
    width_cap_px: Optional[int] = Field(None, ge=320, le=10000, description="Maximum page width in pixels")
    hide_selectors: List[str] = Field(default_factory=list, description="CSS selectors to hide")
    network_idle_timeout_ms: Optional[int] = Field(None, ge=0, le=120000)
    settle_delay_ms: Optional[int] = Field(None, ge=0, le=60000)
    include_document: bool = Field(False, description="Return the merged PDF as base64")

    @field_validator('urls')
    @classmethod
    def validate_urls(cls, v):
        for url in v:
            if not url.startswith(('http://', 'https://')):
                raise ValueError('URLs must include protocol (http:// or https://)')
        return v

    model_config = {
        "json_schema_extra": {
            "example": {
                "urls": ["https://example.com/", "https://example.com/contact/"],
                "batch_size": 5,
                "hide_selectors": ["header", "footer"],
                "include_document": False
            }
        }
    }


class DocumentResponse(BaseModel):
    """Job report for an explicit URL list."""

    job_id: str
    succeeded: List[str]
    failed: List[dict]
    warnings: List[dict]
    page_count: int
    batch_count: int
    deadline_exceeded: bool
    duration_seconds: float
    document_base64: Optional[str] = None


async def _run(request: Request, job_config: JobConfig) -> Tuple[RenderJob, JobReport]:
    """Run a job on the app's renderer. ContextStartError is left to the 503 handler."""
    job = RenderJob(job_config, request.app.state.renderer)
    logger.info(f"Job {job.job_id}: {len(job_config.urls)} URLs in batches of {job_config.batch_size}")
    return job, await job.run()


@router.get(
    "/documents/{slug}",
    status_code=status.HTTP_200_OK,
    summary="Render a site's pages into one PDF",
    response_class=Response,
    responses={200: {"content": {"application/pdf": {}}}}
)
async def render_site_document(
    request: Request,
    slug: str,
    hide_selectors: Optional[str] = Query(None, description="Comma-separated CSS selectors to hide"),
    batch_size: Optional[int] = Query(None, ge=1, le=50),
    width_cap_px: Optional[int] = Query(None, ge=320, le=10000),
    network_idle_timeout_ms: Optional[int] = Query(None, ge=0, le=120000),
    settle_delay_ms: Optional[int] = Query(None, ge=0, le=60000)
):
    """
    Render every page of a site into a single PDF attachment.

    Pages that fail to render are left out; the response headers
    ``X-Pages-Succeeded`` and ``X-Pages-Failed`` report how many.
    """
    config = get_config()
    try:
        urls = resolve_site_urls(slug, config.site)
    except ValueError as e:
        raise ValidationException(str(e), details={"slug": slug})

    selectors = [s.strip() for s in hide_selectors.split(',')] if hide_selectors else None
    job_config = build_job_config(
        urls,
        render_config=config.render,
        batch_size=batch_size,
        width_cap_px=width_cap_px,
        hide_selectors=selectors,
        network_idle_timeout_ms=network_idle_timeout_ms,
        settle_delay_ms=settle_delay_ms
    )

    _, report = await _run(request, job_config)
    if not report.has_document:
        raise NoPagesRenderedException(details={"failed": report.summary()["failed"]})

    return Response(
        content=report.final_document,
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'attachment; filename="{slug}.pdf"',
            "X-Pages-Succeeded": str(len(report.succeeded)),
            "X-Pages-Failed": str(len(report.failed)),
            "X-Job-ID": report.job_id
        }
    )


@router.post(
    "/documents",
    response_model=DocumentResponse,
    status_code=status.HTTP_200_OK,
    summary="Render an explicit URL list"
)
async def render_document(request: Request, body: DocumentRequest):
    """
    Render the given URLs in order and return the job report.

    The merged PDF is included as base64 when ``include_document`` is set.
    A job where every URL fails still returns 200 with the failures listed.
    """
    config = get_config()
    try:
        job_config = build_job_config(
            body.urls,
            render_config=config.render,
            batch_size=body.batch_size,
            width_cap_px=body.width_cap_px,
            hide_selectors=body.hide_selectors,
            network_idle_timeout_ms=body.network_idle_timeout_ms,
            settle_delay_ms=body.settle_delay_ms
        )
    except ValueError as e:
        raise ValidationException(str(e))

    job, report = await _run(request, job_config)
    summary = report.summary()

    document_base64 = None
    if body.include_document and report.has_document:
        document_base64 = base64.b64encode(report.final_document).decode('ascii')

    return DocumentResponse(
        job_id=report.job_id,
        succeeded=summary["succeeded"],
        failed=summary["failed"],
        warnings=summary["warnings"],
        page_count=report.page_count,
        batch_count=job.stats.batch_count,
        deadline_exceeded=report.deadline_exceeded,
        duration_seconds=job.stats.duration_seconds,
        document_base64=document_base64
    )
