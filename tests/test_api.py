"""
Tests for the HTTP API.
"""

import base64
from typing import AsyncGenerator

import pytest
from httpx import AsyncClient, ASGITransport

from conftest import FakePageScript, FakeRenderer, page_sizes
from pagebinder.api.main import create_app
from pagebinder.core.config import get_config
from pagebinder.services.site_urls import resolve_site_urls


def site_urls():
    return resolve_site_urls("cpc", get_config().site)


async def make_client(renderer: FakeRenderer) -> AsyncGenerator[AsyncClient, None]:
    app = create_app(renderer=renderer)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture
async def client(renderer) -> AsyncGenerator[AsyncClient, None]:
    async for ac in make_client(renderer):
        yield ac


# ============================================================================
# GET /api/v1/documents/{slug}
# ============================================================================

@pytest.mark.asyncio
async def test_render_site_returns_pdf_attachment(client: AsyncClient, renderer: FakeRenderer):
    urls = site_urls()
    renderer.scripts[urls[1]] = FakePageScript(status=404)

    response = await client.get("/api/v1/documents/cpc", params={"settle_delay_ms": 0})

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    assert response.headers["content-disposition"] == 'attachment; filename="cpc.pdf"'
    assert response.headers["x-pages-succeeded"] == str(len(urls) - 1)
    assert response.headers["x-pages-failed"] == "1"
    assert "x-request-id" in response.headers
    assert len(page_sizes(response.content)) == len(urls) - 1


@pytest.mark.asyncio
async def test_render_site_applies_batch_size_and_hide_selectors(client: AsyncClient, renderer: FakeRenderer):
    response = await client.get(
        "/api/v1/documents/cpc",
        params={"batch_size": 10, "hide_selectors": "header,footer"}
    )

    assert response.status_code == 200
    assert renderer.open_calls == 2
    steps = {kind for context in renderer.contexts for kind, _ in context.steps_run}
    assert "hide_selectors" in steps


@pytest.mark.asyncio
async def test_render_site_with_no_pages_is_422(client: AsyncClient, renderer: FakeRenderer):
    for url in site_urls():
        renderer.scripts[url] = FakePageScript(status=503)

    response = await client.get("/api/v1/documents/cpc")

    assert response.status_code == 422
    error = response.json()["error"]
    assert error["code"] == "NO_PAGES_RENDERED"
    assert len(error["details"]["failed"]) == len(site_urls())
    assert error["details"]["failed"][0]["reason"] == "navigation"


@pytest.mark.asyncio
async def test_render_site_renderer_unavailable_is_503():
    renderer = FakeRenderer(fail_on_open={1})
    async for client in make_client(renderer):
        response = await client.get("/api/v1/documents/cpc")

    assert response.status_code == 503
    assert response.json()["error"]["code"] == "RENDERER_UNAVAILABLE"


@pytest.mark.asyncio
async def test_render_site_invalid_slug(client: AsyncClient, renderer: FakeRenderer):
    response = await client.get("/api/v1/documents/bad.slug")

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"
    assert renderer.open_calls == 0


@pytest.mark.asyncio
async def test_render_site_rejects_invalid_batch_size(client: AsyncClient):
    response = await client.get("/api/v1/documents/cpc", params={"batch_size": 0})

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


# ============================================================================
# POST /api/v1/documents
# ============================================================================

@pytest.mark.asyncio
async def test_render_url_list_report(client: AsyncClient, renderer: FakeRenderer):
    urls = ["https://example.com/a", "https://example.com/b", "https://example.com/c"]
    renderer.scripts[urls[1]] = FakePageScript(status=404)

    response = await client.post(
        "/api/v1/documents",
        json={"urls": urls, "batch_size": 2, "include_document": True}
    )

    assert response.status_code == 200
    data = response.json()
    assert data["succeeded"] == [urls[0], urls[2]]
    assert data["failed"] == [{"url": urls[1], "reason": "navigation", "detail": "HTTP status 404"}]
    assert data["page_count"] == 2
    assert data["batch_count"] == 2
    assert len(page_sizes(base64.b64decode(data["document_base64"]))) == 2


@pytest.mark.asyncio
async def test_render_url_list_without_document(client: AsyncClient):
    response = await client.post("/api/v1/documents", json={"urls": ["https://example.com/"]})

    assert response.status_code == 200
    assert response.json()["document_base64"] is None


@pytest.mark.asyncio
async def test_render_url_list_all_failed_still_reports(client: AsyncClient, renderer: FakeRenderer):
    renderer.scripts["https://example.com/"] = FakePageScript(status=404)

    response = await client.post(
        "/api/v1/documents",
        json={"urls": ["https://example.com/"], "include_document": True}
    )

    assert response.status_code == 200
    data = response.json()
    assert data["succeeded"] == []
    assert data["page_count"] == 0
    assert data["document_base64"] is None


@pytest.mark.asyncio
async def test_render_url_list_rejects_urls_without_protocol(client: AsyncClient):
    response = await client.post("/api/v1/documents", json={"urls": ["example.com"]})

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


# ============================================================================
# Health and metrics
# ============================================================================

@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["renderer"] == "FakeRenderer"


@pytest.mark.asyncio
async def test_metrics_exposes_capture_counters(client: AsyncClient):
    await client.post("/api/v1/documents", json={"urls": ["https://example.com/"]})

    response = await client.get("/metrics")

    assert response.status_code == 200
    assert "pagebinder_captures_total" in response.text
