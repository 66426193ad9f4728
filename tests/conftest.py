"""
Shared fixtures for the test suite.

The fake renderer stands in for Chromium: every URL gets a scripted
``FakePageScript`` (status code, layout size, slow readiness steps, errors),
and emitted documents are real single-page PDFs built with pypdf so merge
results can be inspected page by page.
"""

import io
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

import pytest
from pypdf import PdfReader, PdfWriter

from pagebinder.core.exceptions import (
    ContextStartError,
    NavigationError,
    ReadinessTimeout,
)
from pagebinder.models.capture import ContentBox
from pagebinder.services.browser_session import CaptureContext, Renderer

# Set test environment
os.environ['ENVIRONMENT'] = 'test'
os.environ['LOG_FORMAT'] = 'console'


def make_pdf(width: float, height: float, pages: int = 1) -> bytes:
    """Build a real PDF with ``pages`` blank pages of the given size."""
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=width, height=height)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def page_sizes(document: bytes) -> List[Tuple[float, float]]:
    """(width, height) of every page of a PDF."""
    reader = PdfReader(io.BytesIO(document))
    return [(float(page.mediabox.width), float(page.mediabox.height)) for page in reader.pages]


@dataclass
class FakePageScript:
    """How the fake renderer behaves for one URL."""
    status: int = 200
    width: int = 1000
    height: int = 2000
    slow_steps: Set[str] = field(default_factory=set)
    navigate_error: Optional[Exception] = None
    step_error: Optional[Exception] = None
    measure_error: Optional[Exception] = None
    emit_error: Optional[Exception] = None
    empty_document: bool = False
    ignore_width_cap: bool = False


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeCaptureContext(CaptureContext):
    """Capture context that replays FakePageScripts instead of driving a browser."""

    def __init__(self, renderer: "FakeRenderer", context_id: int):
        self.renderer = renderer
        self.context_id = context_id
        self.visited: List[str] = []
        self.steps_run: List[Tuple[str, str]] = []
        self.closed = False
        self._current: Optional[FakePageScript] = None

    async def navigate(self, url: str, timeout_ms: int) -> int:
        assert not self.closed, "navigate on a closed context"
        self.visited.append(url)
        self.renderer.calls.append(("navigate", url))
        if self.renderer.clock is not None:
            self.renderer.clock.advance(self.renderer.seconds_per_page)

        script = self.renderer.script_for(url)
        if script.navigate_error is not None:
            raise script.navigate_error
        if not 200 <= script.status < 300:
            raise NavigationError(f"HTTP status {script.status}", url, status_code=script.status)
        self._current = script
        return script.status

    async def wait_for(self, step, url: str) -> None:
        self.steps_run.append((step.kind, url))
        self.renderer.calls.append(("wait_for", url))
        if self._current.step_error is not None:
            raise self._current.step_error
        if step.kind in self._current.slow_steps:
            raise ReadinessTimeout(step.kind, url, step.budget_ms)

    async def measure_content_box(self, width_cap_px: int) -> ContentBox:
        self.renderer.calls.append(("measure", self.visited[-1]))
        script = self._current
        if script.measure_error is not None:
            raise script.measure_error
        if script.ignore_width_cap:
            return ContentBox(width_px=script.width, height_px=script.height)
        return ContentBox.clamped(script.width, script.height, width_cap_px)

    async def emit_document(self, box: ContentBox) -> bytes:
        self.renderer.calls.append(("emit", self.visited[-1]))
        script = self._current
        if script.emit_error is not None:
            raise script.emit_error
        if script.empty_document:
            return b""
        return make_pdf(box.width_px, box.height_px)

    async def close(self) -> None:
        self.closed = True


class FakeRenderer(Renderer):
    """
    Renderer double.

    Args:
        scripts: Per-URL behaviour; unknown URLs render as a default page
        fail_on_open: 1-based numbers of ``open()`` calls that fail
        clock: FakeClock advanced by ``seconds_per_page`` on every navigation
    """

    def __init__(
        self,
        scripts: Optional[Dict[str, FakePageScript]] = None,
        fail_on_open: Optional[Set[int]] = None,
        clock: Optional[FakeClock] = None,
        seconds_per_page: float = 1.0
    ):
        self.scripts = scripts or {}
        self.fail_on_open = fail_on_open or set()
        self.clock = clock
        self.seconds_per_page = seconds_per_page
        self.contexts: List[FakeCaptureContext] = []
        self.open_calls = 0
        self.calls: List[Tuple[str, str]] = []

    def script_for(self, url: str) -> FakePageScript:
        return self.scripts.get(url, FakePageScript())

    async def open(self) -> FakeCaptureContext:
        self.open_calls += 1
        if self.open_calls in self.fail_on_open:
            raise ContextStartError("Chromium failed to launch")
        context = FakeCaptureContext(self, len(self.contexts))
        self.contexts.append(context)
        return context


def sized_scripts(urls: List[str]) -> Dict[str, FakePageScript]:
    """Give every URL a distinct page height so merged page order can be read back."""
    return {url: FakePageScript(height=1000 + i) for i, url in enumerate(urls)}


@pytest.fixture
def urls() -> List[str]:
    return [f"https://example.com/page-{i}" for i in range(7)]


@pytest.fixture
def fake_renderer(urls) -> FakeRenderer:
    return FakeRenderer(sized_scripts(urls))


@pytest.fixture
def fake_context(fake_renderer) -> FakeCaptureContext:
    context = FakeCaptureContext(fake_renderer, 0)
    fake_renderer.contexts.append(context)
    return context
