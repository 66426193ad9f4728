"""
Renderer and capture context interfaces, with the Playwright implementation.

A Renderer opens capture contexts. Each context is owned by exactly one
batch: it is opened when the batch starts and closed when it ends, taking
its browser process with it.
"""

import logging
import re
from abc import ABC, abstractmethod
from typing import Optional, Dict, Any
from uuid import uuid4

from playwright.async_api import (
    async_playwright,
    Browser,
    BrowserContext,
    Page,
    Playwright,
    Error as PlaywrightError,
    TimeoutError as PlaywrightTimeoutError,
)
from playwright_stealth import Stealth

from pagebinder.core.config import RenderConfig
from pagebinder.core.exceptions import (
    NavigationError,
    MeasurementError,
    EmissionError,
    ContextStartError,
)
from pagebinder.models.capture import ContentBox, ReadinessStep
from pagebinder.services.wait_strategies import DynamicContentWaiter

logger = logging.getLogger(__name__)
stealth = Stealth()

# Errors from a page that was already gone when the call was made
DEAD_TARGET = re.compile(r"Target crashed|Target (page, context or browser )?(has been )?closed", re.IGNORECASE)
# Error from a navigation that itself brought the page down
PAGE_CRASHED = re.compile(r"page crashed", re.IGNORECASE)

MEASURE_SCRIPT = """
() => ({
    width: document.documentElement.scrollWidth,
    height: document.documentElement.scrollHeight
})
"""


class CaptureContext(ABC):
    """A renderer session able to navigate to and emit documents for URLs."""

    @abstractmethod
    async def navigate(self, url: str, timeout_ms: int) -> int:
        """
        Navigate to a URL.

        Returns:
            Final HTTP status code

        Raises:
            NavigationError: DNS failure, timeout or a non-2xx response
        """
        pass

    @abstractmethod
    async def wait_for(self, step: ReadinessStep, url: str) -> None:
        """
        Run one readiness step on the current page.

        Raises:
            ReadinessTimeout: the step did not complete in time
        """
        pass

    @abstractmethod
    async def measure_content_box(self, width_cap_px: int) -> ContentBox:
        """Measure the current page's content box, width capped."""
        pass

    @abstractmethod
    async def emit_document(self, box: ContentBox) -> bytes:
        """Render the current page as a single PDF page of exactly ``box``."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release the session and everything it owns."""
        pass


class Renderer(ABC):
    """Factory for capture contexts."""

    @abstractmethod
    async def open(self) -> CaptureContext:
        """
        Open a fresh capture context.

        Raises:
            ContextStartError: the renderer cannot be started
        """
        pass


class PlaywrightCaptureContext(CaptureContext):
    """
    Capture context backed by one Chromium process.

    URLs share one page. A page that crashed or was closed while capturing
    one URL is replaced before the next navigation, so the rest of the
    batch is unaffected.
    """

    def __init__(
        self,
        playwright: Playwright,
        browser: Browser,
        context: BrowserContext,
        page: Page,
        context_id: str = ""
    ):
        self.playwright = playwright
        self.browser = browser
        self.context = context
        self.context_id = context_id
        self.use_count = 0
        self.pages_replaced = 0
        self.waiter = DynamicContentWaiter()
        self.is_closed = False
        self._attach(page)

    def _attach(self, page: Page) -> None:
        self.page = page
        self.page_crashed = False
        page.on("crash", self._on_crash)

    def _on_crash(self, page: Page) -> None:
        if page is self.page:
            self.page_crashed = True
            logger.warning(f"Page crashed in capture context {self.context_id}")

    def _note_error(self, error: PlaywrightError) -> None:
        message = error.message or ""
        if DEAD_TARGET.search(message) or PAGE_CRASHED.search(message):
            self.page_crashed = True

    def _page_unusable(self) -> bool:
        return self.page_crashed or self.page.is_closed()

    async def _replace_page(self, url: str) -> None:
        try:
            page = await self.context.new_page()
            await page.emulate_media(media="screen")
        except PlaywrightError as e:
            raise NavigationError(f"Could not replace crashed page: {e.message}", url)
        self._attach(page)
        self.pages_replaced += 1
        logger.info(f"Replaced page in capture context {self.context_id} before {url}")

    async def navigate(self, url: str, timeout_ms: int) -> int:
        self.use_count += 1
        may_retry = True
        if self._page_unusable():
            await self._replace_page(url)
            may_retry = False

        while True:
            try:
                response = await self.page.goto(url, wait_until="load", timeout=timeout_ms)
                break
            except PlaywrightTimeoutError:
                raise NavigationError(f"Navigation timed out after {timeout_ms}ms", url)
            except PlaywrightError as e:
                if may_retry and DEAD_TARGET.search(e.message or ""):
                    # page died after the previous URL without telling us
                    await self._replace_page(url)
                    may_retry = False
                    continue
                self._note_error(e)
                raise NavigationError(f"Navigation failed: {e.message}", url)

        if response is None:
            raise NavigationError("No response received", url)

        status = response.status
        if not 200 <= status < 300:
            raise NavigationError(f"HTTP status {status}", url, status_code=status)
        return status

    async def wait_for(self, step: ReadinessStep, url: str) -> None:
        try:
            await self.waiter.run_step(self.page, step, url)
        except PlaywrightError as e:
            self._note_error(e)
            raise

    async def measure_content_box(self, width_cap_px: int) -> ContentBox:
        try:
            dimensions = await self.page.evaluate(MEASURE_SCRIPT)
            return ContentBox.clamped(dimensions["width"], dimensions["height"], width_cap_px)
        except PlaywrightError as e:
            self._note_error(e)
            raise MeasurementError(f"Could not measure content box: {e.message}")
        except (KeyError, TypeError, ValueError) as e:
            raise MeasurementError(f"Could not measure content box: {e}")

    async def emit_document(self, box: ContentBox) -> bytes:
        try:
            return await self.page.pdf(
                width=f"{box.width_px}px",
                height=f"{box.height_px}px",
                print_background=True,
                page_ranges="1",
                prefer_css_page_size=False,
                margin={"top": "0", "right": "0", "bottom": "0", "left": "0"},
                scale=1
            )
        except PlaywrightError as e:
            self._note_error(e)
            raise EmissionError(f"PDF generation failed: {e.message}")

    async def close(self) -> None:
        """Close page, context, browser and the Playwright driver."""
        if self.is_closed:
            return
        self.is_closed = True

        try:
            for resource in (self.context, self.browser):
                try:
                    await resource.close()
                except PlaywrightError as e:
                    logger.warning(f"Failed to close {type(resource).__name__} of capture context {self.context_id}: {e}")
            logger.info(
                f"Capture context {self.context_id} closed "
                f"(used {self.use_count} times, {self.pages_replaced} pages replaced)"
            )
        finally:
            await self.playwright.stop()


async def _shutdown(browser: Optional[Browser], playwright: Optional[Playwright]) -> None:
    """Best-effort teardown of a half-started renderer."""
    try:
        if browser is not None:
            await browser.close()
    except Exception as e:
        logger.warning(f"Failed to close browser after start failure: {e}")
    finally:
        if playwright is not None:
            await playwright.stop()


class PlaywrightRenderer(Renderer):
    """
    Opens one Chromium process per capture context.

    Pages are rendered with screen media so the measured layout is the
    layout that gets printed.
    """

    def __init__(self, render_config: Optional[RenderConfig] = None):
        self.render_config = render_config or RenderConfig()

    def _launch_args(self) -> Dict[str, Any]:
        return {
            "headless": self.render_config.headless,
            "args": [
                "--disable-blink-features=AutomationControlled",
                "--disable-dev-shm-usage",
                "--no-sandbox"
            ]
        }

    async def open(self) -> PlaywrightCaptureContext:
        playwright = None
        browser = None
        try:
            playwright = await async_playwright().start()
            browser = await playwright.chromium.launch(**self._launch_args())

            context_kwargs: Dict[str, Any] = {
                "viewport": {
                    "width": self.render_config.viewport_width,
                    "height": self.render_config.viewport_height
                }
            }
            if self.render_config.user_agent:
                context_kwargs["user_agent"] = self.render_config.user_agent
            context = await browser.new_context(**context_kwargs)

            if self.render_config.stealth:
                await stealth.apply_stealth_async(context)

            page = await context.new_page()
            await page.emulate_media(media="screen")
        except Exception as e:
            logger.error(f"Failed to start capture context: {e}")
            await _shutdown(browser, playwright)
            raise ContextStartError(f"Renderer could not be started: {e}") from e

        capture_context = PlaywrightCaptureContext(
            playwright, browser, context, page, context_id=uuid4().hex[:8]
        )
        logger.info(f"Opened capture context {capture_context.context_id}")
        return capture_context
