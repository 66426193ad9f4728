"""
Error taxonomy of the render pipeline.

Every error except ContextStartError is scoped to one URL and is converted
into a failed CaptureResult at the page capture boundary.
"""

from typing import Optional


class PageBinderError(Exception):
    """Base class for pipeline errors."""

    reason = "error"

    def __init__(self, message: str, url: Optional[str] = None):
        self.message = message
        self.url = url
        super().__init__(message)


class NavigationError(PageBinderError):
    """DNS failure, navigation timeout or a non-2xx final response."""

    reason = "navigation"

    def __init__(self, message: str, url: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message, url)
        self.status_code = status_code


class ReadinessTimeout(PageBinderError):
    """A readiness step did not finish in time. Never fails a capture."""

    reason = "timeout"

    def __init__(self, step: str, url: Optional[str] = None, timeout_ms: Optional[int] = None):
        super().__init__(f"Readiness step '{step}' timed out after {timeout_ms}ms", url)
        self.step = step
        self.timeout_ms = timeout_ms


class MeasurementError(PageBinderError):
    """Content box could not be measured from live layout."""

    reason = "measurement"


class EmissionError(PageBinderError):
    """The renderer failed to produce the single-page document."""

    reason = "emission"


class ContextStartError(PageBinderError):
    """The renderer could not open a capture context. Fatal for the job."""

    reason = "context_start"
