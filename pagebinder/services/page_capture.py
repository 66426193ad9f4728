"""
Capture a single URL as a one-page PDF.

``capture`` is the failure isolation boundary of the pipeline: whatever
goes wrong while navigating, settling, measuring or emitting a page is
turned into a failed CaptureResult and never reaches sibling captures.
"""

import asyncio
import logging
from typing import List, Optional

from pagebinder.core.exceptions import (
    NavigationError,
    MeasurementError,
    EmissionError,
)
from pagebinder.models.capture import (
    CaptureRequest,
    CaptureResult,
    CaptureSuccess,
    CaptureFailure,
    CaptureWarning,
    ContentBox,
    FailureReason,
)
from pagebinder.monitoring.metrics import record_capture
from pagebinder.services.browser_session import CaptureContext
from pagebinder.services.wait_strategies import apply_readiness_policy

logger = logging.getLogger(__name__)

# Upper bound for evaluating layout metrics
MEASURE_TIMEOUT_SECONDS = 10.0
# Slack on top of the renderer's own navigation/emission timeouts
TIMEOUT_GRACE_SECONDS = 5.0


def _failure(
    request: CaptureRequest,
    index: int,
    reason: FailureReason,
    error: Exception,
    warnings: Optional[List[CaptureWarning]] = None
) -> CaptureResult:
    detail = str(error) or type(error).__name__
    logger.warning(f"Capture failed for {request.url} ({reason.value}): {detail}")
    record_capture(reason.value)
    return CaptureResult(
        url=request.url,
        index=index,
        outcome=CaptureFailure(
            reason=reason,
            detail=detail,
            status_code=getattr(error, "status_code", None)
        ),
        warnings=warnings or []
    )


async def capture(request: CaptureRequest, context: CaptureContext, index: int = 0) -> CaptureResult:
    """
    Capture one URL.

    Navigates, applies the readiness policy, measures the content box and
    emits a single page sized exactly to it.

    Args:
        request: What to capture
        context: Capture context of the current batch
        index: Position of the URL in the job's URL list

    Returns:
        CaptureResult with either the document bytes or the failure reason
    """
    logger.info(f"Checking: {request.url}")

    try:
        await asyncio.wait_for(
            context.navigate(request.url, timeout_ms=request.navigation_timeout_ms),
            timeout=request.navigation_timeout_ms / 1000 + TIMEOUT_GRACE_SECONDS
        )
    except asyncio.TimeoutError:
        return _failure(request, index, FailureReason.NAVIGATION,
                        NavigationError("Navigation did not finish", request.url))
    except Exception as e:
        return _failure(request, index, FailureReason.NAVIGATION, e)

    try:
        warnings = await apply_readiness_policy(context, request.readiness_policy, request.url)
    except Exception as e:
        return _failure(request, index, FailureReason.READINESS, e)

    try:
        box = await asyncio.wait_for(
            context.measure_content_box(request.width_cap_px),
            timeout=MEASURE_TIMEOUT_SECONDS
        )
        # Contexts are trusted to clamp, but the cap is enforced here as well
        if box.width_px > request.width_cap_px:
            box = ContentBox(width_px=request.width_cap_px, height_px=box.height_px)
    except asyncio.TimeoutError:
        return _failure(request, index, FailureReason.MEASUREMENT,
                        MeasurementError("Measurement timed out", request.url), warnings)
    except Exception as e:
        return _failure(request, index, FailureReason.MEASUREMENT, e, warnings)

    try:
        document = await asyncio.wait_for(
            context.emit_document(box),
            timeout=request.emission_timeout_ms / 1000 + TIMEOUT_GRACE_SECONDS
        )
        if not document:
            raise EmissionError("Renderer returned an empty document", request.url)
    except asyncio.TimeoutError:
        return _failure(request, index, FailureReason.EMISSION,
                        EmissionError("Emission timed out", request.url), warnings)
    except Exception as e:
        return _failure(request, index, FailureReason.EMISSION, e, warnings)

    logger.info(f"Rendered: {request.url} ({box.width_px}x{box.height_px}px)")
    record_capture("success")
    return CaptureResult(
        url=request.url,
        index=index,
        outcome=CaptureSuccess(document_bytes=document, box=box),
        warnings=warnings
    )
