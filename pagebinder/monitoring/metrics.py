"""
Prometheus metrics for the render pipeline.

All collectors live in a private registry so that importing the package
twice in one process (tests, uvicorn reload) does not trip duplicate
registration in the default one. Recording never raises into the caller;
a metrics failure is logged and the capture carries on.
"""

import functools
import logging
from typing import Callable, Optional

from prometheus_client import (
    Counter,
    Histogram,
    CollectorRegistry,
    generate_latest,
    CONTENT_TYPE_LATEST
)

logger = logging.getLogger(__name__)

metrics_registry = CollectorRegistry()

# Per URL: 'success' or the failure reason (navigation, readiness, measure, emission, deadline)
capture_counter = Counter(
    'pagebinder_captures_total',
    'Page captures by outcome',
    ['outcome'],
    registry=metrics_registry
)

readiness_warning_counter = Counter(
    'pagebinder_readiness_warnings_total',
    'Readiness steps given up on, by step kind',
    ['step'],
    registry=metrics_registry
)

context_start_counter = Counter(
    'pagebinder_context_starts_total',
    'Attempts to open a capture context (one per batch)',
    ['result'],
    registry=metrics_registry
)

job_counter = Counter(
    'pagebinder_jobs_total',
    'Finished render jobs by status',
    ['status'],
    registry=metrics_registry
)

job_duration_histogram = Histogram(
    'pagebinder_job_duration_seconds',
    'Wall time from job start to merged document',
    buckets=(5, 15, 30, 60, 120, 300, 600, 1800),
    registry=metrics_registry
)


def _never_raises(func: Callable) -> Callable:
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            func(*args, **kwargs)
        except Exception as e:
            logger.error(f"{func.__name__} failed: {e}")
    return wrapper


@_never_raises
def record_capture(outcome: str):
    capture_counter.labels(outcome=outcome).inc()


@_never_raises
def record_readiness_warning(step: str):
    readiness_warning_counter.labels(step=step).inc()


@_never_raises
def record_context_start(succeeded: bool):
    context_start_counter.labels(result='ok' if succeeded else 'error').inc()


@_never_raises
def record_job_finished(status: str, duration_seconds: Optional[float] = None):
    """
    Args:
        status: 'done', 'partial', 'empty' or 'failed_fatal'
        duration_seconds: Omitted when the job never started capturing
    """
    job_counter.labels(status=status).inc()
    if duration_seconds is not None:
        job_duration_histogram.observe(duration_seconds)


def get_metrics_text() -> bytes:
    return generate_latest(metrics_registry)


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
