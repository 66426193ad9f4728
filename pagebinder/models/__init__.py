"""
Data models for PageBinder.
"""

from .capture import (
    JobState,
    FailureReason,
    NetworkIdleStep,
    FixedDelayStep,
    AnimatedCounterSettleStep,
    ScrollSweepStep,
    HideSelectorsStep,
    ExpandAccordionsStep,
    ReplaceIframesStep,
    ReadinessStep,
    ReadinessPolicy,
    CaptureRequest,
    ContentBox,
    CaptureWarning,
    CaptureSuccess,
    CaptureFailure,
    CaptureResult,
    Batch,
    JobConfig,
    FailedUrl,
    JobReport,
    JobStats,
)

__all__ = [
    'JobState',
    'FailureReason',
    'NetworkIdleStep',
    'FixedDelayStep',
    'AnimatedCounterSettleStep',
    'ScrollSweepStep',
    'HideSelectorsStep',
    'ExpandAccordionsStep',
    'ReplaceIframesStep',
    'ReadinessStep',
    'ReadinessPolicy',
    'CaptureRequest',
    'ContentBox',
    'CaptureWarning',
    'CaptureSuccess',
    'CaptureFailure',
    'CaptureResult',
    'Batch',
    'JobConfig',
    'FailedUrl',
    'JobReport',
    'JobStats',
]
