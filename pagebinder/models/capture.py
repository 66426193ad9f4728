"""
Capture pipeline data models.
"""

from enum import Enum
from typing import List, Optional, Union, Literal, Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class JobState(str, Enum):
    """Render job lifecycle states."""
    PENDING = "pending"
    SCHEDULING = "scheduling"
    RENDERING = "rendering"
    MERGING = "merging"
    DONE = "done"
    FAILED_FATAL = "failed_fatal"


class FailureReason(str, Enum):
    """Why a URL contributed nothing to the merged document."""
    NAVIGATION = "navigation"
    READINESS = "readiness"
    MEASUREMENT = "measurement"
    EMISSION = "emission"
    MERGE = "merge"
    DEADLINE = "deadline"


def _validate_url(v: str) -> str:
    if not v.startswith(('http://', 'https://')):
        raise ValueError('URL must include protocol (http:// or https://)')
    return v


# ============================================================================
# Readiness steps
# ============================================================================

class _Step(BaseModel):
    model_config = ConfigDict(frozen=True)

    @property
    def budget_ms(self) -> int:
        """Upper bound on how long the step may take."""
        return self.timeout_ms


class NetworkIdleStep(_Step):
    """Wait until the page has had no network connections for 500ms."""
    kind: Literal["network_idle"] = "network_idle"
    timeout_ms: int = Field(default=10000, ge=0, le=120000)


class FixedDelayStep(_Step):
    """Unconditional settle delay."""
    kind: Literal["fixed_delay"] = "fixed_delay"
    ms: int = Field(default=500, ge=0, le=60000)

    @property
    def budget_ms(self) -> int:
        return self.ms


class AnimatedCounterSettleStep(_Step):
    """
    Wait for animated number counters to reach their target value.

    Counters still short of their target when the timeout expires are
    snapped to the target value.
    """
    kind: Literal["animated_counter_settle"] = "animated_counter_settle"
    selector: str = Field(default='[data-count]', min_length=1)
    target_attribute: str = Field(default='data-count', min_length=1)
    timeout_ms: int = Field(default=5000, ge=0, le=60000)
    poll_interval_ms: int = Field(default=200, ge=10, le=5000)


class ScrollSweepStep(_Step):
    """Scroll to the bottom in viewport-sized steps to trigger lazy loading."""
    kind: Literal["scroll_sweep"] = "scroll_sweep"
    pause_ms: int = Field(default=250, ge=0, le=5000)
    timeout_ms: int = Field(default=20000, ge=0, le=120000)


class HideSelectorsStep(_Step):
    """Hide (or remove) caller-specified regions before measuring."""
    kind: Literal["hide_selectors"] = "hide_selectors"
    selectors: List[str] = Field(default_factory=list)
    remove: bool = False
    timeout_ms: int = Field(default=5000, ge=0, le=60000)


class ExpandAccordionsStep(_Step):
    """Open collapsed accordions/details so their content is captured."""
    kind: Literal["expand_accordions"] = "expand_accordions"
    selector: str = Field(default='details, [aria-expanded="false"]', min_length=1)
    timeout_ms: int = Field(default=5000, ge=0, le=60000)


class ReplaceIframesStep(_Step):
    """Swap embedded iframes for same-size link placeholders."""
    kind: Literal["replace_iframes"] = "replace_iframes"
    selector: str = Field(default='iframe', min_length=1)
    timeout_ms: int = Field(default=5000, ge=0, le=60000)


ReadinessStep = Annotated[
    Union[
        NetworkIdleStep,
        FixedDelayStep,
        AnimatedCounterSettleStep,
        ScrollSweepStep,
        HideSelectorsStep,
        ExpandAccordionsStep,
        ReplaceIframesStep,
    ],
    Field(discriminator='kind'),
]


class ReadinessPolicy(BaseModel):
    """Ordered wait steps applied to a page before it is measured."""
    model_config = ConfigDict(frozen=True)

    steps: List[ReadinessStep] = Field(default_factory=list)

    def step_kinds(self) -> List[str]:
        return [step.kind for step in self.steps]


# ============================================================================
# Capture
# ============================================================================

class CaptureRequest(BaseModel):
    """One URL to capture. Immutable."""
    model_config = ConfigDict(frozen=True)

    url: str
    readiness_policy: ReadinessPolicy = Field(default_factory=ReadinessPolicy)
    width_cap_px: int = Field(default=1280, ge=1)
    navigation_timeout_ms: int = Field(default=20000, ge=1)
    emission_timeout_ms: int = Field(default=30000, ge=1)

    @field_validator('url')
    @classmethod
    def validate_url(cls, v):
        return _validate_url(v)


class ContentBox(BaseModel):
    """Measured size the captured page occupies."""
    model_config = ConfigDict(frozen=True)

    width_px: int = Field(..., ge=0)
    height_px: int = Field(..., ge=0)

    @classmethod
    def clamped(cls, scroll_width: int, scroll_height: int, width_cap_px: int) -> "ContentBox":
        """Build a box from raw layout metrics, capping the width."""
        return cls(
            width_px=max(0, min(int(scroll_width), width_cap_px)),
            height_px=max(0, int(scroll_height))
        )


class CaptureWarning(BaseModel):
    """Non-fatal readiness problem recorded during a capture."""
    model_config = ConfigDict(frozen=True)

    step: str
    url: str
    reason: str = "timeout"
    detail: Optional[str] = None


class CaptureSuccess(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Literal["success"] = "success"
    document_bytes: bytes
    box: ContentBox


class CaptureFailure(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Literal["failure"] = "failure"
    reason: FailureReason
    detail: Optional[str] = None
    status_code: Optional[int] = None


class CaptureResult(BaseModel):
    """Outcome of capturing one URL; exactly one of success or failure."""
    model_config = ConfigDict(frozen=True)

    url: str
    index: int = Field(default=0, ge=0, description="Position of the URL in the job's URL list")
    outcome: Annotated[Union[CaptureSuccess, CaptureFailure], Field(discriminator='status')]
    warnings: List[CaptureWarning] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return isinstance(self.outcome, CaptureSuccess)


# ============================================================================
# Jobs
# ============================================================================

class Batch(BaseModel):
    """Contiguous slice of the URL list served by one capture context."""
    model_config = ConfigDict(frozen=True)

    index: int = Field(..., ge=0)
    start: int = Field(..., ge=0, description="Index of the first URL in the full list")
    urls: List[str] = Field(..., min_length=1)

    def __len__(self) -> int:
        return len(self.urls)


class JobConfig(BaseModel):
    """Everything a render job needs; no process-wide state is consulted."""
    model_config = ConfigDict(frozen=True)

    urls: List[str]
    batch_size: int = Field(default=5, gt=0)
    readiness_policy: ReadinessPolicy = Field(default_factory=ReadinessPolicy)
    width_cap_px: int = Field(default=1280, ge=1)
    navigation_timeout_ms: int = Field(default=20000, ge=1)
    emission_timeout_ms: int = Field(default=30000, ge=1)
    deadline_seconds: Optional[float] = Field(default=None, gt=0)

    @field_validator('urls')
    @classmethod
    def validate_urls(cls, v):
        """Validate every URL carries a protocol."""
        return [_validate_url(url) for url in v]

    def capture_request(self, url: str) -> CaptureRequest:
        return CaptureRequest(
            url=url,
            readiness_policy=self.readiness_policy,
            width_cap_px=self.width_cap_px,
            navigation_timeout_ms=self.navigation_timeout_ms,
            emission_timeout_ms=self.emission_timeout_ms
        )


class FailedUrl(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str
    reason: FailureReason
    detail: Optional[str] = None


class JobReport(BaseModel):
    """
    Per-URL outcome of a job plus the merged document, if any page rendered.

    Depends only on the URLs and what the renderer returned for them, so
    the same job run with any batch size gives an equal report. How the
    run went (batches, wall time) is in JobStats.
    """
    model_config = ConfigDict(frozen=True)

    job_id: str
    state: JobState
    succeeded: List[str] = Field(default_factory=list)
    failed: List[FailedUrl] = Field(default_factory=list)
    warnings: List[CaptureWarning] = Field(default_factory=list)
    final_document: Optional[bytes] = None
    page_count: int = 0
    deadline_exceeded: bool = False

    @model_validator(mode='after')
    def check_document(self):
        if self.final_document is None and self.page_count:
            raise ValueError('page_count must be 0 when there is no final document')
        return self

    @property
    def has_document(self) -> bool:
        return self.final_document is not None

    def summary(self) -> dict:
        """JSON-safe view of the report without the document bytes."""
        return self.model_dump(mode='json', exclude={'final_document'})


class JobStats(BaseModel):
    """Diagnostics of one job run; varies with batch size and timing."""
    model_config = ConfigDict(frozen=True)

    job_id: str
    batch_count: int = 0
    context_starts: int = 0
    duration_seconds: float = 0.0
