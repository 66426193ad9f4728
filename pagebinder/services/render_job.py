"""
Render job orchestration.

A job turns an ordered URL list into one merged PDF:

    PENDING -> SCHEDULING -> RENDERING(batch 0..n) -> MERGING -> DONE
                                    \\-> FAILED_FATAL (capture context cannot start)

Batches run one after another and URLs within a batch run one after
another against the batch's own capture context, so at most one page is
being rendered at any time. Per-URL failures are always recoverable; only
a context that cannot be started aborts the job.
"""

import logging
import time
from typing import List, Optional
from uuid import uuid4

from pagebinder.core.config import RenderConfig
from pagebinder.core.exceptions import ContextStartError
from pagebinder.core.logging_config import bind_context, unbind_context
from pagebinder.models.capture import (
    Batch,
    CaptureFailure,
    CaptureResult,
    CaptureWarning,
    FailureReason,
    JobConfig,
    JobReport,
    JobState,
    JobStats,
)
from pagebinder.monitoring.metrics import record_context_start, record_job_finished
from pagebinder.services.batch_scheduler import schedule
from pagebinder.services.browser_session import Renderer, PlaywrightRenderer
from pagebinder.services.merge_accumulator import MergeAccumulator, MergePrimitive
from pagebinder.services.page_capture import capture
from pagebinder.services.wait_strategies import policy_from_config

logger = logging.getLogger(__name__)


class RenderJob:
    """One invocation of the render pipeline for one URL list."""

    def __init__(
        self,
        config: JobConfig,
        renderer: Renderer,
        merge_primitive: Optional[MergePrimitive] = None,
        job_id: Optional[str] = None,
        clock=time.monotonic
    ):
        """
        Initialize render job.

        Args:
            config: Job configuration (URLs, batch size, policy, width cap)
            renderer: Opens one capture context per batch
            merge_primitive: PDF merge implementation (pypdf by default)
            job_id: Identifier used in logs and the report
            clock: Monotonic clock in seconds, used for the job deadline
        """
        self.config = config
        self.renderer = renderer
        self.merge_primitive = merge_primitive
        self.job_id = job_id or uuid4().hex
        self.clock = clock

        self.state = JobState.PENDING
        self.current_batch: Optional[int] = None
        self.batches: List[Batch] = []
        self.results: List[CaptureResult] = []
        self.deadline_exceeded = False
        self.context_starts = 0
        self.stats: Optional[JobStats] = None
        self._started_at: Optional[float] = None

    def _deadline_passed(self) -> bool:
        if self.config.deadline_seconds is None or self._started_at is None:
            return False
        return self.clock() - self._started_at >= self.config.deadline_seconds

    def _skip(self, url: str, index: int, accumulator: MergeAccumulator) -> None:
        """Record a URL that was never attempted because the deadline passed."""
        result = CaptureResult(
            url=url,
            index=index,
            outcome=CaptureFailure(reason=FailureReason.DEADLINE, detail="Job deadline exceeded")
        )
        self.results.append(result)
        accumulator.add(result)

    def _finish_stats(self) -> float:
        duration = self.clock() - self._started_at
        self.stats = JobStats(
            job_id=self.job_id,
            batch_count=len(self.batches),
            context_starts=self.context_starts,
            duration_seconds=duration
        )
        return duration

    async def _render_batch(self, batch: Batch, accumulator: MergeAccumulator) -> None:
        self.state = JobState.RENDERING
        self.current_batch = batch.index
        logger.info(f"Rendering batch {batch.index + 1}/{len(self.batches)} ({len(batch)} URLs)")

        try:
            context = await self.renderer.open()
        except Exception as e:
            record_context_start(False)
            raise ContextStartError(f"Could not open capture context for batch {batch.index}: {e}") from e
        record_context_start(True)
        self.context_starts += 1

        try:
            for offset, url in enumerate(batch.urls):
                index = batch.start + offset
                if self._deadline_passed():
                    self.deadline_exceeded = True
                    self._skip(url, index, accumulator)
                    continue

                bind_context(url=url)
                result = await capture(self.config.capture_request(url), context, index=index)
                self.results.append(result)
                accumulator.add(result)
        finally:
            unbind_context("url")
            try:
                await context.close()
            except Exception as e:
                logger.warning(f"Failed to close capture context for batch {batch.index}: {e}")

    async def run(self) -> JobReport:
        """
        Run the job to completion.

        Returns:
            JobReport with succeeded/failed URLs and the merged document
            (None when no URL rendered). Batch count and timing are left
            in ``self.stats``.

        Raises:
            ContextStartError: a capture context could not be opened; no
                partial document is produced
        """
        if self.state != JobState.PENDING:
            raise RuntimeError(f"Job {self.job_id} already ran (state: {self.state.value})")

        self._started_at = self.clock()
        bind_context(job_id=self.job_id)
        logger.info(f"Starting job {self.job_id} with {len(self.config.urls)} URLs")

        try:
            self.state = JobState.SCHEDULING
            self.batches = schedule(self.config.urls, self.config.batch_size)
            accumulator = MergeAccumulator(self.merge_primitive)

            for batch in self.batches:
                if self._deadline_passed():
                    self.deadline_exceeded = True
                    logger.warning(f"Job deadline exceeded; skipping batch {batch.index} and later")
                    for offset, url in enumerate(batch.urls):
                        self._skip(url, batch.start + offset, accumulator)
                    continue
                await self._render_batch(batch, accumulator)

            self.state = JobState.MERGING
            self.current_batch = None
            outcome = accumulator.finalize()
        except ContextStartError as e:
            self.state = JobState.FAILED_FATAL
            duration = self._finish_stats()
            logger.error(f"Job {self.job_id} failed: {e}")
            record_job_finished(JobState.FAILED_FATAL.value, duration)
            raise
        finally:
            unbind_context("job_id")

        self.state = JobState.DONE
        duration = self._finish_stats()

        warnings: List[CaptureWarning] = [w for result in self.results for w in result.warnings]
        report = JobReport(
            job_id=self.job_id,
            state=self.state,
            succeeded=outcome.succeeded,
            failed=outcome.failed,
            warnings=warnings,
            final_document=outcome.document,
            page_count=outcome.page_count,
            deadline_exceeded=self.deadline_exceeded
        )

        if not report.has_document:
            status = "empty"
        elif report.failed:
            status = "partial"
        else:
            status = "done"
        record_job_finished(status, duration)
        logger.info(
            f"Job {self.job_id} finished: {len(report.succeeded)} succeeded, "
            f"{len(report.failed)} failed, {report.page_count} pages in {duration:.1f}s"
        )
        return report


def build_job_config(
    urls: List[str],
    render_config: Optional[RenderConfig] = None,
    batch_size: Optional[int] = None,
    width_cap_px: Optional[int] = None,
    hide_selectors: Optional[List[str]] = None,
    network_idle_timeout_ms: Optional[int] = None,
    settle_delay_ms: Optional[int] = None,
    deadline_seconds: Optional[float] = None
) -> JobConfig:
    """
    Build a JobConfig from render configuration plus per-request overrides.

    Args:
        urls: Ordered URL list
        render_config: Base configuration (defaults if omitted)
        batch_size: Override of the configured batch size
        width_cap_px: Override of the configured width cap
        hide_selectors: Extra selectors to hide on every page
        network_idle_timeout_ms: Override of the network idle timeout
        settle_delay_ms: Override of the final settle delay
        deadline_seconds: Override of the configured job deadline

    Returns:
        JobConfig instance
    """
    render_config = render_config or RenderConfig()
    policy = policy_from_config(
        render_config,
        hide_selectors=hide_selectors,
        network_idle_timeout_ms=network_idle_timeout_ms,
        settle_delay_ms=settle_delay_ms
    )
    return JobConfig(
        urls=urls,
        batch_size=batch_size or render_config.batch_size,
        readiness_policy=policy,
        width_cap_px=width_cap_px or render_config.width_cap_px,
        navigation_timeout_ms=render_config.navigation_timeout_ms,
        emission_timeout_ms=render_config.emission_timeout_ms,
        deadline_seconds=deadline_seconds if deadline_seconds is not None else render_config.job_deadline_seconds
    )


async def run_job(
    config: JobConfig,
    renderer: Optional[Renderer] = None,
    render_config: Optional[RenderConfig] = None,
    merge_primitive: Optional[MergePrimitive] = None
) -> JobReport:
    """
    Convenience wrapper: run a job with a Playwright renderer unless one is given.

    Args:
        config: Job configuration
        renderer: Renderer to use (Playwright by default)
        render_config: Browser settings for the default renderer
        merge_primitive: PDF merge implementation

    Returns:
        JobReport
    """
    renderer = renderer or PlaywrightRenderer(render_config)
    job = RenderJob(config, renderer, merge_primitive=merge_primitive)
    return await job.run()
