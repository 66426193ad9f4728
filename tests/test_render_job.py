"""
Tests for render job orchestration.
"""

import pytest

from conftest import FakeClock, FakePageScript, FakeRenderer, page_sizes, sized_scripts
from pagebinder.core.config import RenderConfig
from pagebinder.core.exceptions import ContextStartError
from pagebinder.models.capture import FailureReason, JobConfig, JobState, NetworkIdleStep, ReadinessPolicy
from pagebinder.services.render_job import RenderJob, build_job_config, run_job


def job_config(urls, batch_size=5, **kwargs) -> JobConfig:
    return JobConfig(urls=urls, batch_size=batch_size, **kwargs)


def heights(document: bytes):
    return [height for _, height in page_sizes(document)]


@pytest.mark.asyncio
async def test_failed_url_is_left_out_of_document():
    urls = ["https://example.com/a", "https://example.com/b", "https://example.com/c"]
    scripts = sized_scripts(urls)
    scripts["https://example.com/b"] = FakePageScript(status=404)
    renderer = FakeRenderer(scripts)

    report = await RenderJob(job_config(urls, batch_size=2), renderer).run()

    assert report.state == JobState.DONE
    assert report.succeeded == ["https://example.com/a", "https://example.com/c"]
    assert len(report.failed) == 1
    assert report.failed[0].url == "https://example.com/b"
    assert report.failed[0].reason == FailureReason.NAVIGATION
    assert report.page_count == 2
    assert heights(report.final_document) == [1000, 1002]


@pytest.mark.asyncio
async def test_all_urls_failing_gives_empty_report():
    urls = ["https://example.com/a", "https://example.com/b"]
    renderer = FakeRenderer({url: FakePageScript(status=500) for url in urls})

    report = await RenderJob(job_config(urls), renderer).run()

    assert report.state == JobState.DONE
    assert not report.has_document
    assert report.final_document is None
    assert report.page_count == 0
    assert [f.url for f in report.failed] == urls


@pytest.mark.asyncio
@pytest.mark.parametrize("batch_size", [1, 2, 3, 7, 10])
async def test_batch_size_does_not_change_output(urls, batch_size):
    def renderer():
        scripts = sized_scripts(urls)
        scripts[urls[3]] = FakePageScript(status=404)
        return FakeRenderer(scripts)

    baseline = await RenderJob(job_config(urls, batch_size=1), renderer(), job_id="job-1").run()
    job = RenderJob(job_config(urls, batch_size=batch_size), renderer(), job_id="job-1")
    report = await job.run()

    # the whole report, document bytes included, is independent of the batch size;
    # only the run diagnostics differ
    assert report == baseline
    assert job.stats.batch_count == -(-len(urls) // batch_size)

    assert report.succeeded == [url for url in urls if url != urls[3]]
    assert [f.url for f in report.failed] == [urls[3]]
    assert heights(report.final_document) == [1000, 1001, 1002, 1004, 1005, 1006]


@pytest.mark.asyncio
async def test_one_context_per_batch_and_every_context_closed(urls, fake_renderer):
    job = RenderJob(job_config(urls, batch_size=3), fake_renderer)
    await job.run()

    assert job.stats.batch_count == 3
    assert job.stats.context_starts == 3
    assert fake_renderer.open_calls == 3
    assert [context.visited for context in fake_renderer.contexts] == [urls[0:3], urls[3:6], urls[6:7]]
    assert all(context.closed for context in fake_renderer.contexts)


@pytest.mark.asyncio
async def test_context_start_failure_is_fatal(urls):
    renderer = FakeRenderer(sized_scripts(urls), fail_on_open={2})
    job = RenderJob(job_config(urls, batch_size=3), renderer)

    with pytest.raises(ContextStartError):
        await job.run()

    assert job.state == JobState.FAILED_FATAL
    assert job.current_batch == 1
    assert renderer.open_calls == 2
    # the first batch's context was still released
    assert renderer.contexts[0].closed
    assert len(job.results) == 3


@pytest.mark.asyncio
async def test_context_is_closed_when_capture_raises(urls, monkeypatch):
    renderer = FakeRenderer(sized_scripts(urls))

    async def broken_capture(request, context, index=0):
        raise RuntimeError("unexpected")

    monkeypatch.setattr("pagebinder.services.render_job.capture", broken_capture)

    with pytest.raises(RuntimeError):
        await RenderJob(job_config(urls, batch_size=3), renderer).run()

    assert renderer.contexts[0].closed


@pytest.mark.asyncio
async def test_deadline_skips_remaining_urls(urls):
    clock = FakeClock()
    renderer = FakeRenderer(sized_scripts(urls[:5]), clock=clock, seconds_per_page=10)
    config = job_config(urls[:5], batch_size=2, deadline_seconds=25)

    report = await RenderJob(config, renderer, clock=clock).run()

    assert report.deadline_exceeded
    assert report.succeeded == urls[:3]
    assert [f.url for f in report.failed] == urls[3:5]
    assert all(f.reason == FailureReason.DEADLINE for f in report.failed)
    assert renderer.open_calls == 2
    assert report.page_count == 3


@pytest.mark.asyncio
async def test_deadline_not_reached(urls, fake_renderer):
    report = await RenderJob(job_config(urls, deadline_seconds=3600), fake_renderer).run()

    assert not report.deadline_exceeded
    assert report.failed == []
    assert report.page_count == len(urls)


@pytest.mark.asyncio
async def test_readiness_warnings_are_reported(urls):
    scripts = sized_scripts(urls[:2])
    scripts[urls[1]] = FakePageScript(slow_steps={"network_idle"}, height=1001)
    renderer = FakeRenderer(scripts)
    config = job_config(urls[:2], readiness_policy=ReadinessPolicy(steps=[NetworkIdleStep()]))

    report = await RenderJob(config, renderer).run()

    assert report.succeeded == urls[:2]
    assert [(w.step, w.url) for w in report.warnings] == [("network_idle", urls[1])]


@pytest.mark.asyncio
async def test_job_runs_once(urls, fake_renderer):
    job = RenderJob(job_config(urls[:1]), fake_renderer)
    await job.run()

    with pytest.raises(RuntimeError):
        await job.run()


@pytest.mark.asyncio
async def test_empty_url_list(fake_renderer):
    job = RenderJob(job_config([]), fake_renderer)
    report = await job.run()

    assert report.state == JobState.DONE
    assert not report.has_document
    assert job.stats.batch_count == 0
    assert fake_renderer.open_calls == 0


@pytest.mark.asyncio
async def test_run_job_with_given_renderer(urls, fake_renderer):
    report = await run_job(job_config(urls[:2]), renderer=fake_renderer)

    assert report.succeeded == urls[:2]


def test_build_job_config_applies_overrides(urls):
    render_config = RenderConfig(batch_size=4, width_cap_px=1920, job_deadline_seconds=600)

    config = build_job_config(
        urls,
        render_config=render_config,
        batch_size=2,
        hide_selectors=["header"],
        settle_delay_ms=0
    )

    assert config.batch_size == 2
    assert config.width_cap_px == 1920
    assert config.deadline_seconds == 600
    assert "hide_selectors" in config.readiness_policy.step_kinds()
    assert "fixed_delay" not in config.readiness_policy.step_kinds()
    assert config.capture_request(urls[0]).width_cap_px == 1920


def test_build_job_config_defaults(urls):
    config = build_job_config(urls)

    assert config.batch_size == 5
    assert config.width_cap_px == 1280
    assert config.navigation_timeout_ms == 20000
    assert config.deadline_seconds is None
