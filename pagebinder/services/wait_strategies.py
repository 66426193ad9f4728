"""
Wait strategies for settling dynamic content before a page is measured.

A ReadinessPolicy is an ordered list of steps. ``apply_readiness_policy``
runs them against a capture context, each under its own time budget; a
step that runs out of time is abandoned and recorded as a warning, and the
next step runs anyway. ``DynamicContentWaiter`` implements the steps on a
Playwright page.
"""

import asyncio
import logging
import re
from typing import List, Optional, Dict, Any

from playwright.async_api import Page, TimeoutError as PlaywrightTimeoutError

from pagebinder.core.config import RenderConfig
from pagebinder.core.exceptions import ReadinessTimeout
from pagebinder.models.capture import (
    ReadinessPolicy,
    ReadinessStep,
    CaptureWarning,
    NetworkIdleStep,
    FixedDelayStep,
    AnimatedCounterSettleStep,
    ScrollSweepStep,
    HideSelectorsStep,
    ExpandAccordionsStep,
    ReplaceIframesStep,
)
from pagebinder.monitoring.metrics import record_readiness_warning

logger = logging.getLogger(__name__)

# Slack on top of a step's own budget before the evaluator abandons it
STEP_GRACE_SECONDS = 2.0

# Characters outside this set are stripped from caller-supplied selectors
_UNSAFE_SELECTOR_CHARS = re.compile(r'[^a-zA-Z0-9.#,\s:-]')

COUNTER_STATE_SCRIPT = """
([selector, attr]) => Array.from(document.querySelectorAll(selector)).map((el) => {
    const parse = (raw) => parseFloat(String(raw || '').replace(/[^0-9.\\-]/g, ''));
    const target = parse(el.getAttribute(attr));
    const current = parse(el.textContent);
    return {
        current: Number.isNaN(current) ? null : current,
        target: Number.isNaN(target) ? null : target
    };
})
"""

SNAP_COUNTERS_SCRIPT = """
([selector, attr, indices]) => {
    const elements = document.querySelectorAll(selector);
    let snapped = 0;
    indices.forEach((i) => {
        const el = elements[i];
        if (!el) return;
        const raw = el.getAttribute(attr);
        if (raw === null || raw.trim() === '') return;
        el.textContent = raw;
        snapped++;
    });
    return snapped;
}
"""

SCROLL_STEP_SCRIPT = """
() => {
    window.scrollBy(0, window.innerHeight);
    return {
        bottom: window.scrollY + window.innerHeight,
        height: document.documentElement.scrollHeight
    };
}
"""

SCROLL_TOP_SCRIPT = "() => window.scrollTo(0, 0)"

REMOVE_ELEMENTS_SCRIPT = """
(selector) => {
    let removed = 0;
    document.querySelectorAll(selector).forEach((el) => { el.remove(); removed++; });
    return removed;
}
"""

EXPAND_ACCORDIONS_SCRIPT = """
(selector) => {
    let opened = 0;
    document.querySelectorAll(selector).forEach((el) => {
        if (el.tagName === 'DETAILS') {
            if (!el.open) { el.open = true; opened++; }
        } else if (el.getAttribute('aria-expanded') === 'false') {
            el.click();
            opened++;
        }
    });
    return opened;
}
"""

REPLACE_IFRAMES_SCRIPT = """
(selector) => {
    let replaced = 0;
    document.querySelectorAll(selector).forEach((frame) => {
        if (frame.tagName !== 'IFRAME') return;
        const rect = frame.getBoundingClientRect();
        const box = document.createElement('div');
        box.setAttribute('data-pagebinder-iframe', '');
        box.style.width = rect.width + 'px';
        box.style.height = rect.height + 'px';
        box.style.display = 'flex';
        box.style.alignItems = 'center';
        box.style.justifyContent = 'center';
        box.style.border = '1px solid #ccc';
        const link = document.createElement('a');
        link.href = frame.src || '#';
        link.textContent = frame.title || frame.src || 'Embedded content';
        box.appendChild(link);
        frame.replaceWith(box);
        replaced++;
    });
    return replaced;
}
"""


def sanitize_selectors(selectors: List[str]) -> str:
    """
    Join caller-supplied selectors into one CSS selector list.

    Characters that could break out of the selector (braces, quotes,
    semicolons, ...) are stripped.
    """
    cleaned = []
    for selector in selectors:
        safe = _UNSAFE_SELECTOR_CHARS.sub('', selector).strip().strip(',').strip()
        if safe:
            cleaned.append(safe)
    return ', '.join(cleaned)


def unsettled_counters(states: List[Dict[str, Any]]) -> List[int]:
    """
    Positions of the counters that do not yet show their target.

    Values are compared as parsed numbers, so "1,250" against a target of
    "1250" is settled. A counter at 0 has not started animating; one
    without a numeric target is ignored.
    """
    unsettled = []
    for i, state in enumerate(states):
        target = state.get("target")
        if target is None:
            continue
        current = state.get("current")
        if current is None or current != target or current == 0:
            unsettled.append(i)
    return unsettled


def counters_settled(states: List[Dict[str, Any]]) -> bool:
    return not unsettled_counters(states)


class DynamicContentWaiter:
    """
    Runs individual readiness steps on a Playwright page.

    Each step either completes or raises ReadinessTimeout. Steps that
    mutate the DOM (hiding regions, expanding accordions, replacing
    iframes, snapping counters) leave an already-settled page unchanged.
    """

    async def run_step(self, page: Page, step: ReadinessStep, url: Optional[str] = None) -> None:
        """
        Run one readiness step.

        Args:
            page: Playwright page object
            step: Step to run
            url: URL being captured (for logging)

        Raises:
            ReadinessTimeout: the step did not complete within its timeout
        """
        if isinstance(step, NetworkIdleStep):
            await self._wait_network_idle(page, step, url)
        elif isinstance(step, FixedDelayStep):
            await page.wait_for_timeout(step.ms)
        elif isinstance(step, AnimatedCounterSettleStep):
            await self._settle_counters(page, step, url)
        elif isinstance(step, ScrollSweepStep):
            await self._scroll_sweep(page, step, url)
        elif isinstance(step, HideSelectorsStep):
            await self._hide_selectors(page, step, url)
        elif isinstance(step, ExpandAccordionsStep):
            await self._expand_accordions(page, step, url)
        elif isinstance(step, ReplaceIframesStep):
            await self._replace_iframes(page, step, url)
        else:
            raise ValueError(f"Unknown readiness step: {step!r}")

    async def _wait_network_idle(self, page: Page, step: NetworkIdleStep, url: Optional[str]) -> None:
        """
        Wait for network to be idle.

        Network is considered idle when there are no network connections
        for at least 500ms.
        """
        try:
            await page.wait_for_load_state("networkidle", timeout=step.timeout_ms)
            logger.debug(f"Network idle reached for {url}")
        except PlaywrightTimeoutError:
            raise ReadinessTimeout(step.kind, url, step.timeout_ms)

    async def _settle_counters(self, page: Page, step: AnimatedCounterSettleStep, url: Optional[str]) -> None:
        """
        Poll animated counters until each shows its (nonzero) target value.

        On timeout only the counters still unsettled at the last poll are
        snapped to their target attribute before ReadinessTimeout is raised.
        """
        args = [step.selector, step.target_attribute]
        polls = max(1, step.timeout_ms // step.poll_interval_ms)

        for attempt in range(polls + 1):
            unsettled = unsettled_counters(await page.evaluate(COUNTER_STATE_SCRIPT, args))
            if not unsettled:
                logger.debug(f"Counters settled for {url} after {attempt} polls")
                return
            if attempt < polls:
                await page.wait_for_timeout(step.poll_interval_ms)

        snapped = await page.evaluate(SNAP_COUNTERS_SCRIPT, args + [unsettled])
        logger.info(f"Snapped {snapped} unsettled counters to their targets on {url}")
        raise ReadinessTimeout(step.kind, url, step.timeout_ms)

    async def _scroll_sweep(self, page: Page, step: ScrollSweepStep, url: Optional[str]) -> None:
        """
        Scroll down one viewport at a time to trigger lazy loading, then
        return to the top.

        The sweep stops at the bottom, after timeout_ms of wall time or after
        timeout_ms / pause_ms steps, whichever comes first. The page is
        scrolled back to the top even when the sweep is cancelled.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + step.timeout_ms / 1000
        max_steps = max(1, step.timeout_ms // max(step.pause_ms, 50))
        reached_bottom = False

        try:
            for _ in range(max_steps):
                position = await page.evaluate(SCROLL_STEP_SCRIPT)
                remaining_ms = (deadline - loop.time()) * 1000
                if remaining_ms > 0:
                    await page.wait_for_timeout(min(step.pause_ms, remaining_ms))
                if position["bottom"] >= position["height"]:
                    reached_bottom = True
                    break
                if loop.time() >= deadline:
                    break
        finally:
            await page.evaluate(SCROLL_TOP_SCRIPT)

        if not reached_bottom:
            raise ReadinessTimeout(step.kind, url, step.timeout_ms)

    async def _hide_selectors(self, page: Page, step: HideSelectorsStep, url: Optional[str]) -> None:
        """Hide, or remove, every element matching the caller's selectors."""
        selector = sanitize_selectors(step.selectors)
        if not selector:
            return

        await page.add_style_tag(content=f"{selector} {{ display: none !important; }}")
        if step.remove:
            removed = await page.evaluate(REMOVE_ELEMENTS_SCRIPT, selector)
            logger.debug(f"Removed {removed} elements matching '{selector}' on {url}")

    async def _expand_accordions(self, page: Page, step: ExpandAccordionsStep, url: Optional[str]) -> None:
        """Open collapsed accordions and wait briefly for the transition."""
        opened = await page.evaluate(EXPAND_ACCORDIONS_SCRIPT, step.selector)
        if opened:
            logger.debug(f"Expanded {opened} accordions on {url}")
            await page.wait_for_timeout(min(300, step.timeout_ms))

    async def _replace_iframes(self, page: Page, step: ReplaceIframesStep, url: Optional[str]) -> None:
        replaced = await page.evaluate(REPLACE_IFRAMES_SCRIPT, step.selector)
        if replaced:
            logger.debug(f"Replaced {replaced} iframes on {url}")


async def apply_readiness_policy(context, policy: ReadinessPolicy, url: str) -> List[CaptureWarning]:
    """
    Apply every step of a readiness policy, in order.

    Each step is bounded by its own budget. A step that times out is
    abandoned (never retried) and recorded as a warning; execution always
    continues with the next step. Any other error propagates.

    Args:
        context: Capture context exposing ``wait_for(step, url)``
        policy: Readiness policy to apply
        url: URL being captured

    Returns:
        Warnings for the steps that were abandoned
    """
    warnings: List[CaptureWarning] = []

    for step in policy.steps:
        budget = step.budget_ms / 1000 + STEP_GRACE_SECONDS
        try:
            await asyncio.wait_for(context.wait_for(step, url), timeout=budget)
        except ReadinessTimeout as e:
            warnings.append(CaptureWarning(step=step.kind, url=url, reason="timeout", detail=e.message))
        except asyncio.TimeoutError:
            warnings.append(CaptureWarning(
                step=step.kind,
                url=url,
                reason="timeout",
                detail=f"Step abandoned after {budget:.1f}s"
            ))
        else:
            continue

        record_readiness_warning(step.kind)
        logger.warning(f"Readiness step '{step.kind}' timed out for {url}, proceeding anyway")

    return warnings


def policy_from_config(
    render_config: RenderConfig,
    hide_selectors: Optional[List[str]] = None,
    network_idle_timeout_ms: Optional[int] = None,
    settle_delay_ms: Optional[int] = None
) -> ReadinessPolicy:
    """
    Factory function to build the default readiness policy from configuration.

    Order: network idle, hide regions, replace iframes, expand accordions,
    scroll sweep, counter settle, fixed delay. Steps that are disabled in
    configuration (zero timeout, no selector) are left out.

    Args:
        render_config: Render configuration
        hide_selectors: Per-request selectors, added to the configured ones
        network_idle_timeout_ms: Per-request override of the network idle timeout
        settle_delay_ms: Per-request override of the final settle delay

    Returns:
        ReadinessPolicy instance
    """
    steps: List[ReadinessStep] = []

    idle_timeout = render_config.network_idle_timeout_ms if network_idle_timeout_ms is None else network_idle_timeout_ms
    if idle_timeout > 0:
        steps.append(NetworkIdleStep(timeout_ms=idle_timeout))

    selectors = render_config.hide_selector_list() + list(hide_selectors or [])
    if selectors:
        steps.append(HideSelectorsStep(selectors=selectors))

    if render_config.replace_iframes_selector:
        steps.append(ReplaceIframesStep(selector=render_config.replace_iframes_selector))

    if render_config.expand_accordions_selector:
        steps.append(ExpandAccordionsStep(selector=render_config.expand_accordions_selector))

    if render_config.scroll_pause_ms > 0:
        steps.append(ScrollSweepStep(pause_ms=render_config.scroll_pause_ms))

    if render_config.counter_selector:
        steps.append(AnimatedCounterSettleStep(
            selector=render_config.counter_selector,
            target_attribute=render_config.counter_target_attribute,
            timeout_ms=render_config.counter_timeout_ms,
            poll_interval_ms=render_config.counter_poll_interval_ms
        ))

    delay = render_config.settle_delay_ms if settle_delay_ms is None else settle_delay_ms
    if delay > 0:
        steps.append(FixedDelayStep(ms=delay))

    return ReadinessPolicy(steps=steps)
