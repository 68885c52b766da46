"""Execution of a single unit against a borrowed browser session."""

import asyncio
import logging
from dataclasses import dataclass

from webnn_harness.classifier import classify, scrape_failed_subtests
from webnn_harness.config import DEFAULT_BASE_URL
from webnn_harness.errors import (
    ContextCreationError,
    HarnessBannerError,
    InteractionError,
    InvalidOutputError,
    UnitTimeoutError,
    is_critical,
    is_session_loss,
)
from webnn_harness.models.result import Subcases, UnitResult, Verdict
from webnn_harness.models.scenario import (
    ConformanceScenario,
    DemoScenario,
    DemoStep,
    Scenario,
)
from webnn_harness.session.base import BrowserSession, PageHandle, close_quietly
from webnn_harness.session.listeners import watch_page_failures

log = logging.getLogger(__name__)

CRASH_CHECK = """() => {
  const first = (path) => document.evaluate(
    path, document, null, XPathResult.FIRST_ORDERED_NODE_TYPE, null
  ).singleNodeValue;
  const pre = first('//*[@id="summary"]/section/pre[1]');
  if (pre && pre.textContent.includes('Unable to create context for gpu variant')) {
    return 'context';
  }
  const status = first('//*[@id="summary"]/section/p/span');
  if (status && status.textContent.includes('Error')) {
    return 'harness';
  }
  return null;
}"""

STATUS_MARKER_CHECK = "(selector) => document.querySelector(selector) !== null"

TEXT_MARKER_CHECK = """(markers) => {
  const body = document.body ? document.body.textContent : '';
  return markers.some((marker) => body.includes(marker));
}"""

METRICS_CHECK = """({metrics, required, pattern}) => {
  const values = {};
  for (const [label, selector] of Object.entries(metrics)) {
    const element = document.querySelector(selector);
    values[label] = element ? element.innerText.trim() : '';
  }
  const ready = new RegExp(pattern);
  return required.every((label) => values[label] && ready.test(values[label]))
    ? values
    : null;
}"""

METRIC_POLL_INTERVAL = 0.5

STEP_VERBS = {
    "click": "click",
    "click_if_visible": "click",
    "fill": "fill",
    "wait_visible": "find",
    "wait_enabled": "find enabled",
}


def unit_test_name(unit: str) -> str:
    """Display name of a conformance file, e.g. ``abs.https.any.js`` -> ``abs``."""
    return unit.removesuffix(".https.any.js").removesuffix(".js")


def unit_page(unit: str) -> str:
    """Page rendering a conformance file, e.g. ``abs.https.any.html``."""
    return unit.removesuffix(".js") + ".html"


@dataclass(frozen=True, kw_only=True)
class UnitExecutor:
    """Runs one unit of a scenario end to end.

    Ordinary failures become ERROR results. Failures that mean the session
    is unusable are raised so that the caller can replace the session.
    """

    scenario: Scenario
    base_url: str = DEFAULT_BASE_URL
    device: str = "cpu"
    unit_timeout: float = 60.0
    settle_delay: float = 2.0

    @property
    def suite(self) -> str:
        """Suite label recorded on results."""
        return "wpt" if isinstance(self.scenario, ConformanceScenario) else "model"

    @property
    def time_budget(self) -> float:
        """Seconds one run of a unit may take."""
        if isinstance(self.scenario, DemoScenario) and self.scenario.unit_timeout:
            return self.scenario.unit_timeout
        return self.unit_timeout

    def unit_name(self, unit: str) -> str:
        """Display name of a unit."""
        if isinstance(self.scenario, DemoScenario):
            return self.scenario.title
        return unit_test_name(unit)

    def target_url(self, unit: str) -> str:
        """Address navigated to for a unit."""
        if isinstance(self.scenario, DemoScenario):
            return self.scenario.url.format(device=self.device)
        return self.scenario.url_template.format(
            base_url=self.base_url, page=unit_page(unit), device=self.device
        )

    def error_result(self, unit: str, message: str) -> UnitResult:
        """ERROR result for a unit whose run ended in an exception."""
        return UnitResult(
            name=self.unit_name(unit),
            unit=unit,
            verdict="ERROR",
            subcases=Subcases(),
            suite=self.suite,
            target_url=self.target_url(unit),
            error=message,
        )

    async def execute(
        self,
        session: BrowserSession,
        unit: str,
        attempt: int = 0,
        *,
        index: int | None = None,
        total: int | None = None,
    ) -> UnitResult:
        """Run a unit once.

        Args:
            session: Session to open the page on; it is never closed here
            unit: Unit identifier (file name or scenario name)
            attempt: 0 for the first pass, retry number otherwise
            index: Position of the unit in the batch, for progress output
            total: Size of the batch, for progress output

        Returns:
            Result of the run

        Raises:
            CriticalSessionError: If the session must be replaced
            Exception: Errors recognised by ``is_critical`` are re-raised as is

        """
        name = self.unit_name(unit)
        url = self.target_url(unit)
        budget = self.time_budget

        prefix = "Running test"
        if index is not None and total:
            prefix += f" {index + 1}/{total}"
        if attempt > 0:
            prefix += f" [Retry {attempt}]"
        log.info("%s: %s", prefix, name)

        page = await session.new_page()
        try:
            async with watch_page_failures(page) as watch:
                try:
                    result = await asyncio.wait_for(
                        watch.guard(self._run(page, unit, url)), timeout=budget
                    )
                    watch.raise_if_failed()
                except InvalidOutputError as e:
                    watch.raise_if_session_failed()
                    log.error("[%s] %s", name, e)
                    return self.error_result(unit, str(e))
                except Exception as e:
                    watch.raise_if_failed()
                    if isinstance(e, TimeoutError):
                        raise UnitTimeoutError(
                            f"Timeout {budget:.0f}s exceeded for {name}"
                        ) from e
                    if is_critical(e):
                        raise
                    log.error("Error executing %s: %s", name, e)
                    return self.error_result(unit, str(e))

                return result
        finally:
            await close_quietly(page)

    async def _run(self, page: PageHandle, unit: str, url: str) -> UnitResult:
        if isinstance(self.scenario, DemoScenario):
            return await self._run_demo(page, self.scenario, unit, url)
        return await self._run_conformance(page, self.scenario, unit, url)

    async def _run_conformance(
        self, page: PageHandle, scenario: ConformanceScenario, unit: str, url: str
    ) -> UnitResult:
        name = self.unit_name(unit)
        await page.navigate(url, wait_until="networkidle", timeout=self.unit_timeout)

        crash = await page.evaluate(CRASH_CHECK)
        if crash == "context":
            raise ContextCreationError("GPUContextCreationError")
        if crash == "harness":
            raise HarnessBannerError("HarnessError")

        await asyncio.sleep(self.settle_delay)
        await self._wait_for_completion(page, scenario)
        await asyncio.sleep(self.settle_delay)

        text = await page.text_content()
        html = await page.content()
        classification = classify(text, html)
        subcases = classification.subcases

        failed_subtests = scrape_failed_subtests(html) if subcases.failed > 0 else ()
        if failed_subtests:
            log.info(
                "[%s] Captured %d failed subtest(s) details", name, len(failed_subtests)
            )
        log.info(
            "[%s] %s: %d PASS, %d FAIL",
            name,
            classification.verdict,
            subcases.passed,
            subcases.failed,
        )

        return UnitResult(
            name=name,
            unit=unit,
            verdict=classification.verdict,
            subcases=subcases,
            suite=self.suite,
            target_url=url,
            failed_subtests=failed_subtests,
        )

    async def _wait_for_completion(
        self, page: PageHandle, scenario: ConformanceScenario
    ) -> None:
        """Wait for results to render; giving up is not an error."""
        try:
            if await page.evaluate(STATUS_MARKER_CHECK, scenario.status_selector):
                await page.wait_for_selector(
                    scenario.status_selector, timeout=self.unit_timeout
                )
            else:
                await page.wait_for_condition(
                    TEXT_MARKER_CHECK,
                    arg=list(scenario.completion_markers),
                    timeout=self.unit_timeout,
                )
        except Exception as e:
            log.debug("Completion indicator not seen, proceeding: %s", e)

    async def _run_demo(
        self, page: PageHandle, scenario: DemoScenario, unit: str, url: str
    ) -> UnitResult:
        log.info("Running %s on %s", scenario.title, self.device.upper())
        await page.navigate(url, wait_until="networkidle", timeout=self.unit_timeout)
        await asyncio.sleep(self.settle_delay)

        device_option = scenario.device_options.get(self.device)
        if device_option is not None and self.device == "npu":
            if not await page.is_visible(device_option):
                log.info("NPU not supported/available for %s, skipping", scenario.title)
                return self._demo_result(unit, url, "PASS", "NPU not supported")

        try:
            if device_option is not None:
                await self._click(page, device_option, scenario.click_timeout)
            for option in scenario.select_options:
                await self._click(page, option, scenario.click_timeout)
            for step in scenario.steps:
                await self._perform(page, step, scenario.click_timeout)
        except InteractionError as e:
            log.info("[%s] FAIL: %s", scenario.title, e)
            return self._demo_result(unit, url, "FAIL", str(e))

        metrics = await self._poll_metrics(page, scenario)
        if metrics is None:
            log.info("[%s] FAIL: metrics not reported", scenario.title)
            return self._demo_result(
                unit,
                url,
                "FAIL",
                f"No {', '.join(scenario.metrics)} reported within "
                f"{scenario.completion_timeout:.0f}s",
            )

        details = ", ".join(
            f"{label}: {metrics.get(label) or 'N/A'}" for label in scenario.metrics
        )
        log.info("[%s] PASS: %s", scenario.title, details)
        return self._demo_result(unit, url, "PASS", details)

    def _demo_result(
        self, unit: str, url: str, verdict: Verdict, details: str
    ) -> UnitResult:
        passed = verdict == "PASS"
        return UnitResult(
            name=self.unit_name(unit),
            unit=unit,
            verdict=verdict,
            subcases=Subcases(total=1, passed=int(passed), failed=int(not passed)),
            suite=self.suite,
            target_url=url,
            details=details,
        )

    async def _click(self, page: PageHandle, selector: str, timeout: float) -> None:
        await self._perform(page, DemoStep(action="click", selector=selector), timeout)

    async def _perform(
        self, page: PageHandle, step: DemoStep, default_timeout: float
    ) -> None:
        """Carry out one interaction.

        Raises:
            InteractionError: If the element never became actionable
            Exception: Errors meaning the page or browser went away

        """
        timeout = step.timeout or default_timeout
        try:
            if step.action == "pause":
                await asyncio.sleep(step.seconds)
            elif step.action == "fill":
                await page.fill(step.selector, step.text, timeout=timeout)
            elif step.action == "wait_visible":
                await page.wait_for_selector(step.selector, timeout=timeout)
            elif step.action == "wait_enabled":
                await page.wait_for_enabled(step.selector, timeout=timeout)
            elif step.action == "click" or await page.is_visible(step.selector):
                await page.click(step.selector, timeout=timeout)
            else:
                log.info("%s not shown, continuing", step.selector)
        except Exception as e:
            if is_session_loss(e):
                raise
            raise InteractionError(
                f"Could not {STEP_VERBS[step.action]} {step.selector}: {e}"
            ) from e

    async def _poll_metrics(
        self, page: PageHandle, scenario: DemoScenario
    ) -> dict[str, str] | None:
        """Poll the page until the required metrics are populated."""
        deadline = asyncio.get_event_loop().time() + scenario.completion_timeout
        check_arg = {
            "metrics": dict(scenario.metrics),
            "required": list(scenario.required_metrics or scenario.metrics),
            "pattern": scenario.ready_pattern,
        }

        while True:
            if (values := await page.evaluate(METRICS_CHECK, check_arg)) is not None:
                return {str(k): str(v) for k, v in values.items()}

            if asyncio.get_event_loop().time() >= deadline:
                return None

            await asyncio.sleep(METRIC_POLL_INTERVAL)
