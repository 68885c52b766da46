"""Suite orchestration: discovery, first pass, retries and aggregation."""

import asyncio
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from webnn_harness.config import RunSettings
from webnn_harness.discovery import (
    HttpIndexDiscovery,
    discover_units,
    filter_units,
    parse_index_ranges,
)
from webnn_harness.executor import UnitExecutor
from webnn_harness.models.result import UnitResult
from webnn_harness.models.scenario import (
    ConformanceScenario,
    DemoScenario,
    Scenario,
    ScenarioCatalogue,
)
from webnn_harness.retry import RETRY_POLICIES, RetryOrchestrator
from webnn_harness.scenario_loader import (
    ScenarioNotFoundError,
    find_scenario,
    group_scenarios,
    load_catalogue,
)
from webnn_harness.scheduler import BatchScheduler
from webnn_harness.session.base import BrowserSession, SessionLauncher, close_quietly
from webnn_harness.session.lifecycle import SessionLifecycleManager

log = logging.getLogger(__name__)

# Suite names that run every demo of a catalogue group
DEMO_GROUPS = ("sample", "preview")


@dataclass(frozen=True, kw_only=True)
class SuiteReport:
    """Final results of a run."""

    results: Sequence[UnitResult]
    wall_time: float = 0.0

    @property
    def sum_of_test_times(self) -> float:
        """Total of per-unit execution times, ignoring concurrency."""
        return sum(result.execution_time for result in self.results)

    def summary(self) -> Mapping[str, int]:
        """Aggregate counts over verdicts and subcases."""
        verdicts = [result.verdict for result in self.results]
        return {
            "cases": len(self.results),
            "passed": verdicts.count("PASS"),
            "failed": verdicts.count("FAIL"),
            "errors": verdicts.count("ERROR"),
            "unknown": verdicts.count("UNKNOWN"),
            "subcases_total": sum(r.subcases.total for r in self.results),
            "subcases_passed": sum(r.subcases.passed for r in self.results),
            "subcases_failed": sum(r.subcases.failed for r in self.results),
            "retried": sum(1 for r in self.results if r.retried),
        }

    @property
    def exit_code(self) -> int:
        """0 if every result passed, 1 otherwise."""
        return 0 if all(result.verdict == "PASS" for result in self.results) else 1


@dataclass(frozen=True, kw_only=True)
class SuiteRunner:
    """Runs the configured suites end to end."""

    settings: RunSettings
    launcher: SessionLauncher
    catalogue: ScenarioCatalogue = field(default_factory=load_catalogue)

    @property
    def lifecycle(self) -> SessionLifecycleManager:
        """Lifecycle manager configured from the run settings."""
        return SessionLifecycleManager(
            launcher=self.launcher,
            settle_delay=self.settings.relaunch_delay,
            process_name=(
                self.settings.browser.process_name if self.settings.force_kill else None
            ),
        )

    def executor(self, scenario: Scenario) -> UnitExecutor:
        """Executor for the units of one scenario."""
        base_url = (
            self.settings.base_url or scenario.index_url
            if isinstance(scenario, ConformanceScenario)
            else ""
        )
        return UnitExecutor(
            scenario=scenario,
            base_url=base_url,
            device=self.settings.device,
            unit_timeout=self.settings.unit_timeout,
            settle_delay=self.settings.settle_delay,
        )

    def retry_orchestrator(self, executor: UnitExecutor) -> RetryOrchestrator:
        """Retry orchestrator using the configured stability policy."""
        return RetryOrchestrator(
            executor=executor,
            lifecycle=self.lifecycle,
            policy=RETRY_POLICIES[self.settings.retry_policy],
        )

    def select_group(self, group: str) -> tuple[list[DemoScenario], list[str]]:
        """Demos of a group narrowed to the configured cases.

        Returns:
            Selected demos, in case order when cases are given, and the
            case names that matched no demo of the group

        """
        members = group_scenarios(self.catalogue, group)
        cases = (
            self.settings.sample_cases
            if group == "sample"
            else self.settings.preview_cases
        )
        if not cases:
            return members, []

        by_name = {scenario.name.lower(): scenario for scenario in members}
        selected: list[DemoScenario] = []
        unknown: list[str] = []
        for case in cases:
            scenario = by_name.get(case.strip().lower())
            if scenario is None:
                unknown.append(case)
            elif scenario not in selected:
                selected.append(scenario)
        return selected, unknown

    async def run(self) -> SuiteReport:
        """Run every suite named in the settings.

        Returns:
            Report over all results

        Raises:
            RelaunchError: If no browser session can be started at all

        """
        start = asyncio.get_event_loop().time()
        results: list[UnitResult] = []
        demos: list[DemoScenario] = []

        for name in self.settings.suite:
            if name in DEMO_GROUPS:
                selected, unknown = self.select_group(name)
                for case in unknown:
                    log.warning("Unknown %s test case: %s", name, case)
                    results.append(
                        UnitResult(
                            name=f"{name.capitalize()}: {case}",
                            unit=case,
                            verdict="ERROR",
                            suite="model",
                            error=f"Unknown {name} test case: {case}",
                        )
                    )
                demos.extend(s for s in selected if s not in demos)
                continue

            try:
                scenario = find_scenario(self.catalogue, name)
            except ScenarioNotFoundError as e:
                log.error("%s", e)
                results.append(
                    UnitResult(name=name, unit=name, verdict="ERROR", error=str(e))
                )
                continue

            if isinstance(scenario, ConformanceScenario):
                results.extend(await self.run_conformance(scenario))
            elif scenario not in demos:
                demos.append(scenario)

        if demos:
            results.extend(await self.run_scenarios(demos))

        wall_time = asyncio.get_event_loop().time() - start
        return SuiteReport(results=results, wall_time=wall_time)

    async def run_conformance(self, scenario: ConformanceScenario) -> list[UnitResult]:
        """Discover, run and retry the units of a conformance suite."""
        log.info("Running %s on %s", scenario.title, self.settings.device.upper())
        executor = self.executor(scenario)
        lifecycle = self.lifecycle

        session: BrowserSession | None = await lifecycle.launch()
        try:
            units = await self._discover(session, scenario, executor.base_url)
            units = filter_units(
                units,
                cases=self.settings.cases,
                indices=parse_index_ranges(self.settings.index_ranges),
            )
            if not units:
                log.warning("No tests selected. Check the case and range filters")
                return []

            outcome = await BatchScheduler(
                executor=executor, lifecycle=lifecycle
            ).run_batch(units, self.settings.jobs, session)
            session = outcome.session
        finally:
            # Must be closed before retries; a persistent profile admits one browser
            if session is not None:
                await close_quietly(session)

        results = list(outcome.results)
        if self.settings.skip_retry:
            log.info("Skipping retries")
        else:
            await self.retry_orchestrator(executor).run_retries(results)

        if self.settings.jobs > 1:
            results.sort(key=lambda result: result.name)
        return results

    async def run_scenarios(
        self, scenarios: Sequence[DemoScenario]
    ) -> list[UnitResult]:
        """Run demo scenarios one after another on a shared session."""
        lifecycle = self.lifecycle
        first_pass: list[tuple[UnitExecutor, UnitResult]] = []

        session: BrowserSession | None = await lifecycle.launch()
        try:
            for scenario in scenarios:
                executor = self.executor(scenario)
                outcome = await BatchScheduler(
                    executor=executor, lifecycle=lifecycle
                ).run_batch([scenario.name], 1, session)
                session = outcome.session
                first_pass.extend((executor, result) for result in outcome.results)
        finally:
            if session is not None:
                await close_quietly(session)

        if self.settings.skip_retry:
            log.info("Skipping retries")
        else:
            for executor, result in first_pass:
                await self.retry_orchestrator(executor).run_retries([result])

        return [result for _, result in first_pass]

    async def _discover(
        self, session: BrowserSession, scenario: ConformanceScenario, index_url: str
    ) -> Sequence[str]:
        if self.settings.discovery == "http":
            async with HttpIndexDiscovery.create(
                timeout=self.settings.unit_timeout
            ) as discovery:
                return await discovery.discover(index_url, scenario.file_suffix)

        return await discover_units(
            session, index_url, scenario.file_suffix, timeout=self.settings.unit_timeout
        )
