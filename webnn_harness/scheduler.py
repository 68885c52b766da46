"""Bounded-concurrency batch execution over one shared, restartable session."""

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from webnn_harness.errors import RelaunchError, describe_failure, is_critical
from webnn_harness.executor import UnitExecutor
from webnn_harness.models.result import Subcases, UnitResult
from webnn_harness.session.base import BrowserSession
from webnn_harness.session.lifecycle import SessionLifecycleManager

log = logging.getLogger(__name__)

NO_SESSION_MESSAGE = "No usable browser session"


@dataclass(kw_only=True)
class SchedulerState:
    """Shared by the workers of one batch.

    Only mutated between suspension points, so no lock is needed beyond the
    ``restarting`` barrier.
    """

    session: BrowserSession | None
    restarting: bool = False
    cursor: int = 0
    results: list[UnitResult] = field(default_factory=list)
    relaunches: int = 0

    def claim(self, total: int) -> int | None:
        """Hand out the next unit index, or None once all are dispatched."""
        if self.cursor >= total:
            return None
        index = self.cursor
        self.cursor += 1
        return index


@dataclass(frozen=True, kw_only=True)
class BatchOutcome:
    """Results of a batch and the session that was active when it ended."""

    results: Sequence[UnitResult]
    session: BrowserSession | None
    relaunches: int = 0


@dataclass(frozen=True, kw_only=True)
class BatchScheduler:
    """Runs units with N workers sharing one browser session."""

    executor: UnitExecutor
    lifecycle: SessionLifecycleManager
    poll_interval: float = 0.1

    async def run_batch(
        self,
        units: Sequence[str],
        concurrency: int,
        session: BrowserSession | None,
    ) -> BatchOutcome:
        """Run every unit once.

        Args:
            units: Units to run; each is dispatched exactly once
            concurrency: Maximum number of units in flight
            session: Session shared by the workers until it has to be replaced

        Returns:
            One result per unit, in completion order, and the final session

        """
        state = SchedulerState(session=session)
        if not units:
            return BatchOutcome(results=[], session=session)

        workers = min(max(concurrency, 1), len(units))
        log.info("Running %d test(s) with %d worker(s)", len(units), workers)

        await asyncio.gather(
            *(self._worker(state, units, worker) for worker in range(workers))
        )

        log.info(
            "Batch completed: %d result(s), %d browser relaunch(es)",
            len(state.results),
            state.relaunches,
        )
        return BatchOutcome(
            results=state.results, session=state.session, relaunches=state.relaunches
        )

    async def _worker(
        self, state: SchedulerState, units: Sequence[str], worker: int
    ) -> None:
        while True:
            while state.restarting:
                await asyncio.sleep(self.poll_interval)

            if (index := state.claim(len(units))) is None:
                return
            unit = units[index]

            if (session := state.session) is None:
                state.results.append(
                    self.executor.error_result(unit, NO_SESSION_MESSAGE)
                )
                continue

            start = asyncio.get_event_loop().time()
            try:
                result = await self.executor.execute(
                    session, unit, index=index, total=len(units)
                )
            except Exception as e:
                result = self._failure_result(unit, e)
                if is_critical(e):
                    await self._restart(state, session, worker)

            result.execution_time = asyncio.get_event_loop().time() - start
            state.results.append(result)

    def _failure_result(self, unit: str, exc: Exception) -> UnitResult:
        """Result standing in for a unit whose execution raised."""
        if not is_critical(exc):
            log.error(
                "Unexpected error executing %s: %s", unit, exc, exc_info=exc
            )
            return self.executor.error_result(unit, str(exc))

        label = describe_failure(exc)
        log.error("Critical error in %s (%s): %s", unit, label, exc)
        return UnitResult(
            name=self.executor.unit_name(unit),
            unit=unit,
            verdict="FAIL",
            subcases=Subcases(total=1, passed=0, failed=1),
            suite=self.executor.suite,
            target_url=self.executor.target_url(unit),
            details=str(exc),
            error=f"{label}: {exc}",
        )

    async def _restart(
        self, state: SchedulerState, failed_session: BrowserSession, worker: int
    ) -> None:
        """Replace the shared session unless another worker already did."""
        if state.restarting or state.session is not failed_session:
            log.info("Worker %d: browser restart already handled", worker)
            return

        state.restarting = True
        try:
            log.warning("Worker %d: restarting browser after critical error", worker)
            state.session = await self.lifecycle.relaunch(failed_session)
            state.relaunches += 1
        except RelaunchError as e:
            log.error("Browser relaunch failed: %s", e)
            state.session = None
        finally:
            state.restarting = False
