"""Sequential re-execution of non-passing units on fresh sessions."""

import asyncio
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from webnn_harness.errors import RelaunchError, describe_failure, is_critical
from webnn_harness.executor import UnitExecutor
from webnn_harness.models.result import RetrySnapshot, UnitResult
from webnn_harness.session.base import close_quietly
from webnn_harness.session.lifecycle import SessionLifecycleManager

log = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class RetryPolicy:
    """When to stop re-running a unit.

    Attempt 0 is the first-pass result; ``max_attempts`` counts retries only.
    """

    max_attempts: int = 3
    # Identical outcomes in a row, attempt 0 included, that count as stable
    min_consecutive_matches: int = 2
    accept_first_pass: bool = True

    def should_stop(self, history: Sequence[RetrySnapshot]) -> bool:
        """Decide whether the attempts so far settle the unit's outcome."""
        if not history:
            return False

        latest = history[-1]
        if latest.verdict == "PASS" and self.accept_first_pass:
            return True

        window = history[-self.min_consecutive_matches :]
        if len(window) >= self.min_consecutive_matches and all(
            snapshot.matches(latest) for snapshot in window
        ):
            return True

        return len(history) - 1 >= self.max_attempts


QUICK_RETRY = RetryPolicy(max_attempts=3, accept_first_pass=True)
STRICT_RETRY = RetryPolicy(max_attempts=20, accept_first_pass=False)

RETRY_POLICIES: Mapping[str, RetryPolicy] = {
    "quick": QUICK_RETRY,
    "strict": STRICT_RETRY,
}


@dataclass(frozen=True, kw_only=True)
class RetryOrchestrator:
    """Re-runs every non-PASS result, one unit and one fresh session at a time."""

    executor: UnitExecutor
    lifecycle: SessionLifecycleManager
    policy: RetryPolicy = QUICK_RETRY

    async def run_retries(self, results: Sequence[UnitResult]) -> Sequence[UnitResult]:
        """Retry the non-passing results in place.

        Args:
            results: First-pass results; PASS entries are left untouched

        Returns:
            The same results, updated with their last attempt and history

        """
        pending = [result for result in results if result.verdict != "PASS"]
        if not pending:
            log.info("All tests passed on the first run, no retries needed")
            return results

        log.info("Retrying %d non-passing test(s)...", len(pending))
        for result in pending:
            await self.retry_unit(result)

        self._log_summary(pending)
        return results

    async def retry_unit(self, result: UnitResult) -> UnitResult:
        """Re-run one unit until the policy says its outcome is settled.

        A failed relaunch abandons the unit with its last known outcome; the
        history records the launch failure as a flagged ERROR entry.
        """
        if not result.retry_history:
            result.retry_history.append(RetrySnapshot.of(result, 0))

        while not self.policy.should_stop(result.retry_history):
            attempt = len(result.retry_history)
            try:
                session = await self.lifecycle.launch()
            except RelaunchError as e:
                log.error(
                    "[%s] Retry %d abandoned, browser launch failed: %s",
                    result.name,
                    attempt,
                    e,
                )
                result.retry_history.append(
                    RetrySnapshot(
                        attempt_number=attempt,
                        verdict="ERROR",
                        error=f"Browser launch failed: {e}",
                        launch_failed=True,
                    )
                )
                break

            start = asyncio.get_event_loop().time()
            try:
                outcome = await self.executor.execute(session, result.unit, attempt)
            except Exception as e:
                if is_critical(e):
                    message = f"{describe_failure(e)}: {e}"
                else:
                    message = str(e)
                log.error("[%s] Retry %d failed: %s", result.name, attempt, message)
                outcome = self.executor.error_result(result.unit, message)
            finally:
                await close_quietly(session)

            outcome.execution_time = asyncio.get_event_loop().time() - start
            result.update_from(outcome)
            result.retry_history.append(RetrySnapshot.of(result, attempt))
            log.info(
                "[%s] Retry %d: %s (%d/%d)",
                result.name,
                attempt,
                result.verdict,
                result.subcases.passed,
                result.subcases.total,
            )

        return result

    def _log_summary(self, retried: Sequence[UnitResult]) -> None:
        recovered = sum(1 for result in retried if result.verdict == "PASS")
        log.info(
            "Retry phase completed: %d of %d test(s) recovered",
            recovered,
            len(retried),
        )
        for result in retried:
            log.info(
                "  %s: %s",
                result.name,
                " -> ".join(snapshot.label for snapshot in result.retry_history),
            )
