"""Models for unit execution results."""

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Literal

Verdict = Literal["PASS", "FAIL", "ERROR", "UNKNOWN"]


@dataclass(frozen=True, kw_only=True)
class Subcases:
    """Fine-grained counters extracted from one rendered test page.

    ``passed + failed <= total`` is expected but not enforced: heuristic
    extraction can produce counts that break it.
    """

    total: int = 0
    passed: int = 0
    failed: int = 0

    @property
    def verdict(self) -> Verdict:
        """Verdict implied by the counters alone."""
        if self.failed > 0:
            return "FAIL"
        if self.passed > 0:
            return "PASS"
        return "UNKNOWN"


@dataclass(frozen=True, kw_only=True)
class FailedSubtest:
    """One failing row of a testharness results table."""

    name: str
    status: str
    message: str = ""


@dataclass(frozen=True, kw_only=True)
class RetrySnapshot:
    """Outcome of a single attempt, as recorded in retry history."""

    attempt_number: int
    verdict: Verdict
    passed: int = 0
    failed: int = 0
    total: int = 0
    error: str | None = None
    # The attempt never ran because no browser could be launched
    launch_failed: bool = False

    @classmethod
    def of(cls, result: "UnitResult", attempt_number: int) -> "RetrySnapshot":
        """Capture the current outcome of a result."""
        return cls(
            attempt_number=attempt_number,
            verdict=result.verdict,
            passed=result.subcases.passed,
            failed=result.subcases.failed,
            total=result.subcases.total,
            error=result.error,
        )

    def matches(self, other: "RetrySnapshot") -> bool:
        """Check whether two attempts produced the same verdict and counters."""
        return (
            self.verdict == other.verdict
            and self.passed == other.passed
            and self.failed == other.failed
            and self.total == other.total
        )

    @property
    def label(self) -> str:
        """Verdict as shown in retry summaries."""
        if self.launch_failed:
            return f"{self.verdict} (launch failed)"
        return self.verdict


@dataclass(kw_only=True)
class UnitResult:
    """Result of running one unit.

    Created by the executor; only the retry phase mutates it afterwards.
    """

    __test__ = False

    name: str
    unit: str
    verdict: Verdict
    subcases: Subcases = field(default_factory=Subcases)
    suite: str = "wpt"
    target_url: str | None = None
    details: str | None = None
    error: str | None = None
    failed_subtests: Sequence[FailedSubtest] = ()
    execution_time: float = 0.0
    retry_history: list[RetrySnapshot] = field(default_factory=list)

    @property
    def retried(self) -> bool:
        """Whether the retry phase attempted this unit again."""
        return len(self.retry_history) > 1

    def same_outcome(self, other: "UnitResult") -> bool:
        """Check whether two results agree on verdict and subcase counts."""
        return self.verdict == other.verdict and self.subcases == other.subcases

    def update_from(self, other: "UnitResult") -> None:
        """Take over the outcome of a later attempt, keeping identity and history."""
        self.verdict = other.verdict
        self.subcases = other.subcases
        self.target_url = other.target_url or self.target_url
        self.details = other.details
        self.error = other.error
        self.failed_subtests = other.failed_subtests
        self.execution_time = other.execution_time
