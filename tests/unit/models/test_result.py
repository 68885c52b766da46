"""Tests for result models."""

import pytest

from webnn_harness.models.result import RetrySnapshot, Subcases, UnitResult
from webnn_harness.testing.factories import UnitResultFactory


class TestSubcases:
    """Tests for Subcases verdict derivation."""

    @pytest.mark.parametrize(
        ("subcases", "expected"),
        [
            (Subcases(total=10, passed=10, failed=0), "PASS"),
            (Subcases(total=10, passed=8, failed=2), "FAIL"),
            (Subcases(total=2, passed=0, failed=2), "FAIL"),
            (Subcases(total=1, passed=0, failed=0), "UNKNOWN"),
            (Subcases(), "UNKNOWN"),
            # Heuristic counts may exceed the total
            (Subcases(total=1, passed=3, failed=0), "PASS"),
        ],
    )
    def test_verdict(self, subcases: Subcases, expected: str) -> None:
        """Verdict is FAIL on any failure, PASS on passes without failures."""
        assert subcases.verdict == expected


class TestRetrySnapshot:
    """Tests for RetrySnapshot."""

    def test_of_captures_result(self) -> None:
        """Snapshot copies verdict, counters and error."""
        result = UnitResultFactory.build(
            verdict="FAIL",
            subcases=Subcases(total=10, passed=8, failed=2),
            error="boom",
        )

        snapshot = RetrySnapshot.of(result, 2)

        assert snapshot == RetrySnapshot(
            attempt_number=2, verdict="FAIL", passed=8, failed=2, total=10, error="boom"
        )

    def test_matches_ignores_attempt_and_error(self) -> None:
        """Attempts match on verdict and counters only."""
        first = RetrySnapshot(attempt_number=0, verdict="ERROR", error="a")
        second = RetrySnapshot(attempt_number=1, verdict="ERROR", error="b")

        assert first.matches(second)

    def test_different_counts_do_not_match(self) -> None:
        """Same verdict with other counters does not match."""
        first = RetrySnapshot(attempt_number=0, verdict="FAIL", passed=8, failed=2)
        second = RetrySnapshot(attempt_number=1, verdict="FAIL", passed=7, failed=3)

        assert not first.matches(second)


class TestUnitResult:
    """Tests for UnitResult."""

    def test_not_retried_without_history(self) -> None:
        """A single history entry means no retries happened."""
        result = UnitResultFactory.build()
        assert not result.retried

        result.retry_history.append(RetrySnapshot.of(result, 0))
        assert not result.retried

        result.retry_history.append(RetrySnapshot.of(result, 1))
        assert result.retried

    def test_same_outcome(self) -> None:
        """Results agree when verdict and all counters agree."""
        subcases = Subcases(total=10, passed=8, failed=2)
        first = UnitResultFactory.build(verdict="FAIL", subcases=subcases)
        second = UnitResultFactory.build(verdict="FAIL", subcases=subcases)
        third = UnitResultFactory.build(
            verdict="FAIL", subcases=Subcases(total=10, passed=9, failed=1)
        )

        assert first.same_outcome(second)
        assert not first.same_outcome(third)

    def test_update_from_keeps_identity_and_history(self) -> None:
        """Updating takes the new outcome but keeps name, unit and history."""
        result = UnitResult(
            name="abs",
            unit="abs.https.any.js",
            verdict="ERROR",
            error="Timeout",
            target_url="https://example.test/abs.https.any.html",
        )
        result.retry_history.append(RetrySnapshot.of(result, 0))
        later = UnitResultFactory.build(
            name="other",
            verdict="PASS",
            subcases=Subcases(total=4, passed=4, failed=0),
            target_url=None,
        )

        result.update_from(later)

        assert result.name == "abs"
        assert result.unit == "abs.https.any.js"
        assert result.verdict == "PASS"
        assert result.subcases == Subcases(total=4, passed=4, failed=0)
        assert result.error is None
        assert result.target_url == "https://example.test/abs.https.any.html"
        assert len(result.retry_history) == 1
