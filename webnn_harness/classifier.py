"""Classification of rendered test pages into verdicts and subcase counts.

Remote test pages are third-party reports whose wording drifts between
versions, so extraction is an ordered cascade: structured numeric summaries
first, token counting and guesses last. The first strategy that yields a
count wins. Nothing here performs I/O or raises.
"""

import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from bs4 import BeautifulSoup

from webnn_harness.models.result import FailedSubtest, Subcases, Verdict

log = logging.getLogger(__name__)

FOUND_PASS_FAIL = re.compile(
    r"Found\s+(\d+)\s+tests?\s*(\d+)\s+Pass\s*(\d+)\s+Fail", re.I
)
FOUND_PASS = re.compile(
    r"Found\s+(\d+)\s+tests?\s*(\d+)\s+Pass(?!\s*\d+\s+Fail)", re.I
)
RATIO_PASSED = re.compile(r"(\d+)/(\d+)\s+tests?\s+passed", re.I)
COUNT_PASSED = re.compile(r"(\d+)\s+passed", re.I)
COUNT_FAILED = re.compile(r"(\d+)\s+failed", re.I)
NUMBERED_PASS = re.compile(r"(\d+)\s+PASS\b", re.I)
NUMBERED_FAIL = re.compile(r"(\d+)\s+FAIL\b", re.I)
PASS_TOKEN = re.compile(r"\bPASS\b")
FAIL_TOKEN = re.compile(r"\bFAIL\b")
INTEGER = re.compile(r"\d+")

ERROR_MARKERS = ("error", "fail")
COMPLETION_MARKERS = ("complete", "finished")
STATUS_WORDS = {"pass": "pass", "passed": "pass", "fail": "fail", "failed": "fail"}
FAILING_STATUSES = frozenset({"FAIL", "TIMEOUT", "ERROR", "NOTRUN"})


@dataclass(frozen=True, kw_only=True)
class Classification:
    """Verdict and counters extracted from one page, with the rule that matched."""

    verdict: Verdict
    subcases: Subcases
    strategy: str


def classify(text: str, html: str = "") -> Classification:
    """Classify rendered page output.

    Args:
        text: Text content of the page body
        html: Serialized page markup, used by the element-class heuristic

    Returns:
        Classification from the first strategy that produced counts

    """
    for strategy in STRATEGIES:
        subcases = strategy(text, html)
        if subcases is not None:
            log.debug("Classified page with %s: %s", strategy.__name__, subcases)
            return Classification(
                verdict=subcases.verdict,
                subcases=subcases,
                strategy=strategy.__name__,
            )

    return _completion_fallback(text)


def _found_pass_fail(text: str, html: str) -> Subcases | None:
    if match := FOUND_PASS_FAIL.search(text):
        total, passed, failed = (int(g) for g in match.groups())
        return Subcases(total=total, passed=passed, failed=failed)
    return None


def _found_pass(text: str, html: str) -> Subcases | None:
    if match := FOUND_PASS.search(text):
        return Subcases(total=int(match[1]), passed=int(match[2]), failed=0)
    return None


def _ratio_passed(text: str, html: str) -> Subcases | None:
    if match := RATIO_PASSED.search(text):
        passed, total = int(match[1]), int(match[2])
        return Subcases(total=total, passed=passed, failed=total - passed)
    return None


def _passed_and_failed(text: str, html: str) -> Subcases | None:
    passed = COUNT_PASSED.search(text)
    failed = COUNT_FAILED.search(text)
    if passed and failed:
        p, f = int(passed[1]), int(failed[1])
        return Subcases(total=p + f, passed=p, failed=f)
    return None


def _status_tokens(text: str, html: str) -> Subcases | None:
    numbered_pass = NUMBERED_PASS.search(text)
    numbered_fail = NUMBERED_FAIL.search(text)
    if numbered_pass or numbered_fail:
        passed = int(numbered_pass[1]) if numbered_pass else 0
        failed = int(numbered_fail[1]) if numbered_fail else 0
    else:
        passed = len(PASS_TOKEN.findall(text))
        failed = len(FAIL_TOKEN.findall(text))
    if passed + failed == 0:
        return None
    return Subcases(total=passed + failed, passed=passed, failed=failed)


def _element_classes(text: str, html: str) -> Subcases | None:
    # Elements classed pass/fail, plus elements whose own text is a status word
    if not html:
        return None
    soup = BeautifulSoup(html, "html.parser")
    for element in soup(["script", "style"]):
        element.decompose()

    passed = failed = 0
    for element in soup.find_all(class_=True):
        classes = " ".join(element.get("class", [])).lower()
        if "fail" in classes:
            failed += 1
        elif "pass" in classes:
            passed += 1
    for string in soup.find_all(string=True):
        status = STATUS_WORDS.get(string.strip().lower())
        if status == "fail":
            failed += 1
        elif status == "pass":
            passed += 1

    if passed + failed == 0:
        return None
    return Subcases(total=passed + failed, passed=passed, failed=failed)


def _largest_number(text: str, html: str) -> Subcases | None:
    # Known to be lossy: unrelated numbers such as timestamps can win.
    lower = text.lower()
    numbers = INTEGER.findall(text)
    if "test" not in lower or len(numbers) < 2:
        return None
    total = max(int(n) for n in numbers)
    if total == 0:
        return None
    passed = total if "all" in lower and "pass" in lower else 0
    log.debug("Guessed %d subcases from the largest number on the page", total)
    return Subcases(total=total, passed=passed, failed=0)


def _completion_fallback(text: str) -> Classification:
    lower = text.lower()
    if not any(marker in lower for marker in COMPLETION_MARKERS):
        log.debug("No result signal found on page")
        return Classification(
            verdict="UNKNOWN",
            subcases=Subcases(total=1, passed=0, failed=0),
            strategy="unknown",
        )

    if any(marker in lower for marker in ERROR_MARKERS):
        subcases = Subcases(total=1, passed=0, failed=1)
    else:
        subcases = Subcases(total=1, passed=1, failed=0)
    return Classification(
        verdict=subcases.verdict, subcases=subcases, strategy="completion"
    )


STRATEGIES: Sequence[Callable[[str, str], Subcases | None]] = (
    _found_pass_fail,
    _found_pass,
    _ratio_passed,
    _passed_and_failed,
    _status_tokens,
    _element_classes,
    _largest_number,
)


def scrape_failed_subtests(html: str) -> Sequence[FailedSubtest]:
    """Collect failing rows from the testharness ``#results`` table.

    Rows of tables nested inside a cell (the expandable ``<details>``
    blocks) are ignored, as is the text of those blocks.
    """
    soup = BeautifulSoup(html, "html.parser")
    for details in soup.select("#results details"):
        details.decompose()

    failures: list[FailedSubtest] = []
    for row in soup.select("#results > tbody > tr, #results > tr"):
        if row.find("th") is not None:
            continue
        cells = [cell.get_text() for cell in row.find_all("td", recursive=False)]
        if len(cells) < 2:
            continue
        status = cells[0].strip().upper()
        if status not in FAILING_STATUSES:
            continue
        name = cells[1].strip().split("\n")[0][:300]
        message = cells[2].strip()[:800] if len(cells) > 2 else ""
        failures.append(
            FailedSubtest(
                name=name or "Unknown subtest", status=status, message=message
            )
        )
    return failures
