"""Discovery of conformance units and include-filters over them."""

import logging
from collections.abc import AsyncGenerator, Iterable, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

import aiohttp
from bs4 import BeautifulSoup

from webnn_harness.executor import unit_test_name
from webnn_harness.session.base import BrowserSession, close_quietly

log = logging.getLogger(__name__)

SCRAPE_FILES = """(suffix) => Array.from(document.querySelectorAll('.file a'))
  .map((anchor) => anchor.textContent.trim())
  .filter((name) => name.endsWith(suffix))"""


async def discover_units(
    session: BrowserSession,
    index_url: str,
    suffix: str = ".js",
    timeout: float = 60,
) -> Sequence[str]:
    """List unit files linked from an index page rendered in the browser.

    Args:
        session: Session to open the index page on
        index_url: Address of the directory listing
        suffix: File suffix that identifies a unit
        timeout: Navigation and wait budget in seconds

    Returns:
        Unit file names in page order

    """
    log.info("Fetching test list from %s", index_url)
    page = await session.new_page()
    try:
        await page.navigate(index_url, wait_until="networkidle", timeout=timeout)
        await page.wait_for_selector(".file", timeout=timeout)
        units = await page.evaluate(SCRAPE_FILES, suffix)
    finally:
        await close_quietly(page)

    log.info("Found %d test file(s)", len(units))
    return [str(unit) for unit in units]


def parse_index(html: str, suffix: str = ".js") -> Sequence[str]:
    """Extract unit file names from directory-listing markup."""
    soup = BeautifulSoup(html, "html.parser")
    names = (anchor.get_text().strip() for anchor in soup.select(".file a"))
    return [name for name in names if name.endswith(suffix)]


@dataclass(frozen=True, kw_only=True)
class HttpIndexDiscovery:
    """Fetches the conformance index over plain HTTP instead of a browser."""

    session: aiohttp.ClientSession = field(repr=False)
    timeout: float = 60

    @classmethod
    @asynccontextmanager
    async def create(
        cls, timeout: float = 60
    ) -> AsyncGenerator["HttpIndexDiscovery", None]:
        """Create a discovery client with a managed HTTP session."""
        async with aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=timeout)
        ) as session:
            yield cls(session=session, timeout=timeout)

    async def discover(self, index_url: str, suffix: str = ".js") -> Sequence[str]:
        """List unit files linked from an index page.

        Raises:
            aiohttp.ClientResponseError: If the index cannot be fetched

        """
        log.info("Fetching test list from %s", index_url)
        async with self.session.get(index_url) as response:
            response.raise_for_status()
            html = await response.text()

        units = parse_index(html, suffix)
        log.info("Found %d test file(s)", len(units))
        return units


def parse_index_ranges(ranges: str) -> frozenset[int]:
    """Parse a range list such as ``"1,3-5,10"`` into 0-based indices.

    Raises:
        ValueError: If a part is not a number or a valid ascending range

    """
    indices: set[int] = set()
    for part in ranges.split(","):
        part = part.strip()
        if not part:
            continue

        if "-" in part:
            start_text, _, end_text = part.partition("-")
            start, end = int(start_text), int(end_text)
            if start > end:
                raise ValueError(f"Invalid range: {part}")
            indices.update(range(start, end + 1))
        else:
            indices.add(int(part))

    if any(index < 0 for index in indices):
        raise ValueError(f"Negative index in range list: {ranges}")
    return frozenset(indices)


def filter_units(
    units: Sequence[str],
    cases: Iterable[str] = (),
    indices: Iterable[int] = (),
) -> Sequence[str]:
    """Apply the case filter, then the index filter, to discovered units.

    Args:
        units: Discovered unit file names
        cases: Base names to keep, matched case-insensitively; output follows
            the order of ``cases`` and each unit appears once
        indices: 0-based positions to keep, applied to the case-filtered list

    Returns:
        Filtered unit file names

    """
    selected = list(units)

    wanted = [case.strip().lower() for case in cases if case.strip()]
    if wanted:
        by_name: dict[str, list[str]] = {}
        for unit in selected:
            by_name.setdefault(unit_test_name(unit).lower(), []).append(unit)

        matched: list[str] = []
        for case in wanted:
            for unit in by_name.get(case, ()):
                if unit not in matched:
                    matched.append(unit)

        missing = [case for case in wanted if case not in by_name]
        if missing:
            log.warning("No test file matches case(s): %s", ", ".join(missing))
        log.info("Case filter kept %d of %d test(s)", len(matched), len(selected))
        selected = matched

    positions = frozenset(indices)
    if positions:
        before = len(selected)
        selected = [unit for i, unit in enumerate(selected) if i in positions]
        log.info("Index filter kept %d of %d test(s)", len(selected), before)

    return selected
