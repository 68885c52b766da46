"""Tests for unit discovery and filters."""

import pytest

from webnn_harness.discovery import (
    discover_units,
    filter_units,
    parse_index,
    parse_index_ranges,
)
from webnn_harness.testing.fakes import FakeSession, PageScript

INDEX_URL = "https://wpt.test/webnn/conformance_tests/"

INDEX_HTML = """
<ul>
  <li class="dir"><a href="resources/">resources</a></li>
  <li class="file"><a href="abs.https.any.js">abs.https.any.js</a></li>
  <li class="file"><a href="add.https.any.js">add.https.any.js</a></li>
  <li class="file"><a href="README.md">README.md</a></li>
  <li class="file"><a href="gather.https.any.js">gather<br>.https.any.js</a></li>
</ul>
"""

UNITS = [
    "abs.https.any.js",
    "add.https.any.js",
    "gather.https.any.js",
    "gatherElements.https.any.js",
    "sub.https.any.js",
]


class TestDiscoverUnits:
    """Tests for discover_units function."""

    async def test_scrapes_file_links(self) -> None:
        """Unit files are read from the index page; the page is closed."""
        session = FakeSession(
            routes={
                INDEX_URL: PageScript(units=["abs.https.any.js", "README.md"]),
            }
        )

        units = await discover_units(session, INDEX_URL)

        assert units == ["abs.https.any.js"]
        assert session.visited == [INDEX_URL]
        assert session.pages[0].closed
        assert not session.closed

    async def test_closes_page_on_failure(self) -> None:
        """The page is closed when the index cannot be loaded."""
        session = FakeSession(
            default=PageScript(navigate_error=RuntimeError("net::ERR_FAILED"))
        )

        with pytest.raises(RuntimeError):
            await discover_units(session, INDEX_URL)

        assert session.pages[0].closed


class TestParseIndex:
    """Tests for parse_index function."""

    def test_extracts_files_with_suffix(self) -> None:
        """Only anchors of file entries with the suffix are kept, in order."""
        assert parse_index(INDEX_HTML) == [
            "abs.https.any.js",
            "add.https.any.js",
            "gather.https.any.js",
        ]

    def test_custom_suffix(self) -> None:
        """The suffix selects which files count as units."""
        assert parse_index(INDEX_HTML, ".md") == ["README.md"]

    def test_nested_anchor_markup(self) -> None:
        """Anchors nested deeper in a file entry are found; entities decoded."""
        html = (
            '<div class="file"><span><a href="x">'
            "<code>lstm&#46;https.any.js</code></a></span></div>"
        )

        assert parse_index(html) == ["lstm.https.any.js"]

    def test_empty_page(self) -> None:
        """Pages without file entries yield nothing."""
        assert parse_index("<html><body>404</body></html>") == []


class TestParseIndexRanges:
    """Tests for parse_index_ranges function."""

    def test_parses_indices_and_ranges(self) -> None:
        """Single indices and inclusive ranges are combined."""
        assert parse_index_ranges("1,3-5,10") == frozenset({1, 3, 4, 5, 10})

    def test_ignores_blank_parts(self) -> None:
        """Whitespace and empty parts are ignored."""
        assert parse_index_ranges(" 0 , ,2 ") == frozenset({0, 2})
        assert parse_index_ranges("") == frozenset()

    @pytest.mark.parametrize("ranges", ["a", "1-b", "5-3", "3-", "-1"])
    def test_rejects_invalid_parts(self, ranges: str) -> None:
        """Malformed parts raise ValueError."""
        with pytest.raises(ValueError):
            parse_index_ranges(ranges)


class TestFilterUnits:
    """Tests for filter_units function."""

    def test_no_filters_keeps_everything(self) -> None:
        """Without filters the units are returned unchanged."""
        assert filter_units(UNITS) == UNITS

    def test_case_filter_follows_case_order(self) -> None:
        """Matches follow the order the cases were given in."""
        assert filter_units(UNITS, cases=["sub", "ABS"]) == [
            "sub.https.any.js",
            "abs.https.any.js",
        ]

    def test_case_filter_matches_whole_name(self) -> None:
        """A case matches the base name exactly, not as a prefix."""
        assert filter_units(UNITS, cases=["gather"]) == ["gather.https.any.js"]

    def test_case_filter_deduplicates(self) -> None:
        """Repeated cases select a unit once."""
        assert filter_units(UNITS, cases=["add", "add"]) == ["add.https.any.js"]

    def test_unknown_case_selects_nothing(self) -> None:
        """Cases without a matching file select nothing."""
        assert filter_units(UNITS, cases=["softmax"]) == []

    def test_index_filter(self) -> None:
        """Indices are 0-based positions."""
        assert filter_units(UNITS, indices={0, 4, 9}) == [
            "abs.https.any.js",
            "sub.https.any.js",
        ]

    def test_index_filter_applies_after_case_filter(self) -> None:
        """Indices refer to positions in the case-filtered list."""
        assert filter_units(UNITS, cases=["sub", "add", "abs"], indices={1}) == [
            "add.https.any.js"
        ]
