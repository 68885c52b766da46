"""Tests for Playwright-backed sessions."""

from collections.abc import Iterator
from pathlib import Path
from unittest.mock import AsyncMock, Mock, patch

import pytest
from playwright.async_api import Browser, BrowserContext, Page, Playwright

from webnn_harness.config import BrowserConfig
from webnn_harness.session.playwright import PlaywrightPage, PlaywrightSession


@pytest.fixture
def page_mock() -> Mock:
    """Create mock Playwright page."""
    page = Mock(spec=Page)
    page.is_closed.return_value = False
    return page


@pytest.fixture
def playwright_mock() -> Mock:
    """Create mock Playwright driver with a chromium browser type."""
    playwright = Mock(spec=Playwright)
    playwright.stop = AsyncMock()
    playwright.chromium = Mock()
    playwright.chromium.launch = AsyncMock()
    playwright.chromium.launch_persistent_context = AsyncMock()
    return playwright


@pytest.fixture
def start_playwright(playwright_mock: Mock) -> Iterator[Mock]:
    """Patch async_playwright so that start() yields the mock driver."""
    manager = Mock()
    manager.start = AsyncMock(return_value=playwright_mock)
    with patch(
        "webnn_harness.session.playwright.async_playwright", return_value=manager
    ):
        yield manager


class TestPlaywrightPage:
    """Tests for PlaywrightPage."""

    async def test_navigate_converts_timeout_to_ms(self, page_mock: Mock) -> None:
        """Timeouts are given in seconds and passed on in milliseconds."""
        page_mock.goto = AsyncMock()

        await PlaywrightPage(page=page_mock).navigate(
            "https://example.test", timeout=60
        )

        page_mock.goto.assert_awaited_once_with(
            "https://example.test", wait_until="networkidle", timeout=60000
        )

    async def test_fill_converts_timeout_to_ms(self, page_mock: Mock) -> None:
        """Text entry is bounded by the given timeout."""
        page_mock.fill = AsyncMock()

        await PlaywrightPage(page=page_mock).fill("#user-input", "2 + 2", timeout=10)

        page_mock.fill.assert_awaited_once_with("#user-input", "2 + 2", timeout=10000)

    async def test_wait_for_enabled_uses_first_match(self, page_mock: Mock) -> None:
        """The enabled check runs on the first matching element."""
        assertions = Mock()
        assertions.to_be_enabled = AsyncMock()

        with patch(
            "webnn_harness.session.playwright.expect", return_value=assertions
        ) as mock_expect:
            await PlaywrightPage(page=page_mock).wait_for_enabled("#record", timeout=5)

        page_mock.locator.assert_called_once_with("#record")
        mock_expect.assert_called_once_with(page_mock.locator.return_value.first)
        assertions.to_be_enabled.assert_awaited_once_with(timeout=5000)

    async def test_text_content_handles_missing_body(self, page_mock: Mock) -> None:
        """A null body text is returned as an empty string."""
        page_mock.evaluate = AsyncMock(return_value=None)

        assert await PlaywrightPage(page=page_mock).text_content() == ""

    def test_subscribe_forwards_and_detaches(self, page_mock: Mock) -> None:
        """Console and page errors reach the callback until unsubscribed."""
        received: list[tuple[str, str]] = []

        unsubscribe = PlaywrightPage(page=page_mock).subscribe(
            lambda kind, text: received.append((kind, text))
        )
        handlers = {call.args[0]: call.args[1] for call in page_mock.on.call_args_list}
        handlers["console"](Mock(type="error", text="Uncaught TypeError"))
        handlers["pageerror"](Mock(message="boom"))
        unsubscribe()

        assert received == [("error", "Uncaught TypeError"), ("pageerror", "boom")]
        assert page_mock.remove_listener.call_count == 2

    def test_unsubscribe_skips_closed_page(self, page_mock: Mock) -> None:
        """Listeners of a closed page are not removed again."""
        unsubscribe = PlaywrightPage(page=page_mock).subscribe(lambda kind, text: None)
        page_mock.is_closed.return_value = True

        unsubscribe()

        page_mock.remove_listener.assert_not_called()


class TestPlaywrightSession:
    """Tests for PlaywrightSession."""

    async def test_launch_uses_channel_and_features(
        self, start_playwright: Mock, playwright_mock: Mock
    ) -> None:
        """A plain launch passes channel and feature switches."""
        browser = Mock(spec=Browser)
        browser.new_context = AsyncMock(return_value=Mock(spec=BrowserContext))
        playwright_mock.chromium.launch.return_value = browser

        session = await PlaywrightSession.launch(BrowserConfig(channel="msedge"))

        playwright_mock.chromium.launch.assert_awaited_once_with(
            headless=False,
            args=["--enable-features=WebMachineLearningNeuralNetwork"],
            channel="msedge",
        )
        assert session.browser is browser

    async def test_launch_prefers_executable_path(
        self, start_playwright: Mock, playwright_mock: Mock
    ) -> None:
        """An executable path replaces the channel."""
        browser = Mock(spec=Browser)
        browser.new_context = AsyncMock(return_value=Mock(spec=BrowserContext))
        playwright_mock.chromium.launch.return_value = browser

        await PlaywrightSession.launch(
            BrowserConfig(executable_path="/opt/chrome/chrome", headless=True)
        )

        kwargs = playwright_mock.chromium.launch.await_args.kwargs
        assert kwargs["executable_path"] == "/opt/chrome/chrome"
        assert "channel" not in kwargs
        assert kwargs["headless"] is True

    async def test_launch_persistent_context(
        self, start_playwright: Mock, playwright_mock: Mock, tmp_path: Path
    ) -> None:
        """A user data dir launches a persistent context without a browser."""
        context = Mock(spec=BrowserContext)
        playwright_mock.chromium.launch_persistent_context.return_value = context

        session = await PlaywrightSession.launch(BrowserConfig(user_data_dir=tmp_path))

        assert session.context is context
        assert session.browser is None
        assert playwright_mock.chromium.launch_persistent_context.await_args.args == (
            str(tmp_path),
        )

    async def test_launch_failure_stops_driver(
        self, start_playwright: Mock, playwright_mock: Mock
    ) -> None:
        """The driver is stopped when the browser fails to launch."""
        playwright_mock.chromium.launch.side_effect = RuntimeError("no chrome")

        with pytest.raises(RuntimeError, match="no chrome"):
            await PlaywrightSession.launch(BrowserConfig())

        playwright_mock.stop.assert_awaited_once()

    async def test_close_is_idempotent_and_stops_driver(
        self, playwright_mock: Mock
    ) -> None:
        """Closing tears down context, browser and driver once."""
        context = Mock(spec=BrowserContext)
        context.close = AsyncMock()
        browser = Mock(spec=Browser)
        browser.close = AsyncMock()
        session = PlaywrightSession(
            playwright=playwright_mock, context=context, browser=browser
        )

        await session.close()
        await session.close()

        context.close.assert_awaited_once()
        browser.close.assert_awaited_once()
        playwright_mock.stop.assert_awaited_once()
        assert session.is_closed()

    async def test_close_stops_driver_when_context_is_dead(
        self, playwright_mock: Mock
    ) -> None:
        """The driver is stopped even if closing the context fails."""
        context = Mock(spec=BrowserContext)
        context.close = AsyncMock(side_effect=RuntimeError("Target closed"))
        session = PlaywrightSession(playwright=playwright_mock, context=context)

        with pytest.raises(RuntimeError):
            await session.close()

        playwright_mock.stop.assert_awaited_once()

    def test_disconnected_browser_is_closed(self, playwright_mock: Mock) -> None:
        """A disconnected browser makes the session count as closed."""
        browser = Mock(spec=Browser)
        browser.is_connected.return_value = False
        session = PlaywrightSession(
            playwright=playwright_mock,
            context=Mock(spec=BrowserContext),
            browser=browser,
        )

        assert session.is_closed()
