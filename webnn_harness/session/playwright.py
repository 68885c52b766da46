"""Playwright-backed browser sessions."""

import functools
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from playwright.async_api import (
    Browser,
    BrowserContext,
    ConsoleMessage,
    Error,
    Page,
    Playwright,
    async_playwright,
    expect,
)

from webnn_harness.config import BrowserConfig
from webnn_harness.session.base import (
    BrowserSession,
    PageEventCallback,
    PageHandle,
    SessionLauncher,
)

log = logging.getLogger(__name__)


def _ms(seconds: float) -> float:
    return seconds * 1000


@dataclass(frozen=True, kw_only=True)
class PlaywrightPage(PageHandle):
    """A Playwright page."""

    page: Page = field(repr=False)

    async def navigate(
        self, url: str, *, wait_until: str = "networkidle", timeout: float = 60
    ) -> None:
        await self.page.goto(
            url,
            wait_until=wait_until,  # type: ignore[arg-type]
            timeout=_ms(timeout),
        )

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        return await self.page.evaluate(expression, arg)

    async def wait_for_condition(
        self, expression: str, *, arg: Any = None, timeout: float
    ) -> None:
        await self.page.wait_for_function(expression, arg=arg, timeout=_ms(timeout))

    async def wait_for_selector(self, selector: str, *, timeout: float) -> None:
        await self.page.wait_for_selector(selector, timeout=_ms(timeout))

    async def click(self, selector: str, *, timeout: float) -> None:
        await self.page.click(selector, timeout=_ms(timeout))

    async def fill(self, selector: str, text: str, *, timeout: float) -> None:
        await self.page.fill(selector, text, timeout=_ms(timeout))

    async def wait_for_enabled(self, selector: str, *, timeout: float) -> None:
        await expect(self.page.locator(selector).first).to_be_enabled(
            timeout=_ms(timeout)
        )

    async def is_visible(self, selector: str) -> bool:
        return await self.page.locator(selector).first.is_visible()

    async def text_content(self) -> str:
        text = await self.page.evaluate(
            "() => document.body ? document.body.textContent : ''"
        )
        return str(text or "")

    async def content(self) -> str:
        return await self.page.content()

    def subscribe(self, callback: PageEventCallback) -> Callable[[], None]:
        def on_console(message: ConsoleMessage) -> None:
            callback(message.type, message.text)

        def on_page_error(error: Error) -> None:
            callback("pageerror", error.message or str(error))

        self.page.on("console", on_console)
        self.page.on("pageerror", on_page_error)

        def unsubscribe() -> None:
            if self.page.is_closed():
                return
            self.page.remove_listener("console", on_console)
            self.page.remove_listener("pageerror", on_page_error)

        return unsubscribe

    def is_closed(self) -> bool:
        return self.page.is_closed()

    async def close(self) -> None:
        await self.page.close()


@dataclass(kw_only=True)
class PlaywrightSession(BrowserSession):
    """A Chromium-family browser driven through Playwright.

    With a persistent context there is no separate browser object; closing
    the context ends the process.
    """

    playwright: Playwright = field(repr=False)
    context: BrowserContext = field(repr=False)
    browser: Browser | None = field(default=None, repr=False)
    closed: bool = False

    @classmethod
    async def launch(cls, config: BrowserConfig) -> "PlaywrightSession":
        """Start Playwright and launch a browser per the configuration."""
        playwright = await async_playwright().start()
        launch_kwargs: dict[str, Any] = {
            "headless": config.headless,
            "args": config.launch_args(),
        }
        if config.executable_path:
            launch_kwargs["executable_path"] = config.executable_path
        else:
            launch_kwargs["channel"] = config.channel

        try:
            if config.user_data_dir is not None:
                context = await playwright.chromium.launch_persistent_context(
                    str(config.user_data_dir), **launch_kwargs
                )
                session = cls(playwright=playwright, context=context)
            else:
                browser = await playwright.chromium.launch(**launch_kwargs)
                context = await browser.new_context()
                session = cls(playwright=playwright, context=context, browser=browser)
        except Exception:
            await playwright.stop()
            raise

        log.info(
            "Browser launched: channel=%s executable=%s headless=%s persistent=%s",
            config.channel,
            config.executable_path,
            config.headless,
            config.user_data_dir is not None,
        )
        return session

    @classmethod
    def launcher(cls, config: BrowserConfig) -> SessionLauncher:
        """Bind a configuration into a zero-argument session factory."""
        return functools.partial(cls.launch, config)

    async def new_page(self) -> PageHandle:
        page = await self.context.new_page()
        return PlaywrightPage(page=page)

    def is_closed(self) -> bool:
        if self.closed:
            return True
        return self.browser is not None and not self.browser.is_connected()

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            await self.context.close()
        finally:
            try:
                if self.browser is not None:
                    await self.browser.close()
            finally:
                await self.playwright.stop()
