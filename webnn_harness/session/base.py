"""Abstract browser-automation capability consumed by the harness."""

import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any, Protocol, TypeAlias

log = logging.getLogger(__name__)

PageEventCallback: TypeAlias = Callable[[str, str], None]


class PageHandle(ABC):
    """One navigable page bound to a browser session.

    Timeouts are in seconds.
    """

    @abstractmethod
    async def navigate(
        self, url: str, *, wait_until: str = "networkidle", timeout: float = 60
    ) -> None:
        """Navigate to an address and wait for the given load state."""

    @abstractmethod
    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        """Evaluate a JavaScript function in the page and return its result."""

    @abstractmethod
    async def wait_for_condition(
        self, expression: str, *, arg: Any = None, timeout: float
    ) -> None:
        """Wait until a JavaScript predicate returns a truthy value."""

    @abstractmethod
    async def wait_for_selector(self, selector: str, *, timeout: float) -> None:
        """Wait until an element matching the selector is visible."""

    @abstractmethod
    async def click(self, selector: str, *, timeout: float) -> None:
        """Click the element matching the selector."""

    @abstractmethod
    async def fill(self, selector: str, text: str, *, timeout: float) -> None:
        """Replace the value of the input matching the selector."""

    @abstractmethod
    async def wait_for_enabled(self, selector: str, *, timeout: float) -> None:
        """Wait until the element matching the selector is enabled."""

    @abstractmethod
    async def is_visible(self, selector: str) -> bool:
        """Check whether an element matching the selector is visible."""

    @abstractmethod
    async def text_content(self) -> str:
        """Return the text content of the document body."""

    @abstractmethod
    async def content(self) -> str:
        """Return the serialized page markup."""

    @abstractmethod
    def subscribe(self, callback: PageEventCallback) -> Callable[[], None]:
        """Forward console messages and page errors to a callback.

        The callback receives the message kind (console type, or
        ``"pageerror"``) and its text. Returns a function that detaches it.
        """

    @abstractmethod
    def is_closed(self) -> bool:
        """Whether the page has been closed."""

    @abstractmethod
    async def close(self) -> None:
        """Close the page."""


class BrowserSession(ABC):
    """A live browser process or context that pages are opened against."""

    @abstractmethod
    async def new_page(self) -> PageHandle:
        """Open a new page in this session."""

    @abstractmethod
    def is_closed(self) -> bool:
        """Whether the session has been closed or disconnected."""

    @abstractmethod
    async def close(self) -> None:
        """Close the session and everything it owns."""


SessionLauncher: TypeAlias = Callable[[], Awaitable[BrowserSession]]


class Closable(Protocol):
    """Anything with an idempotent async close, such as a page or a session."""

    async def close(self) -> None: ...


async def close_quietly(target: Closable) -> None:
    """Close a page or session, logging instead of raising on failure."""
    try:
        await target.close()
    except Exception as e:
        log.warning("Error closing %s: %s", type(target).__name__, e)
