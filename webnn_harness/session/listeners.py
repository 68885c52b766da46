"""Scoped page listeners that watch for session and model output failures."""

import asyncio
import logging
from collections.abc import AsyncGenerator, Awaitable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import TypeVar

from webnn_harness.errors import InvalidOutputError, SessionInitError
from webnn_harness.session.base import PageHandle

log = logging.getLogger(__name__)

SESSION_FAILURE_MARKER = "failed to create session"
INVALID_OUTPUT_MARKER = "Found infinity in logits"

T = TypeVar("T")


@dataclass(kw_only=True)
class PageFailureWatch:
    """Console and page errors observed while a unit ran."""

    errors: list[str] = field(default_factory=list)
    session_failure: str | None = None
    invalid_output: str | None = None
    aborted: asyncio.Event = field(default_factory=asyncio.Event)

    def record(self, kind: str, text: str) -> None:
        """Record one console message or page error."""
        if kind in ("error", "pageerror"):
            log.info("[Browser Console] %s: %s", kind, text)
            self.errors.append(text)
        if SESSION_FAILURE_MARKER in text.lower() and self.session_failure is None:
            self.session_failure = text
            log.error('"Failed to create session" detected: %s', text)
        if INVALID_OUTPUT_MARKER in text and self.invalid_output is None:
            self.invalid_output = text
            log.error('"%s" detected, quitting case', INVALID_OUTPUT_MARKER)
            self.aborted.set()

    def raise_if_session_failed(self) -> None:
        """Raise if the page reported a session initialization failure.

        Raises:
            SessionInitError: If a failure was recorded

        """
        if self.session_failure is not None:
            raise SessionInitError(f"Failed to create session: {self.session_failure}")

    def raise_if_failed(self) -> None:
        """Raise if the page reported any failure; session failures come first.

        Raises:
            SessionInitError: If a session initialization failure was recorded
            InvalidOutputError: If the model reported invalid output

        """
        self.raise_if_session_failed()
        if self.invalid_output is not None:
            raise InvalidOutputError(INVALID_OUTPUT_MARKER)

    async def guard(self, work: Awaitable[T]) -> T:
        """Await ``work``, abandoning it once the page reports invalid output.

        Raises:
            InvalidOutputError: If invalid output was reported first

        """
        task = asyncio.ensure_future(work)
        abort = asyncio.ensure_future(self.aborted.wait())
        try:
            await asyncio.wait({task, abort}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for pending in (task, abort):
                pending.cancel()
            await asyncio.gather(task, abort, return_exceptions=True)

        if task.done() and not task.cancelled():
            return task.result()
        raise InvalidOutputError(INVALID_OUTPUT_MARKER)


@asynccontextmanager
async def watch_page_failures(page: PageHandle) -> AsyncGenerator[PageFailureWatch, None]:
    """Watch a page for failures; listeners are detached on every exit path."""
    watch = PageFailureWatch()
    unsubscribe = page.subscribe(watch.record)
    try:
        yield watch
    finally:
        unsubscribe()
