"""Browser session capability and its lifecycle."""

from webnn_harness.session.base import (
    BrowserSession,
    PageHandle,
    SessionLauncher,
    close_quietly,
)
from webnn_harness.session.lifecycle import SessionLifecycleManager

__all__ = [
    "BrowserSession",
    "PageHandle",
    "SessionLauncher",
    "SessionLifecycleManager",
    "close_quietly",
]
