"""Error taxonomy separating unusable sessions from ordinary unit failures."""

SESSION_LOSS_MARKERS = (
    "Target closed",
    "Target page, context or browser has been closed",
    "Protocol error",
    "Target.createTarget",
    "Target.close",
    "browserContext.newPage",
)
CRITICAL_MESSAGE_MARKERS = (*SESSION_LOSS_MARKERS, "Timeout")


class HarnessError(Exception):
    """Base class for harness errors."""


class CriticalSessionError(HarnessError):
    """The browser session can no longer be trusted and must be replaced."""

    label = "Browser/Protocol Error"


class ContextCreationError(CriticalSessionError):
    """The page could not create a GPU context."""

    label = "GPU Context Creation Failed"


class HarnessBannerError(CriticalSessionError):
    """The test harness rendered an error banner instead of results."""

    label = "Harness Error (Restarting)"


class SessionInitError(CriticalSessionError):
    """The page reported that an inference session could not be created."""

    label = "Session Initialization Failed"


class UnitTimeoutError(CriticalSessionError):
    """A unit exceeded its overall time budget."""

    label = "Unit Timeout"


class InteractionError(HarnessError):
    """A demo control could not be found or operated."""


class InvalidOutputError(HarnessError):
    """The page reported that the model produced unusable output."""


class RelaunchError(HarnessError):
    """Launching a fresh browser session failed."""


def is_critical(exc: BaseException) -> bool:
    """Check whether an exception means the session itself is unusable.

    Browser-automation libraries surface disconnects and closed targets as
    generic errors, so their messages are matched as well as their types.
    """
    if isinstance(exc, CriticalSessionError):
        return True
    if type(exc).__name__ == "TimeoutError" or isinstance(exc, TimeoutError):
        return True
    message = str(exc)
    return any(marker in message for marker in CRITICAL_MESSAGE_MARKERS)


def is_session_loss(exc: BaseException) -> bool:
    """Check whether an exception means the page or browser went away.

    Unlike ``is_critical`` this ignores timeouts, which during a single page
    interaction only mean the element never became actionable.
    """
    if isinstance(exc, CriticalSessionError):
        return True
    message = str(exc)
    return any(marker in message for marker in SESSION_LOSS_MARKERS)


def describe_failure(exc: BaseException) -> str:
    """Short label for a critical failure, used in result diagnostics."""
    if isinstance(exc, CriticalSessionError):
        return exc.label
    return CriticalSessionError.label
