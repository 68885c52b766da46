"""Creation, teardown and relaunch of browser sessions."""

import asyncio
import logging
import sys
from dataclasses import dataclass

from webnn_harness.errors import RelaunchError
from webnn_harness.session.base import BrowserSession, SessionLauncher, close_quietly

log = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class SessionLifecycleManager:
    """Launches sessions and replaces ones that became unusable.

    Callers are responsible for making sure only one relaunch runs at a time.
    """

    launcher: SessionLauncher
    settle_delay: float = 3.0
    # Set to force-terminate lingering browser processes before relaunching
    process_name: str | None = None

    async def launch(self) -> BrowserSession:
        """Launch a brand-new session.

        Raises:
            RelaunchError: If the launcher fails

        """
        log.info("Launching new browser...")
        try:
            session = await self.launcher()
        except Exception as e:
            raise RelaunchError(f"Failed to launch browser: {e}") from e
        log.info("New browser launched")
        return session

    async def relaunch(self, discard: BrowserSession | None = None) -> BrowserSession:
        """Tear down a session and launch a replacement.

        Args:
            discard: Session to close first; errors while closing are ignored

        Returns:
            The newly launched session

        Raises:
            RelaunchError: If the launcher fails

        """
        if discard is not None:
            log.info("Closing browser before restart...")
            await close_quietly(discard)

        if self.process_name:
            await terminate_process(self.process_name)

        await asyncio.sleep(self.settle_delay)
        return await self.launch()


async def terminate_process(process_name: str) -> None:
    """Force-terminate browser processes by executable name, ignoring failures."""
    if sys.platform == "win32":
        command = ("taskkill", "/F", "/IM", process_name)
    else:
        command = ("pkill", "-f", process_name.removesuffix(".exe"))

    log.info("Ensuring process %s is terminated", process_name)
    try:
        process = await asyncio.create_subprocess_exec(
            *command,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )
        await process.communicate()
    except OSError as e:
        log.debug("Could not run %s: %s", command[0], e)
