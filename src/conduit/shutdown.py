"""ShutdownManager — orchestrates the graceful shutdown sequence."""

from __future__ import annotations

import logging
import time

from conduit.runtime import Runtime

logger = logging.getLogger(__name__)


def _format_duration(seconds: float) -> str:
    """Format a duration as '1m 22s' or '34.2s'."""
    if seconds >= 60:
        minutes = int(seconds // 60)
        secs = int(seconds % 60)
        return f"{minutes}m {secs:02d}s"
    return f"{seconds:.1f}s"


class ShutdownManager:
    """Orchestrates the 3-step graceful shutdown sequence.

    Steps:
        1. SIGNAL  -- set shutdown flag, stop the session janitor
        2. CLOSE   -- delete every session, releasing its pty child
        3. KILL    -- pool shutdown: bounded wait, then force-kill
    """

    def __init__(self, runtime: Runtime) -> None:
        self._runtime = runtime
        self._start_time = time.monotonic()
        self._done = False

    async def execute(self, reason: str = "shutdown") -> None:
        """Run the full shutdown sequence.  Later calls are no-ops."""
        if self._done:
            return
        self._done = True
        await self._signal()
        closed = self._close()
        children = self._runtime.pool.stats().total
        await self._kill()

        elapsed = time.monotonic() - self._start_time
        logger.info(
            "Stopped (%s) | up %s | %d session(s) closed | %d child process(es) stopped",
            reason,
            _format_duration(elapsed),
            closed,
            children,
        )

    # ------------------------------------------------------------------ #
    # Step 1: SIGNAL
    # ------------------------------------------------------------------ #

    async def _signal(self) -> None:
        self._runtime.shutdown_event.set()
        await self._runtime.janitor.stop()

    # ------------------------------------------------------------------ #
    # Step 2: CLOSE
    # ------------------------------------------------------------------ #

    def _close(self) -> int:
        try:
            return self._runtime.store.delete_all()
        except Exception:
            logger.exception("Error closing sessions")
            return 0

    # ------------------------------------------------------------------ #
    # Step 3: KILL
    # ------------------------------------------------------------------ #

    async def _kill(self) -> None:
        try:
            await self._runtime.pool.shutdown()
        except Exception:
            logger.exception("Error shutting down process pool")
