"""SessionJanitor — periodic eviction of idle sessions.

Runs as a single asyncio task for the lifetime of the app.  Each pass
deletes sessions whose last activity is older than ``max_age`` (their
interactive children are released through the pool).  The task ends on
its own once the shared shutdown event is set.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

from conduit.session.store import SessionStore

logger = logging.getLogger(__name__)


class SessionJanitor:
    """Deletes sessions whose last activity is older than ``max_age``."""

    def __init__(
        self,
        store: SessionStore,
        shutdown_event: asyncio.Event,
        max_age: float,
        interval: float,
    ) -> None:
        self._store = store
        self._shutdown_event = shutdown_event
        self._max_age = max_age
        self._interval = interval
        self._task: asyncio.Task[None] | None = None
        #: Total sessions evicted since start.
        self.evicted = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="session-janitor")
        logger.debug(
            "Session janitor started (every %ss, max idle %ss)",
            self._interval,
            self._max_age,
        )

    async def stop(self) -> None:
        """Cancel the sweep task and wait for it to finish."""
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    # ------------------------------------------------------------------ #
    # Internal
    # ------------------------------------------------------------------ #

    async def _wait_for_shutdown(self) -> bool:
        """Wait one interval; ``True`` if shutdown was signalled meanwhile."""
        try:
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=self._interval)
        except TimeoutError:
            return False
        return True

    async def _run(self) -> None:
        while not await self._wait_for_shutdown():
            try:
                await self._tick()
            except Exception:
                logger.exception("Session sweep failed")

    async def _tick(self) -> None:
        removed = self._store.cleanup_expired(self._max_age)
        self.evicted += removed
        if removed:
            logger.info("Evicted %d idle session(s), %d remaining", removed, len(self._store))
