"""ProcessPool — single owner of every live CLI child process.

Issues stdio and pty handles under a global cap (plus a pty sub-cap),
observes every child's exit, and performs staged termination: graceful
signal first, force-kill after the grace period.
"""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import logging
import secrets
import time
from collections.abc import AsyncIterator, Coroutine
from typing import Any, Literal

from pydantic import BaseModel, Field

from conduit.config.models import PoolConfig, PTYConfig
from conduit.errors import ResourceExhaustedError, SpawnFailedError
from conduit.process.handle import ProcessHandle, ProcessKind, PtyHandle, StdioHandle
from conduit.process.pty import spawn_in_pty

logger = logging.getLogger(__name__)

#: Maximum bytes per stdout line from a stdio child (1 MB).
_MAX_LINE_BYTES = 1_048_576

#: Seconds to wait for force-killed children to be reaped during shutdown.
_REAP_WAIT = 1.0


class PoolStats(BaseModel):
    """Live child counts."""

    stdio: int = Field(description="Live non-interactive children")
    pty: int = Field(description="Live interactive children")
    total: int = Field(description="All live children")
    limit: int = Field(description="Global cap")


class PoolHealth(BaseModel):
    """Registry health summary."""

    healthy: bool
    zombies: list[str] = Field(
        default_factory=list,
        description="Handle ids with no process identity or already force-killed",
    )
    stats: PoolStats


class ProcessPool:
    """Spawns, tracks, and terminates CLI children.

    Registry mutations happen only in pool methods and in the exit observer
    installed at spawn time; none of them straddle an ``await``.
    """

    def __init__(
        self,
        binary: str,
        config: PoolConfig | None = None,
        pty_config: PTYConfig | None = None,
    ) -> None:
        self.binary = binary
        self._config = config or PoolConfig()
        self._pty_config = pty_config or PTYConfig()
        self._handles: dict[str, ProcessHandle] = {}
        self._reserved: dict[ProcessKind, int] = {"stdio": 0, "pty": 0}
        self._tasks: set[asyncio.Task[None]] = set()
        self._counter = itertools.count(1)

    # ------------------------------------------------------------------ #
    # Acquire
    # ------------------------------------------------------------------ #

    async def acquire_stdio(
        self,
        args: list[str],
        *,
        cwd: str | None = None,
    ) -> StdioHandle:
        """Spawn a non-interactive child with piped stdin/stdout/stderr."""
        self._reserve("stdio")
        try:
            try:
                process = await asyncio.create_subprocess_exec(
                    self.binary,
                    *args,
                    stdin=asyncio.subprocess.PIPE,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    cwd=cwd,
                    start_new_session=True,
                    limit=_MAX_LINE_BYTES,
                )
            except OSError as exc:
                raise self._spawn_failed(exc) from exc
            handle = StdioHandle(self._next_id(), process)
            self._register(handle)
        finally:
            self._reserved["stdio"] -= 1
        return handle

    async def acquire_pty(
        self,
        args: list[str],
        *,
        cwd: str | None = None,
        columns: int | None = None,
        rows: int | None = None,
        term: str | None = None,
    ) -> PtyHandle:
        """Spawn an interactive child inside a fresh pseudo-terminal."""
        self._reserve("pty")
        columns = columns or self._pty_config.columns
        rows = rows or self._pty_config.rows
        try:
            try:
                process, master_fd = await spawn_in_pty(
                    [self.binary, *args],
                    columns=columns,
                    rows=rows,
                    term=term or self._pty_config.term,
                    cwd=cwd,
                )
            except OSError as exc:
                raise self._spawn_failed(exc) from exc
            handle = PtyHandle(self._next_id(), process, master_fd, columns, rows)
            self._register(handle)
        finally:
            self._reserved["pty"] -= 1
        return handle

    @contextlib.asynccontextmanager
    async def stdio(self, args: list[str]) -> AsyncIterator[StdioHandle]:
        """Acquire a stdio handle and release it when the block exits."""
        handle = await self.acquire_stdio(args)
        try:
            yield handle
        finally:
            self.release(handle)

    # ------------------------------------------------------------------ #
    # Release
    # ------------------------------------------------------------------ #

    def release(self, handle: ProcessHandle | str) -> bool:
        """Signal a child to exit.  Returns False if it was already released."""
        if isinstance(handle, str):
            found = self._handles.get(handle)
            if found is None:
                return False
            handle = found
        if handle.released:
            return False
        handle.released = True
        if not handle.alive:
            self._forget(handle)
            return True

        logger.debug("Releasing %s (%s)", handle.id, handle.kind)
        handle.terminate()
        self._spawn_task(self._force_kill_later(handle))
        return True

    def release_all(self, kind: ProcessKind | Literal["all"] = "all") -> int:
        """Release every registered child of *kind*.  Returns how many."""
        count = 0
        for handle in list(self._handles.values()):
            if kind != "all" and handle.kind != kind:
                continue
            if self.release(handle):
                count += 1
        return count

    async def _force_kill_later(self, handle: ProcessHandle) -> None:
        try:
            await asyncio.wait_for(handle.wait(), timeout=self._config.grace_period)
        except TimeoutError:
            logger.warning(
                "%s (pid %s) ignored SIGTERM for %.1fs, sending SIGKILL",
                handle.id,
                handle.pid,
                self._config.grace_period,
            )
            handle.kill()
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(handle.wait(), timeout=_REAP_WAIT)
        self._forget(handle)

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    def get(self, handle_id: str) -> ProcessHandle | None:
        return self._handles.get(handle_id)

    def stats(self) -> PoolStats:
        stdio = sum(1 for h in self._handles.values() if h.kind == "stdio")
        pty = sum(1 for h in self._handles.values() if h.kind == "pty")
        return PoolStats(
            stdio=stdio,
            pty=pty,
            total=stdio + pty,
            limit=self._config.max_processes,
        )

    def health(self) -> PoolHealth:
        zombies = [
            handle.id
            for handle in self._handles.values()
            if handle.pid is None or handle.killed
        ]
        stats = self.stats()
        return PoolHealth(
            healthy=not zombies and stats.total < stats.limit,
            zombies=zombies,
            stats=stats,
        )

    # ------------------------------------------------------------------ #
    # Shutdown
    # ------------------------------------------------------------------ #

    async def shutdown(self, timeout: float | None = None) -> None:
        """Signal every child, wait up to *timeout*, then force-kill the rest."""
        budget = self._config.shutdown_timeout if timeout is None else timeout
        handles = list(self._handles.values())
        leaked = [h.id for h in handles if not h.released]
        if leaked:
            logger.warning("Shutting down with unreleased handles: %s", ", ".join(leaked))

        for handle in handles:
            handle.released = True
            if handle.alive:
                handle.terminate()

        if handles:
            _, pending = await asyncio.wait(
                [asyncio.ensure_future(h.wait()) for h in handles],
                timeout=budget,
            )
            stragglers = [h for h in handles if h.alive]
            for handle in stragglers:
                logger.warning("Force-killing %s (pid %s)", handle.id, handle.pid)
                handle.kill()
            if pending:
                await asyncio.wait(pending, timeout=_REAP_WAIT)
                for task in pending:
                    task.cancel()

        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        for handle in handles:
            self._forget(handle)
        logger.info("Process pool shut down (%d children)", len(handles))

    # ------------------------------------------------------------------ #
    # Internal
    # ------------------------------------------------------------------ #

    def _next_id(self) -> str:
        millis = int(time.time() * 1000)
        return f"proc_{millis}_{next(self._counter)}_{secrets.token_hex(3)}"

    def _reserve(self, kind: ProcessKind) -> None:
        live = len(self._handles) + sum(self._reserved.values())
        if live >= self._config.max_processes:
            msg = f"Process limit reached ({self._config.max_processes})"
            raise ResourceExhaustedError(msg, limit=self._config.max_processes)
        if kind == "pty":
            live_pty = self._reserved["pty"] + sum(
                1 for h in self._handles.values() if h.kind == "pty"
            )
            if live_pty >= self._config.max_pty_processes:
                msg = (
                    "Interactive process limit reached "
                    f"({self._config.max_pty_processes})"
                )
                raise ResourceExhaustedError(
                    msg, limit=self._config.max_pty_processes
                )
        self._reserved[kind] += 1

    def _register(self, handle: ProcessHandle) -> None:
        self._handles[handle.id] = handle
        self._spawn_task(self._observe_exit(handle))
        logger.info("Spawned %s child %s (pid %s)", handle.kind, handle.id, handle.pid)

    async def _observe_exit(self, handle: ProcessHandle) -> None:
        code = await handle.wait()
        logger.debug("%s exited with %s", handle.id, code)
        if not handle.released:
            logger.info("%s exited on its own (code %s)", handle.id, code)
        self._forget(handle)

    def _forget(self, handle: ProcessHandle) -> None:
        if self._handles.get(handle.id) is handle:
            del self._handles[handle.id]
        handle._on_exit()

    def _spawn_task(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _spawn_failed(self, exc: OSError) -> SpawnFailedError:
        msg = f"Cannot execute CLI binary '{self.binary}': {exc.strerror or exc}"
        logger.error(msg)
        return SpawnFailedError(msg, binary=self.binary)
