"""Process handles issued by the pool.

A handle wraps one live CLI child.  Callers read and write through the
handle; only the pool signals, reaps, or forgets it.
"""

from __future__ import annotations

import asyncio
import contextlib
import errno
import logging
import os
import time
from collections.abc import AsyncIterator, Callable, Iterator
from typing import Literal

from conduit.process.pty import set_window_size

logger = logging.getLogger(__name__)

ProcessKind = Literal["stdio", "pty"]

#: Bytes requested per read from the pty master.
_PTY_READ_SIZE = 4096

#: Cap on pty output buffered while no listener is attached (1 MB).
_MAX_PENDING_BYTES = 1_048_576

OutputListener = Callable[[bytes], None]


class ProcessHandle:
    """A CLI child owned by the pool."""

    def __init__(
        self,
        handle_id: str,
        kind: ProcessKind,
        process: asyncio.subprocess.Process,
    ) -> None:
        self.id = handle_id
        self.kind = kind
        self.process = process
        self.created_at = time.time()
        self.released = False
        self.killed = False

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.id} pid={self.pid}>"

    @property
    def pid(self) -> int | None:
        return self.process.pid

    @property
    def returncode(self) -> int | None:
        return self.process.returncode

    @property
    def alive(self) -> bool:
        return self.process.returncode is None

    async def wait(self) -> int:
        """Wait for the child to exit and return its exit status."""
        return await self.process.wait()

    def terminate(self) -> None:
        with contextlib.suppress(ProcessLookupError):
            self.process.terminate()

    def kill(self) -> None:
        self.killed = True
        with contextlib.suppress(ProcessLookupError):
            self.process.kill()

    def _on_exit(self) -> None:
        """Hook run by the pool's exit observer."""


class StdioHandle(ProcessHandle):
    """Non-interactive child talking JSON over pipes."""

    def __init__(self, handle_id: str, process: asyncio.subprocess.Process) -> None:
        super().__init__(handle_id, "stdio", process)

    async def write(self, data: bytes) -> None:
        stdin = self.process.stdin
        if stdin is None:
            msg = f"Process {self.id} has no stdin"
            raise BrokenPipeError(msg)
        stdin.write(data)
        await stdin.drain()

    def close_input(self) -> None:
        stdin = self.process.stdin
        if stdin is not None and not stdin.is_closing():
            stdin.close()

    async def lines(self) -> AsyncIterator[bytes]:
        """Yield stdout lines until EOF."""
        stdout = self.process.stdout
        if stdout is None:
            return
        while True:
            try:
                line = await stdout.readline()
            except ValueError:
                # Line longer than the stream limit; drop what is buffered.
                logger.warning("%s: stdout line exceeded buffer limit, skipping", self.id)
                continue
            if not line:
                return
            yield line

    async def read_output(self) -> tuple[bytes, bytes]:
        """Read stdout and stderr to EOF concurrently."""

        async def _drain(stream: asyncio.StreamReader | None) -> bytes:
            if stream is None:
                return b""
            return await stream.read()

        stdout, stderr = await asyncio.gather(
            _drain(self.process.stdout),
            _drain(self.process.stderr),
        )
        return stdout, stderr

    async def read_stderr(self) -> bytes:
        stderr = self.process.stderr
        if stderr is None:
            return b""
        return await stderr.read()


class PtyHandle(ProcessHandle):
    """Interactive child attached to a pseudo-terminal.

    Output is pumped from the pty master by an event-loop reader and handed
    to at most one listener at a time.  Bytes that arrive while nobody is
    listening are kept (up to a bound) and replayed to the next listener.
    """

    def __init__(
        self,
        handle_id: str,
        process: asyncio.subprocess.Process,
        master_fd: int,
        columns: int,
        rows: int,
    ) -> None:
        super().__init__(handle_id, "pty", process)
        self.master_fd = master_fd
        self.columns = columns
        self.rows = rows
        self._listener: OutputListener | None = None
        self._pending = bytearray()
        self._closed = False
        self._eof = False
        self._loop = asyncio.get_running_loop()
        os.set_blocking(master_fd, False)
        self._loop.add_reader(master_fd, self._on_readable)

    # ------------------------------------------------------------------ #
    # Output
    # ------------------------------------------------------------------ #

    @property
    def has_listener(self) -> bool:
        return self._listener is not None

    @contextlib.contextmanager
    def listening(self, listener: OutputListener) -> Iterator[None]:
        """Attach *listener* as the sole output reader for the block."""
        if self._listener is not None:
            msg = f"Process {self.id} already has an output listener"
            raise RuntimeError(msg)
        self._listener = listener
        try:
            if self._pending:
                backlog = bytes(self._pending)
                self._pending.clear()
                listener(backlog)
            yield
        finally:
            self._listener = None

    def _on_readable(self) -> None:
        try:
            data = os.read(self.master_fd, _PTY_READ_SIZE)
        except BlockingIOError:
            return
        except OSError as exc:
            # EIO is how Linux reports that the slave side has gone away.
            if exc.errno != errno.EIO:
                logger.warning("%s: pty read failed: %s", self.id, exc)
            data = b""
        if not data:
            self._stop_reading()
            return
        self._dispatch(data)

    def _dispatch(self, data: bytes) -> None:
        listener = self._listener
        if listener is not None:
            try:
                listener(data)
            except Exception:
                logger.exception("%s: output listener failed", self.id)
            return
        self._pending.extend(data)
        overflow = len(self._pending) - _MAX_PENDING_BYTES
        if overflow > 0:
            del self._pending[:overflow]

    def _stop_reading(self) -> None:
        if not self._eof:
            with contextlib.suppress(ValueError, OSError):
                self._loop.remove_reader(self.master_fd)
            self._eof = True

    # ------------------------------------------------------------------ #
    # Input
    # ------------------------------------------------------------------ #

    async def write(self, data: bytes) -> None:
        """Write all of *data* to the terminal."""
        if self._closed:
            msg = f"Process {self.id} terminal is closed"
            raise BrokenPipeError(msg)
        view = memoryview(data)
        while view:
            try:
                written = os.write(self.master_fd, view)
            except BlockingIOError:
                await asyncio.sleep(0.01)
                continue
            view = view[written:]

    def resize(self, columns: int, rows: int) -> None:
        set_window_size(self.master_fd, columns, rows)
        self.columns = columns
        self.rows = rows

    def _on_exit(self) -> None:
        self.close()

    def close(self) -> None:
        """Stop reading and close the master side.  Safe to call twice."""
        if self._closed:
            return
        self._stop_reading()
        self._closed = True
        with contextlib.suppress(OSError):
            os.close(self.master_fd)
