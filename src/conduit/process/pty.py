"""Pseudo-terminal plumbing for interactive CLI children."""

from __future__ import annotations

import asyncio
import contextlib
import fcntl
import os
import pty
import struct
import termios
from collections.abc import Mapping


def set_window_size(fd: int, columns: int, rows: int) -> None:
    """Apply terminal geometry to a pty endpoint."""
    fcntl.ioctl(fd, termios.TIOCSWINSZ, struct.pack("HHHH", rows, columns, 0, 0))


def _make_controlling_terminal() -> None:
    # Runs in the child after setsid(); stdin is the pty slave.
    with contextlib.suppress(OSError):
        fcntl.ioctl(0, termios.TIOCSCTTY, 0)


async def spawn_in_pty(
    argv: list[str],
    *,
    columns: int,
    rows: int,
    term: str,
    cwd: str | None = None,
    env: Mapping[str, str] | None = None,
) -> tuple[asyncio.subprocess.Process, int]:
    """Start *argv* with a fresh pty as its terminal.

    Returns the process and the master file descriptor.  The slave side is
    closed in the parent before returning.
    """
    master_fd, slave_fd = pty.openpty()
    try:
        set_window_size(slave_fd, columns, rows)
        child_env = dict(os.environ if env is None else env)
        child_env["TERM"] = term
        child_env["COLUMNS"] = str(columns)
        child_env["LINES"] = str(rows)
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdin=slave_fd,
            stdout=slave_fd,
            stderr=slave_fd,
            cwd=cwd,
            env=child_env,
            start_new_session=True,
            preexec_fn=_make_controlling_terminal,
        )
    except BaseException:
        os.close(master_fd)
        raise
    finally:
        os.close(slave_fd)
    return process, master_fd
