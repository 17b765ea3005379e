"""In-memory terminal emulator that turns pty bytes into screen snapshots."""

from __future__ import annotations

import pyte


class TerminalScreen:
    """A pyte screen plus the byte stream that drives it.

    Feed raw pty output with :meth:`feed`; read the visible buffer with
    :meth:`snapshot`.  Cursor movement, overwrites and erase sequences are
    applied, so a snapshot reflects what a user would actually see.
    """

    def __init__(self, columns: int = 80, rows: int = 24) -> None:
        self.columns = columns
        self.rows = rows
        self._screen = pyte.Screen(columns, rows)
        self._stream = pyte.ByteStream(self._screen)

    def feed(self, data: bytes) -> None:
        self._stream.feed(data)

    def snapshot(self) -> str:
        """Visible lines, right-trimmed, without trailing empty rows."""
        lines = [line.rstrip() for line in self._screen.display]
        while lines and not lines[-1]:
            lines.pop()
        return "\n".join(lines)

    def resize(self, columns: int, rows: int) -> None:
        self.columns = columns
        self.rows = rows
        self._screen.resize(lines=rows, columns=columns)
