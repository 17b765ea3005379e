"""Tests for the pyte-backed terminal screen."""

from __future__ import annotations

from conduit.parser.terminal import TerminalScreen


class TestTerminalScreen:
    def test_blank_screen(self) -> None:
        assert TerminalScreen(20, 5).snapshot() == ""

    def test_lines_rendered(self) -> None:
        term = TerminalScreen(20, 5)
        term.feed(b"hello\r\nworld")
        assert term.snapshot() == "hello\nworld"

    def test_carriage_return_overwrites(self) -> None:
        term = TerminalScreen(20, 5)
        term.feed(b"loading\rdone   ")
        assert term.snapshot() == "done"

    def test_erase_line(self) -> None:
        term = TerminalScreen(20, 5)
        term.feed(b"spinner |\r\x1b[2Kanswer")
        assert term.snapshot() == "answer"

    def test_colors_are_not_rendered(self) -> None:
        term = TerminalScreen(20, 5)
        term.feed(b"\x1b[31mred\x1b[0m text")
        assert term.snapshot() == "red text"

    def test_scrolls_past_last_row(self) -> None:
        term = TerminalScreen(20, 3)
        term.feed(b"1\r\n2\r\n3\r\n4")
        assert term.snapshot() == "2\n3\n4"

    def test_split_utf8_sequence(self) -> None:
        term = TerminalScreen(20, 3)
        encoded = "│ box".encode()
        term.feed(encoded[:1])
        term.feed(encoded[1:])
        assert term.snapshot() == "│ box"

    def test_resize(self) -> None:
        term = TerminalScreen(20, 5)
        term.resize(40, 10)
        assert (term.columns, term.rows) == (40, 10)
        term.feed(b"x" * 30)
        assert term.snapshot() == "x" * 30
