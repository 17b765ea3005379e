"""Tests for terminal screen analysis."""

from __future__ import annotations

import pytest

from conduit.parser.screen import (
    ToolCall,
    analyze,
    detect_status,
    detect_tool_calls,
    diff,
    extract_reply,
    has_prompt,
    is_stable,
    strip_ui,
    turn_region,
)

#: A typical settled screen: banner, echoed question, answer, input box.
SETTLED = "\n".join(
    [
        "╭──────────────────────────────╮",
        "│ Welcome to Claude            │",
        "╰──────────────────────────────╯",
        "> what is 2+2?",
        "",
        "2 + 2 = 4",
        "",
        "──────────────────────────────",
        ">",
        "[? for shortcuts]",
    ]
)


# ===================================================================
# diff
# ===================================================================


class TestDiff:
    def test_empty_new(self) -> None:
        assert diff("anything", "") == ""

    def test_empty_old(self) -> None:
        assert diff("", "a\nb") == "a\nb"

    def test_identical_screens(self) -> None:
        screen = "line one\nline two"
        assert diff(screen, screen) == ""

    def test_only_new_lines(self) -> None:
        assert diff("a\nb", "a\nb\nc\nd") == "c\nd"

    def test_blank_lines_not_reported(self) -> None:
        assert diff("a", "a\n\n   \nb") == "b"

    def test_order_preserved(self) -> None:
        assert diff("x", "z\nx\ny") == "z\ny"

    @pytest.mark.parametrize(
        ("old", "new"),
        [("a\nb", "b\nc\nd"), ("", "a"), ("q", "q\nr\n\ns")],
    )
    def test_no_line_of_old_survives(self, old: str, new: str) -> None:
        result = diff(old, new)
        old_lines = set(old.split("\n")) if old else set()
        for line in result.split("\n"):
            if line:
                assert line not in old_lines


# ===================================================================
# turn_region
# ===================================================================


class TestTurnRegion:
    def test_lines_below_newest_echo(self) -> None:
        before = "> hi\nHello\n>"
        after = "> hi\nHello\n> hi\nHello\n>"
        assert turn_region(after, "hi", before) == "Hello\n>"

    def test_echo_inside_box(self) -> None:
        screen = "│ > what is 2+2? │\n2 + 2 = 4"
        assert turn_region(screen, "what is 2+2?", ">") == "2 + 2 = 4"

    def test_reply_line_equal_to_input_is_not_an_echo(self) -> None:
        screen = "> hi\nhi\n>"
        assert turn_region(screen, "hi", ">") == "hi\n>"

    def test_echo_not_rendered_yet(self) -> None:
        before = "> hi\nHello\n>"
        assert turn_region(before, "hi", before) == ""

    def test_falls_back_to_removing_baseline_lines(self) -> None:
        before = "banner\nHello\n>"
        after = "banner\nHello\n[Pasted text]\nHello\n>"
        assert turn_region(after, "line one\nline two", before) == "[Pasted text]\nHello"

    def test_empty_screen(self) -> None:
        assert turn_region("", "hi", "> hi") == ""


# ===================================================================
# strip_ui / extract_reply
# ===================================================================


class TestStripUI:
    def test_removes_chrome(self) -> None:
        result = strip_ui(SETTLED)
        assert "Welcome to Claude" in result
        assert "2 + 2 = 4" in result
        assert "╭" not in result
        assert "──" not in result
        assert "[? for shortcuts]" not in result
        assert "what is 2+2?" not in result  # prompt line

    def test_removes_echoed_input(self) -> None:
        screen = "what is 2+2?\n2 + 2 = 4"
        assert strip_ui(screen, "what is 2+2?") == "2 + 2 = 4"

    def test_collapses_blank_runs(self) -> None:
        assert strip_ui("a\n\n\n\n\nb") == "a\n\nb"

    def test_empty(self) -> None:
        assert strip_ui("") == ""

    def test_idempotent(self) -> None:
        once = strip_ui(SETTLED, "what is 2+2?")
        assert strip_ui(once, "what is 2+2?") == once

    def test_extract_reply_drops_tool_lines(self) -> None:
        screen = "Using tool: Bash\nThe directory has 3 files\n>"
        assert extract_reply(screen) == "The directory has 3 files"


# ===================================================================
# Status, prompt and tool calls
# ===================================================================


class TestDetectStatus:
    def test_empty_is_unknown(self) -> None:
        assert detect_status("") == "unknown"
        assert detect_status("   \n  ") == "unknown"

    def test_error(self) -> None:
        assert detect_status("Error: could not connect\n>") == "error"

    def test_thinking(self) -> None:
        assert detect_status("✻ Thinking…") == "thinking"
        assert detect_status("Processing...") == "thinking"

    def test_bare_prompt_is_input(self) -> None:
        assert detect_status("──────\n>") == "input"

    def test_prompt_after_content_is_stable(self) -> None:
        assert detect_status("Here is the answer\n> ") == "stable"

    def test_other_content_unknown(self) -> None:
        assert detect_status("just some text") == "unknown"


class TestHasPrompt:
    def test_settled_screen(self) -> None:
        assert has_prompt(SETTLED) is True

    def test_prompt_with_trailing_space(self) -> None:
        assert has_prompt("hello\n> ") is True

    def test_prompt_with_text_is_not_ready(self) -> None:
        assert has_prompt("hello\n> typing") is False

    def test_answer_at_bottom(self) -> None:
        assert has_prompt(">\nstill writing the answer") is False

    def test_empty(self) -> None:
        assert has_prompt("") is False


class TestDetectToolCalls:
    def test_all_patterns(self) -> None:
        screen = "Tool call: Read(path=a.txt)\nUsing tool: Bash\nGrep.execute(pattern)"
        calls = detect_tool_calls(screen)
        assert [c.tool for c in calls] == ["Read", "Bash", "Grep"]
        assert calls[0].input == "path=a.txt"
        assert calls[1].input is None
        assert calls[2].input == "pattern"

    def test_deduplicated_by_name(self) -> None:
        screen = "Using tool: Bash\nUsing tool: Bash\nTool call: Bash(ls)"
        calls = detect_tool_calls(screen)
        assert len(calls) == 1

    def test_equality_ignores_raw(self) -> None:
        assert ToolCall("Bash", None, raw="a") == ToolCall("Bash", None, raw="b")

    def test_none_found(self) -> None:
        assert detect_tool_calls("plain text") == []
        assert detect_tool_calls("") == []


class TestIsStable:
    def test_identical(self) -> None:
        assert is_stable("a\nb", "a\nb") is True

    def test_both_empty(self) -> None:
        assert is_stable("", "\n\n") is True

    def test_one_empty(self) -> None:
        assert is_stable("", "a") is False

    def test_blank_lines_ignored(self) -> None:
        assert is_stable("a\nb", "a\n\nb\n") is True

    def test_threshold(self) -> None:
        old = "\n".join(f"line {i}" for i in range(10))
        new = "\n".join(f"line {i}" for i in range(9)) + "\nchanged"
        assert is_stable(old, new, threshold=0.9) is True
        assert is_stable(old, new, threshold=0.95) is False


# ===================================================================
# analyze
# ===================================================================


class TestAnalyze:
    def test_empty_screen(self) -> None:
        result = analyze("")
        assert result.is_empty is True
        assert result.line_count == 0
        assert result.content == ""
        assert result.tool_calls == []
        assert result.has_prompt is False

    def test_settled_screen(self) -> None:
        result = analyze(SETTLED, "what is 2+2?")
        assert result.is_empty is False
        assert result.has_prompt is True
        assert "2 + 2 = 4" in result.content
        assert result.line_count == len(SETTLED.split("\n"))
