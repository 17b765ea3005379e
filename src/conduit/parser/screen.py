"""Analyze rendered terminal screens of the interactive CLI.

Inputs are whole screen snapshots (the visible buffer after terminal
emulation), never raw byte deltas.  Every function here is pure.
"""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Literal

ScreenStatus = Literal["stable", "thinking", "error", "input", "unknown"]

#: Similarity at which two snapshots count as the same screen.
DEFAULT_STABILITY_THRESHOLD = 0.95

_BOX_CHARS = "│┃┆┊║┌┐└┘├┤┬┴┼╭╮╯╰╔╗╚╝╠╣╦╩╬"
_BOX_RE = re.compile(f"[{_BOX_CHARS}]")
_SEPARATOR_RE = re.compile(r"^[\s─━═┄┈╌\-_]+$")
_PROMPT_LINE_RE = re.compile(r"^\s*>")
_STATUS_TAG_RE = re.compile(r"\[.*\]")
_BLANK_RUN_RE = re.compile(r"\n{3,}")

_ERROR_RE = re.compile(r"\b(error|failed|exception)\b", re.IGNORECASE)
_THINKING_RE = re.compile(r"\b(thinking|loading|processing)\s*(…|\.\.\.)", re.IGNORECASE)
_TRAILING_PROMPT_RE = re.compile(r">\s?$")

_TOOL_CALL_RE = re.compile(r"Tool call:\s*(\w+)\s*\((.*?)\)")
_USING_TOOL_RE = re.compile(r"Using tool:\s*(\w+)")
_EXECUTE_RE = re.compile(r"(\w+)\.execute\s*\((.*?)\)")


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation spotted on screen."""

    tool: str
    input: str | None
    raw: str = field(default="", compare=False)


@dataclass(frozen=True)
class ScreenAnalysis:
    """Everything the stream loop needs to know about one snapshot."""

    content: str
    tool_calls: list[ToolCall]
    status: ScreenStatus
    has_prompt: bool
    is_empty: bool
    line_count: int


# ------------------------------------------------------------------ #
# Line helpers
# ------------------------------------------------------------------ #


def _clean_line(line: str) -> str:
    return _BOX_RE.sub("", line).rstrip()


def _is_chrome(cleaned: str) -> bool:
    stripped = cleaned.strip()
    if not stripped:
        return False
    if _SEPARATOR_RE.match(stripped):
        return True
    return _STATUS_TAG_RE.fullmatch(stripped) is not None


def _nonblank(screen: str) -> list[str]:
    return [line for line in screen.split("\n") if line.strip()]


def _echoes(line: str, text: str) -> bool:
    """True when *line* is the prompt line showing *text* as submitted input."""
    cleaned = _clean_line(line).strip()
    return cleaned.startswith(">") and cleaned[1:].strip() == text


# ------------------------------------------------------------------ #
# Public API
# ------------------------------------------------------------------ #


def diff(old: str, new: str) -> str:
    """Lines of *new* that do not appear anywhere in *old*, in order."""
    if not new:
        return ""
    if not old:
        return new
    old_lines = set(old.split("\n"))
    added = [line for line in new.split("\n") if line.strip() and line not in old_lines]
    return "\n".join(added)


def turn_region(screen: str, echoed_input: str, baseline: str = "") -> str:
    """The part of *screen* produced by the turn that submitted *echoed_input*.

    That is everything below the newest prompt line echoing the input's
    first line, provided *screen* shows more such echoes than *baseline*
    (the screen as it was before the input was sent).  Otherwise the
    echo is not on screen yet or cannot be told apart from an earlier
    turn's, and the lines of *baseline* are removed from *screen* one
    occurrence at a time instead.
    """
    if not screen:
        return ""
    lines = screen.split("\n")
    first = next((line.strip() for line in echoed_input.split("\n") if line.strip()), "")
    if first:
        hits = [i for i, line in enumerate(lines) if _echoes(line, first)]
        before = sum(1 for line in baseline.split("\n") if _echoes(line, first))
        if len(hits) > before:
            return "\n".join(lines[hits[-1] + 1 :])

    remaining = Counter(baseline.split("\n")) if baseline else Counter()
    kept: list[str] = []
    for line in lines:
        if remaining[line] > 0:
            remaining[line] -= 1
            continue
        kept.append(line)
    return "\n".join(kept)


def strip_ui(screen: str, echoed_input: str = "") -> str:
    """Remove terminal chrome and the echoed user input from *screen*."""
    if not screen:
        return ""
    echoed = {line.strip() for line in echoed_input.split("\n") if line.strip()}

    kept: list[str] = []
    for raw in screen.split("\n"):
        line = _clean_line(raw)
        if _PROMPT_LINE_RE.match(line) or _is_chrome(line):
            continue
        if echoed and line.strip() in echoed:
            continue
        kept.append(line)

    text = _BLANK_RUN_RE.sub("\n\n", "\n".join(kept))
    return text.strip()


def detect_status(screen: str) -> ScreenStatus:
    """Classify what the CLI appears to be doing."""
    if not screen or not screen.strip():
        return "unknown"
    if _ERROR_RE.search(screen):
        return "error"
    if _THINKING_RE.search(screen):
        return "thinking"
    if _TRAILING_PROMPT_RE.search(screen.rstrip("\n")):
        return "input" if not strip_ui(screen) else "stable"
    return "unknown"


def detect_tool_calls(screen: str) -> list[ToolCall]:
    """Find tool invocations, one per tool name, in order of discovery."""
    if not screen:
        return []
    calls: list[ToolCall] = []
    seen: set[str] = set()

    def _add(name: str, args: str | None, raw: str) -> None:
        if name in seen:
            return
        seen.add(name)
        calls.append(ToolCall(tool=name, input=args, raw=raw))

    for match in _TOOL_CALL_RE.finditer(screen):
        _add(match.group(1), match.group(2), match.group(0))
    for match in _USING_TOOL_RE.finditer(screen):
        _add(match.group(1), None, match.group(0))
    for match in _EXECUTE_RE.finditer(screen):
        _add(match.group(1), match.group(2), match.group(0))
    return calls


def has_prompt(screen: str) -> bool:
    """True when the bottom-most meaningful line is a bare ``>``."""
    for raw in reversed(_nonblank(screen)):
        line = _clean_line(raw)
        if not line.strip() or _is_chrome(line):
            continue
        return line.strip() == ">"
    return False


def is_stable(
    previous: str,
    current: str,
    threshold: float = DEFAULT_STABILITY_THRESHOLD,
) -> bool:
    """Line-set similarity of two snapshots is at least *threshold*.

    Blank lines are ignored.  Identical or both-empty screens are stable.
    """
    if previous == current:
        return True
    lines_a = set(_nonblank(previous))
    lines_b = set(_nonblank(current))
    if not lines_a and not lines_b:
        return True
    if not lines_a or not lines_b:
        return False
    similarity = len(lines_a & lines_b) / max(len(lines_a), len(lines_b))
    return similarity >= threshold


def extract_reply(screen: str, echoed_input: str = "") -> str:
    """Assistant text on *screen* without chrome, echo, or tool-call lines."""
    reply = strip_ui(screen, echoed_input)
    for call in detect_tool_calls(reply):
        reply = reply.replace(call.raw, "")
    lines = [line.rstrip() for line in reply.split("\n")]
    return _BLANK_RUN_RE.sub("\n\n", "\n".join(lines)).strip()


def analyze(screen: str, echoed_input: str = "") -> ScreenAnalysis:
    """Run every detector over one snapshot."""
    if not screen or not screen.strip():
        return ScreenAnalysis(
            content="",
            tool_calls=[],
            status="unknown",
            has_prompt=False,
            is_empty=True,
            line_count=0,
        )
    return ScreenAnalysis(
        content=extract_reply(screen, echoed_input),
        tool_calls=detect_tool_calls(screen),
        status=detect_status(screen),
        has_prompt=has_prompt(screen),
        is_empty=False,
        line_count=len(screen.split("\n")),
    )
