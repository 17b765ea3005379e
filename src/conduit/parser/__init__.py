"""Event parsing for both CLI channels: JSON stdio output and rendered screens."""

from conduit.parser.events import (
    CLIEvent,
    estimate_tokens,
    event_text,
    extract_content,
    parse_output,
    truncate,
)
from conduit.parser.screen import (
    ScreenAnalysis,
    ToolCall,
    analyze,
    detect_status,
    detect_tool_calls,
    diff,
    has_prompt,
    is_stable,
    strip_ui,
)
from conduit.parser.terminal import TerminalScreen

__all__ = [
    "CLIEvent",
    "ScreenAnalysis",
    "TerminalScreen",
    "ToolCall",
    "analyze",
    "detect_status",
    "detect_tool_calls",
    "diff",
    "estimate_tokens",
    "event_text",
    "extract_content",
    "has_prompt",
    "is_stable",
    "parse_output",
    "strip_ui",
    "truncate",
]
