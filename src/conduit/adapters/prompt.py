"""Request validation, prompt serialization, and CLI argument vectors."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from conduit.adapters.openai import ChatMessage
from conduit.errors import InvalidInputError

VALID_ROLES = ("system", "user", "assistant")

#: Terminal framing around pasted input (bracketed paste mode).
PASTE_START = b"\x1b[200~"
PASTE_END = b"\x1b[201~"


def content_text(content: Any) -> str | None:
    """Plain text of a message's content; only text parts of lists count."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        texts = [
            part["text"]
            for part in content
            if isinstance(part, dict)
            and part.get("type") == "text"
            and isinstance(part.get("text"), str)
        ]
        return "\n".join(texts) if texts else None
    return None


def validate_messages(messages: Sequence[ChatMessage]) -> None:
    """Raise :class:`InvalidInputError` listing every problem with *messages*."""
    if not messages:
        msg = "Messages array cannot be empty"
        raise InvalidInputError(msg, errors=[msg])

    errors: list[str] = []
    for index, message in enumerate(messages):
        role = message.role
        if not isinstance(role, str) or not role:
            errors.append(f"Message {index}: missing or invalid role")
        elif role not in VALID_ROLES:
            errors.append(f'Message {index}: invalid role "{role}"')

        if not message.content:
            errors.append(f"Message {index}: missing content")
        elif content_text(message.content) is None:
            errors.append(f"Message {index}: content has no text")

    if not any(message.role == "user" for message in messages):
        errors.append("Messages must contain at least one user message")

    if errors:
        msg = "Invalid messages: " + "; ".join(errors)
        raise InvalidInputError(msg, errors=errors)


def format_prompt(messages: Sequence[ChatMessage]) -> tuple[str | None, str]:
    """Split *messages* into a system prompt and a ``role: content`` transcript."""
    system_prompt: str | None = None
    lines: list[str] = []
    for message in messages:
        text = content_text(message.content) or ""
        if message.role == "system":
            if system_prompt is None:
                system_prompt = text
            continue
        lines.append(f"{message.role}: {text}")
    return system_prompt, "\n".join(lines)


def stdio_args(model: str, *, stream: bool, system_prompt: str | None = None) -> list[str]:
    """Arguments for a one-shot, non-persistent, tool-less CLI run."""
    args = ["-p", "--output-format", "stream-json" if stream else "json"]
    if stream:
        args += ["--verbose", "--include-partial-messages"]
    args += [
        "--no-session-persistence",
        "--model",
        model,
        "--tools",
        "",
        "--dangerously-skip-permissions",
    ]
    if system_prompt:
        args += ["--system-prompt", system_prompt]
    return args


def pty_args(model: str, allowed_tools: Sequence[str] | None = None) -> list[str]:
    """Arguments for an interactive CLI session."""
    args = ["--model", model]
    if allowed_tools:
        args += ["--allowed-tools", ",".join(allowed_tools)]
    return args


def paste_frames(content: str) -> list[bytes]:
    """Frames written to the terminal to submit *content* as one message."""
    return [PASTE_START, content.encode("utf-8"), PASTE_END, b"\r"]
