"""Parse the CLI's non-interactive JSON output into typed events.

The CLI may print a single JSON document (object or array), a doubly
nested array, or one JSON value per line.  Everything here is pure and
stateless; adapters call these helpers on whole buffers or single lines.
"""

from __future__ import annotations

import json
import logging
import math
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag, TypeAdapter

logger = logging.getLogger(__name__)

#: Characters per token in the usage estimate.
CHARS_PER_TOKEN = 4


class _CLIEventBase(BaseModel):
    model_config = ConfigDict(extra="allow")


class ResultEvent(_CLIEventBase):
    """Final answer of a run."""

    type: Literal["result"] = "result"
    subtype: str | None = None
    result: str | None = None
    is_error: bool = False


class AssistantEvent(_CLIEventBase):
    """A complete assistant message with content blocks."""

    type: Literal["assistant"] = "assistant"
    message: dict[str, Any] = Field(default_factory=dict)

    def text(self) -> str | None:
        blocks = self.message.get("content")
        if not isinstance(blocks, list):
            return None
        texts = [
            block["text"]
            for block in blocks
            if isinstance(block, dict)
            and block.get("type") == "text"
            and isinstance(block.get("text"), str)
        ]
        if not texts:
            return None
        return "\n".join(texts)


class PartialEvent(_CLIEventBase):
    """An incremental text chunk."""

    type: Literal["partial"] = "partial"
    content: str | None = None


class StreamDeltaEvent(_CLIEventBase):
    """Raw API stream event forwarded by ``--include-partial-messages``."""

    type: Literal["stream_event"] = "stream_event"
    event: dict[str, Any] = Field(default_factory=dict)

    def text(self) -> str | None:
        if self.event.get("type") != "content_block_delta":
            return None
        delta = self.event.get("delta")
        if not isinstance(delta, dict) or delta.get("type") != "text_delta":
            return None
        text = delta.get("text")
        return text if isinstance(text, str) else None


class UnknownEvent(_CLIEventBase):
    """Anything else (system init, user echoes, tool results).  Ignored."""

    type: Any = None


def _event_tag(value: Any) -> str:
    kind = value.get("type") if isinstance(value, dict) else getattr(value, "type", None)
    if kind in ("result", "assistant", "partial", "stream_event"):
        return kind
    return "unknown"


CLIEvent = Annotated[
    Annotated[ResultEvent, Tag("result")]
    | Annotated[AssistantEvent, Tag("assistant")]
    | Annotated[PartialEvent, Tag("partial")]
    | Annotated[StreamDeltaEvent, Tag("stream_event")]
    | Annotated[UnknownEvent, Tag("unknown")],
    Discriminator(_event_tag),
]

_cli_event_adapter: TypeAdapter[CLIEvent] = TypeAdapter(CLIEvent)


# ------------------------------------------------------------------ #
# Parsing
# ------------------------------------------------------------------ #


def parse_output(raw: bytes | str) -> list[dict[str, Any]]:
    """Parse raw CLI output into an ordered list of JSON objects.

    Invalid lines are skipped.  A top-level ``[[...]]`` is flattened to its
    inner array.
    """
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    stripped = text.strip()
    if not stripped:
        return []

    try:
        whole = json.loads(stripped)
    except json.JSONDecodeError:
        pass
    else:
        return _objects(whole)

    events: list[dict[str, Any]] = []
    for line in stripped.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            value = json.loads(line)
        except json.JSONDecodeError:
            logger.debug("Skipping non-JSON CLI line: %s", line[:200])
            continue
        events.extend(_objects(value))
    return events


def _objects(value: Any) -> list[dict[str, Any]]:
    if isinstance(value, list):
        if len(value) == 1 and isinstance(value[0], list):
            value = value[0]
        return [item for item in value if isinstance(item, dict)]
    if isinstance(value, dict):
        return [value]
    return []


def classify(event: dict[str, Any]) -> CLIEvent:
    """Turn one raw JSON object into its typed event variant."""
    try:
        return _cli_event_adapter.validate_python(event)
    except ValueError:
        return UnknownEvent.model_validate(event)


# ------------------------------------------------------------------ #
# Content extraction
# ------------------------------------------------------------------ #


def event_text(event: dict[str, Any]) -> str | None:
    """Text carried by a single event, or None when it carries none.

    Used on the streaming path where each line is treated on its own.
    """
    return _typed_text(classify(event))


def _typed_text(typed: Any) -> str | None:
    if isinstance(typed, ResultEvent):
        if typed.subtype == "success" and typed.result:
            return typed.result
        return None
    if isinstance(typed, (AssistantEvent, StreamDeltaEvent)):
        return typed.text() or None
    if isinstance(typed, PartialEvent):
        return typed.content or None
    return None


def extract_content(events: list[dict[str, Any]]) -> str | None:
    """Pick the reply text out of a full event list.

    Preference: the first successful ``result``; else the first ``assistant``
    message with text blocks; else all partial chunks joined together.
    """
    typed = [classify(event) for event in events]

    for event in typed:
        if isinstance(event, ResultEvent) and event.subtype == "success":
            if event.result:
                return event.result.strip()

    for event in typed:
        if isinstance(event, AssistantEvent):
            text = event.text()
            if text:
                return text.strip()

    partials = [
        text
        for event in typed
        if isinstance(event, (PartialEvent, StreamDeltaEvent))
        and (text := _typed_text(event))
    ]
    if partials:
        return "".join(partials).strip()
    return None


def result_error(events: list[dict[str, Any]]) -> str | None:
    """Error text of a failed ``result`` event, if the run reported one."""
    for event in events:
        typed = classify(event)
        if isinstance(typed, ResultEvent) and (
            typed.is_error or (typed.subtype and typed.subtype != "success")
        ):
            return typed.result or typed.subtype or "unknown error"
    return None


# ------------------------------------------------------------------ #
# Length limits
# ------------------------------------------------------------------ #


def max_chars(max_tokens: int | None) -> int | None:
    """Character budget for a token cap."""
    if max_tokens is None:
        return None
    return max(0, max_tokens) * CHARS_PER_TOKEN


def truncate(content: str, max_tokens: int | None) -> str:
    """Cut *content* to the character budget of *max_tokens*."""
    limit = max_chars(max_tokens)
    if limit is None or len(content) <= limit:
        return content
    return content[:limit]


def apply_stop(content: str, stop: list[str]) -> tuple[str, bool]:
    """Trim *content* after the earliest stop sequence, keeping the sequence.

    Returns the trimmed text and whether a stop sequence matched.
    """
    best: tuple[int, int] | None = None
    for seq in stop:
        if not seq:
            continue
        index = content.find(seq)
        if index == -1:
            continue
        if best is None or index < best[0]:
            best = (index, index + len(seq))
    if best is None:
        return content, False
    return content[: best[1]], True


def estimate_tokens(prompt: str, completion: str) -> dict[str, int]:
    """Usage counters using the characters-per-token rule.

    ``total`` is computed over the combined length and ``completion`` is
    whatever remains, so the three numbers always add up.
    """
    prompt_tokens = math.ceil(len(prompt) / CHARS_PER_TOKEN)
    total_tokens = math.ceil((len(prompt) + len(completion)) / CHARS_PER_TOKEN)
    return {
        "prompt_tokens": prompt_tokens,
        "completion_tokens": total_tokens - prompt_tokens,
        "total_tokens": total_tokens,
    }
