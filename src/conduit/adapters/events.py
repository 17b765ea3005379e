"""Pydantic v2 models for the agent event stream."""

from __future__ import annotations

import json
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

AgentEventType = Literal["session", "content", "tool_call", "warning", "error", "done"]


class AgentEvent(BaseModel):
    """One element of an agent stream: a type tag plus its payload."""

    model_config = ConfigDict(frozen=True)

    type: AgentEventType
    data: dict[str, Any] = Field(default_factory=dict)

    def to_sse(self) -> str:
        """Server-sent-events frame carrying this event."""
        return f"event: {self.type}\ndata: {json.dumps(self.data)}\n\n"


def session_event(session_id: str) -> AgentEvent:
    return AgentEvent(type="session", data={"session_id": session_id})


def content_event(content: str) -> AgentEvent:
    return AgentEvent(type="content", data={"content": content})


def tool_call_event(tool: str, tool_input: str | None) -> AgentEvent:
    return AgentEvent(type="tool_call", data={"tool": tool, "input": tool_input})


def warning_event(message: str) -> AgentEvent:
    return AgentEvent(type="warning", data={"message": message})


def error_event(message: str) -> AgentEvent:
    return AgentEvent(type="error", data={"message": message})


def done_event() -> AgentEvent:
    return AgentEvent(type="done")
