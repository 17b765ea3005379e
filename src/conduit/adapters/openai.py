"""OpenAI chat/completions wire models and response builders."""

from __future__ import annotations

import time
import uuid
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

#: Sampling parameters accepted for compatibility and otherwise ignored.
UNSUPPORTED_PARAMS = ("temperature", "top_p", "presence_penalty", "frequency_penalty")

#: Sentinel yielded as the last element of a completion stream.
STREAM_DONE = "[DONE]"

#: Model aliases the CLI accepts.
AVAILABLE_MODELS = ("sonnet", "opus", "haiku")


class ChatMessage(BaseModel):
    """One message of the conversation.

    Role and content are validated by :func:`conduit.adapters.prompt.validate_messages`
    so that bad input surfaces as one ``InvalidInputError`` listing every problem.
    """

    model_config = ConfigDict(extra="allow")

    role: Any = None
    content: Any = None


class ChatCompletionRequest(BaseModel):
    """OpenAI-compatible chat completion request."""

    model_config = ConfigDict(extra="allow")

    messages: list[ChatMessage] = Field(description="Conversation so far")
    model: str | None = Field(default=None, description="CLI model alias")
    stream: bool = Field(default=False, description="Return SSE chunks")
    max_tokens: int | None = Field(default=None, ge=0, description="Output cap")
    stop: list[str] = Field(default_factory=list, description="Stop sequences")
    temperature: float | None = None
    top_p: float | None = None
    presence_penalty: float | None = None
    frequency_penalty: float | None = None

    @field_validator("stop", mode="before")
    @classmethod
    def _coerce_stop(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value

    def unsupported_params(self) -> list[str]:
        return [name for name in UNSUPPORTED_PARAMS if getattr(self, name) is not None]


class Usage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ResponseMessage(BaseModel):
    role: Literal["assistant"] = "assistant"
    content: str


class Choice(BaseModel):
    index: int = 0
    message: ResponseMessage
    finish_reason: str | None = "stop"


class ChatCompletion(BaseModel):
    """Non-streaming chat completion."""

    id: str
    object: Literal["chat.completion"] = "chat.completion"
    created: int
    model: str
    choices: list[Choice]
    usage: Usage


class ModelInfo(BaseModel):
    id: str
    object: Literal["model"] = "model"
    created: int = 1700000000
    owned_by: str = "anthropic"


class ModelList(BaseModel):
    object: Literal["list"] = "list"
    data: list[ModelInfo]


def completion_id() -> str:
    return f"chatcmpl-{uuid.uuid4().hex[:24]}"


def response_model_name(model: str) -> str:
    return f"claude-{model}"


def list_models() -> ModelList:
    return ModelList(data=[ModelInfo(id=name) for name in AVAILABLE_MODELS])


class ChunkBuilder:
    """Builds ``chat.completion.chunk`` payloads sharing one id and timestamp."""

    def __init__(self, model: str) -> None:
        self.id = completion_id()
        self.created = int(time.time())
        self.model = response_model_name(model)

    def _chunk(self, choices: list[dict[str, Any]], **extra: Any) -> dict[str, Any]:
        return {
            "id": self.id,
            "object": "chat.completion.chunk",
            "created": self.created,
            "model": self.model,
            "choices": choices,
            **extra,
        }

    def opener(self) -> dict[str, Any]:
        return self._chunk(
            [{"index": 0, "delta": {"role": "assistant", "content": ""}, "finish_reason": None}]
        )

    def content(self, text: str) -> dict[str, Any]:
        return self._chunk([{"index": 0, "delta": {"content": text}, "finish_reason": None}])

    def finish(self, reason: str = "stop") -> dict[str, Any]:
        return self._chunk([{"index": 0, "delta": {}, "finish_reason": reason}])

    def usage(self, usage: dict[str, int]) -> dict[str, Any]:
        return self._chunk([], usage=usage)

    def error(self, message: str) -> dict[str, Any]:
        return self._chunk([], error={"message": message, "type": "claude_cli_error"})
