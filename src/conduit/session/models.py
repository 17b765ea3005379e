"""Session state and the models it is reported through."""

from __future__ import annotations

import asyncio
import os
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from conduit.parser.terminal import TerminalScreen
from conduit.process.handle import PtyHandle

SessionStatus = Literal["initializing", "ready", "processing", "error"]
MessageRole = Literal["user", "assistant"]


def _now() -> datetime:
    return datetime.now(UTC)


class SessionOptions(BaseModel):
    """Per-session CLI options supplied by the client."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    model: str = Field(default="sonnet", description="CLI model alias")
    allowed_tools: list[str] | None = Field(
        default=None,
        alias="allowedTools",
        description="Tools the CLI may use without asking",
    )
    working_directory: str = Field(
        default_factory=os.getcwd,
        alias="workingDirectory",
        description="Directory the CLI runs in",
    )


class SessionMessage(BaseModel):
    """One entry of a session's conversation history."""

    id: int = Field(ge=1, description="Monotonic per-session message id")
    role: MessageRole
    content: str
    timestamp: datetime = Field(default_factory=_now)


@dataclass
class Session:
    """Mutable runtime state of one interactive conversation.

    Owned by the :class:`~conduit.session.store.SessionStore`; mutate it
    through the store so ``last_activity`` stays current.
    """

    session_id: str
    options: SessionOptions
    history_limit: int = 10
    status: SessionStatus = "initializing"
    created_at: datetime = field(default_factory=_now)
    last_activity: datetime = field(default_factory=_now)
    messages: list[SessionMessage] = field(default_factory=list)
    current_screen: str = ""
    previous_screen: str = ""
    screen_history: deque[str] = field(init=False)
    pty: PtyHandle | None = field(default=None, repr=False)
    process_id: str | None = None
    terminal: TerminalScreen | None = field(default=None, repr=False)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def __post_init__(self) -> None:
        self.screen_history = deque(maxlen=self.history_limit)

    @property
    def last_user_message(self) -> str:
        for message in reversed(self.messages):
            if message.role == "user":
                return message.content
        return ""

    def touch(self) -> None:
        self.last_activity = _now()


class SessionSummary(BaseModel):
    """Listing view of a session."""

    session_id: str
    created_at: datetime
    last_activity: datetime
    message_count: int
    status: SessionStatus
    model: str
    has_pty_process: bool


class SessionDetails(SessionSummary):
    """Full view of a session."""

    messages: list[SessionMessage]
    options: SessionOptions
    process_id: str | None
    screen_length: int


class SessionStats(BaseModel):
    """Counts across all sessions."""

    total: int = 0
    initializing: int = 0
    ready: int = 0
    processing: int = 0
    error: int = 0
    with_pty: int = 0
    total_messages: int = 0
