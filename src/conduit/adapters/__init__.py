"""Adapters — the only entry points the HTTP surface calls."""

from conduit.adapters.events import AgentEvent
from conduit.adapters.openai import STREAM_DONE, ChatCompletion, ChatCompletionRequest
from conduit.adapters.pty import PtyAdapter
from conduit.adapters.stdio import StdioAdapter

__all__ = [
    "STREAM_DONE",
    "AgentEvent",
    "ChatCompletion",
    "ChatCompletionRequest",
    "PtyAdapter",
    "StdioAdapter",
]
