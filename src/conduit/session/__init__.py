"""Interactive session state, registry, and eviction."""

from conduit.session.janitor import SessionJanitor
from conduit.session.models import (
    Session,
    SessionDetails,
    SessionMessage,
    SessionOptions,
    SessionStats,
    SessionStatus,
    SessionSummary,
)
from conduit.session.store import SessionStore

__all__ = [
    "Session",
    "SessionDetails",
    "SessionJanitor",
    "SessionMessage",
    "SessionOptions",
    "SessionStats",
    "SessionStatus",
    "SessionStore",
    "SessionSummary",
]
