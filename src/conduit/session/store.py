"""SessionStore — in-memory registry of interactive sessions."""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime, timedelta

from conduit.process.handle import PtyHandle
from conduit.process.pool import ProcessPool
from conduit.session.models import (
    MessageRole,
    Session,
    SessionDetails,
    SessionMessage,
    SessionOptions,
    SessionStats,
    SessionStatus,
    SessionSummary,
)

logger = logging.getLogger(__name__)


class SessionStore:
    """Maps session ids to :class:`Session` records.

    Deleting a session releases its pty child through the pool before the
    call returns.  Every mutator refreshes ``last_activity``.
    """

    def __init__(self, pool: ProcessPool | None = None, screen_history: int = 10) -> None:
        self._pool = pool
        self._screen_history = screen_history
        self._sessions: dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    # ------------------------------------------------------------------ #
    # Mutators
    # ------------------------------------------------------------------ #

    def create(self, options: SessionOptions | None = None) -> Session:
        session = Session(
            session_id=str(uuid.uuid4()),
            options=options or SessionOptions(),
            history_limit=self._screen_history,
        )
        self._sessions[session.session_id] = session
        logger.info("Created session %s (model %s)", session.session_id, session.options.model)
        return session

    def update_status(self, session_id: str, status: SessionStatus) -> bool:
        session = self._sessions.get(session_id)
        if session is None:
            return False
        if session.status != status:
            logger.debug("Session %s: %s -> %s", session_id, session.status, status)
        session.status = status
        session.touch()
        return True

    def set_pty(self, session_id: str, handle: PtyHandle | None) -> bool:
        session = self._sessions.get(session_id)
        if session is None:
            return False
        session.pty = handle
        session.process_id = handle.id if handle is not None else None
        session.touch()
        return True

    def add_message(
        self, session_id: str, role: MessageRole, content: str
    ) -> SessionMessage | None:
        session = self._sessions.get(session_id)
        if session is None:
            return None
        message = SessionMessage(id=len(session.messages) + 1, role=role, content=content)
        session.messages.append(message)
        session.touch()
        return message

    def update_screen(self, session_id: str, screen: str) -> bool:
        session = self._sessions.get(session_id)
        if session is None:
            return False
        session.previous_screen = session.current_screen
        session.current_screen = screen
        session.screen_history.append(screen)
        session.touch()
        return True

    def delete(self, session_id: str) -> bool:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        if session.pty is not None and self._pool is not None:
            self._pool.release(session.pty)
        logger.info("Deleted session %s", session_id)
        return True

    def delete_all(self) -> int:
        count = 0
        for session_id in list(self._sessions):
            if self.delete(session_id):
                count += 1
        return count

    def cleanup_expired(self, max_age: float) -> int:
        """Delete sessions idle for longer than *max_age* seconds."""
        cutoff = datetime.now(UTC) - timedelta(seconds=max_age)
        expired = [
            session_id
            for session_id, session in self._sessions.items()
            if session.last_activity < cutoff
        ]
        for session_id in expired:
            self.delete(session_id)
        if expired:
            logger.info("Evicted %d expired session(s)", len(expired))
        return len(expired)

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def list(self) -> list[SessionSummary]:
        return [self._summary(session) for session in self._sessions.values()]

    def details(self, session_id: str) -> SessionDetails | None:
        session = self._sessions.get(session_id)
        if session is None:
            return None
        return SessionDetails(
            **self._summary(session).model_dump(),
            messages=list(session.messages),
            options=session.options,
            process_id=session.process_id,
            screen_length=len(session.current_screen),
        )

    def stats(self) -> SessionStats:
        stats = SessionStats(total=len(self._sessions))
        for session in self._sessions.values():
            setattr(stats, session.status, getattr(stats, session.status) + 1)
            if session.pty is not None:
                stats.with_pty += 1
            stats.total_messages += len(session.messages)
        return stats

    @staticmethod
    def _summary(session: Session) -> SessionSummary:
        return SessionSummary(
            session_id=session.session_id,
            created_at=session.created_at,
            last_activity=session.last_activity,
            message_count=len(session.messages),
            status=session.status,
            model=session.options.model,
            has_pty_process=session.pty is not None,
        )
