"""Tests for SessionStore, session models and the session janitor."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

from conduit.session.janitor import SessionJanitor
from conduit.session.models import SessionOptions
from conduit.session.store import SessionStore

# ------------------------------------------------------------------ #
# Helpers
# ------------------------------------------------------------------ #


def _fake_handle(handle_id: str = "proc_1") -> MagicMock:
    handle = MagicMock()
    handle.id = handle_id
    return handle


def _age(store: SessionStore, session_id: str, seconds: float) -> None:
    session = store.get(session_id)
    assert session is not None
    session.last_activity = datetime.now(UTC) - timedelta(seconds=seconds)


# ===================================================================
# Options
# ===================================================================


class TestSessionOptions:
    def test_defaults(self) -> None:
        opts = SessionOptions()
        assert opts.model == "sonnet"
        assert opts.allowed_tools is None
        assert opts.working_directory

    def test_camel_case_aliases(self) -> None:
        opts = SessionOptions.model_validate(
            {"model": "opus", "allowedTools": ["Bash"], "workingDirectory": "/tmp"}
        )
        assert opts.model == "opus"
        assert opts.allowed_tools == ["Bash"]
        assert opts.working_directory == "/tmp"

    def test_snake_case_accepted(self) -> None:
        opts = SessionOptions.model_validate({"allowed_tools": ["Read"]})
        assert opts.allowed_tools == ["Read"]

    def test_unknown_keys_ignored(self) -> None:
        opts = SessionOptions.model_validate({"color": "blue"})
        assert opts.model == "sonnet"


# ===================================================================
# Store mutators
# ===================================================================


class TestCreate:
    def test_new_session_state(self) -> None:
        store = SessionStore()
        session = store.create(SessionOptions(model="haiku"))
        assert session.status == "initializing"
        assert session.messages == []
        assert session.current_screen == ""
        assert session.pty is None
        assert session.options.model == "haiku"
        assert session.session_id in store
        assert len(store) == 1

    def test_ids_unique(self) -> None:
        store = SessionStore()
        ids = {store.create().session_id for _ in range(20)}
        assert len(ids) == 20


class TestMessages:
    def test_ids_are_monotonic(self) -> None:
        store = SessionStore()
        sid = store.create().session_id
        first = store.add_message(sid, "user", "hi")
        second = store.add_message(sid, "assistant", "hello")
        assert first is not None and second is not None
        assert (first.id, second.id) == (1, 2)
        assert store.get(sid).last_user_message == "hi"  # type: ignore[union-attr]

    def test_unknown_session(self) -> None:
        store = SessionStore()
        assert store.add_message("missing", "user", "hi") is None
        assert store.update_status("missing", "ready") is False
        assert store.update_screen("missing", "x") is False
        assert store.set_pty("missing", None) is False

    def test_mutators_touch_last_activity(self) -> None:
        store = SessionStore()
        sid = store.create().session_id
        _age(store, sid, 100)
        store.update_status(sid, "ready")
        session = store.get(sid)
        assert session is not None
        assert datetime.now(UTC) - session.last_activity < timedelta(seconds=5)


class TestScreens:
    def test_current_and_previous(self) -> None:
        store = SessionStore()
        sid = store.create().session_id
        store.update_screen(sid, "one")
        store.update_screen(sid, "two")
        session = store.get(sid)
        assert session is not None
        assert session.previous_screen == "one"
        assert session.current_screen == "two"

    def test_history_is_bounded(self) -> None:
        store = SessionStore(screen_history=3)
        sid = store.create().session_id
        for i in range(10):
            store.update_screen(sid, f"screen {i}")
        session = store.get(sid)
        assert session is not None
        assert list(session.screen_history) == ["screen 7", "screen 8", "screen 9"]


class TestDelete:
    def test_delete_releases_pty(self) -> None:
        pool = MagicMock()
        store = SessionStore(pool)
        sid = store.create().session_id
        handle = _fake_handle()
        store.set_pty(sid, handle)
        assert store.get(sid).process_id == "proc_1"  # type: ignore[union-attr]

        assert store.delete(sid) is True
        pool.release.assert_called_once_with(handle)
        assert store.get(sid) is None

    def test_delete_without_pty(self) -> None:
        pool = MagicMock()
        store = SessionStore(pool)
        sid = store.create().session_id
        assert store.delete(sid) is True
        pool.release.assert_not_called()

    def test_delete_twice(self) -> None:
        store = SessionStore()
        sid = store.create().session_id
        assert store.delete(sid) is True
        assert store.delete(sid) is False

    def test_delete_all(self) -> None:
        pool = MagicMock()
        store = SessionStore(pool)
        for i in range(3):
            sid = store.create().session_id
            store.set_pty(sid, _fake_handle(f"proc_{i}"))
        assert store.delete_all() == 3
        assert len(store) == 0
        assert pool.release.call_count == 3


class TestCleanupExpired:
    def test_only_idle_sessions_removed(self) -> None:
        pool = MagicMock()
        store = SessionStore(pool)
        old = store.create().session_id
        fresh = store.create().session_id
        store.set_pty(old, _fake_handle())
        _age(store, old, 7200)

        assert store.cleanup_expired(3600) == 1
        assert old not in store
        assert fresh in store
        pool.release.assert_called_once()

    def test_nothing_to_remove(self) -> None:
        store = SessionStore()
        store.create()
        assert store.cleanup_expired(3600) == 0


# ===================================================================
# Queries
# ===================================================================


class TestQueries:
    def test_list_summaries(self) -> None:
        store = SessionStore()
        sid = store.create(SessionOptions(model="opus")).session_id
        store.add_message(sid, "user", "hi")
        [summary] = store.list()
        assert summary.session_id == sid
        assert summary.message_count == 1
        assert summary.model == "opus"
        assert summary.has_pty_process is False

    def test_details(self) -> None:
        store = SessionStore()
        sid = store.create().session_id
        store.add_message(sid, "user", "hi")
        store.update_screen(sid, "12345")
        details = store.details(sid)
        assert details is not None
        assert [m.content for m in details.messages] == ["hi"]
        assert details.screen_length == 5
        assert details.process_id is None
        assert store.details("missing") is None

    def test_details_serialize(self) -> None:
        store = SessionStore()
        sid = store.create().session_id
        store.add_message(sid, "user", "hi")
        dumped = store.details(sid).model_dump(mode="json")  # type: ignore[union-attr]
        assert dumped["messages"][0]["role"] == "user"
        assert isinstance(dumped["created_at"], str)

    def test_stats(self) -> None:
        store = SessionStore(MagicMock())
        a = store.create().session_id
        b = store.create().session_id
        store.create()
        store.update_status(a, "ready")
        store.update_status(b, "error")
        store.set_pty(a, _fake_handle())
        store.add_message(a, "user", "x")
        store.add_message(a, "assistant", "y")

        stats = store.stats()
        assert stats.total == 3
        assert stats.ready == 1
        assert stats.error == 1
        assert stats.initializing == 1
        assert stats.processing == 0
        assert stats.with_pty == 1
        assert stats.total_messages == 2


# ===================================================================
# Janitor
# ===================================================================


class TestSessionJanitor:
    async def test_tick_evicts(self) -> None:
        store = SessionStore(MagicMock())
        sid = store.create().session_id
        _age(store, sid, 500)
        janitor = SessionJanitor(store, asyncio.Event(), max_age=60, interval=60)
        await janitor._tick()
        assert janitor.evicted == 1
        assert len(store) == 0

    async def test_loop_runs_and_stops(self) -> None:
        store = SessionStore(MagicMock())
        sid = store.create().session_id
        _age(store, sid, 500)
        janitor = SessionJanitor(store, asyncio.Event(), max_age=60, interval=0.05)

        await janitor.start()
        assert janitor.running
        for _ in range(100):
            if janitor.evicted:
                break
            await asyncio.sleep(0.02)
        await janitor.stop()

        assert janitor.evicted == 1
        assert not janitor.running

    async def test_shutdown_event_ends_loop(self) -> None:
        event = asyncio.Event()
        janitor = SessionJanitor(SessionStore(), event, max_age=60, interval=0.05)
        await janitor.start()
        event.set()
        for _ in range(100):
            if not janitor.running:
                break
            await asyncio.sleep(0.02)
        assert not janitor.running

    async def test_tick_errors_do_not_stop_loop(self) -> None:
        calls: list[float] = []

        def _cleanup(max_age: float) -> int:
            calls.append(max_age)
            if len(calls) == 1:
                raise RuntimeError("boom")
            return 0

        store = MagicMock()
        store.cleanup_expired.side_effect = _cleanup
        store.__len__.return_value = 0
        janitor = SessionJanitor(store, asyncio.Event(), max_age=60, interval=0.02)
        await janitor.start()
        for _ in range(100):
            if store.cleanup_expired.call_count >= 2:
                break
            await asyncio.sleep(0.02)
        await janitor.stop()
        assert store.cleanup_expired.call_count >= 2
