"""Tests for graceful shutdown — ShutdownManager and duration formatting."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from conduit.config.models import ConduitConfig
from conduit.process.pool import PoolStats
from conduit.runtime import Runtime
from conduit.session.janitor import SessionJanitor
from conduit.session.store import SessionStore
from conduit.shutdown import ShutdownManager, _format_duration

# ------------------------------------------------------------------ #
# Helpers
# ------------------------------------------------------------------ #


def _make_runtime(children: int = 0) -> Runtime:
    pool = MagicMock()
    pool.stats.return_value = PoolStats(stdio=0, pty=children, total=children, limit=10)
    pool.shutdown = AsyncMock()
    store = SessionStore(pool)
    event = asyncio.Event()
    return Runtime(
        config=ConduitConfig(),
        pool=pool,
        store=store,
        janitor=SessionJanitor(store, event, max_age=60, interval=3600),
        stdio=MagicMock(),
        pty=MagicMock(),
        shutdown_event=event,
    )


# ================================================================== #
# _format_duration
# ================================================================== #


class TestFormatDuration:
    def test_seconds_under_60(self) -> None:
        assert _format_duration(34.2) == "34.2s"

    def test_seconds_zero(self) -> None:
        assert _format_duration(0.0) == "0.0s"

    def test_seconds_at_60(self) -> None:
        assert _format_duration(60.0) == "1m 00s"

    def test_seconds_over_60(self) -> None:
        assert _format_duration(82.0) == "1m 22s"

    def test_seconds_large(self) -> None:
        assert _format_duration(3661.0) == "61m 01s"


# ================================================================== #
# ShutdownManager steps
# ================================================================== #


class TestShutdownSignal:
    async def test_signal_sets_event_and_stops_janitor(self) -> None:
        runtime = _make_runtime()
        await runtime.janitor.start()
        assert runtime.janitor.running

        await ShutdownManager(runtime)._signal()

        assert runtime.shutdown_event.is_set()
        assert not runtime.janitor.running


class TestShutdownClose:
    async def test_close_deletes_sessions_and_releases(self) -> None:
        runtime = _make_runtime()
        for i in range(2):
            sid = runtime.store.create().session_id
            handle = MagicMock()
            handle.id = f"proc_{i}"
            runtime.store.set_pty(sid, handle)

        closed = ShutdownManager(runtime)._close()

        assert closed == 2
        assert len(runtime.store) == 0
        assert runtime.pool.release.call_count == 2  # type: ignore[attr-defined]

    async def test_close_survives_errors(self) -> None:
        runtime = _make_runtime()
        runtime.store = MagicMock()
        runtime.store.delete_all.side_effect = RuntimeError("boom")
        assert ShutdownManager(runtime)._close() == 0


class TestShutdownKill:
    async def test_kill_shuts_down_pool(self) -> None:
        runtime = _make_runtime()
        await ShutdownManager(runtime)._kill()
        runtime.pool.shutdown.assert_awaited_once()  # type: ignore[attr-defined]

    async def test_kill_survives_errors(self) -> None:
        runtime = _make_runtime()
        runtime.pool.shutdown.side_effect = RuntimeError("boom")  # type: ignore[attr-defined]
        await ShutdownManager(runtime)._kill()


class TestShutdownExecute:
    async def test_full_sequence_runs_once(self) -> None:
        runtime = _make_runtime(children=2)
        runtime.store.create()
        mgr = ShutdownManager(runtime)

        await mgr.execute("test")
        await mgr.execute("again")

        assert runtime.shutdown_event.is_set()
        assert len(runtime.store) == 0
        runtime.pool.shutdown.assert_awaited_once()  # type: ignore[attr-defined]

    async def test_summary_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        runtime = _make_runtime(children=3)
        with caplog.at_level("INFO", logger="conduit.shutdown"):
            await ShutdownManager(runtime).execute("SIGTERM")
        assert "Stopped (SIGTERM)" in caplog.text
        assert "3 child process(es) stopped" in caplog.text
