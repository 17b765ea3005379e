"""Runtime — the per-instance object graph built from configuration."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from conduit.adapters.pty import PtyAdapter
from conduit.adapters.stdio import StdioAdapter
from conduit.config.models import ConduitConfig
from conduit.process.pool import ProcessPool
from conduit.session.janitor import SessionJanitor
from conduit.session.store import SessionStore


@dataclass
class Runtime:
    """Pool, store, janitor and adapters for one server instance."""

    config: ConduitConfig
    pool: ProcessPool
    store: SessionStore
    janitor: SessionJanitor
    stdio: StdioAdapter
    pty: PtyAdapter
    shutdown_event: asyncio.Event = field(default_factory=asyncio.Event)

    @classmethod
    def from_config(cls, config: ConduitConfig) -> Runtime:
        shutdown_event = asyncio.Event()
        pool = ProcessPool(config.cli.binary, config.pool, config.pty)
        store = SessionStore(pool, screen_history=config.session.screen_history)
        janitor = SessionJanitor(
            store,
            shutdown_event,
            max_age=config.session.max_age,
            interval=config.session.cleanup_interval,
        )
        return cls(
            config=config,
            pool=pool,
            store=store,
            janitor=janitor,
            stdio=StdioAdapter(pool, default_model=config.cli.default_model),
            pty=PtyAdapter(pool, store, config.agent, config.pty),
            shutdown_event=shutdown_event,
        )
