"""PtyAdapter — interactive CLI sessions driven through a pseudo-terminal.

A session owns one pty child.  User input is pasted into the TUI with
bracketed-paste framing; replies are recovered by rendering the terminal
output into screen snapshots and diffing successive analyses until the
screen settles back at the input prompt.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Callable
from typing import Any

from pydantic import ValidationError

from conduit.adapters.events import (
    AgentEvent,
    content_event,
    done_event,
    session_event,
    tool_call_event,
    warning_event,
)
from conduit.adapters.helpers import preview
from conduit.adapters.prompt import paste_frames, pty_args
from conduit.config.models import AgentConfig, PTYConfig
from conduit.errors import (
    AdapterError,
    ConduitError,
    InvalidInputError,
    PromptTimeoutError,
    SessionNotFoundError,
)
from conduit.parser.screen import (
    ToolCall,
    analyze,
    diff,
    has_prompt,
    is_stable,
    turn_region,
)
from conduit.parser.terminal import TerminalScreen
from conduit.process.pool import ProcessPool
from conduit.session.models import Session, SessionDetails, SessionOptions, SessionSummary
from conduit.session.store import SessionStore

logger = logging.getLogger(__name__)


class PtyAdapter:
    """Entry point for agent-mode conversations.

    The adapter never keeps a session between calls; it looks the session
    up in the store for every operation and serializes work on one session
    through the session's lock.
    """

    def __init__(
        self,
        pool: ProcessPool,
        store: SessionStore,
        config: AgentConfig | None = None,
        pty_config: PTYConfig | None = None,
    ) -> None:
        self._pool = pool
        self._store = store
        self._config = config or AgentConfig()
        self._pty = pty_config or PTYConfig()

    # ------------------------------------------------------------------ #
    # Session establishment
    # ------------------------------------------------------------------ #

    async def get_or_create_session(
        self,
        session_id: str | None = None,
        options: SessionOptions | dict[str, Any] | None = None,
    ) -> Session:
        """Return the live session *session_id* or start a new one.

        A new session blocks until the CLI shows its input prompt.
        """
        if session_id:
            existing = self._store.get(session_id)
            if existing is not None:
                return existing
            logger.info("Session %s not found, starting a new one", session_id)

        session = self._store.create(self._coerce_options(options))
        session.terminal = TerminalScreen(self._pty.columns, self._pty.rows)
        opts = session.options
        try:
            handle = await self._pool.acquire_pty(
                pty_args(opts.model, opts.allowed_tools),
                cwd=opts.working_directory,
                columns=self._pty.columns,
                rows=self._pty.rows,
                term=self._pty.term,
            )
        except ConduitError:
            self._store.update_status(session.session_id, "error")
            raise
        self._store.set_pty(session.session_id, handle)
        await self._wait_for_prompt(session)
        return session

    async def _wait_for_prompt(self, session: Session) -> None:
        handle = session.pty
        if handle is None:
            msg = f"Session {session.session_id} has no Claude CLI process"
            raise AdapterError(msg, session_id=session.session_id)
        loop = asyncio.get_running_loop()
        started = last_log = loop.time()
        timeout = self._config.prompt_timeout

        with handle.listening(self._screen_listener(session)):
            while True:
                if analyze(session.current_screen).has_prompt:
                    self._store.update_status(session.session_id, "ready")
                    logger.info(
                        "Session %s ready after %.1fs",
                        session.session_id,
                        loop.time() - started,
                    )
                    return
                if not handle.alive:
                    self._abandon(session)
                    msg = "Claude CLI exited before showing its prompt"
                    raise AdapterError(
                        msg,
                        session_id=session.session_id,
                        exit_code=handle.returncode,
                        screen=preview(session.current_screen),
                    )
                now = loop.time()
                if now - started >= timeout:
                    break
                if now - last_log >= self._config.prompt_log_interval:
                    last_log = now
                    logger.info(
                        "Session %s still waiting for prompt (%.0fs): %s",
                        session.session_id,
                        now - started,
                        preview(session.current_screen),
                    )
                await asyncio.sleep(self._config.stream_check_interval)

        logger.error(
            "Session %s: no prompt after %.0fs, last screen: %s",
            session.session_id,
            timeout,
            preview(session.current_screen),
        )
        self._abandon(session)
        msg = f"Timed out after {timeout:.0f}s waiting for the Claude CLI prompt"
        raise PromptTimeoutError(
            msg,
            session_id=session.session_id,
            screen=preview(session.current_screen),
        )

    # ------------------------------------------------------------------ #
    # Turns
    # ------------------------------------------------------------------ #

    async def send(self, session_id: str, content: str) -> None:
        """Paste *content* into the session's terminal and submit it."""
        session = self._require(session_id)
        async with session.lock:
            await self._send_locked(session, content)

    async def stream(self, session_id: str) -> AsyncIterator[AgentEvent]:
        """Events for the reply to the last message sent."""
        session = self._require(session_id)
        async with session.lock:
            async with contextlib.aclosing(self._stream_locked(session)) as events:
                async for event in events:
                    yield event

    async def chat(self, session_id: str, content: str) -> AsyncIterator[AgentEvent]:
        """``send`` followed by ``stream`` without releasing the session."""
        session = self._require(session_id)
        async with session.lock:
            await self._send_locked(session, content)
            async with contextlib.aclosing(self._stream_locked(session)) as events:
                async for event in events:
                    yield event

    async def _send_locked(self, session: Session, content: str) -> None:
        if not content:
            msg = "Message content cannot be empty"
            raise InvalidInputError(msg)
        handle = session.pty
        if handle is None:
            msg = f"Session {session.session_id} has no Claude CLI process"
            raise AdapterError(msg, session_id=session.session_id)
        if session.status not in ("ready", "processing"):
            msg = f"Session {session.session_id} is {session.status}"
            raise AdapterError(msg, session_id=session.session_id, status=session.status)

        try:
            for frame in paste_frames(content):
                await handle.write(frame)
        except OSError as exc:
            self._store.update_status(session.session_id, "error")
            msg = f"Cannot write to Claude CLI terminal: {exc}"
            raise AdapterError(msg, session_id=session.session_id) from exc

        self._store.add_message(session.session_id, "user", content)
        self._store.update_status(session.session_id, "processing")
        logger.debug("Session %s: sent %s", session.session_id, preview(content, 80))

    async def _stream_locked(self, session: Session) -> AsyncIterator[AgentEvent]:
        handle = session.pty
        if handle is None:
            msg = f"Session {session.session_id} has no Claude CLI process"
            raise AdapterError(msg, session_id=session.session_id)

        cfg = self._config
        sid = session.session_id
        echoed = session.last_user_message
        baseline = session.current_screen
        emitted = ""
        emitted_tools: set[ToolCall] = set()
        reply: list[str] = []

        previous = baseline
        stable_ticks = 0
        changed = False
        loop = asyncio.get_running_loop()
        started = loop.time()

        yield session_event(sid)
        try:
            with handle.listening(self._screen_listener(session)):
                while True:
                    await asyncio.sleep(cfg.stream_check_interval)

                    if loop.time() - started > cfg.stream_timeout:
                        logger.warning(
                            "Session %s: reply did not settle within %.0fs",
                            sid,
                            cfg.stream_timeout,
                        )
                        self._finish_turn(session, reply)
                        yield warning_event(
                            f"Response did not stabilize within {cfg.stream_timeout:.0f}s"
                        )
                        yield done_event()
                        return

                    if not handle.alive:
                        msg = "Claude CLI process exited during the reply"
                        raise AdapterError(msg, exit_code=handle.returncode)

                    screen = session.current_screen
                    analysis = analyze(turn_region(screen, echoed, baseline), echoed)

                    for call in analysis.tool_calls:
                        if call not in emitted_tools:
                            emitted_tools.add(call)
                            yield tool_call_event(call.tool, call.input)

                    delta = diff(emitted, analysis.content)
                    if delta.strip():
                        emitted = f"{emitted}\n{delta}" if emitted else delta
                        reply.append(delta)
                        yield content_event(delta)

                    if screen != baseline:
                        changed = True
                    if is_stable(previous, screen, cfg.stability_threshold):
                        stable_ticks += 1
                    else:
                        stable_ticks = 0
                    previous = screen

                    if changed and has_prompt(screen) and stable_ticks >= cfg.stable_count:
                        self._finish_turn(session, reply)
                        yield done_event()
                        return
        except (GeneratorExit, asyncio.CancelledError):
            logger.info("Session %s: stream closed by consumer", sid)
            raise
        except ConduitError:
            self._store.update_status(sid, "error")
            raise
        except Exception as exc:
            logger.exception("Session %s: stream failed", sid)
            self._store.update_status(sid, "error")
            msg = f"Agent stream failed: {exc}"
            raise AdapterError(msg, session_id=sid) from exc

    def _finish_turn(self, session: Session, reply: list[str]) -> None:
        content = "\n".join(reply).strip()
        if content:
            self._store.add_message(session.session_id, "assistant", content)
        self._store.update_status(session.session_id, "ready")

    # ------------------------------------------------------------------ #
    # Session management
    # ------------------------------------------------------------------ #

    def list_sessions(self) -> list[SessionSummary]:
        return self._store.list()

    def get_session(self, session_id: str) -> SessionDetails | None:
        return self._store.details(session_id)

    def delete_session(self, session_id: str) -> bool:
        return self._store.delete(session_id)

    def resize(self, session_id: str, columns: int, rows: int) -> None:
        """Change the terminal size seen by the CLI and by the emulator."""
        if columns < 20 or rows < 5:
            msg = f"Terminal size {columns}x{rows} is below the 20x5 minimum"
            raise InvalidInputError(msg, columns=columns, rows=rows)
        session = self._require(session_id)
        if session.pty is None:
            msg = f"Session {session_id} has no Claude CLI process"
            raise AdapterError(msg, session_id=session_id)
        session.pty.resize(columns, rows)
        if session.terminal is None:
            session.terminal = TerminalScreen(columns, rows)
        else:
            session.terminal.resize(columns, rows)
        self._store.update_screen(session_id, session.terminal.snapshot())
        logger.debug("Session %s resized to %dx%d", session_id, columns, rows)

    def health(self) -> dict[str, Any]:
        pool = self._pool.health()
        return {
            "healthy": pool.healthy,
            "processes": pool.stats.model_dump(),
            "zombies": pool.zombies,
            "sessions": self._store.stats().model_dump(),
        }

    # ------------------------------------------------------------------ #
    # Internal
    # ------------------------------------------------------------------ #

    def _require(self, session_id: str) -> Session:
        session = self._store.get(session_id)
        if session is None:
            msg = f"Session {session_id} not found"
            raise SessionNotFoundError(msg, session_id=session_id)
        return session

    def _screen_listener(self, session: Session) -> Callable[[bytes], None]:
        terminal = session.terminal
        if terminal is None:
            terminal = session.terminal = TerminalScreen(self._pty.columns, self._pty.rows)

        def _on_output(data: bytes) -> None:
            terminal.feed(data)
            self._store.update_screen(session.session_id, terminal.snapshot())

        return _on_output

    def _abandon(self, session: Session) -> None:
        """Release the session's child and park the session in ``error``."""
        if session.pty is not None:
            self._pool.release(session.pty)
        self._store.set_pty(session.session_id, None)
        self._store.update_status(session.session_id, "error")

    @staticmethod
    def _coerce_options(options: SessionOptions | dict[str, Any] | None) -> SessionOptions:
        if options is None:
            return SessionOptions()
        if isinstance(options, SessionOptions):
            return options
        try:
            return SessionOptions.model_validate(options)
        except ValidationError as exc:
            msg = f"Invalid session options: {exc.error_count()} error(s)"
            raise InvalidInputError(msg, errors=[e["msg"] for e in exc.errors()]) from exc
