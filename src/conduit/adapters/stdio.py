"""StdioAdapter — one non-interactive CLI run per chat completion request."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import AsyncIterator
from typing import Any

from pydantic import ValidationError

from conduit.adapters.helpers import format_stderr_preview
from conduit.adapters.openai import (
    STREAM_DONE,
    ChatCompletion,
    ChatCompletionRequest,
    Choice,
    ChunkBuilder,
    ResponseMessage,
    Usage,
    completion_id,
    response_model_name,
)
from conduit.adapters.prompt import format_prompt, stdio_args, validate_messages
from conduit.errors import AdapterError, ConduitError, InvalidInputError, ParseFailedError
from conduit.parser.events import (
    apply_stop,
    estimate_tokens,
    event_text,
    extract_content,
    max_chars,
    parse_output,
    result_error,
    truncate,
)
from conduit.process.handle import StdioHandle
from conduit.process.pool import ProcessPool

logger = logging.getLogger(__name__)

#: Raw output kept in parse-failure diagnostics.
_RAW_PREVIEW_CHARS = 500

#: Parsed events kept in parse-failure diagnostics.
_EVENT_PREVIEW_COUNT = 5

StreamItem = dict[str, Any] | str


class StdioAdapter:
    """Turns chat completion requests into ``claude -p`` runs.

    :meth:`process` returns a :class:`ChatCompletion` for plain requests and
    an async iterator of chunk dicts ending in :data:`STREAM_DONE` for
    streaming ones.  Each run owns its process handle and releases it on
    every exit path.
    """

    def __init__(self, pool: ProcessPool, default_model: str = "sonnet") -> None:
        self._pool = pool
        self._default_model = default_model

    async def process(
        self, request: ChatCompletionRequest | dict[str, Any]
    ) -> ChatCompletion | AsyncIterator[StreamItem]:
        req = self._coerce(request)
        validate_messages(req.messages)

        unsupported = req.unsupported_params()
        if unsupported:
            logger.warning(
                "Ignoring unsupported parameters: %s", ", ".join(unsupported)
            )

        system_prompt, prompt = format_prompt(req.messages)
        model = req.model or self._default_model

        if req.stream:
            return self._stream(req, model, prompt, system_prompt)
        try:
            return await self._complete(req, model, prompt, system_prompt)
        except ConduitError:
            raise
        except Exception as exc:
            logger.exception("Completion failed")
            msg = f"Claude CLI run failed: {exc}"
            raise AdapterError(msg) from exc

    def health(self) -> dict[str, Any]:
        stats = self._pool.stats()
        return {"healthy": stats.total < stats.limit, **stats.model_dump()}

    # ------------------------------------------------------------------ #
    # Non-streaming
    # ------------------------------------------------------------------ #

    async def _complete(
        self,
        req: ChatCompletionRequest,
        model: str,
        prompt: str,
        system_prompt: str | None,
    ) -> ChatCompletion:
        args = stdio_args(model, stream=False, system_prompt=system_prompt)
        async with self._pool.stdio(args) as handle:
            await self._send_prompt(handle, prompt)
            stdout, stderr = await handle.read_output()
            exit_code = await handle.wait()

        if exit_code != 0:
            stderr_text = stderr.decode("utf-8", errors="replace")
            logger.error(
                "%s exited with %d\n  %s",
                handle.id,
                exit_code,
                format_stderr_preview(stderr_text),
            )
            msg = f"Claude CLI exited with code {exit_code}"
            raise AdapterError(
                msg,
                process_id=handle.id,
                exit_code=exit_code,
                stderr=stderr_text[:_RAW_PREVIEW_CHARS],
            )

        events = parse_output(stdout)
        content = extract_content(events)
        if content is None:
            failure = result_error(events)
            if failure is not None:
                msg = f"Claude CLI reported an error: {failure}"
                raise AdapterError(msg, process_id=handle.id)
            logger.error(
                "%s: no content in %d event(s): %s",
                handle.id,
                len(events),
                stdout[:200],
            )
            msg = "Could not extract content from Claude CLI output"
            raise ParseFailedError(
                msg,
                raw=stdout[:_RAW_PREVIEW_CHARS].decode("utf-8", errors="replace"),
                events=events[:_EVENT_PREVIEW_COUNT],
            )

        content = truncate(content, req.max_tokens)
        content, _ = apply_stop(content, req.stop)
        usage = estimate_tokens(prompt, content)

        return ChatCompletion(
            id=completion_id(),
            created=int(time.time()),
            model=response_model_name(model),
            choices=[Choice(message=ResponseMessage(content=content))],
            usage=Usage(**usage),
        )

    # ------------------------------------------------------------------ #
    # Streaming
    # ------------------------------------------------------------------ #

    async def _stream(
        self,
        req: ChatCompletionRequest,
        model: str,
        prompt: str,
        system_prompt: str | None,
    ) -> AsyncIterator[StreamItem]:
        builder = ChunkBuilder(model)
        args = stdio_args(model, stream=True, system_prompt=system_prompt)
        handle = await self._pool.acquire_stdio(args)
        stderr_task: asyncio.Task[bytes] | None = None
        try:
            await self._send_prompt(handle, prompt)
            stderr_task = asyncio.create_task(handle.read_stderr())
            yield builder.opener()

            reply = ""
            held = ""
            limit = max_chars(req.max_tokens)
            stopped = False
            async with contextlib.aclosing(handle.lines()) as lines:
                async for line in lines:
                    for event in parse_output(line):
                        content = event_text(event)
                        if not content:
                            continue

                        # Emitted text matches the stripped non-streaming reply:
                        # leading whitespace is dropped, trailing whitespace is
                        # held until more text follows it.
                        if not reply:
                            content = content.lstrip()
                        body = content.rstrip()
                        if not body:
                            held += content
                            continue
                        content, held = held + body, content[len(body) :]

                        if limit is not None and len(reply) + len(content) > limit:
                            content = content[: max(0, limit - len(reply))]
                            stopped = True

                        cut = _find_stop(reply + content, len(reply), req.stop)
                        if cut is not None:
                            content = (reply + content)[len(reply) : cut]
                            stopped = True

                        reply += content
                        if content:
                            yield builder.content(content)
                        if stopped:
                            break
                    if stopped:
                        break

            if stopped:
                logger.debug("%s: output limit reached, stopping child", handle.id)
                self._pool.release(handle)
            else:
                exit_code = await handle.wait()
                if exit_code != 0:
                    stderr_text = (await stderr_task).decode("utf-8", errors="replace")
                    logger.error(
                        "%s exited with %d\n  %s",
                        handle.id,
                        exit_code,
                        format_stderr_preview(stderr_text),
                    )
                    yield builder.error(f"Claude CLI exited with code {exit_code}")
                    yield STREAM_DONE
                    return

            yield builder.finish("stop")
            yield builder.usage(estimate_tokens(prompt, reply))
            yield STREAM_DONE
        except ConduitError:
            raise
        except Exception as exc:
            logger.exception("%s: stream failed", handle.id)
            msg = f"Claude CLI stream failed: {exc}"
            raise AdapterError(msg, process_id=handle.id) from exc
        finally:
            self._pool.release(handle)
            if stderr_task is not None and not stderr_task.done():
                stderr_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await stderr_task

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    @staticmethod
    def _coerce(request: ChatCompletionRequest | dict[str, Any]) -> ChatCompletionRequest:
        if isinstance(request, ChatCompletionRequest):
            return request
        try:
            return ChatCompletionRequest.model_validate(request)
        except ValidationError as exc:
            errors = [
                f"{'.'.join(str(s) for s in err['loc'])}: {err['msg']}"
                for err in exc.errors()
            ]
            msg = "Invalid request: " + "; ".join(errors)
            raise InvalidInputError(msg, errors=errors) from exc

    @staticmethod
    async def _send_prompt(handle: StdioHandle, prompt: str) -> None:
        try:
            await handle.write(prompt.encode("utf-8"))
            handle.close_input()
        except (BrokenPipeError, ConnectionResetError, OSError) as exc:
            msg = f"Cannot write prompt to Claude CLI: {exc}"
            raise AdapterError(msg, process_id=handle.id) from exc


def _find_stop(text: str, previous_length: int, stop: list[str]) -> int | None:
    """End offset of the earliest stop sequence completed after *previous_length*."""
    best: tuple[int, int] | None = None
    for seq in stop:
        if not seq:
            continue
        index = text.find(seq, max(0, previous_length - len(seq) + 1))
        if index == -1:
            continue
        if best is None or index < best[0]:
            best = (index, index + len(seq))
    return best[1] if best is not None else None
