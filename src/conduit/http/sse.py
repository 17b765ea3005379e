"""Server-sent-events framing and keep-alive."""

from __future__ import annotations

import asyncio
import contextlib
import json
from collections.abc import AsyncIterator
from typing import Any, TypeVar

T = TypeVar("T")

#: Comment frame sent when a stream has been idle for a heartbeat interval.
HEARTBEAT_FRAME = ": heartbeat\n\n"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class Heartbeat:
    """Marker yielded by :func:`with_heartbeat` in place of a real item."""


HEARTBEAT = Heartbeat()


def data_frame(payload: dict[str, Any] | str) -> str:
    """``data:`` frame; strings are sent verbatim (e.g. ``[DONE]``)."""
    body = payload if isinstance(payload, str) else json.dumps(payload)
    return f"data: {body}\n\n"


async def with_heartbeat(
    items: AsyncIterator[T],
    interval: float,
) -> AsyncIterator[T | Heartbeat]:
    """Re-yield *items*, inserting :data:`HEARTBEAT` after each idle *interval*."""
    iterator = aiter(items)
    pending: asyncio.Future[T] | None = None
    try:
        while True:
            if pending is None:
                pending = asyncio.ensure_future(anext(iterator))
            done, _ = await asyncio.wait({pending}, timeout=interval)
            if not done:
                yield HEARTBEAT
                continue
            future, pending = pending, None
            try:
                item = future.result()
            except StopAsyncIteration:
                return
            yield item
    finally:
        if pending is not None and not pending.done():
            pending.cancel()
            with contextlib.suppress(asyncio.CancelledError, StopAsyncIteration):
                await pending
        aclose = getattr(iterator, "aclose", None)
        if aclose is not None:
            await aclose()
