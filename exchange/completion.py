"""
Callback adapter for the client's awaitable operations.

Operations produce one awaitable of (response, data). Awaiting callers get
`data`; callers that pass `callback=` get callback(None, response, data) or
callback(error), exactly once, from a task on the running loop.
"""

from __future__ import annotations
import asyncio
from typing import Any, Awaitable, Callable, Optional, Set, Tuple
import logging

from exchange.models import TransportResponse

logger = logging.getLogger(__name__)

Completion = Callable[..., Any]
ResultPair = Tuple[Optional[TransportResponse], Any]


async def data_only(pair: Awaitable[ResultPair]) -> Any:
    _, data = await pair
    return data


def _observe(task: "asyncio.Task[None]") -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("[CLIENT] Completion callback raised", exc_info=exc)


def deliver(
    pair: Awaitable[ResultPair],
    callback: Completion,
    pending: Set["asyncio.Task[None]"],
) -> "asyncio.Task[None]":
    """Run `pair` in the background and report its outcome to `callback`."""

    async def _run() -> None:
        try:
            response, data = await pair
        except Exception as e:
            callback(e)
            return
        callback(None, response, data)

    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        if asyncio.iscoroutine(pair):
            pair.close()
        raise

    task = loop.create_task(_run())
    pending.add(task)
    task.add_done_callback(pending.discard)
    task.add_done_callback(_observe)
    return task
