"""Request deduplication (stampede protection)."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar, cast

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RequestDeduplicator:
    """Collapses concurrent fetches for the same key into one loader call.

    The shared request runs as its own task, so cancelling one waiter does
    not cancel the request for the others. The in-flight record is cleared
    before the result is delivered: a call made after settlement always
    issues a fresh request.
    """

    def __init__(self) -> None:
        self._in_flight: dict[str, asyncio.Task[Any]] = {}

    def in_flight(self, key: str) -> bool:
        return key in self._in_flight

    def __len__(self) -> int:
        return len(self._in_flight)

    async def fetch(self, key: str, loader: Callable[[], Awaitable[T]]) -> T:
        """Run ``loader`` for ``key`` unless a call for ``key`` is already running."""
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._run(key, loader))
            task.add_done_callback(_consume_exception)
            self._in_flight[key] = task
        else:
            logger.debug("Joining in-flight request for %s", key)
        return cast(T, await asyncio.shield(task))

    async def _run(self, key: str, loader: Callable[[], Awaitable[T]]) -> T:
        try:
            return await loader()
        finally:
            self._in_flight.pop(key, None)

    def cancel_all(self) -> None:
        """Cancel every in-flight request (teardown only)."""
        for task in list(self._in_flight.values()):
            task.cancel()
        self._in_flight.clear()


def _consume_exception(task: asyncio.Task[Any]) -> None:
    # Every waiter may have gone away; mark the outcome as retrieved.
    if not task.cancelled():
        task.exception()


__all__ = ["RequestDeduplicator"]
