"""Subscription tracking and garbage collection of unused entries."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any, Protocol

from paayo_query.types import QueryState

logger = logging.getLogger(__name__)

Listener = Callable[[QueryState[Any]], None]


class StateSource(Protocol):
    """What a Subscription reads its state from (the CacheStore)."""

    def state(self, key: str) -> QueryState[Any]: ...

    async def wait(self, key: str) -> QueryState[Any]: ...


class Subscription:
    """Handle for one observer of one query key."""

    __slots__ = ("_manager", "_source", "active", "key", "listener")

    def __init__(
        self,
        key: str,
        listener: Listener | None,
        manager: SubscriptionManager,
        source: StateSource,
    ) -> None:
        self.key = key
        self.listener = listener
        self.active = True
        self._manager = manager
        self._source = source

    @property
    def state(self) -> QueryState[Any]:
        """Current published state for this subscription's key."""
        return self._source.state(self.key)

    async def ready(self) -> QueryState[Any]:
        """Wait for any in-flight fetch of this key, then return the state."""
        return await self._source.wait(self.key)

    def unsubscribe(self) -> None:
        """Stop observing. Safe to call more than once."""
        self._manager.remove(self)

    def __repr__(self) -> str:
        return f"Subscription({self.key!r}, active={self.active})"


class SubscriptionManager:
    """Tracks active observers per key and runs GC timers for cold keys.

    A key is hot while it has at least one subscriber. When the last
    subscriber leaves, a timer of ``gc_time`` ms starts; resubscribing
    before it fires cancels it, otherwise ``on_expire(key)`` is called.
    """

    def __init__(
        self,
        on_expire: Callable[[str], None],
        *,
        default_gc_time: int,
        on_count: Callable[[str, int], None] | None = None,
    ) -> None:
        self._on_expire = on_expire
        self._on_count = on_count
        self._default_gc_time = default_gc_time
        self._subscribers: dict[str, list[Subscription]] = {}
        self._gc_times: dict[str, int] = {}
        self._timers: dict[str, asyncio.TimerHandle] = {}

    def add(
        self,
        key: str,
        source: StateSource,
        listener: Listener | None = None,
        *,
        gc_time: int | None = None,
    ) -> Subscription:
        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()
            logger.debug("Cancelled GC for %s", key)
        if gc_time is not None:
            self._gc_times[key] = gc_time
        sub = Subscription(key, listener, self, source)
        self._subscribers.setdefault(key, []).append(sub)
        self._count_changed(key)
        return sub

    def remove(self, sub: Subscription) -> int:
        """Drop ``sub`` and return how many subscribers remain for its key."""
        if not sub.active:
            return self.count(sub.key)
        sub.active = False
        subs = self._subscribers.get(sub.key, [])
        if sub in subs:
            subs.remove(sub)
        self._count_changed(sub.key)
        if subs:
            return len(subs)
        self._subscribers.pop(sub.key, None)
        self._schedule_gc(sub.key)
        return 0

    def count(self, key: str) -> int:
        return len(self._subscribers.get(key, ()))

    def is_hot(self, key: str) -> bool:
        return self.count(key) > 0

    def hot_keys(self) -> list[str]:
        return list(self._subscribers)

    def gc_pending(self, key: str) -> bool:
        return key in self._timers

    def notify(self, key: str, state: QueryState[Any]) -> None:
        """Deliver ``state`` to every active listener of ``key``."""
        for sub in list(self._subscribers.get(key, ())):
            if not sub.active or sub.listener is None:
                continue
            try:
                sub.listener(state)
            except Exception:
                logger.exception("Subscriber for %s raised", key)

    def forget(self, key: str) -> None:
        """Deactivate all subscribers of ``key`` and drop its timer."""
        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()
        for sub in self._subscribers.pop(key, []):
            sub.active = False
        self._gc_times.pop(key, None)

    def close(self) -> None:
        for key in list(self._timers) + list(self._subscribers):
            self.forget(key)

    def _count_changed(self, key: str) -> None:
        if self._on_count is not None:
            self._on_count(key, self.count(key))

    def _schedule_gc(self, key: str) -> None:
        gc_time = self._gc_times.get(key, self._default_gc_time)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._expire(key)
            return
        logger.debug("Scheduling GC for %s in %dms", key, gc_time)
        self._timers[key] = loop.call_later(gc_time / 1000, self._expire, key)

    def _expire(self, key: str) -> None:
        self._timers.pop(key, None)
        if self.is_hot(key):
            return
        self._gc_times.pop(key, None)
        self._on_expire(key)


__all__ = ["Listener", "Subscription", "SubscriptionManager"]
