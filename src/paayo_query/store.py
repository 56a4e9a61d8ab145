"""CacheStore - query entries, the tag index and tag-based invalidation.

All methods are synchronous except the awaited loader call inside a
refresh, so every change to the entry map and the tag index completes
within one turn of the event loop.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from collections.abc import Iterable
from typing import Any

from paayo_query.dedup import RequestDeduplicator
from paayo_query.duration import parse_duration
from paayo_query.errors import RequestError
from paayo_query.subscriptions import Listener, Subscription, SubscriptionManager
from paayo_query.tags import matches
from paayo_query.types import (
    Duration,
    Loader,
    QueryEntry,
    QueryState,
    QueryStatus,
    Tag,
    TagProvider,
)

logger = logging.getLogger(__name__)

_IDLE: QueryState[Any] = QueryState(data=None, status=QueryStatus.IDLE)


def _now_ms() -> int:
    return int(time.time() * 1000)


class CacheStore:
    """In-memory query cache shared by every consumer of one client.

    Create one per application (and one per test); ``aclose()`` tears it
    down.
    """

    def __init__(self, *, gc_time: Duration = "5m") -> None:
        self._default_gc_time = parse_duration(gc_time)
        self._entries: dict[str, QueryEntry[Any]] = {}
        self._tag_index: dict[Tag, set[str]] = {}
        self._refreshes: dict[str, asyncio.Task[None]] = {}
        self._seq = itertools.count(1)
        self._dedup = RequestDeduplicator()
        self._subscriptions = SubscriptionManager(
            self.evict,
            default_gc_time=self._default_gc_time,
            on_count=self._set_subscriber_count,
        )

    @property
    def default_gc_time(self) -> int:
        return self._default_gc_time

    @property
    def subscriptions(self) -> SubscriptionManager:
        return self._subscriptions

    @property
    def dedup(self) -> RequestDeduplicator:
        return self._dedup

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def keys(self) -> list[str]:
        return list(self._entries)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get(self, key: str) -> QueryEntry[Any] | None:
        return self._entries.get(key)

    def state(self, key: str) -> QueryState[Any]:
        entry = self._entries.get(key)
        return entry.snapshot() if entry is not None else _IDLE

    async def wait(self, key: str) -> QueryState[Any]:
        """Wait until ``key`` has no refresh in flight."""
        while (task := self._refreshes.get(key)) is not None:
            await asyncio.shield(task)
        return self.state(key)

    def is_refreshing(self, key: str) -> bool:
        return key in self._refreshes

    def tag_index(self) -> dict[Tag, frozenset[str]]:
        """Copy of the tag index, for inspection."""
        return {tag: frozenset(keys) for tag, keys in self._tag_index.items()}

    def keys_for_tags(self, tags: Iterable[Tag]) -> set[str]:
        """Every cached key that provides a tag reached by ``tags``."""
        found: set[str] = set()
        for tag in tags:
            if tag.id is not None:
                found.update(self._tag_index.get(tag, ()))
                continue
            for provided, keys in self._tag_index.items():
                if matches(tag, provided):
                    found.update(keys)
        return found

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def ensure(
        self,
        key: str,
        *,
        loader: Loader | None = None,
        provides: TagProvider | None = None,
        gc_time: int | None = None,
    ) -> QueryEntry[Any]:
        """Return the entry for ``key``, creating an idle one if needed."""
        entry = self._entries.get(key)
        if entry is None:
            entry = QueryEntry(key=key)
            self._entries[key] = entry
        if loader is not None:
            entry.loader = loader
        if provides is not None:
            entry.provides = provides
        if gc_time is not None:
            entry.gc_time = gc_time
        return entry

    def upsert(self, key: str, data: Any, tags: Iterable[Tag] = ()) -> QueryEntry[Any]:
        """Replace the payload of ``key`` and re-index its tags."""
        entry = self.ensure(key)
        self._write(entry, data, frozenset(tags))
        self._publish(entry)
        return entry

    def set_error(
        self,
        key: str,
        error: BaseException,
        tags: Iterable[Tag] | None = None,
    ) -> QueryEntry[Any]:
        """Record a failure. The last successful payload stays available."""
        entry = self.ensure(key)
        entry.error = error
        entry.status = QueryStatus.ERROR
        if tags is not None:
            self._reindex(entry, frozenset(tags))
        self._publish(entry)
        return entry

    def patch(self, key: str, data: Any) -> None:
        """Publish a speculative payload without touching fetch metadata."""
        entry = self._entries[key]
        entry.data = data
        entry.patched_seq = next(self._seq)
        self._publish(entry)

    def restore(self, key: str, data: Any) -> None:
        """Put back a payload captured before a patch."""
        entry = self._entries.get(key)
        if entry is None:
            return
        entry.data = data
        self._publish(entry)
        if key in self._refreshes:
            # The running fetch may have been overtaken by the patch; make
            # sure another one follows it.
            entry.invalidated_seq = next(self._seq)

    def hold(self, key: str) -> None:
        """Mark ``key`` as carrying an unsettled optimistic patch.

        Fetch results that land while a hold is in place are discarded,
        however late the fetch started.
        """
        entry = self._entries.get(key)
        if entry is not None:
            entry.pending_patches += 1

    def release(self, key: str) -> None:
        """Undo one ``hold``; refetch if results were discarded meanwhile."""
        entry = self._entries.get(key)
        if entry is None or entry.pending_patches == 0:
            return
        entry.pending_patches -= 1
        if (
            entry.pending_patches == 0
            and entry.status is QueryStatus.STALE
            and self._subscriptions.is_hot(key)
        ):
            self.schedule_refresh(key)

    def evict(self, key: str) -> None:
        """Drop ``key`` from the cache unless something still observes it."""
        if self._subscriptions.is_hot(key):
            return
        entry = self._entries.pop(key, None)
        self._subscriptions.forget(key)
        if entry is None:
            return
        self._reindex(entry, frozenset())
        logger.debug("Evicted %s", key)

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def subscribe(
        self,
        key: str,
        listener: Listener | None = None,
        *,
        loader: Loader | None = None,
        provides: TagProvider | None = None,
        gc_time: int | None = None,
    ) -> Subscription:
        """Observe ``key``; fetch unless a fresh entry is already cached."""
        entry = self.ensure(key, loader=loader, provides=provides, gc_time=gc_time)
        sub = self._subscriptions.add(key, self, listener, gc_time=entry.gc_time)
        if entry.is_fresh:
            logger.debug("Cache hit for %s", key)
        elif entry.loader is not None and key not in self._refreshes:
            self.schedule_refresh(key)
        return sub

    def unsubscribe(self, handle: Subscription) -> None:
        handle.unsubscribe()

    def _set_subscriber_count(self, key: str, count: int) -> None:
        entry = self._entries.get(key)
        if entry is not None:
            entry.subscriber_count = count

    # -------------------------------------------------------------------------
    # Invalidation
    # -------------------------------------------------------------------------

    def invalidate_by_tags(self, tags: Iterable[Tag]) -> set[str]:
        """Mark every entry reached by ``tags`` stale.

        Subscribed entries refetch in the background right away; the rest
        refetch on their next subscription. Returns the affected keys.
        """
        tags = list(tags)
        keys = self.keys_for_tags(tags)
        if not keys:
            return keys
        seq = next(self._seq)
        logger.debug("Invalidating %d entries for %s", len(keys), tags)
        for key in sorted(keys):
            entry = self._entries[key]
            entry.invalidated_seq = seq
            if entry.status is not QueryStatus.LOADING:
                entry.status = QueryStatus.STALE
            if self._subscriptions.is_hot(key):
                self.schedule_refresh(key)
        return keys

    # -------------------------------------------------------------------------
    # Fetching
    # -------------------------------------------------------------------------

    def schedule_refresh(self, key: str) -> asyncio.Task[None] | None:
        """Start a background refetch of ``key`` using its loader.

        Returns the running task, or None when the entry has no loader.
        """
        task = self._refreshes.get(key)
        if task is not None:
            return task
        entry = self._entries.get(key)
        if entry is None or entry.loader is None:
            return None
        entry.status = QueryStatus.LOADING
        self._publish(entry)
        task = asyncio.get_running_loop().create_task(self._refresh(entry))
        self._refreshes[key] = task
        task.add_done_callback(_log_refresh_failure)
        return task

    async def refresh(self, key: str) -> QueryState[Any]:
        """Refetch ``key`` now and wait for the result to land."""
        task = self.schedule_refresh(key)
        if task is not None:
            await asyncio.shield(task)
        return self.state(key)

    async def _refresh(self, entry: QueryEntry[Any]) -> None:
        key = entry.key
        started = next(self._seq)
        entry.fetch_seq = started
        loader = entry.loader
        if loader is None:
            self._forget_refresh(key)
            entry.status = QueryStatus.STALE
            self._publish(entry)
            return
        try:
            data = await self._dedup.fetch(key, loader)
        except Exception as exc:
            # Landing may schedule the next refresh, so drop this one first.
            self._forget_refresh(key)
            self._land_error(entry, exc, started)
            if isinstance(exc, RequestError):
                return
            raise
        finally:
            self._forget_refresh(key)
        self._land(entry, data, started)

    def _forget_refresh(self, key: str) -> None:
        if self._refreshes.get(key) is asyncio.current_task():
            del self._refreshes[key]

    def _land(self, entry: QueryEntry[Any], data: Any, started: int) -> None:
        if self._entries.get(entry.key) is not entry:
            logger.debug("Dropping result for evicted %s", entry.key)
            return
        if self._overtaken(entry, started):
            logger.debug("Discarding result overtaken by a patch for %s", entry.key)
            self._mark_overtaken(entry, started)
            return

        tags = entry.provides(data, None) if entry.provides else entry.tags
        self._write(entry, data, frozenset(tags))
        if entry.invalidated_seq > started:
            entry.status = QueryStatus.STALE
            if self._subscriptions.is_hot(entry.key):
                self.schedule_refresh(entry.key)
                return
        self._publish(entry)

    def _land_error(
        self, entry: QueryEntry[Any], error: BaseException, started: int
    ) -> None:
        if self._entries.get(entry.key) is not entry:
            return
        if self._overtaken(entry, started):
            self._mark_overtaken(entry, started)
            return
        logger.debug("Fetch for %s failed: %r", entry.key, error)
        tags = None
        if not entry.tags and entry.provides is not None:
            tags = entry.provides(None, error)
        self.set_error(entry.key, error, tags)

    @staticmethod
    def _overtaken(entry: QueryEntry[Any], started: int) -> bool:
        """True if a patch is unsettled or was applied after ``started``."""
        return entry.pending_patches > 0 or entry.patched_seq > started

    def _mark_overtaken(self, entry: QueryEntry[Any], started: int) -> None:
        # The patched payload stays. While a patch is unsettled, release()
        # refetches; otherwise a commit that invalidated the entry after
        # this fetch began needs another fetch now.
        entry.status = QueryStatus.STALE
        if (
            entry.pending_patches == 0
            and entry.invalidated_seq > started
            and self._subscriptions.is_hot(entry.key)
        ):
            self.schedule_refresh(entry.key)
            return
        self._publish(entry)

    # -------------------------------------------------------------------------
    # Teardown
    # -------------------------------------------------------------------------

    def clear(self) -> None:
        """Drop every entry, subscription, timer and pending refresh."""
        for task in self._refreshes.values():
            task.cancel()
        self._refreshes.clear()
        self._dedup.cancel_all()
        self._subscriptions.close()
        self._entries.clear()
        self._tag_index.clear()

    async def aclose(self) -> None:
        tasks = list(self._refreshes.values())
        self.clear()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    def _write(self, entry: QueryEntry[Any], data: Any, tags: frozenset[Tag]) -> None:
        entry.data = data
        entry.error = None
        entry.status = QueryStatus.SUCCESS
        entry.last_fetched_at = _now_ms()
        self._reindex(entry, tags)

    def _reindex(self, entry: QueryEntry[Any], tags: frozenset[Tag]) -> None:
        for tag in entry.tags - tags:
            keys = self._tag_index.get(tag)
            if keys is None:
                continue
            keys.discard(entry.key)
            if not keys:
                del self._tag_index[tag]
        for tag in tags - entry.tags:
            self._tag_index.setdefault(tag, set()).add(entry.key)
        entry.tags = tags

    def _publish(self, entry: QueryEntry[Any]) -> None:
        self._subscriptions.notify(entry.key, entry.snapshot())


def _log_refresh_failure(task: asyncio.Task[None]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Background refresh failed", exc_info=exc)


__all__ = ["CacheStore"]
