"""Tests for subscription tracking and garbage collection."""

import asyncio

from paayo_query import CacheStore, QueryStatus, Tag, TagKind
from paayo_query.tags import provide_static

REGION = Tag(TagKind.REGION, "kathmandu")


class TestSubscriberCount:
    """Tests for subscriber bookkeeping."""

    async def test_count_follows_subscribe_and_unsubscribe(
        self, store: CacheStore, make_loader
    ) -> None:
        """Test that the subscriber count tracks handles."""
        loader = make_loader(1)
        first = store.subscribe("k", loader=loader)
        second = store.subscribe("k", loader=loader)
        assert store.get("k").subscriber_count == 2

        first.unsubscribe()
        assert store.get("k").subscriber_count == 1
        assert store.subscriptions.is_hot("k")

        store.unsubscribe(second)
        assert store.get("k").subscriber_count == 0
        assert not store.subscriptions.is_hot("k")

    async def test_unsubscribe_is_idempotent(self, store: CacheStore, make_loader) -> None:
        """Test that unsubscribing twice only counts once."""
        a = store.subscribe("k", loader=make_loader(1))
        b = store.subscribe("k")
        a.unsubscribe()
        a.unsubscribe()
        assert store.subscriptions.count("k") == 1
        assert b.active

    async def test_second_subscriber_shares_fetch(
        self, store: CacheStore, make_loader
    ) -> None:
        """Test that a second subscriber joins the running fetch."""
        loader = make_loader(1, gated=True)
        a = store.subscribe("k", loader=loader)
        b = store.subscribe("k", loader=loader)
        await asyncio.sleep(0)
        loader.release()
        await a.ready()
        await b.ready()
        assert loader.calls == 1

    async def test_inactive_subscription_gets_no_updates(
        self, store: CacheStore, make_loader
    ) -> None:
        """Test that listeners stop after unsubscribing."""
        seen = []
        sub = store.subscribe("k", seen.append, loader=make_loader(1))
        await sub.ready()
        sub.unsubscribe()
        store.upsert("k", 2)
        assert [s.data for s in seen] == [None, 1]


class TestGarbageCollection:
    """Tests for TTL eviction of unused entries."""

    async def test_resubscribe_within_gc_time_serves_cache(
        self, store: CacheStore, make_loader
    ) -> None:
        """Test that data survives a short gap with no subscribers."""
        loader = make_loader({"slug": "kathmandu"})
        sub = store.subscribe("k", loader=loader, provides=provide_static(REGION))
        first = await sub.ready()
        sub.unsubscribe()
        assert store.subscriptions.gc_pending("k")

        again = store.subscribe("k", loader=loader)

        assert not store.subscriptions.gc_pending("k")
        assert loader.calls == 1
        assert again.state.status is QueryStatus.SUCCESS
        assert again.state.data is first.data

    async def test_entry_evicted_after_gc_time(self, make_loader) -> None:
        """Test that an unobserved entry is evicted after its GC time."""
        store = CacheStore(gc_time=10)
        try:
            sub = store.subscribe("k", loader=make_loader(1), provides=provide_static(REGION))
            await sub.ready()
            sub.unsubscribe()
            await asyncio.sleep(0.05)

            assert "k" not in store
            assert store.tag_index() == {}
        finally:
            await store.aclose()

    async def test_per_entry_gc_time_overrides_default(
        self, store: CacheStore, make_loader
    ) -> None:
        """Test that an entry's own GC time wins over the default."""
        sub = store.subscribe("short", loader=make_loader(1), gc_time=10)
        await sub.ready()
        sub.unsubscribe()
        await asyncio.sleep(0.05)
        assert "short" not in store

    async def test_resubscribe_cancels_eviction(self, make_loader) -> None:
        """Test that resubscribing keeps the entry alive."""
        store = CacheStore(gc_time=20)
        try:
            loader = make_loader(1)
            sub = store.subscribe("k", loader=loader)
            await sub.ready()
            sub.unsubscribe()
            store.subscribe("k", loader=loader)
            await asyncio.sleep(0.05)

            assert "k" in store
            assert loader.calls == 1
        finally:
            await store.aclose()

    async def test_resubscribe_restarts_gc_clock(self, make_loader) -> None:
        """Test that a resubscribed entry outlives its first eviction deadline."""
        store = CacheStore(gc_time=100)
        try:
            loader = make_loader(1)
            sub = store.subscribe("k", loader=loader)
            await sub.ready()
            sub.unsubscribe()
            await asyncio.sleep(0.03)
            assert "k" in store

            again = store.subscribe("k", loader=loader)
            await asyncio.sleep(0.15)

            assert "k" in store
            assert again.state.status is QueryStatus.SUCCESS
            assert loader.calls == 1

            again.unsubscribe()
            await asyncio.sleep(0.15)
            assert "k" not in store
        finally:
            await store.aclose()

    async def test_evict_skips_hot_keys(self, store: CacheStore, make_loader) -> None:
        """Test that observed entries cannot be evicted."""
        sub = store.subscribe("k", loader=make_loader(1))
        await sub.ready()
        store.evict("k")
        assert "k" in store

    async def test_evicted_entry_refetches(self, make_loader) -> None:
        """Test that an evicted entry is fetched again on subscribe."""
        store = CacheStore(gc_time=0)
        try:
            loader = make_loader(1)
            sub = store.subscribe("k", loader=loader)
            await sub.ready()
            sub.unsubscribe()
            await asyncio.sleep(0.01)

            sub = store.subscribe("k", loader=loader)
            await sub.ready()
            assert loader.calls == 2
        finally:
            await store.aclose()
