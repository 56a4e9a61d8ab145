"""Tests for optimistic mutations and rollback."""

import asyncio
from typing import Any

import pytest

from paayo_query import (
    CacheStore,
    HttpError,
    MutationDescriptor,
    NetworkError,
    OptimisticPatchEngine,
    OptimisticUpdate,
    QueryStatus,
    Tag,
    TagKind,
)
from paayo_query.api import engagement
from paayo_query.tags import provide_static

TARGET = {"target_type": "post", "target_id": "42"}
LIKE_KEY = engagement.get_like_status.key(TARGET)
LIKE_TAG = Tag(TagKind.LIKE_STATUS, "post-42")


def rename(name: str):
    def recipe(draft: dict) -> None:
        draft["name"] = name

    return recipe


async def failing_mutator(descriptor: MutationDescriptor) -> Any:
    raise HttpError(500, {"error": "boom"}, "boom")


class TestRollback:
    """Tests for restoring the pre-patch payload."""

    async def test_rejection_restores_exact_object(
        self, store: CacheStore, engine: OptimisticPatchEngine
    ) -> None:
        """Test that a rejected mutation puts back the very same object."""
        original = {"slug": "kathmandu", "name": "Kathmandu"}
        store.upsert("region", original)
        descriptor = MutationDescriptor(
            endpoint="/regions/kathmandu",
            method="PUT",
            optimistic=(OptimisticUpdate("region", rename("Kathmandu Valley")),),
        )

        with pytest.raises(HttpError):
            await engine.mutate(descriptor, failing_mutator)

        assert store.get("region").data is original
        assert original == {"slug": "kathmandu", "name": "Kathmandu"}
        assert engine.pending("region") is None

    async def test_patch_is_published_before_mutator_settles(
        self, store: CacheStore, engine: OptimisticPatchEngine
    ) -> None:
        """Test that the patch is visible while the request is in flight."""
        store.upsert("region", {"name": "Kathmandu"})
        seen: list[Any] = []

        async def mutator(descriptor: MutationDescriptor) -> None:
            seen.append(store.get("region").data["name"])
            raise NetworkError("offline")

        descriptor = MutationDescriptor(
            endpoint="/regions/kathmandu",
            optimistic=(OptimisticUpdate("region", rename("Kathmandu Valley")),),
        )
        with pytest.raises(NetworkError):
            await engine.mutate(descriptor, mutator)

        assert seen == ["Kathmandu Valley"]
        assert store.get("region").data["name"] == "Kathmandu"

    async def test_cancellation_rolls_back(
        self, store: CacheStore, engine: OptimisticPatchEngine
    ) -> None:
        """Test that cancelling a mutation rolls back its patch."""
        original = {"name": "Kathmandu"}
        store.upsert("region", original)
        started = asyncio.Event()

        async def hanging(descriptor: MutationDescriptor) -> None:
            started.set()
            await asyncio.Event().wait()

        descriptor = MutationDescriptor(
            endpoint="/regions/kathmandu",
            optimistic=(OptimisticUpdate("region", rename("Kathmandu Valley")),),
        )
        task = asyncio.create_task(engine.mutate(descriptor, hanging))
        await started.wait()
        assert store.get("region").data["name"] == "Kathmandu Valley"

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert store.get("region").data is original

    async def test_recipe_error_rolls_back_earlier_patches(
        self, store: CacheStore, engine: OptimisticPatchEngine
    ) -> None:
        """Test that a failing recipe undoes the patches applied before it."""
        a, b = {"n": 1}, {"n": 2}
        store.upsert("a", a)
        store.upsert("b", b)

        def broken(draft: dict) -> None:
            raise KeyError("missing")

        descriptor = MutationDescriptor(
            endpoint="/x",
            optimistic=(
                OptimisticUpdate("a", rename("patched")),
                OptimisticUpdate("b", broken),
            ),
        )
        calls = 0

        async def mutator(descriptor: MutationDescriptor) -> None:
            nonlocal calls
            calls += 1

        with pytest.raises(KeyError):
            await engine.mutate(descriptor, mutator)

        assert calls == 0
        assert store.get("a").data is a
        assert store.get("b").data is b

    async def test_failed_mutation_does_not_invalidate(
        self, store: CacheStore, engine: OptimisticPatchEngine
    ) -> None:
        """Test that a rejected mutation leaves its tags valid."""
        store.upsert("region", {"name": "Kathmandu"}, [Tag(TagKind.REGION, "kathmandu")])
        descriptor = MutationDescriptor(
            endpoint="/regions/kathmandu",
            invalidates=(Tag(TagKind.REGION, "kathmandu"),),
        )
        with pytest.raises(HttpError):
            await engine.mutate(descriptor, failing_mutator)
        assert store.get("region").status is QueryStatus.SUCCESS


class TestCommit:
    """Tests for successful mutations."""

    async def test_success_keeps_patch_and_invalidates(
        self, store: CacheStore, engine: OptimisticPatchEngine
    ) -> None:
        """Test that a successful mutation keeps the patch and marks entries stale."""
        store.upsert("region", {"name": "Kathmandu"}, [Tag(TagKind.REGION, "kathmandu")])

        async def ok(descriptor: MutationDescriptor) -> dict:
            return {"name": "Kathmandu Valley"}

        descriptor = MutationDescriptor(
            endpoint="/regions/kathmandu",
            invalidates=(Tag(TagKind.REGION, "kathmandu"),),
            optimistic=(OptimisticUpdate("region", rename("Kathmandu Valley")),),
        )
        result = await engine.mutate(descriptor, ok)

        assert result == {"name": "Kathmandu Valley"}
        entry = store.get("region")
        assert entry.data == {"name": "Kathmandu Valley"}
        assert entry.status is QueryStatus.STALE
        assert engine.pending("region") is None

    async def test_recipe_may_return_replacement(
        self, store: CacheStore, engine: OptimisticPatchEngine
    ) -> None:
        """Test that a recipe's return value replaces the payload."""
        store.upsert("count", 1)

        async def ok(descriptor: MutationDescriptor) -> None:
            return None

        descriptor = MutationDescriptor(
            endpoint="/x", optimistic=(OptimisticUpdate("count", lambda n: n + 1),)
        )
        await engine.mutate(descriptor, ok)
        assert store.get("count").data == 2

    async def test_missing_entry_is_skipped(
        self, store: CacheStore, engine: OptimisticPatchEngine
    ) -> None:
        """Test that an update for an uncached key is skipped."""
        async def ok(descriptor: MutationDescriptor) -> str:
            return "done"

        descriptor = MutationDescriptor(
            endpoint="/x", optimistic=(OptimisticUpdate("nothing", rename("x")),)
        )
        assert await engine.mutate(descriptor, ok) == "done"
        assert "nothing" not in store


class FakeLikeServer:
    """In-memory like endpoint whose responses can be held back."""

    def __init__(self) -> None:
        self.liked = False
        self.like_count = 10
        self.toggles = 0
        self.gates: list[asyncio.Event] = []

    def status(self) -> dict:
        return {"liked": self.liked, "like_count": self.like_count}

    async def load(self) -> dict:
        return self.status()

    async def toggle(self, descriptor: MutationDescriptor) -> dict:
        gate = asyncio.Event()
        self.gates.append(gate)
        await gate.wait()
        self.toggles += 1
        self.liked = not self.liked
        self.like_count += 1 if self.liked else -1
        return self.status()


class TestToggleLike:
    """Two quick toggles on the same target apply in call order."""

    async def test_two_toggles_apply_in_order(
        self, store: CacheStore, engine: OptimisticPatchEngine
    ) -> None:
        """Test that two quick toggles settle in call order."""
        server = FakeLikeServer()
        published: list[dict] = []
        sub = store.subscribe(
            LIKE_KEY,
            lambda s: published.append(s.data) if s.data is not None else None,
            loader=server.load,
            provides=provide_static(LIKE_TAG),
        )
        await sub.ready()

        descriptor = engagement.toggle_like.describe(TARGET)
        first = asyncio.create_task(engine.mutate(descriptor, server.toggle))
        second = asyncio.create_task(engine.mutate(descriptor, server.toggle))
        await asyncio.sleep(0)

        # Only the first patch is applied; the second waits for it to settle.
        assert store.get(LIKE_KEY).data == {"liked": True, "like_count": 11}
        assert len(server.gates) == 1

        server.gates[0].set()
        await first
        await store.wait(LIKE_KEY)
        assert store.get(LIKE_KEY).data == {"liked": False, "like_count": 10}

        server.gates[1].set()
        await second
        state = await store.wait(LIKE_KEY)

        assert server.toggles == 2
        assert state.status is QueryStatus.SUCCESS
        assert state.data == {"liked": False, "like_count": 10}
        for data in published:
            assert data["like_count"] == 10 + int(data["liked"])

    async def test_failed_second_toggle_rolls_back_to_first(
        self, store: CacheStore, engine: OptimisticPatchEngine
    ) -> None:
        """Test that a failed second toggle rolls back to the first toggle's state."""
        server = FakeLikeServer()
        sub = store.subscribe(
            LIKE_KEY, loader=server.load, provides=provide_static(LIKE_TAG)
        )
        await sub.ready()
        descriptor = engagement.toggle_like.describe(TARGET)

        first = asyncio.create_task(engine.mutate(descriptor, server.toggle))
        second = asyncio.create_task(engine.mutate(descriptor, failing_mutator))
        await asyncio.sleep(0)
        server.gates[0].set()
        await first

        with pytest.raises(HttpError):
            await second
        state = await store.wait(LIKE_KEY)

        assert state.status is QueryStatus.SUCCESS
        assert state.data == {"liked": True, "like_count": 11}
        assert server.liked is True

    async def test_unrelated_keys_run_concurrently(
        self, store: CacheStore, engine: OptimisticPatchEngine
    ) -> None:
        """Test that mutations on different keys do not wait for each other."""
        store.upsert("a", {"name": "a"})
        store.upsert("b", {"name": "b"})
        gate = asyncio.Event()
        running = 0
        peak = 0

        async def slow(descriptor: MutationDescriptor) -> None:
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await gate.wait()
            running -= 1

        tasks = [
            asyncio.create_task(
                engine.mutate(
                    MutationDescriptor(endpoint="/x", optimistic=(OptimisticUpdate(k, rename("z")),)),
                    slow,
                )
            )
            for k in ("a", "b")
        ]
        await asyncio.sleep(0)
        gate.set()
        await asyncio.gather(*tasks)
        assert peak == 2


class TestFetchRaces:
    """Tests for fetches that land around an optimistic patch."""

    async def test_fetch_started_before_patch_does_not_overwrite_it(
        self, store: CacheStore, engine: OptimisticPatchEngine
    ) -> None:
        """Test that a refetch landing mid-mutation keeps the patch visible."""
        server = FakeLikeServer()
        sub = store.subscribe(
            LIKE_KEY, loader=server.load, provides=provide_static(LIKE_TAG)
        )
        await sub.ready()
        seen: list[dict] = []

        async def mutator(descriptor: MutationDescriptor) -> dict:
            await store.wait(LIKE_KEY)
            seen.append(dict(store.get(LIKE_KEY).data))
            server.liked = True
            server.like_count = 11
            return server.status()

        store.invalidate_by_tags([LIKE_TAG])
        await engine.mutate(engagement.toggle_like.describe(TARGET), mutator)
        state = await store.wait(LIKE_KEY)

        assert seen == [{"liked": True, "like_count": 11}]
        assert state.status is QueryStatus.SUCCESS
        assert state.data == {"liked": True, "like_count": 11}
        assert store.get(LIKE_KEY).pending_patches == 0

    async def test_fetch_overtaken_by_committed_patch_is_discarded(
        self, store: CacheStore, engine: OptimisticPatchEngine, make_loader
    ) -> None:
        """Test that a fetch older than a committed patch leaves it stale."""
        loader = make_loader({"name": "Kathmandu"})
        sub = store.subscribe("region", loader=loader)
        await sub.ready()
        loader.hold()
        store.schedule_refresh("region")
        await asyncio.sleep(0)

        async def ok(descriptor: MutationDescriptor) -> None:
            return None

        descriptor = MutationDescriptor(
            endpoint="/regions/kathmandu",
            optimistic=(OptimisticUpdate("region", rename("Kathmandu Valley")),),
        )
        await engine.mutate(descriptor, ok)
        loader.release()
        state = await store.wait("region")

        assert loader.calls == 2
        assert state.status is QueryStatus.STALE
        assert state.data == {"name": "Kathmandu Valley"}

    async def test_rollback_during_fetch_triggers_follow_up(
        self, store: CacheStore, engine: OptimisticPatchEngine, make_loader
    ) -> None:
        """Test that rolling back under an in-flight fetch refetches once more."""
        loader = make_loader({"name": "Kathmandu"})
        sub = store.subscribe("region", loader=loader)
        await sub.ready()
        loader.hold()
        store.schedule_refresh("region")
        await asyncio.sleep(0)

        descriptor = MutationDescriptor(
            endpoint="/regions/kathmandu",
            optimistic=(OptimisticUpdate("region", rename("Kathmandu Valley")),),
        )
        with pytest.raises(HttpError):
            await engine.mutate(descriptor, failing_mutator)
        loader.value = {"name": "Kathmandu Metro"}
        loader.release()
        state = await store.wait("region")

        assert loader.calls == 3
        assert state.status is QueryStatus.SUCCESS
        assert state.data == {"name": "Kathmandu Metro"}
