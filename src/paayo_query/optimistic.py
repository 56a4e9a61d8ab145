"""Optimistic mutations with exact rollback."""

from __future__ import annotations

import asyncio
import copy
import itertools
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from paayo_query.store import CacheStore
from paayo_query.types import MutationDescriptor, OptimisticPatch, Tag

logger = logging.getLogger(__name__)

T = TypeVar("T")

Mutator = Callable[[MutationDescriptor], Awaitable[T]]


class OptimisticPatchEngine:
    """Runs mutations, applying their optimistic updates first.

    Mutations that patch the same key are serialized per key in call
    order: the second one applies its patch only after the first has
    committed or rolled back. Mutations on unrelated keys run
    concurrently.
    """

    def __init__(self, store: CacheStore) -> None:
        self._store = store
        self._ids = itertools.count(1)
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        self._pending: dict[str, OptimisticPatch] = {}

    def pending(self, key: str) -> OptimisticPatch | None:
        """The undo record currently held for ``key``, if any."""
        return self._pending.get(key)

    async def mutate(self, descriptor: MutationDescriptor, mutator: Mutator[T]) -> T:
        """Patch, send, then commit (invalidate) or roll back.

        Any failure from the mutator, including cancellation, restores every
        patched entry to the exact payload it held before and is re-raised.
        """
        mutation_id = next(self._ids)
        keys = sorted({update.key for update in descriptor.optimistic})
        locks = [self._lock_for(key) for key in keys]
        acquired: list[asyncio.Lock] = []
        try:
            for lock in locks:
                await lock.acquire()
                acquired.append(lock)

            patches: list[OptimisticPatch] = []
            try:
                self._apply(descriptor, mutation_id, patches)
                result = await mutator(descriptor)
            except BaseException as exc:
                if patches:
                    logger.debug(
                        "Rolling back mutation %d (%s): %r",
                        mutation_id,
                        descriptor.name or descriptor.endpoint,
                        exc,
                    )
                self._rollback(patches)
                raise

            self._commit(patches)
            self._store.invalidate_by_tags(_invalidated_tags(descriptor, result))
            return result
        finally:
            for lock in acquired:
                lock.release()
            for key in keys:
                self._release_lock(key)

    def _apply(
        self,
        descriptor: MutationDescriptor,
        mutation_id: int,
        patches: list[OptimisticPatch],
    ) -> None:
        patched: set[str] = set()
        for update in descriptor.optimistic:
            entry = self._store.get(update.key)
            if entry is None or entry.data is None:
                logger.debug("Nothing cached under %s; skipping patch", update.key)
                continue
            if update.key not in patched:
                patch = OptimisticPatch(update.key, entry.data, mutation_id)
                patches.append(patch)
                self._pending[update.key] = patch
                self._store.hold(update.key)
                patched.add(update.key)
            draft = copy.deepcopy(entry.data)
            replacement = update.recipe(draft)
            self._store.patch(update.key, draft if replacement is None else replacement)

    def _rollback(self, patches: list[OptimisticPatch]) -> None:
        for patch in reversed(patches):
            self._store.restore(patch.key, patch.snapshot)
            self._store.release(patch.key)
            self._pending.pop(patch.key, None)

    def _commit(self, patches: list[OptimisticPatch]) -> None:
        for patch in patches:
            self._store.release(patch.key)
            self._pending.pop(patch.key, None)

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        return lock

    def _release_lock(self, key: str) -> None:
        users = self._lock_users.get(key, 0) - 1
        if users > 0:
            self._lock_users[key] = users
            return
        self._lock_users.pop(key, None)
        self._locks.pop(key, None)


def _invalidated_tags(descriptor: MutationDescriptor, result: Any) -> list[Tag]:
    tags = list(descriptor.invalidates)
    if descriptor.invalidates_result is not None:
        tags.extend(descriptor.invalidates_result(result))
    return tags


__all__ = ["Mutator", "OptimisticPatchEngine"]
