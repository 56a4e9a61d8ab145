"""Shared pytest fixtures."""

import asyncio
import copy
from collections.abc import AsyncIterator, Callable
from typing import Any

import pytest

from paayo_query import CacheStore, OptimisticPatchEngine


class CountingLoader:
    """Loader that returns a copy of ``value`` and counts its calls.

    When ``gated`` is set, each call waits for ``release()`` before
    answering. Assigning an exception to ``error`` makes calls fail.
    """

    def __init__(self, value: Any = None, *, gated: bool = False) -> None:
        self.value = value
        self.error: BaseException | None = None
        self.calls = 0
        self._gate = asyncio.Event()
        if not gated:
            self._gate.set()

    def release(self) -> None:
        self._gate.set()

    def hold(self) -> None:
        self._gate.clear()

    async def __call__(self) -> Any:
        self.calls += 1
        await self._gate.wait()
        if self.error is not None:
            raise self.error
        return copy.deepcopy(self.value)


@pytest.fixture
async def store() -> AsyncIterator[CacheStore]:
    """Create a fresh CacheStore for each test."""
    s = CacheStore(gc_time="5m")
    yield s
    await s.aclose()


@pytest.fixture
def engine(store: CacheStore) -> OptimisticPatchEngine:
    """Create an OptimisticPatchEngine over the test store."""
    return OptimisticPatchEngine(store)


@pytest.fixture
def make_loader() -> Callable[..., CountingLoader]:
    """Factory for CountingLoader instances."""
    return CountingLoader
