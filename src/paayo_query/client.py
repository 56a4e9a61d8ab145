"""QueryClient - the generic query/mutation executor."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from typing import Any, TypeVar

from paayo_query.endpoints import MutationEndpoint, QueryEndpoint
from paayo_query.errors import ConfigError
from paayo_query.optimistic import Mutator, OptimisticPatchEngine
from paayo_query.settings import ClientSettings
from paayo_query.store import CacheStore
from paayo_query.subscriptions import Listener, Subscription
from paayo_query.transport import ApiTransport
from paayo_query.types import Duration, MutationDescriptor, QueryState, QueryStatus, Tag

logger = logging.getLogger(__name__)

A = TypeVar("A")
R = TypeVar("R")


class QueryClient:
    """Cache-backed access to the backend API.

    Usage:
        client = QueryClient.from_settings()
        sub = client.subscribe(regions.get_region, "kathmandu", on_change)
        await client.mutate(regions.update_region, {"slug": "kathmandu", ...})
        sub.unsubscribe()
        await client.aclose()
    """

    def __init__(
        self,
        transport: ApiTransport | None = None,
        *,
        gc_time: Duration = "5m",
        store: CacheStore | None = None,
    ) -> None:
        self._transport = transport
        self._store = store if store is not None else CacheStore(gc_time=gc_time)
        self._engine = OptimisticPatchEngine(self._store)

    @classmethod
    def from_settings(cls, settings: ClientSettings | None = None) -> QueryClient:
        settings = settings or ClientSettings()
        transport = ApiTransport(
            settings.api_base_url,
            headers=settings.default_headers,
            timeout=settings.request_timeout,
        )
        return cls(transport, gc_time=settings.gc_time_ms)

    @property
    def store(self) -> CacheStore:
        return self._store

    @property
    def engine(self) -> OptimisticPatchEngine:
        return self._engine

    @property
    def transport(self) -> ApiTransport:
        if self._transport is None:
            raise ConfigError("This QueryClient was created without a transport")
        return self._transport

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def subscribe(
        self,
        endpoint: QueryEndpoint[A, R],
        args: A = None,  # type: ignore[assignment]
        listener: Listener | None = None,
    ) -> Subscription:
        """Observe ``endpoint(args)``, fetching it unless it is cached and fresh."""
        return self._store.subscribe(
            endpoint.key(args),
            listener,
            loader=endpoint.loader(self.transport, args),
            provides=endpoint.tag_provider(args),
            gc_time=endpoint.gc_time,
        )

    async def query(self, endpoint: QueryEndpoint[A, R], args: A = None) -> R:  # type: ignore[assignment]
        """One-shot read through the cache.

        Raises the recorded RequestError if the fetch failed.
        """
        sub = self.subscribe(endpoint, args)
        try:
            state = await sub.ready()
        finally:
            sub.unsubscribe()
        if state.status is QueryStatus.ERROR and state.error is not None:
            raise state.error
        return state.data  # type: ignore[return-value]

    def state(self, endpoint: QueryEndpoint[A, R], args: A = None) -> QueryState[R]:  # type: ignore[assignment]
        return self._store.state(endpoint.key(args))

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def mutate(self, endpoint: MutationEndpoint[A, R], args: A = None) -> R:  # type: ignore[assignment]
        """Run a mutation endpoint through the optimistic patch engine."""
        return await self.execute(endpoint.describe(args), endpoint.sender(self.transport))

    async def execute(
        self,
        descriptor: MutationDescriptor,
        mutator: Mutator[Any] | None = None,
    ) -> Any:
        """Run a prepared descriptor; ``mutator`` defaults to the transport."""
        return await self._engine.mutate(descriptor, mutator or self.transport.send)

    def invalidate(self, tags: Iterable[Tag]) -> set[str]:
        return self._store.invalidate_by_tags(tags)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def refetch_active(self) -> None:
        """Refetch every subscribed entry (window refocus, network reconnect)."""
        tasks = [
            task
            for key in self._store.subscriptions.hot_keys()
            if (task := self._store.schedule_refresh(key)) is not None
        ]
        logger.debug("Refetching %d active queries", len(tasks))
        if tasks:
            await asyncio.gather(*(asyncio.shield(t) for t in tasks), return_exceptions=True)

    async def aclose(self) -> None:
        await self._store.aclose()
        if self._transport is not None:
            await self._transport.aclose()

    async def __aenter__(self) -> QueryClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


__all__ = ["QueryClient"]
