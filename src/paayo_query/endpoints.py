"""Endpoint definitions: the capability structs the QueryClient dispatches.

A QueryEndpoint knows how to build its key, its loader and the tags it
provides. A MutationEndpoint knows how to describe one mutation call: path,
method, body, invalidated tags and optimistic updates.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, TypeVar
from urllib.parse import urlencode

from paayo_query.duration import parse_duration
from paayo_query.errors import ConfigError
from paayo_query.keys import key_for
from paayo_query.types import (
    Duration,
    Loader,
    MutationDescriptor,
    OptimisticUpdate,
    Tag,
    TagProvider,
)

if TYPE_CHECKING:
    from paayo_query.transport import ApiTransport

A = TypeVar("A")
R = TypeVar("R")

_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_query_string(params: Mapping[str, Any]) -> str:
    """Build ``?a=1&b=2`` from params, skipping None and empty values.

    >>> build_query_string({"page": 1, "limit": 20, "status": None})
    '?page=1&limit=20'
    """
    pairs = [
        (key, _stringify(value))
        for key, value in params.items()
        if value is not None and value != ""
    ]
    return f"?{urlencode(pairs)}" if pairs else ""


@dataclass(frozen=True, slots=True)
class QueryEndpoint(Generic[A, R]):
    """A cacheable read."""

    name: str
    path: Callable[[A], str]
    provides: Callable[[R | None, BaseException | None, A], Iterable[Tag]] | None = None
    keep_unused_for: Duration | None = None
    transform: Callable[[Any], R] | None = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ConfigError("QueryEndpoint needs a name")
        if self.keep_unused_for is not None:
            parse_duration(self.keep_unused_for)

    def key(self, args: A) -> str:
        return key_for(self.name, args)

    @property
    def gc_time(self) -> int | None:
        if self.keep_unused_for is None:
            return None
        return parse_duration(self.keep_unused_for)

    def tag_provider(self, args: A) -> TagProvider:
        provides = self.provides

        def provide(result: Any, error: BaseException | None) -> list[Tag]:
            if provides is None:
                return []
            return list(provides(result, error, args))

        return provide

    def loader(self, transport: ApiTransport, args: A) -> Loader:
        path = self.path(args)
        transform = self.transform

        async def load() -> Any:
            raw = await transport.get(path)
            return transform(raw) if transform is not None else raw

        return load


@dataclass(frozen=True, slots=True)
class MutationEndpoint(Generic[A, R]):
    """A write that invalidates tags and may patch the cache optimistically."""

    name: str
    path: Callable[[A], str]
    method: str = "POST"
    body: Callable[[A], Any] | None = None
    files: Callable[[A], Any] | None = None
    invalidates: Callable[[A], Iterable[Tag]] | None = None
    optimistic: Callable[[A], Iterable[OptimisticUpdate]] | None = None
    invalidates_result: Callable[[R], Iterable[Tag]] | None = None
    transform: Callable[[Any], R] | None = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ConfigError("MutationEndpoint needs a name")
        method = self.method.upper()
        if method not in _METHODS:
            raise ConfigError(f"{self.name}: unsupported mutation method {self.method!r}")
        object.__setattr__(self, "method", method)

    def describe(self, args: A) -> MutationDescriptor:
        return MutationDescriptor(
            endpoint=self.path(args),
            method=self.method,
            body=self.body(args) if self.body is not None else None,
            files=self.files(args) if self.files is not None else None,
            invalidates=tuple(self.invalidates(args)) if self.invalidates else (),
            optimistic=tuple(self.optimistic(args)) if self.optimistic else (),
            invalidates_result=self.invalidates_result,
            name=self.name,
        )

    def sender(self, transport: ApiTransport) -> Callable[[MutationDescriptor], Awaitable[Any]]:
        """The mutator that sends a descriptor and shapes the response."""
        transform = self.transform

        async def send(descriptor: MutationDescriptor) -> Any:
            raw = await transport.send(descriptor)
            return transform(raw) if transform is not None and raw is not None else raw

        return send


__all__ = ["MutationEndpoint", "QueryEndpoint", "build_query_string"]
