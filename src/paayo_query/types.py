"""Core types for the paayo-query cache."""

from __future__ import annotations

import enum
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from paayo_query.errors import ConfigError

T = TypeVar("T")

# Duration type alias
Duration = str | int  # "30s", "5m", "2h", "1d" or milliseconds

Loader = Callable[[], Awaitable[Any]]
TagProvider = Callable[[Any, BaseException | None], Iterable["Tag"]]
Recipe = Callable[[Any], Any]

LIST = "LIST"
GALLERY = "GALLERY"


class TagKind(str, enum.Enum):
    """Every kind of entity the backend can invalidate."""

    POST = "Post"
    EVENT = "Event"
    ATTRACTION = "Attraction"
    ACTIVITY = "Activity"
    REGION = "Region"
    HOTEL = "Hotel"
    VIDEO = "Video"
    PHOTO = "Photo"
    HERO_SLIDE = "HeroSlide"
    TAG = "Tag"
    COMMENT = "Comment"
    MEDIA = "Media"
    NOTIFICATION = "Notification"
    DASHBOARD_STATS = "DashboardStats"
    SEARCH = "Search"
    VIEW_STATS = "ViewStats"
    LIKE_STATUS = "LikeStatus"
    USER = "User"
    CONTENT_LINK = "ContentLink"


@dataclass(frozen=True, slots=True)
class Tag:
    """An invalidation label: an entity kind plus an optional id.

    ``id=None`` names the whole kind; invalidating it reaches every tag of
    that kind.
    """

    kind: TagKind
    id: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.kind, TagKind):
            try:
                kind = TagKind(self.kind)
            except ValueError:
                raise ConfigError(f"Unknown tag kind: {self.kind!r}") from None
            object.__setattr__(self, "kind", kind)
        if self.id is not None and not isinstance(self.id, str):
            object.__setattr__(self, "id", str(self.id))

    def __repr__(self) -> str:
        if self.id is None:
            return f"Tag({self.kind.value})"
        return f"Tag({self.kind.value}:{self.id})"


class QueryStatus(str, enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"
    STALE = "stale"


@dataclass(frozen=True, slots=True)
class QueryState(Generic[T]):
    """What a subscriber sees for one query key."""

    data: T | None
    status: QueryStatus
    error: BaseException | None = None

    @property
    def is_loading(self) -> bool:
        return self.status is QueryStatus.LOADING

    @property
    def is_success(self) -> bool:
        return self.status is QueryStatus.SUCCESS

    @property
    def is_error(self) -> bool:
        return self.status is QueryStatus.ERROR


@dataclass(slots=True, eq=False)
class QueryEntry(Generic[T]):
    """A cached query result. Owned and mutated only by the CacheStore."""

    key: str
    data: T | None = None
    error: BaseException | None = None
    status: QueryStatus = QueryStatus.IDLE
    tags: frozenset[Tag] = frozenset()
    last_fetched_at: int | None = None  # Unix timestamp ms
    subscriber_count: int = 0
    loader: Loader | None = None
    provides: TagProvider | None = None
    gc_time: int | None = None  # ms; None means the store default
    # Store sequence numbers, used to detect fetches overtaken by
    # invalidations or optimistic patches.
    fetch_seq: int = 0
    invalidated_seq: int = 0
    patched_seq: int = 0
    # Optimistic patches applied but not yet committed or rolled back.
    pending_patches: int = 0

    def snapshot(self) -> QueryState[T]:
        return QueryState(data=self.data, status=self.status, error=self.error)

    @property
    def is_fresh(self) -> bool:
        """Success, not stale: a subscription can be served without a fetch."""
        return self.status is QueryStatus.SUCCESS


@dataclass(frozen=True, slots=True)
class OptimisticUpdate:
    """A speculative change to the cached payload under ``key``.

    ``recipe`` gets a deep copy of the payload. It may mutate the copy in
    place and return None, or return a replacement payload.
    """

    key: str
    recipe: Recipe


@dataclass(frozen=True, slots=True)
class OptimisticPatch:
    """Undo record for one applied OptimisticUpdate."""

    key: str
    snapshot: Any
    mutation_id: int


@dataclass(frozen=True, slots=True)
class MutationDescriptor:
    """One mutation call: where to send it and what it affects."""

    endpoint: str
    method: str = "POST"
    body: Any = None
    files: Any = None
    invalidates: tuple[Tag, ...] = ()
    optimistic: tuple[OptimisticUpdate, ...] = ()
    # Extra tags to invalidate once the server result is known.
    invalidates_result: Callable[[Any], Iterable[Tag]] | None = None
    name: str | None = None
