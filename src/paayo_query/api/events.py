"""Events: dated posts (festivals, treks, exhibitions). Read-only here."""

from __future__ import annotations

from typing import Any, TypedDict

from paayo_query.api.posts import enrich_paginated, enrich_post
from paayo_query.endpoints import QueryEndpoint, build_query_string
from paayo_query.tags import provide_list_tags
from paayo_query.types import Tag, TagKind

UPCOMING = "UPCOMING"


class ListEventsParams(TypedDict, total=False):
    page: int
    limit: int
    region_id: str
    featured: bool


class UpcomingEventsParams(TypedDict, total=False):
    page: int
    limit: int


def _list_path(params: ListEventsParams | None) -> str:
    p = params or {}
    return "/events" + build_query_string(
        {
            "page": p.get("page"),
            "limit": p.get("limit"),
            "region_id": p.get("region_id"),
            "featured": p.get("featured"),
        }
    )


def _upcoming_path(params: UpcomingEventsParams | None) -> str:
    p = params or {}
    return "/events/upcoming" + build_query_string(
        {"page": p.get("page"), "limit": p.get("limit")}
    )


list_events: QueryEndpoint[ListEventsParams | None, dict[str, Any]] = QueryEndpoint(
    name="listEvents",
    path=_list_path,
    provides=provide_list_tags(TagKind.EVENT),
    keep_unused_for="5m",
    transform=enrich_paginated,
)

# Events whose date is today or later.
list_upcoming_events: QueryEndpoint[UpcomingEventsParams | None, dict[str, Any]] = QueryEndpoint(
    name="listUpcomingEvents",
    path=_upcoming_path,
    provides=provide_list_tags(TagKind.EVENT, UPCOMING),
    keep_unused_for="5m",
    transform=enrich_paginated,
)

get_event: QueryEndpoint[str, dict[str, Any]] = QueryEndpoint(
    name="getEventBySlug",
    path=lambda slug: f"/events/{slug}",
    provides=lambda result, error, slug: [Tag(TagKind.EVENT, slug)],
    keep_unused_for="5m",
    transform=enrich_post,
)
