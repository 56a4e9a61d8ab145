"""Activities: things to do (rafting, paragliding, trekking)."""

from __future__ import annotations

from typing import Any, TypedDict

from paayo_query.api.posts import enrich_paginated, enrich_post
from paayo_query.endpoints import MutationEndpoint, QueryEndpoint, build_query_string
from paayo_query.tags import provide_list_tags
from paayo_query.types import LIST, Tag, TagKind


class ListActivitiesParams(TypedDict, total=False):
    page: int
    limit: int
    is_featured: bool
    is_active: bool


class UpdateActivityArgs(TypedDict):
    slug: str
    data: dict[str, Any]


def _status_filter(is_active: bool | None) -> str | None:
    if is_active is None:
        return None
    return "published" if is_active else "draft"


def _list_path(params: ListActivitiesParams | None) -> str:
    p = params or {}
    return "/activities" + build_query_string(
        {
            "page": p.get("page"),
            "limit": p.get("limit"),
            "is_featured": p.get("is_featured"),
            "status": _status_filter(p.get("is_active")),
        }
    )


def _activity_tags(slug: str | None = None) -> list[Tag]:
    tags = [Tag(TagKind.ACTIVITY, LIST), Tag(TagKind.DASHBOARD_STATS)]
    if slug is not None:
        tags.insert(0, Tag(TagKind.ACTIVITY, slug))
    return tags


list_activities: QueryEndpoint[ListActivitiesParams | None, dict[str, Any]] = QueryEndpoint(
    name="listActivities",
    path=_list_path,
    provides=provide_list_tags(TagKind.ACTIVITY),
    keep_unused_for="1h",
    transform=enrich_paginated,
)

get_activity: QueryEndpoint[str, dict[str, Any]] = QueryEndpoint(
    name="getActivityBySlug",
    path=lambda slug: f"/activities/{slug}",
    provides=lambda result, error, slug: [Tag(TagKind.ACTIVITY, slug)],
    keep_unused_for="1h",
    transform=enrich_post,
)

create_activity: MutationEndpoint[dict[str, Any], dict[str, Any]] = MutationEndpoint(
    name="createActivity",
    path=lambda data: "/activities",
    method="POST",
    body=lambda data: data,
    invalidates=lambda data: _activity_tags(),
    transform=enrich_post,
)

update_activity: MutationEndpoint[UpdateActivityArgs, dict[str, Any]] = MutationEndpoint(
    name="updateActivity",
    path=lambda args: f"/activities/{args['slug']}",
    method="PUT",
    body=lambda args: args["data"],
    invalidates=lambda args: _activity_tags(args["slug"]),
    transform=enrich_post,
)

delete_activity: MutationEndpoint[str, None] = MutationEndpoint(
    name="deleteActivity",
    path=lambda slug: f"/activities/{slug}",
    method="DELETE",
    invalidates=_activity_tags,
)
