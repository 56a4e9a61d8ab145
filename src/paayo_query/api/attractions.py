"""Attractions: temples, viewpoints and other places worth a visit."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, TypedDict

from paayo_query.api.posts import enrich_paginated, enrich_post
from paayo_query.endpoints import MutationEndpoint, QueryEndpoint, build_query_string
from paayo_query.tags import provide_list_tags
from paayo_query.types import LIST, Tag, TagKind

TOP = "TOP"


class ListAttractionsParams(TypedDict, total=False):
    page: int
    limit: int
    region_id: str
    is_featured: bool


class TopAttractionsParams(TypedDict, total=False):
    page: int
    limit: int


class UpdateAttractionArgs(TypedDict):
    slug: str
    data: dict[str, Any]


def _list_path(params: ListAttractionsParams | None) -> str:
    p = params or {}
    return "/attractions" + build_query_string(
        {
            "page": p.get("page"),
            "limit": p.get("limit"),
            "region_id": p.get("region_id"),
            "is_featured": p.get("is_featured"),
        }
    )


def _top_path(params: TopAttractionsParams | None) -> str:
    p = params or {}
    return "/attractions/top" + build_query_string(
        {"page": p.get("page"), "limit": p.get("limit")}
    )


def _listing_tags(slug: str | None = None) -> list[Tag]:
    tags = [
        Tag(TagKind.ATTRACTION, LIST),
        Tag(TagKind.ATTRACTION, TOP),
        Tag(TagKind.DASHBOARD_STATS),
    ]
    if slug is not None:
        tags.insert(0, Tag(TagKind.ATTRACTION, slug))
    return tags


def _renamed_slug(result: Any) -> list[Tag]:
    # A title change can give the attraction a new slug.
    if isinstance(result, Mapping) and result.get("slug"):
        return [Tag(TagKind.ATTRACTION, result["slug"])]
    return []


list_attractions: QueryEndpoint[ListAttractionsParams | None, dict[str, Any]] = QueryEndpoint(
    name="listAttractions",
    path=_list_path,
    provides=provide_list_tags(TagKind.ATTRACTION),
    keep_unused_for="5m",
    transform=enrich_paginated,
)

# Ranked by attraction_rank, featured first.
list_top_attractions: QueryEndpoint[TopAttractionsParams | None, dict[str, Any]] = QueryEndpoint(
    name="listTopAttractions",
    path=_top_path,
    provides=provide_list_tags(TagKind.ATTRACTION, TOP),
    keep_unused_for="5m",
    transform=enrich_paginated,
)

get_attraction: QueryEndpoint[str, dict[str, Any]] = QueryEndpoint(
    name="getAttractionBySlug",
    path=lambda slug: f"/attractions/{slug}",
    provides=lambda result, error, slug: [Tag(TagKind.ATTRACTION, slug)],
    keep_unused_for="5m",
    transform=enrich_post,
)

create_attraction: MutationEndpoint[dict[str, Any], dict[str, Any]] = MutationEndpoint(
    name="createAttraction",
    path=lambda data: "/attractions",
    method="POST",
    body=lambda data: data,
    invalidates=lambda data: _listing_tags(),
    transform=enrich_post,
)

update_attraction: MutationEndpoint[UpdateAttractionArgs, dict[str, Any]] = MutationEndpoint(
    name="updateAttraction",
    path=lambda args: f"/attractions/{args['slug']}",
    method="PUT",
    body=lambda args: args["data"],
    invalidates=lambda args: _listing_tags(args["slug"]),
    invalidates_result=_renamed_slug,
    transform=enrich_post,
)

delete_attraction: MutationEndpoint[str, None] = MutationEndpoint(
    name="deleteAttraction",
    path=lambda slug: f"/attractions/{slug}",
    method="DELETE",
    invalidates=_listing_tags,
)
