"""Posts: articles, plus the enrichment shared by every post-backed slice.

Events, attractions and activities are rows of the same ``posts`` table.
Their type-specific fields live in the JSON ``content`` column, and
``enrich_post`` lifts them to the top level.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, TypedDict

from paayo_query.endpoints import MutationEndpoint, QueryEndpoint, build_query_string
from paayo_query.tags import provide_list_tags
from paayo_query.types import LIST, Tag, TagKind


class ListPostsParams(TypedDict, total=False):
    page: int
    limit: int
    status: str
    type: str
    sort_by: str
    is_featured: bool


class UpdatePostArgs(TypedDict):
    slug: str
    data: dict[str, Any]


class FeaturedArgs(TypedDict):
    id: str
    is_featured: bool


class DisplayOrderArgs(TypedDict):
    id: str
    display_order: int | None


def _first(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def enrich_post(raw: Mapping[str, Any]) -> dict[str, Any]:
    """Flatten ``content`` into the post and fill the derived fields.

    Top-level fields win over ``content`` keys of the same name.
    """
    content = raw.get("content")
    extra: Mapping[str, Any] = content if isinstance(content, Mapping) else {}
    post = {**extra, **raw}
    post.update(
        post_type=raw.get("type"),
        views=_first(raw.get("view_count"), 0),
        likes=_first(raw.get("like_count"), 0),
        description=_first(raw.get("short_description"), extra.get("description")),
        start_time=_first(extra.get("start_time"), raw.get("event_date")),
        end_time=_first(extra.get("end_time"), raw.get("event_end_date")),
        location=extra.get("location"),
        rating=extra.get("rating"),
        review_count=_first(extra.get("review_count"), 0),
        address=extra.get("address"),
        entry_fee=extra.get("entry_fee"),
        latitude=extra.get("latitude"),
        longitude=extra.get("longitude"),
        opening_hours=extra.get("opening_hours"),
        icon=extra.get("icon"),
        is_active=raw.get("status") == "published",
        tags=_first(extra.get("tags"), []),
        meta_title=extra.get("meta_title"),
        meta_description=extra.get("meta_description"),
    )
    return post


def enrich_paginated(response: Mapping[str, Any]) -> dict[str, Any]:
    """Enrich every post in a ``{"data": [...]}`` page."""
    return {**response, "data": [enrich_post(item) for item in response.get("data", [])]}


def _list_path(params: ListPostsParams | None) -> str:
    p = params or {}
    return "/posts" + build_query_string(
        {
            "page": p.get("page"),
            "limit": p.get("limit"),
            "status": p.get("status"),
            "post_type": p.get("type"),
            "sort_by": p.get("sort_by"),
            "is_featured": p.get("is_featured"),
        }
    )


def _post_tags(slug: str | None = None) -> list[Tag]:
    tags = [Tag(TagKind.POST, LIST), Tag(TagKind.DASHBOARD_STATS)]
    if slug is not None:
        tags.insert(0, Tag(TagKind.POST, slug))
    return tags


list_posts: QueryEndpoint[ListPostsParams | None, dict[str, Any]] = QueryEndpoint(
    name="listPosts",
    path=_list_path,
    provides=provide_list_tags(TagKind.POST),
    keep_unused_for="60s",
    transform=enrich_paginated,
)

get_post: QueryEndpoint[str, dict[str, Any]] = QueryEndpoint(
    name="getPostBySlug",
    path=lambda slug: f"/posts/{slug}",
    provides=lambda result, error, slug: [Tag(TagKind.POST, slug)],
    keep_unused_for="60s",
    transform=enrich_post,
)

create_post: MutationEndpoint[dict[str, Any], dict[str, Any]] = MutationEndpoint(
    name="createPost",
    path=lambda data: "/posts",
    method="POST",
    body=lambda data: data,
    invalidates=lambda data: _post_tags(),
    transform=enrich_post,
)

update_post: MutationEndpoint[UpdatePostArgs, dict[str, Any]] = MutationEndpoint(
    name="updatePost",
    path=lambda args: f"/posts/{args['slug']}",
    method="PUT",
    body=lambda args: args["data"],
    invalidates=lambda args: _post_tags(args["slug"]),
    transform=enrich_post,
)

delete_post: MutationEndpoint[str, None] = MutationEndpoint(
    name="deletePost",
    path=lambda slug: f"/posts/{slug}",
    method="DELETE",
    invalidates=_post_tags,
)

publish_post: MutationEndpoint[str, dict[str, Any]] = MutationEndpoint(
    name="publishPost",
    path=lambda post_id: f"/posts/{post_id}/publish",
    method="POST",
    body=lambda post_id: {},
    invalidates=lambda post_id: _post_tags(),
    transform=enrich_post,
)

approve_post: MutationEndpoint[str, dict[str, Any]] = MutationEndpoint(
    name="approvePost",
    path=lambda post_id: f"/posts/{post_id}/approve",
    method="POST",
    body=lambda post_id: {},
    invalidates=lambda post_id: _post_tags(),
    transform=enrich_post,
)

# Featured flag and ordering only affect listings.
update_post_featured: MutationEndpoint[FeaturedArgs, dict[str, Any]] = MutationEndpoint(
    name="updatePostFeatured",
    path=lambda args: f"/posts/{args['id']}/featured",
    method="PUT",
    body=lambda args: {"is_featured": args["is_featured"]},
    invalidates=lambda args: [Tag(TagKind.POST, LIST)],
    transform=enrich_post,
)

update_post_display_order: MutationEndpoint[DisplayOrderArgs, dict[str, Any]] = MutationEndpoint(
    name="updatePostDisplayOrder",
    path=lambda args: f"/posts/{args['id']}/display-order",
    method="PUT",
    body=lambda args: {"display_order": args["display_order"]},
    invalidates=lambda args: [Tag(TagKind.POST, LIST)],
    transform=enrich_post,
)
