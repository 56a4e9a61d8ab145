"""Engagement: view counts and likes on any content item."""

from __future__ import annotations

from typing import Any, TypedDict

from paayo_query.endpoints import MutationEndpoint, QueryEndpoint
from paayo_query.types import OptimisticUpdate, Tag, TagKind


class Target(TypedDict):
    target_type: str
    target_id: str


def _target_id(args: Target) -> str:
    return f"{args['target_type']}-{args['target_id']}"


get_view_stats: QueryEndpoint[Target, dict[str, Any]] = QueryEndpoint(
    name="getViewStats",
    path=lambda args: f"/views/{args['target_type']}/{args['target_id']}",
    provides=lambda result, error, args: [Tag(TagKind.VIEW_STATS, _target_id(args))],
    keep_unused_for="120s",
)

# The backend deduplicates views per viewer; counts are informational, so
# recording one invalidates nothing.
record_view: MutationEndpoint[Target, dict[str, Any]] = MutationEndpoint(
    name="recordView",
    path=lambda args: "/views",
    method="POST",
    body=lambda args: {"target_type": args["target_type"], "target_id": args["target_id"]},
)

get_like_status: QueryEndpoint[Target, dict[str, Any]] = QueryEndpoint(
    name="getLikeStatus",
    path=lambda args: f"/content/{args['target_type']}/{args['target_id']}/like-status",
    provides=lambda result, error, args: [Tag(TagKind.LIKE_STATUS, _target_id(args))],
    keep_unused_for="120s",
)


def flip_like(status: dict[str, Any]) -> None:
    status["liked"] = not status["liked"]
    status["like_count"] += 1 if status["liked"] else -1


toggle_like: MutationEndpoint[Target, dict[str, Any]] = MutationEndpoint(
    name="toggleLike",
    path=lambda args: f"/content/{args['target_type']}/{args['target_id']}/like",
    method="POST",
    body=lambda args: {},
    invalidates=lambda args: [Tag(TagKind.LIKE_STATUS, _target_id(args))],
    optimistic=lambda args: [OptimisticUpdate(get_like_status.key(args), flip_like)],
)
