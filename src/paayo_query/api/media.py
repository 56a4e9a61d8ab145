"""Media: uploaded files, the public gallery and metadata edits."""

from __future__ import annotations

from typing import Any, TypedDict

from paayo_query.endpoints import MutationEndpoint, QueryEndpoint, build_query_string
from paayo_query.tags import provide_list_tags
from paayo_query.types import GALLERY, LIST, Tag, TagKind

FileTuple = tuple[str, bytes, str]  # (filename, content, content type)


class ListMediaParams(TypedDict, total=False):
    page: int
    limit: int
    type: str


class GalleryParams(TypedDict, total=False):
    page: int
    limit: int


class UploadArgs(TypedDict, total=False):
    file: FileTuple
    alt: str
    caption: str


class UpdateMediaArgs(TypedDict):
    id: str
    data: dict[str, Any]


def _list_path(params: ListMediaParams | None) -> str:
    p = params or {}
    return "/media" + build_query_string(
        {"page": p.get("page"), "limit": p.get("limit"), "media_type": p.get("type")}
    )


def _gallery_path(params: GalleryParams | None) -> str:
    p = params or {}
    return "/media/gallery" + build_query_string(
        {"page": p.get("page"), "limit": p.get("limit")}
    )


def _listing_tags(media_id: str | None = None) -> list[Tag]:
    tags = [Tag(TagKind.MEDIA, LIST), Tag(TagKind.MEDIA, GALLERY)]
    if media_id is not None:
        tags.insert(0, Tag(TagKind.MEDIA, media_id))
    return tags


list_media: QueryEndpoint[ListMediaParams | None, dict[str, Any]] = QueryEndpoint(
    name="listMedia",
    path=_list_path,
    provides=provide_list_tags(TagKind.MEDIA),
    keep_unused_for="120s",
)

# Separate from list_media: the backend only returns approved images here.
list_gallery: QueryEndpoint[GalleryParams | None, dict[str, Any]] = QueryEndpoint(
    name="listGallery",
    path=_gallery_path,
    provides=provide_list_tags(TagKind.MEDIA, GALLERY),
    keep_unused_for="5m",
)

get_media: QueryEndpoint[str, dict[str, Any]] = QueryEndpoint(
    name="getMedia",
    path=lambda media_id: f"/media/{media_id}",
    provides=lambda result, error, media_id: [Tag(TagKind.MEDIA, media_id)],
)

# Sent as multipart/form-data; the transport leaves Content-Type to httpx
# so the boundary is always present.
upload_media: MutationEndpoint[UploadArgs, dict[str, Any]] = MutationEndpoint(
    name="uploadMedia",
    path=lambda args: "/media",
    method="POST",
    files=lambda args: {"file": args["file"]},
    body=lambda args: {k: v for k, v in args.items() if k != "file"},
    invalidates=lambda args: [*_listing_tags(), Tag(TagKind.DASHBOARD_STATS)],
)

update_media: MutationEndpoint[UpdateMediaArgs, dict[str, Any]] = MutationEndpoint(
    name="updateMedia",
    path=lambda args: f"/media/{args['id']}",
    method="PUT",
    body=lambda args: args["data"],
    invalidates=lambda args: _listing_tags(args["id"]),
)

delete_media: MutationEndpoint[str, None] = MutationEndpoint(
    name="deleteMedia",
    path=lambda media_id: f"/media/{media_id}",
    method="DELETE",
    invalidates=lambda media_id: [*_listing_tags(media_id), Tag(TagKind.DASHBOARD_STATS)],
)

batch_delete_media: MutationEndpoint[list[str], dict[str, Any]] = MutationEndpoint(
    name="batchDeleteMedia",
    path=lambda ids: "/media/batch/delete",
    method="POST",
    body=lambda ids: {"ids": list(ids)},
    invalidates=lambda ids: [*_listing_tags(), Tag(TagKind.DASHBOARD_STATS)],
)
