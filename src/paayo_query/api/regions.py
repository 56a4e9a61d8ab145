"""Regions: geographical areas (e.g. "Kathmandu Valley") with their own CRUD."""

from __future__ import annotations

from typing import Any, TypedDict

from paayo_query.endpoints import MutationEndpoint, QueryEndpoint, build_query_string
from paayo_query.tags import entity_tag, provide_list_tags
from paayo_query.types import LIST, Tag, TagKind


class ListRegionsParams(TypedDict, total=False):
    page: int
    limit: int
    status: str
    province: str


class RegionAttractionsParams(TypedDict, total=False):
    slug: str
    page: int
    limit: int


class UpdateRegionArgs(TypedDict):
    slug: str
    data: dict[str, Any]


def _list_path(params: ListRegionsParams | None) -> str:
    p = params or {}
    return "/regions" + build_query_string(
        {
            "page": p.get("page"),
            "limit": p.get("limit"),
            "status": p.get("status"),
            "province": p.get("province"),
        }
    )


def _attraction_tags(
    result: Any, error: BaseException | None, args: RegionAttractionsParams
) -> list[Tag]:
    tags = [Tag(TagKind.REGION, f"{args['slug']}-attractions")]
    if isinstance(result, dict):
        tags.extend(entity_tag(TagKind.ATTRACTION, item) for item in result.get("data", []))
    return tags


list_regions: QueryEndpoint[ListRegionsParams | None, dict[str, Any]] = QueryEndpoint(
    name="listRegions",
    path=_list_path,
    provides=provide_list_tags(TagKind.REGION),
    keep_unused_for="1h",
)

get_region: QueryEndpoint[str, dict[str, Any]] = QueryEndpoint(
    name="getRegionBySlug",
    path=lambda slug: f"/regions/{slug}",
    provides=lambda result, error, slug: [Tag(TagKind.REGION, slug)],
    keep_unused_for="1h",
)

get_region_attractions: QueryEndpoint[RegionAttractionsParams, dict[str, Any]] = QueryEndpoint(
    name="getRegionAttractions",
    path=lambda args: f"/regions/{args['slug']}/attractions"
    + build_query_string({"page": args.get("page"), "limit": args.get("limit")}),
    provides=_attraction_tags,
    keep_unused_for="5m",
)

create_region: MutationEndpoint[dict[str, Any], dict[str, Any]] = MutationEndpoint(
    name="createRegion",
    path=lambda data: "/regions",
    method="POST",
    body=lambda data: data,
    invalidates=lambda data: [Tag(TagKind.REGION, LIST), Tag(TagKind.DASHBOARD_STATS)],
)

# Name, status and featured flags can all change, so the list goes too.
update_region: MutationEndpoint[UpdateRegionArgs, dict[str, Any]] = MutationEndpoint(
    name="updateRegion",
    path=lambda args: f"/regions/{args['slug']}",
    method="PUT",
    body=lambda args: args["data"],
    invalidates=lambda args: [
        Tag(TagKind.REGION, args["slug"]),
        Tag(TagKind.REGION, LIST),
        Tag(TagKind.DASHBOARD_STATS),
    ],
)

delete_region: MutationEndpoint[str, None] = MutationEndpoint(
    name="deleteRegion",
    path=lambda slug: f"/regions/{slug}",
    method="DELETE",
    invalidates=lambda slug: [
        Tag(TagKind.REGION, slug),
        Tag(TagKind.REGION, LIST),
        Tag(TagKind.DASHBOARD_STATS),
    ],
)
