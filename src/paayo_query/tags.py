"""Tag construction and matching."""

from collections.abc import Mapping
from typing import Any

from paayo_query.keys import entity_key
from paayo_query.types import LIST, Tag, TagKind, TagProvider


def matches(invalidated: Tag, provided: Tag) -> bool:
    """Check whether invalidating ``invalidated`` reaches ``provided``.

    A kind-wide tag (``id is None``) reaches every tag of its kind.
    """
    if invalidated.kind is not provided.kind:
        return False
    return invalidated.id is None or invalidated.id == provided.id


def item_id(item: Mapping[str, Any]) -> str:
    """The id an item is tagged under: its slug when it has one, else its id."""
    return str(item.get("slug") or item["id"])


def entity_tag(kind: TagKind, item: Mapping[str, Any]) -> Tag:
    """Tag for one server entity of ``kind``."""
    collection, ident = entity_key(kind.value, item_id(item))
    return Tag(collection, ident)


def provide_list_tags(kind: TagKind, list_id: str = LIST) -> TagProvider:
    """Standard tag provider for paginated ``{"data": [...]}`` responses.

    Produces one list tag plus one tag per item, so mutating an item
    invalidates its own tag and creating/deleting items invalidates the list.
    """

    def provide(result: Any, error: BaseException | None, args: Any = None) -> list[Tag]:
        tags = [Tag(kind, list_id)]
        if isinstance(result, Mapping) and isinstance(result.get("data"), list):
            tags.extend(entity_tag(kind, item) for item in result["data"])
        return tags

    return provide


def provide_static(*tags: Tag) -> TagProvider:
    """Tag provider that ignores the result."""

    def provide(result: Any, error: BaseException | None, args: Any = None) -> list[Tag]:
        return list(tags)

    return provide


__all__ = [
    "entity_tag",
    "item_id",
    "matches",
    "provide_list_tags",
    "provide_static",
]
