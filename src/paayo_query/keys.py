"""Deterministic query keys."""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from typing import Any

from paayo_query.errors import ConfigError

_SCALARS = (str, int, float, bool)


def _canonicalize(value: Any, path: str, seen: set[int]) -> Any:
    """Reduce ``value`` to plain JSON data with sorted keys and no None fields."""
    if value is None or isinstance(value, _SCALARS):
        return value

    if isinstance(value, Mapping):
        if id(value) in seen:
            raise ConfigError(f"Circular reference in query params at {path}")
        seen.add(id(value))
        result: dict[str, Any] = {}
        for k in sorted(value, key=_key_order(path)):
            item = value[k]
            if item is None:
                continue
            result[k] = _canonicalize(item, f"{path}.{k}", seen)
        seen.discard(id(value))
        return result

    if isinstance(value, (list, tuple)):
        if id(value) in seen:
            raise ConfigError(f"Circular reference in query params at {path}")
        seen.add(id(value))
        items = [
            _canonicalize(item, f"{path}[{i}]", seen) for i, item in enumerate(value)
        ]
        seen.discard(id(value))
        return items

    raise ConfigError(
        f"Query params at {path} are not serializable: {type(value).__name__}"
    )


def _key_order(path: str) -> Callable[[Any], str]:
    def order(key: Any) -> str:
        if not isinstance(key, str):
            raise ConfigError(
                f"Query param keys must be strings, got {key!r} at {path}"
            )
        return key

    return order


def canonical_params(params: Any) -> str:
    """Serialize params to a canonical JSON string.

    Mapping keys are sorted and keys whose value is None are dropped, so
    ``{"a": 1, "b": 2}``, ``{"b": 2, "a": 1}`` and ``{"a": 1, "b": 2, "c": None}``
    all serialize identically.
    """
    canonical = _canonicalize(params, "params", set())
    return json.dumps(canonical, sort_keys=True, separators=(",", ":"))


def key_for(endpoint: str, params: Any = None) -> str:
    """Build the query key for ``endpoint`` called with ``params``.

    Raises ConfigError if params contain a callable, an arbitrary object or
    a circular reference.
    """
    if not isinstance(endpoint, str) or not endpoint:
        raise ConfigError(f"Endpoint must be a non-empty string, got {endpoint!r}")
    if params is None:
        return endpoint
    serialized = canonical_params(params)
    if serialized in ("{}", "null"):
        return endpoint
    return f"{endpoint}({serialized})"


def entity_key(collection: str, id: str | int) -> tuple[str, str]:
    """Stable identity for a server entity."""
    return (collection, str(id))


__all__ = ["canonical_params", "entity_key", "key_for"]
