"""paayo-query - Tag-invalidated query cache for the Paayo API."""

import logging

from paayo_query import api

# Query client
from paayo_query.client import QueryClient

# Duration parsing
from paayo_query.duration import parse_duration

# Endpoint definitions
from paayo_query.endpoints import MutationEndpoint, QueryEndpoint, build_query_string

# Errors
from paayo_query.errors import (
    ConfigError,
    HttpError,
    NetworkError,
    PaayoQueryError,
    RequestError,
)
from paayo_query.keys import key_for
from paayo_query.optimistic import OptimisticPatchEngine
from paayo_query.settings import ClientSettings
from paayo_query.store import CacheStore
from paayo_query.subscriptions import Subscription
from paayo_query.tags import provide_list_tags, provide_static
from paayo_query.transport import ApiTransport

# Core types
from paayo_query.types import (
    GALLERY,
    LIST,
    Duration,
    MutationDescriptor,
    OptimisticUpdate,
    QueryEntry,
    QueryState,
    QueryStatus,
    Tag,
    TagKind,
)

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"

__all__ = [
    "GALLERY",
    "LIST",
    "ApiTransport",
    "CacheStore",
    "ClientSettings",
    "ConfigError",
    "Duration",
    "HttpError",
    "MutationDescriptor",
    "MutationEndpoint",
    "NetworkError",
    "OptimisticPatchEngine",
    "OptimisticUpdate",
    "PaayoQueryError",
    "QueryClient",
    "QueryEndpoint",
    "QueryEntry",
    "QueryState",
    "QueryStatus",
    "RequestError",
    "Subscription",
    "Tag",
    "TagKind",
    "api",
    "build_query_string",
    "key_for",
    "parse_duration",
    "provide_list_tags",
    "provide_static",
]
