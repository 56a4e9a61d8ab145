"""Endpoint definitions for the Paayo backend API."""

from paayo_query.api import (
    activities,
    attractions,
    engagement,
    events,
    media,
    posts,
    regions,
)

__all__ = [
    "activities",
    "attractions",
    "engagement",
    "events",
    "media",
    "posts",
    "regions",
]
