"""Error taxonomy for paayo-query."""

from __future__ import annotations

from typing import Any


class PaayoQueryError(Exception):
    """Base class for all paayo-query errors."""


class ConfigError(PaayoQueryError, ValueError):
    """Invalid key, params or definition supplied at call time.

    This is a programming error and is always raised immediately.
    """


class RequestError(PaayoQueryError):
    """A loader or mutator failed to get a usable response."""

    @property
    def retryable(self) -> bool:
        """Whether the caller may reasonably retry the request."""
        return False


class NetworkError(RequestError):
    """Transport failure: no response was received."""

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause

    @property
    def retryable(self) -> bool:
        return True


class HttpError(RequestError):
    """The server responded with a non-2xx status."""

    def __init__(self, status: int, body: Any = None, message: str | None = None) -> None:
        self.status = status
        self.body = body
        super().__init__(message or f"HTTP {status}")

    @property
    def retryable(self) -> bool:
        return self.status >= 500

    def __repr__(self) -> str:
        return f"HttpError(status={self.status}, message={str(self)!r})"


__all__ = [
    "ConfigError",
    "HttpError",
    "NetworkError",
    "PaayoQueryError",
    "RequestError",
]
