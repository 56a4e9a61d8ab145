"""HTTP transport for loaders and mutators."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import httpx

from paayo_query.errors import HttpError, NetworkError
from paayo_query.types import MutationDescriptor

logger = logging.getLogger(__name__)


def _error_message(response: httpx.Response, body: Any) -> str:
    if isinstance(body, Mapping):
        for field in ("error", "message"):
            value = body.get(field)
            if isinstance(value, str) and value:
                return value
    return f"HTTP {response.status_code}"


def _decode(response: httpx.Response) -> Any:
    if response.status_code == 204 or not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class ApiTransport:
    """Async client for the backend REST API.

    Session cookies and any extra headers are attached here; the cache
    never sees them. No Content-Type is forced: httpx picks JSON or
    multipart (with its boundary) per request.
    """

    def __init__(
        self,
        base_url: str,
        *,
        headers: Mapping[str, str] | None = None,
        cookies: Mapping[str, str] | None = None,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            headers=dict(headers or {}),
            cookies=dict(cookies or {}),
            timeout=timeout,
        )

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
        files: Any = None,
        data: Mapping[str, Any] | None = None,
    ) -> Any:
        """Send one request and return the decoded body.

        Raises NetworkError when no response arrives and HttpError for any
        non-2xx status.
        """
        kwargs: dict[str, Any] = {}
        if params:
            kwargs["params"] = {k: v for k, v in params.items() if v is not None}
        if files is not None:
            kwargs["files"] = files
            if data:
                kwargs["data"] = data
        elif json is not None:
            kwargs["json"] = json

        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TransportError as exc:
            logger.debug("%s %s failed: %r", method, path, exc)
            raise NetworkError(f"{method} {path} failed: {exc}", cause=exc) from exc

        body = _decode(response)
        if not response.is_success:
            raise HttpError(response.status_code, body, _error_message(response, body))
        return body

    async def get(self, path: str, params: Mapping[str, Any] | None = None) -> Any:
        return await self.request("GET", path, params=params)

    async def send(self, descriptor: MutationDescriptor) -> Any:
        """Mutator: perform ``descriptor`` against the API."""
        if descriptor.files is not None:
            form = descriptor.body if isinstance(descriptor.body, Mapping) else None
            return await self.request(
                descriptor.method, descriptor.endpoint, files=descriptor.files, data=form
            )
        return await self.request(descriptor.method, descriptor.endpoint, json=descriptor.body)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


__all__ = ["ApiTransport"]
