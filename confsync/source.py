"""Async client for the upstream configuration endpoint."""

from __future__ import annotations

import logging
from typing import Generic, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from confsync.errors import UpstreamFetchError

log = logging.getLogger(__name__)

C = TypeVar("C", bound=BaseModel)


class ConfigSource(Generic[C]):
    """Minimal async wrapper around a single `GET <url>` returning a config document."""

    def __init__(
        self,
        url: str,
        model: type[C],
        timeout_s: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url
        self._model = model
        self._timeout = httpx.Timeout(timeout_s, connect=min(timeout_s, 5.0))
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def url(self) -> str:
        return self._url

    async def start(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                transport=self._transport,
            )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def fetch(self) -> C:
        client = self._require_client()
        try:
            resp = await client.get(self._url)
        except httpx.HTTPError as e:
            msg = str(e).strip() or e.__class__.__name__
            raise UpstreamFetchError(f"request failed: {msg}") from e

        if resp.status_code != 200:
            detail = resp.text.strip()[:160] or "no body"
            raise UpstreamFetchError(f"{self._url} returned {resp.status_code}: {detail}")

        try:
            body = resp.json()
        except ValueError as e:
            raise UpstreamFetchError(f"invalid JSON response from {self._url}") from e

        try:
            config = self._model.model_validate(body)
        except ValidationError as e:
            raise UpstreamFetchError(
                f"invalid config payload: {e.error_count()} validation error(s)"
            ) from e
        log.debug("fetched config from %s: %r", self._url, config)
        return config

    def _require_client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("config source not started")
        return self._client
