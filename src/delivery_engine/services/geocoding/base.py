"""Provider contract and shared HTTP plumbing for geocoding adapters."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Mapping

import httpx

from ...models.domain import Address, Coordinate

logger = logging.getLogger(__name__)


class GeocodingError(Exception):
    """Raised when a provider could not be reached or answered with an error.

    A provider that simply cannot find an address returns ``None`` instead.
    """


class GeocodingProvider(ABC):
    """Contract for upstream geocoding services."""

    name: str = "provider"

    @abstractmethod
    async def geocode(self, query: str) -> Coordinate | None:
        raise NotImplementedError

    @abstractmethod
    async def reverse_geocode(self, coordinate: Coordinate) -> Address | None:
        raise NotImplementedError


class HTTPGeocodingProvider(GeocodingProvider):
    """Base for providers speaking JSON over HTTP with bounded retries."""

    def __init__(
        self,
        *,
        timeout: float,
        max_retries: int,
        backoff_seconds: float,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        """Return the injected client or a short-lived one for a single request."""
        if self._client is not None:
            return self._client
        return httpx.AsyncClient(timeout=httpx.Timeout(self.timeout, connect=5.0))

    async def _get_json(
        self,
        url: str,
        params: Mapping[str, Any],
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        client = self._get_client()
        try:
            attempt = 0
            while True:
                try:
                    response = await client.get(url, params=params, headers=headers)
                    response.raise_for_status()
                    return response.json()
                except httpx.HTTPStatusError as e:
                    status_code = e.response.status_code
                    # Client errors will not improve on retry (bad key, malformed query)
                    if status_code < 500 and status_code != 429:
                        raise GeocodingError(
                            f"{self.name} rejected the request with HTTP {status_code}"
                        ) from e
                    attempt += 1
                    if attempt > self.max_retries:
                        raise GeocodingError(
                            f"{self.name} returned HTTP {status_code} after {self.max_retries} retries"
                        ) from e
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.debug(
                        f"{self.name} HTTP {status_code}, retrying in {wait_time:.1f}s "
                        f"(attempt {attempt}/{self.max_retries})"
                    )
                    await asyncio.sleep(wait_time)
                except (httpx.TimeoutException, httpx.NetworkError) as e:
                    attempt += 1
                    if attempt > self.max_retries:
                        logger.warning(f"{self.name} request failed after {self.max_retries} retries: {e}")
                        raise GeocodingError(f"Failed to reach {self.name}: {e}") from e
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.debug(
                        f"{self.name} network error, retrying in {wait_time:.1f}s "
                        f"(attempt {attempt}/{self.max_retries}): {e}"
                    )
                    await asyncio.sleep(wait_time)
                except httpx.HTTPError as e:
                    # Protocol and proxy failures; a broken exchange is not retried
                    raise GeocodingError(f"{self.name} request failed: {e!r}") from e
                except ValueError as e:
                    raise GeocodingError(f"{self.name} returned a malformed response: {e}") from e
        finally:
            if client is not self._client:
                await client.aclose()
