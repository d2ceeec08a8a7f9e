"""
Read-only HTTP storage backend.

    http://www.domain.com/path-to-image-file
    https://www.domain.com/path-to-image-file
"""

import logging
from collections.abc import AsyncIterable, AsyncIterator

import httpx

from vmregistry.core.exceptions import (
    BackendUnavailableException,
    StoreObjectNotFoundException,
    UnsupportedOperationException,
)
from vmregistry.storage.base import (
    CHUNK_SIZE,
    ObjectStat,
    StorageBackend,
    StoredObject,
    strip_etag,
)

logger = logging.getLogger(__name__)


class HTTPBackend(StorageBackend):
    """
    Image files served by a plain HTTP(S) server.

    Only reads are possible: uploads and deletes raise
    UnsupportedOperationException.
    """

    name = "http"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.config.get("timeout", 30.0),
            follow_redirects=True,
            transport=self.config.get("transport"),
        )

    def _unavailable(self, e: Exception) -> BackendUnavailableException:
        return BackendUnavailableException(
            message=f"Failed to reach {self.locator}: {e}",
            details={"locator": self.locator, "store": self.name},
        )

    def _check(self, response: httpx.Response) -> None:
        if response.status_code == 404:
            raise StoreObjectNotFoundException(self.locator, self.name)
        if response.is_error:
            raise BackendUnavailableException(
                message=f"Unexpected response {response.status_code} from {self.locator}",
                details={"locator": self.locator, "store": self.name, "status": response.status_code},
            )

    async def fetch(self) -> AsyncIterator[bytes]:
        """GET the file, following redirects, and stream its body."""
        logger.debug("Fetching %s", self.locator)
        client = self._client()
        try:
            response = await client.send(client.build_request("GET", self.locator), stream=True)
        except httpx.HTTPError as e:
            await client.aclose()
            raise self._unavailable(e) from e

        try:
            self._check(response)
        except Exception:
            await response.aclose()
            await client.aclose()
            raise
        return self._iter_body(client, response)

    async def _iter_body(self, client: httpx.AsyncClient, response: httpx.Response) -> AsyncIterator[bytes]:
        try:
            async for chunk in response.aiter_bytes(CHUNK_SIZE):
                yield chunk
        except httpx.HTTPError as e:
            raise self._unavailable(e) from e
        finally:
            await response.aclose()
            await client.aclose()

    async def _head(self) -> httpx.Response:
        async with self._client() as client:
            try:
                return await client.head(self.locator)
            except httpx.HTTPError as e:
                raise self._unavailable(e) from e

    async def store(self, name: str, chunks: AsyncIterable[bytes]) -> StoredObject:
        raise UnsupportedOperationException("store", self.name, self.locator)

    async def delete(self) -> None:
        raise UnsupportedOperationException("delete", self.name, self.locator)

    async def exists(self) -> bool:
        response = await self._head()
        if response.status_code == 404:
            return False
        self._check(response)
        return True

    async def stat(self) -> ObjectStat:
        """Size from Content-Length and checksum from the ETag."""
        response = await self._head()
        self._check(response)
        length = response.headers.get("content-length")
        return ObjectStat(
            size=int(length) if length and length.isdigit() else None,
            checksum=strip_etag(response.headers.get("etag")),
        )
