"""
Apache Hadoop HDFS storage backend, spoken over the WebHDFS REST API.

    hdfs://<username>@<host>:<port>/webhdfs/v1/<bucket>/<image>
"""

import hashlib
import logging
from collections.abc import AsyncIterable, AsyncIterator

import httpx

from vmregistry.core.exceptions import (
    BackendUnavailableException,
    ConflictException,
    StoreObjectNotFoundException,
)
from vmregistry.storage.base import CHUNK_SIZE, ObjectStat, StorageBackend, StoredObject

logger = logging.getLogger(__name__)

CONTEXT_ROOT = "webhdfs/v1"


class HDFSBackend(StorageBackend):
    """
    HDFS through WebHDFS.

    Reads follow the namenode redirect to a datanode. Writes use the
    two-step CREATE: the namenode answers with a redirect and the data is
    then sent to the datanode it names.
    """

    name = "hdfs"

    def _misconfigured(self, missing: str) -> BackendUnavailableException:
        return BackendUnavailableException(
            message=f"The hdfs store is missing its {missing}",
            details={"store": self.name, "locator": self.locator, "required": missing},
        )

    def _unavailable(self, e: Exception) -> BackendUnavailableException:
        return BackendUnavailableException(
            message=f"WebHDFS request failed: {e}",
            details={"store": self.name, "locator": self.locator},
        )

    def _client(self, follow_redirects: bool = True) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.config.get("timeout", 30.0),
            follow_redirects=follow_redirects,
            transport=self.config.get("transport"),
        )

    def _endpoint(self) -> tuple[str, str | None]:
        """``host:port`` of the namenode and the user to act as."""
        if self.uri:
            try:
                host, port = self.uri.hostname, self.uri.port
            except ValueError:
                raise self._misconfigured("port") from None
            username = self.uri_credentials()[0]
        else:
            host = self.config.get("host")
            port = self.config.get("port")
            username = self.config.get("username")
        if not host:
            raise self._misconfigured("host")
        return (f"{host}:{port}" if port else host), username

    def _file_path(self) -> str:
        """``<bucket>/<file>`` addressed by the locator."""
        if not self.uri:
            raise StoreObjectNotFoundException(self.locator, self.name)
        segments = self.uri.path.strip("/").split("/")
        if "/".join(segments[:2]) != CONTEXT_ROOT or len(segments) < 4:
            raise self._misconfigured("/webhdfs/v1/<bucket>/<file> path")
        return "/".join(segments[2:])

    def _url(self, path: str) -> str:
        netloc, _ = self._endpoint()
        return f"http://{netloc}/{CONTEXT_ROOT}/{path}"

    def _params(self, op: str, **extra) -> dict:
        _, username = self._endpoint()
        params = {"op": op, **extra}
        if username:
            params["user.name"] = username
        return params

    def _check(self, response: httpx.Response) -> None:
        if response.status_code == 404:
            raise StoreObjectNotFoundException(self.locator, self.name)
        if response.is_error:
            raise BackendUnavailableException(
                message=f"Unexpected WebHDFS response {response.status_code}",
                details={"store": self.name, "locator": self.locator, "status": response.status_code},
            )

    async def fetch(self) -> AsyncIterator[bytes]:
        url = self._url(self._file_path())
        client = self._client()
        try:
            request = client.build_request("GET", url, params=self._params("OPEN", offset=0))
            response = await client.send(request, stream=True)
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

    async def _file_status(self, path: str) -> dict:
        async with self._client() as client:
            try:
                response = await client.get(self._url(path), params=self._params("GETFILESTATUS"))
            except httpx.HTTPError as e:
                raise self._unavailable(e) from e
        self._check(response)
        return response.json().get("FileStatus", {})

    async def store(self, name: str, chunks: AsyncIterable[bytes]) -> StoredObject:
        """Create ``<bucket>/<name>`` without overwriting an existing file."""
        if self.uri:
            bucket = self._file_path().split("/")[0]
        else:
            bucket = self.config.get("bucket")
            if not bucket:
                raise self._misconfigured("bucket")
        path = f"{bucket}/{name}"
        url = self._url(path)

        try:
            await self._file_status(path)
        except StoreObjectNotFoundException:
            pass
        else:
            raise ConflictException(
                message=f"The image file {path} already exists",
                details={"store": self.name, "path": path},
            )

        md5 = hashlib.md5()
        size = 0

        async def counted() -> AsyncIterator[bytes]:
            nonlocal size
            async for chunk in chunks:
                md5.update(chunk)
                size += len(chunk)
                yield chunk

        async with self._client(follow_redirects=False) as client:
            try:
                response = await client.put(url, params=self._params("CREATE", overwrite="false"))
                if response.status_code == 403 and "FileAlreadyExists" in response.text:
                    raise ConflictException(
                        message=f"The image file {path} already exists",
                        details={"store": self.name, "path": path},
                    )
                if response.status_code != 307 or "location" not in response.headers:
                    self._check(response)
                    raise BackendUnavailableException(
                        message="WebHDFS did not redirect the CREATE request to a datanode",
                        details={"store": self.name, "path": path, "status": response.status_code},
                    )
                response = await client.put(response.headers["location"], content=counted())
            except httpx.HTTPError as e:
                raise self._unavailable(e) from e
        self._check(response)

        netloc, username = self._endpoint()
        user = f"{username}@" if username else ""
        location = f"hdfs://{user}{netloc}/{CONTEXT_ROOT}/{path}"
        logger.info("Stored %d bytes in HDFS as %s", size, path)
        return StoredObject(location=location, size=size, checksum=md5.hexdigest())

    async def delete(self) -> None:
        path = self._file_path()
        async with self._client() as client:
            try:
                response = await client.delete(self._url(path), params=self._params("DELETE"))
            except httpx.HTTPError as e:
                raise self._unavailable(e) from e
        self._check(response)
        if response.json().get("boolean") is False:
            raise StoreObjectNotFoundException(self.locator, self.name)
        logger.info("Deleted %s from HDFS", path)

    async def exists(self) -> bool:
        try:
            await self._file_status(self._file_path())
        except StoreObjectNotFoundException:
            return False
        return True

    async def stat(self) -> ObjectStat:
        status = await self._file_status(self._file_path())
        return ObjectStat(size=status.get("length"), checksum=None)
