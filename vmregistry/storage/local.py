"""
Local filesystem storage backend.

    file:///path/to/my_image.iso
"""

import hashlib
import logging
from collections.abc import AsyncIterable, AsyncIterator
from pathlib import Path

import aiofiles
import aiofiles.os

from vmregistry.core.exceptions import (
    BackendUnavailableException,
    ConflictException,
    StoreObjectNotFoundException,
)
from vmregistry.storage.base import CHUNK_SIZE, ObjectStat, StorageBackend, StoredObject

logger = logging.getLogger(__name__)


class FileSystemBackend(StorageBackend):
    """
    Local filesystem storage implementation.

    Reads address a file through a ``file://`` URI. Uploads land in the
    configured ``directory`` (or the directory of the URI, if one was given).
    """

    name = "file"

    def _file_path(self) -> Path:
        """Path of the file this backend is bound to."""
        if not self.uri or not self.uri.path or self.uri.path.endswith("/"):
            raise StoreObjectNotFoundException(self.locator, self.name)
        return Path(self.uri.path)

    def _directory(self) -> Path:
        """Directory uploads are written to."""
        directory = self.config.get("directory")
        if directory:
            return Path(directory).expanduser()
        if self.uri and self.uri.path:
            path = Path(self.uri.path)
            return path if self.uri.path.endswith("/") else path.parent
        raise BackendUnavailableException(
            message="Filesystem store has no directory configured",
            details={"store": self.name, "required": "directory"},
        )

    async def fetch(self) -> AsyncIterator[bytes]:
        """Stream the file in chunks."""
        path = self._file_path()
        if not await aiofiles.os.path.isfile(path):
            raise StoreObjectNotFoundException(self.locator, self.name)
        return self._read_chunks(path)

    async def _read_chunks(self, path: Path) -> AsyncIterator[bytes]:
        try:
            async with aiofiles.open(path, "rb") as f:
                while chunk := await f.read(CHUNK_SIZE):
                    yield chunk
        except OSError as e:
            raise BackendUnavailableException(
                message=f"Failed to read image file: {e}",
                details={"locator": self.locator, "store": self.name},
            ) from e

    async def store(self, name: str, chunks: AsyncIterable[bytes]) -> StoredObject:
        """Write the stream to ``<directory>/<name>``, computing size and MD5 as it goes."""
        directory = self._directory()
        path = (directory / name).resolve()
        md5 = hashlib.md5()
        size = 0

        try:
            await aiofiles.os.makedirs(directory, exist_ok=True)
            async with aiofiles.open(path, "xb") as f:
                try:
                    async for chunk in chunks:
                        md5.update(chunk)
                        size += len(chunk)
                        await f.write(chunk)
                except Exception:
                    await self._discard(path)
                    raise
        except FileExistsError as e:
            raise ConflictException(
                message=f"The image file {path} already exists",
                details={"store": self.name, "locator": f"file://{path}"},
            ) from e
        except OSError as e:
            await self._discard(path)
            raise BackendUnavailableException(
                message=f"Failed to write image file: {e}",
                details={"store": self.name, "path": str(path)},
            ) from e

        location = f"file://{path.as_posix()}"
        logger.info("Stored %d bytes at %s", size, location)
        return StoredObject(location=location, size=size, checksum=md5.hexdigest())

    async def _discard(self, path: Path) -> None:
        """Best-effort removal of a partially written file."""
        try:
            if await aiofiles.os.path.exists(path):
                await aiofiles.os.remove(path)
        except OSError as e:
            logger.warning("Could not remove partial file %s: %s", path, e)

    async def delete(self) -> None:
        path = self._file_path()
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError as e:
            raise StoreObjectNotFoundException(self.locator, self.name) from e
        except OSError as e:
            raise BackendUnavailableException(
                message=f"Failed to delete image file: {e}",
                details={"locator": self.locator, "store": self.name},
            ) from e
        logger.info("Deleted %s", self.locator)

    async def exists(self) -> bool:
        return await aiofiles.os.path.isfile(self._file_path())

    async def stat(self) -> ObjectStat:
        path = self._file_path()
        try:
            result = await aiofiles.os.stat(path)
        except FileNotFoundError as e:
            raise StoreObjectNotFoundException(self.locator, self.name) from e
        return ObjectStat(size=result.st_size, checksum=None)
