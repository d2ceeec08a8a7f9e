"""
Abstract storage backend interface.
Defines the contract for all storage implementations.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterable, AsyncIterator, Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import unquote, urlsplit

CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class StoredObject:
    """Result of a completed ``store``: where the bytes went and what was written."""

    location: str
    size: int
    checksum: str | None


@dataclass(frozen=True)
class ObjectStat:
    """Cheap metadata about a stored object."""

    size: int | None
    checksum: str | None


class StorageBackend(ABC):
    """
    Abstract base class for storage backends.

    A backend instance is bound to one locator: either a full URI pointing
    at an existing image file, or a bare backend name (for uploads), in
    which case the backend settings come from ``config``. Construction never
    performs I/O; configuration problems surface from the operations.
    """

    name: str = ""

    def __init__(self, locator: str, config: Mapping[str, Any] | None = None):
        self.locator = locator
        self.config = dict(config or {})
        self.uri = urlsplit(locator) if "://" in locator else None

    def uri_credentials(self) -> tuple[str | None, str | None]:
        """User and password embedded in the locator, percent-decoded."""
        if not self.uri:
            return None, None
        user = unquote(self.uri.username) if self.uri.username else None
        password = unquote(self.uri.password) if self.uri.password else None
        return user, password

    @abstractmethod
    async def fetch(self) -> AsyncIterator[bytes]:
        """
        Open the image file for streaming.

        Existence and connectivity are checked before returning, so errors
        surface before any byte is produced. Every call returns a fresh
        iterator starting at byte zero.

        Returns:
            Async iterator over the file content in chunks

        Raises:
            StoreObjectNotFoundException: If the file does not exist
            BackendUnavailableException: On connection or credential failure
        """

    @abstractmethod
    async def store(self, name: str, chunks: AsyncIterable[bytes]) -> StoredObject:
        """
        Persist a byte stream as a new object called ``name``.

        The stream is consumed incrementally. A failure mid-stream leaves
        the destination in an undefined state.

        Args:
            name: Object name under the configured root (e.g. "42.iso")
            chunks: Incoming image bytes

        Returns:
            The final locator, size and checksum of the written object

        Raises:
            ConflictException: If an object already exists under that name
            BackendUnavailableException: On connection or credential failure
        """

    @abstractmethod
    async def delete(self) -> None:
        """
        Delete the image file.

        Raises:
            StoreObjectNotFoundException: If the file does not exist
        """

    @abstractmethod
    async def exists(self) -> bool:
        """Check whether the image file exists without transferring it."""

    @abstractmethod
    async def stat(self) -> ObjectStat:
        """
        Get size and checksum without transferring the payload.

        Raises:
            StoreObjectNotFoundException: If the file does not exist
        """

    async def get_size(self) -> int | None:
        """File size in bytes, if the backend reports one."""
        return (await self.stat()).size


# MIME type mapping for image formats
FORMAT_MIME_TYPES = {
    "iso": "application/x-iso9660-image",
    "vhd": "application/x-vhd",
    "vdi": "application/x-virtualbox-vdi",
    "vmdk": "application/x-vmdk",
}


def strip_etag(etag: str | None) -> str | None:
    """ETags come quoted and sometimes weak (W/"...")."""
    if not etag:
        return None
    if etag.startswith("W/"):
        etag = etag[2:]
    return etag.strip('"') or None


def get_mime_type(format: str | None) -> str:
    """Get MIME type for an image format."""
    if not format:
        return "application/octet-stream"
    return FORMAT_MIME_TYPES.get(format.lower(), "application/octet-stream")
