"""
Storage backend resolution.
Maps a locator (a full URI or a bare backend name) to a configured backend.
"""

import logging
from collections.abc import Mapping
from typing import Any

from vmregistry.core.exceptions import UnsupportedStoreException
from vmregistry.storage.base import StorageBackend
from vmregistry.storage.hdfs import HDFSBackend
from vmregistry.storage.http import HTTPBackend
from vmregistry.storage.local import FileSystemBackend
from vmregistry.storage.s3 import CumulusBackend, LunacloudBackend, S3Backend, WalrusBackend

logger = logging.getLogger(__name__)

BACKENDS: dict[str, type[StorageBackend]] = {
    "file": FileSystemBackend,
    "http": HTTPBackend,
    "https": HTTPBackend,
    "s3": S3Backend,
    "cumulus": CumulusBackend,
    "walrus": WalrusBackend,
    "lunacloud": LunacloudBackend,
    "hdfs": HDFSBackend,
}


def backend_name(locator: str) -> str:
    """The URI scheme of ``locator``, or the whole string when it is a bare name."""
    if "://" in locator:
        return locator.split("://", 1)[0]
    return locator


def resolve(locator: str, config: Mapping[str, Mapping[str, Any]]) -> StorageBackend:
    """
    Get the backend responsible for ``locator``.

    Matching is exact and case-sensitive. The backend also needs an entry
    in ``config`` (https shares the http entry), otherwise it is treated as
    unsupported.

    Args:
        locator: Full URI of an image file, or a backend name for uploads
        config: Backend settings keyed by backend name

    Returns:
        A backend bound to ``locator``. No I/O has been performed yet.

    Raises:
        UnsupportedStoreException: If no backend matches or it is not configured
    """
    name = backend_name(locator)
    cls = BACKENDS.get(name)
    if cls is None:
        raise UnsupportedStoreException(name)

    config_key = cls.name
    if config_key not in config:
        raise UnsupportedStoreException(name)

    logger.debug("Resolved %s to %s", locator, cls.__name__)
    return cls(locator, config[config_key])
