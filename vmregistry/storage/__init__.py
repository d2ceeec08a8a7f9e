"""
Storage abstraction layer for the image registry.
Supports the local filesystem, HTTP, S3 and its Cumulus, Walrus and
Lunacloud variants, and HDFS.
"""

from vmregistry.storage.base import (
    FORMAT_MIME_TYPES,
    ObjectStat,
    StorageBackend,
    StoredObject,
    get_mime_type,
)
from vmregistry.storage.hdfs import HDFSBackend
from vmregistry.storage.http import HTTPBackend
from vmregistry.storage.local import FileSystemBackend
from vmregistry.storage.resolver import BACKENDS, backend_name, resolve
from vmregistry.storage.s3 import CumulusBackend, LunacloudBackend, S3Backend, WalrusBackend

__all__ = [
    "StorageBackend",
    "StoredObject",
    "ObjectStat",
    "FileSystemBackend",
    "HTTPBackend",
    "S3Backend",
    "CumulusBackend",
    "WalrusBackend",
    "LunacloudBackend",
    "HDFSBackend",
    "BACKENDS",
    "backend_name",
    "resolve",
    "get_mime_type",
    "FORMAT_MIME_TYPES",
]
