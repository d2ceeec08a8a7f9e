"""
Image metadata <-> HTTP header conversion.

Image metadata travels in headers of the form ``x-image-meta-<key>`` so
that the request and response bodies stay free for the image bytes.
"""

from collections.abc import Mapping
from typing import Any

META_PREFIX = "x-image-meta-"


def _header_name(key: Any) -> str:
    return f"{META_PREFIX}{str(key).lower().replace('_', '-')}"


def push_meta_into_headers(
    meta: Mapping[str, Any],
    headers: dict[str, str] | None = None,
) -> dict[str, str]:
    """
    Push image metadata into a headers dict.

    Args:
        meta: Image metadata
        headers: Existing headers to extend

    Returns:
        The headers containing one ``x-image-meta-<key>`` entry per attribute.
        Nested mappings (``properties``) are flattened, except for keys that
        name a top-level attribute.
    """
    headers = {} if headers is None else headers
    reserved = {_header_name(key) for key in meta}
    for key, value in meta.items():
        if value is None:
            continue
        if isinstance(value, Mapping):
            for sub_key, sub_value in value.items():
                name = _header_name(sub_key)
                if sub_value is not None and name not in reserved:
                    headers[name] = str(sub_value)
            continue
        headers[_header_name(key)] = str(value)
    return headers


def pull_meta_from_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """Extract image metadata from ``x-image-meta-*`` headers."""
    meta = {}
    for name, value in headers.items():
        name = name.lower()
        if not name.startswith(META_PREFIX):
            continue
        key = name[len(META_PREFIX):].replace("-", "_")
        if key:
            meta[key] = value
    return meta
