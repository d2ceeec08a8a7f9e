"""
Pydantic schemas for image metadata validation.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from vmregistry.models.image import (
    AccessLevel,
    Architecture,
    ImageFormat,
    ImageStatus,
    ImageType,
    StoreName,
)

# Attributes set by the registry itself, never by clients
READONLY = (
    "id", "uri", "owner", "status", "size", "checksum",
    "created_at", "updated_at", "uploaded_at", "accessed_at", "access_count",
)

# Brief attributes returned by brief listings
BRIEF = ("id", "uri", "name", "architecture", "type", "format", "store", "size", "created_at")

# Attributes hidden from detailed public listings
DETAIL_EXC = ("owner", "uploaded_at", "accessed_at", "access_count")

SORTABLE = (
    "id", "name", "architecture", "access", "type", "format", "store",
    "status", "size", "owner", "created_at", "updated_at",
)


def _reject_keys(data: Any, keys: tuple[str, ...]) -> Any:
    if isinstance(data, dict):
        present = sorted(k for k in data if k in keys)
        if present:
            raise ValueError(f"These fields are read-only: {', '.join(present)}")
    return data


class ImageAttributes(BaseModel):
    """Optional attributes shared by create and update payloads."""

    access: AccessLevel | None = None
    type: ImageType | None = None
    format: ImageFormat | None = None
    store: StoreName | None = None
    location: str | None = Field(default=None, min_length=1, max_length=1024)
    kernel: int | None = Field(default=None, ge=1)
    ramdisk: int | None = Field(default=None, ge=1)
    properties: dict[str, Any] | None = None

    # Unknown attributes are kept and folded into ``properties``
    model_config = ConfigDict(extra="allow")

    def extra_properties(self) -> dict[str, Any]:
        """Free-form properties: the explicit dict plus any unknown keys."""
        merged = dict(self.properties or {})
        merged.update(self.model_extra or {})
        return merged

    def known_fields(self) -> dict[str, Any]:
        """Known attributes that were explicitly provided."""
        return {
            key: getattr(self, key)
            for key in self.model_fields_set
            if key in type(self).model_fields and key != "properties"
        }


class ImageCreate(ImageAttributes):
    """Payload registering a new image."""

    name: str = Field(..., min_length=1, max_length=255)
    architecture: Architecture

    @model_validator(mode="before")
    @classmethod
    def reject_protected(cls, data: Any) -> Any:
        return _reject_keys(data, READONLY)


class ImageUpdate(ImageAttributes):
    """Payload patching an existing image. ``id`` and other read-only fields are rejected."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    architecture: Architecture | None = None

    @model_validator(mode="before")
    @classmethod
    def reject_protected(cls, data: Any) -> Any:
        return _reject_keys(data, READONLY)


class ImageFilters(BaseModel):
    """Query filters for image listings (GET /images, GET /images/detail)."""

    name: str | None = None
    architecture: Architecture | None = None
    access: AccessLevel | None = None
    type: ImageType | None = None
    format: ImageFormat | None = None
    store: StoreName | None = None
    status: ImageStatus | None = None
    size: int | None = None
    checksum: str | None = None
    owner: str | None = None
    kernel: int | None = None
    ramdisk: int | None = None
    sort: str = "id"
    dir: Literal["asc", "desc"] = "asc"

    model_config = ConfigDict(extra="forbid")

    @field_validator("sort")
    @classmethod
    def validate_sort(cls, v: str) -> str:
        if v not in SORTABLE:
            raise ValueError(f"Cannot sort by '{v}', available options: {', '.join(SORTABLE)}")
        return v

    def equality_filters(self) -> dict[str, Any]:
        """Attribute filters that were actually provided."""
        return {
            key: getattr(self, key)
            for key in self.model_fields_set
            if key not in ("sort", "dir") and getattr(self, key) is not None
        }
