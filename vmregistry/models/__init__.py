"""
SQLAlchemy ORM models for the image registry.
"""

from vmregistry.models.image import (
    Image,
    Counter,
    Architecture,
    AccessLevel,
    ImageFormat,
    ImageType,
    ImageStatus,
    StoreName,
)

__all__ = [
    "Image",
    "Counter",
    "Architecture",
    "AccessLevel",
    "ImageFormat",
    "ImageType",
    "ImageStatus",
    "StoreName",
]
