"""
Pydantic schemas for request validation and error bodies.
"""

from vmregistry.schemas.image import (
    BRIEF,
    DETAIL_EXC,
    READONLY,
    SORTABLE,
    ImageCreate,
    ImageUpdate,
    ImageFilters,
)
from vmregistry.schemas.error import ErrorResponse

__all__ = [
    "BRIEF",
    "DETAIL_EXC",
    "READONLY",
    "SORTABLE",
    "ImageCreate",
    "ImageUpdate",
    "ImageFilters",
    "ErrorResponse",
]
