"""
Pydantic schemas for error responses.
"""

from typing import Any

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    Standard error response format.

    Examples:
        400: {"error": "unsupported_store", "message": "The store 'filee' is not supported"}
        401: {"error": "unauthorized", "message": "Not authorized to delete image 3"}
        404: {"error": "not_found", "message": "No image found with id '3'"}
        503: {"error": "backend_unavailable", "message": "..."}
    """

    error: str = Field(
        ...,
        description="Error code string",
        examples=["validation_failed", "unauthorized", "not_found", "backend_unavailable"],
    )
    message: str = Field(
        ...,
        description="Human-readable error message",
    )
    details: dict[str, Any] | None = Field(
        default=None,
        description="Context such as the image id, locator or store",
    )
