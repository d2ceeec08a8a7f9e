"""
Custom exceptions for the image registry.
Every error carries enough context (id, locator, backend) to be logged
and mapped to a transport-level response.
"""

from typing import Any


class RegistryException(Exception):
    """Base exception for all registry errors."""

    def __init__(
        self,
        error: str,
        message: str,
        status_code: int = 500,
        details: dict[str, Any] | None = None,
    ):
        self.error = error
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to response dictionary."""
        response = {
            "error": self.error,
            "message": self.message,
        }
        if self.details:
            response["details"] = self.details
        return response


class ValidationException(RegistryException):
    """400 - Malformed image record or query."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            error="validation_failed",
            message=message,
            status_code=400,
            details=details,
        )

    @classmethod
    def from_pydantic(cls, exc, message: str = "Invalid image metadata") -> "ValidationException":
        """Wrap a pydantic ValidationError, keeping only JSON-safe error fields."""
        errors = [
            {"field": ".".join(str(part) for part in error["loc"]) or None, "message": error["msg"]}
            for error in exc.errors()
        ]
        return cls(message=message, details={"errors": errors})


class UnsupportedStoreException(RegistryException):
    """400 - Unknown or unconfigured backend identifier."""

    def __init__(self, name: str):
        super().__init__(
            error="unsupported_store",
            message=f"The store '{name}' is not supported",
            status_code=400,
            details={"store": name},
        )


class UnauthorizedException(RegistryException):
    """401 - The auth collaborator denied the operation."""

    def __init__(self, message: str = "Valid token required", details: dict[str, Any] | None = None):
        super().__init__(
            error="unauthorized",
            message=message,
            status_code=401,
            details=details,
        )


class NotFoundException(RegistryException):
    """404 - Missing image record or missing backend object."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            error="not_found",
            message=message,
            status_code=404,
            details=details,
        )


class ImageNotFoundException(NotFoundException):
    """404 - No image record with the given id."""

    def __init__(self, image_id: int):
        super().__init__(
            message=f"No image found with id '{image_id}'",
            details={"id": image_id},
        )


class StoreObjectNotFoundException(NotFoundException):
    """404 - No image file at the given locator."""

    def __init__(self, locator: str, store: str | None = None):
        details = {"locator": locator}
        if store:
            details["store"] = store
        super().__init__(
            message=f"No image file found at {locator}",
            details=details,
        )


class UnsupportedOperationException(RegistryException):
    """405 - Write or delete attempted on a read-only backend."""

    def __init__(self, operation: str, store: str, locator: str):
        super().__init__(
            error="unsupported_operation",
            message=f"The '{store}' store does not support {operation}",
            status_code=405,
            details={"operation": operation, "store": store, "locator": locator},
        )


class ConflictException(RegistryException):
    """409 - Request conflicts with the current image state."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            error="conflict",
            message=message,
            status_code=409,
            details=details,
        )


class BackendUnavailableException(RegistryException):
    """503 - Network, credential or configuration failure talking to a store."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            error="backend_unavailable",
            message=message,
            status_code=503,
            details=details,
        )
