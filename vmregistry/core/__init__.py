"""Core utilities and exceptions for the image registry."""

from vmregistry.core.exceptions import (
    RegistryException,
    ValidationException,
    UnsupportedStoreException,
    UnauthorizedException,
    NotFoundException,
    ImageNotFoundException,
    StoreObjectNotFoundException,
    UnsupportedOperationException,
    ConflictException,
    BackendUnavailableException,
)

__all__ = [
    "RegistryException",
    "ValidationException",
    "UnsupportedStoreException",
    "UnauthorizedException",
    "NotFoundException",
    "ImageNotFoundException",
    "StoreObjectNotFoundException",
    "UnsupportedOperationException",
    "ConflictException",
    "BackendUnavailableException",
]
