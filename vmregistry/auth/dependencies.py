"""
Authentication dependencies for FastAPI.
"""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Header

from vmregistry.auth.client import AuthClient
from vmregistry.core.exceptions import UnauthorizedException


async def get_token(authorization: str | None = Header(default=None)) -> str | None:
    """
    Extract the Bearer token from the Authorization header.

    A missing header yields None, anonymous requests are allowed to read
    public images. A malformed header is rejected.
    """
    if not authorization:
        return None

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise UnauthorizedException("Invalid authorization header format")

    return parts[1]


@lru_cache
def get_auth_client() -> AuthClient:
    """Shared auth client, overridable in tests."""
    return AuthClient()


# Type aliases for dependency injection
Token = Annotated[str | None, Depends(get_token)]
Auth = Annotated[AuthClient, Depends(get_auth_client)]
