"""
FastAPI dependency injection functions.
Provides common dependencies used across endpoints.
"""

from typing import Annotated, Any

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from vmregistry.auth.client import AuthClient
from vmregistry.auth.dependencies import get_auth_client
from vmregistry.config import get_settings
from vmregistry.db.session import get_db
from vmregistry.services.registry import ImageRegistry


def get_store_configs() -> dict[str, dict[str, Any]]:
    """Backend settings keyed by backend name, as handed to the resolver."""
    return get_settings().store_configs()


def get_registry(
    db: Annotated[AsyncSession, Depends(get_db)],
    auth: Annotated[AuthClient, Depends(get_auth_client)],
) -> ImageRegistry:
    """Image registry bound to the request session."""
    return ImageRegistry(db, authorizer=auth)


# Type aliases for cleaner endpoint signatures
DbSession = Annotated[AsyncSession, Depends(get_db)]
StoreConfigs = Annotated[dict[str, dict[str, Any]], Depends(get_store_configs)]
Registry = Annotated[ImageRegistry, Depends(get_registry)]
