"""
Authorization decisions for image operations.
"""

import enum
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from vmregistry.auth.jwt import ADMIN_SCOPE, TokenValidator, check_scope, extract_claims
from vmregistry.config import Settings, get_settings
from vmregistry.core.exceptions import UnauthorizedException

logger = logging.getLogger(__name__)


class Operation(str, enum.Enum):
    """Operations that may require authorization."""
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"


class AuthClient:
    """
    Client side of the auth service.

    A request is allowed when any of these holds:
    1. DEV_MODE is on
    2. The token subject owns the image
    3. The token carries the images:admin scope
    4. The image has no owner and the token is valid
    """

    def __init__(
        self,
        settings: Settings | None = None,
        validator: Callable[[str], Awaitable[dict[str, Any]]] | None = None,
    ):
        self.settings = settings or get_settings()
        self.validator = validator or TokenValidator(self.settings)

    async def authenticate(self, token: str | None) -> dict[str, Any] | None:
        """
        Resolve a token to its claims.

        Returns:
            Normalized claims, or None when the token is missing or invalid
        """
        if self.settings.DEV_MODE and not token:
            return {"user_id": self.settings.DEV_USER_ID, "scopes": [ADMIN_SCOPE]}
        if not token:
            return None
        try:
            payload = await self.validator(token)
        except UnauthorizedException as e:
            logger.info("Rejected token: %s", e.message)
            return None
        return extract_claims(payload)

    async def authorize(self, token: str | None, operation: Operation, image_owner: str | None) -> bool:
        """Decide whether ``token`` may perform ``operation`` on an image owned by ``image_owner``."""
        if self.settings.DEV_MODE:
            return True

        claims = await self.authenticate(token)
        if claims is None:
            return False
        if image_owner is None:
            return True
        if claims.get("user_id") == image_owner:
            return True
        if check_scope(claims, ADMIN_SCOPE):
            return True

        logger.info("Denied %s on image owned by %s to %s", operation.value, image_owner, claims.get("user_id"))
        return False
