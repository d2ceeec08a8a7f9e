"""
JWT token validation with JWKS caching.
Tokens are issued by the external auth service and signed with RS256.
"""

import logging
import time
from typing import Any

import httpx
from jose import JWTError, jwt
from jose.exceptions import ExpiredSignatureError

from vmregistry.config import Settings, get_settings
from vmregistry.core.exceptions import UnauthorizedException

logger = logging.getLogger(__name__)

# Scope granting every operation on every image
ADMIN_SCOPE = "images:admin"

# Minimum seconds between refetches triggered by an unknown key id
MIN_REFRESH_INTERVAL = 60.0


class JWKSCache:
    """
    JSON Web Key Set of the auth service, cached for ``ttl`` seconds.

    A token signed with a key id the cache does not know triggers one early
    refetch, so rotated keys are picked up before the TTL expires.
    """

    def __init__(
        self,
        url: str,
        ttl: float,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url
        self.ttl = ttl
        self.transport = transport
        self._keys: dict[str, Any] = {}
        self._fetched_at: float = 0

    def _fresh(self, max_age: float) -> bool:
        return bool(self._keys) and (time.monotonic() - self._fetched_at) < max_age

    async def get(self, force: bool = False) -> dict[str, Any]:
        """
        Return the key set, fetching it when stale.

        Raises:
            UnauthorizedException: If JWKS cannot be fetched and nothing is cached
        """
        if self._fresh(MIN_REFRESH_INTERVAL if force else self.ttl):
            return self._keys

        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=10.0) as client:
                response = await client.get(self.url)
                response.raise_for_status()
                self._keys = response.json()
                self._fetched_at = time.monotonic()
                return self._keys

        except httpx.HTTPError as e:
            if self._keys:
                logger.warning("JWKS refresh failed, using cached keys: %s", e)
                return self._keys
            raise UnauthorizedException(f"Failed to fetch JWKS: {str(e)}")

    async def find(self, kid: str) -> dict[str, Any] | None:
        """RSA public key with the given key id, refetching once if unknown."""
        key = get_rsa_key(await self.get(), kid)
        if key is None:
            key = get_rsa_key(await self.get(force=True), kid)
        return key


def get_rsa_key(jwks: dict[str, Any], kid: str) -> dict[str, Any] | None:
    """Get the RSA public key with the given key ID."""
    for key in jwks.get("keys", []):
        if key.get("kid") == kid:
            return {
                "kty": key.get("kty"),
                "kid": key.get("kid"),
                "use": key.get("use"),
                "n": key.get("n"),
                "e": key.get("e"),
            }
    return None


class TokenValidator:
    """
    Validates tokens against one auth service.

    Checks the signature with the JWKS public key, then expiration,
    issuer and audience.
    """

    def __init__(self, settings: Settings | None = None, jwks: JWKSCache | None = None):
        self.settings = settings or get_settings()
        self.jwks = jwks or JWKSCache(self.settings.AUTH_JWKS_URL, self.settings.JWKS_CACHE_TTL)

    async def __call__(self, token: str) -> dict[str, Any]:
        """
        Returns:
            Decoded token claims

        Raises:
            UnauthorizedException: If token is invalid
        """
        try:
            kid = jwt.get_unverified_header(token).get("kid")
            if not kid:
                raise UnauthorizedException("Token missing key ID")

            rsa_key = await self.jwks.find(kid)
            if not rsa_key:
                raise UnauthorizedException("Unable to find appropriate key")

            return jwt.decode(
                token,
                rsa_key,
                algorithms=["RS256"],
                audience=self.settings.AUTH_AUDIENCE,
                issuer=self.settings.AUTH_ISSUER,
            )

        except ExpiredSignatureError:
            raise UnauthorizedException("Token has expired")
        except JWTError as e:
            raise UnauthorizedException(f"Invalid token: {str(e)}")


def extract_claims(payload: dict[str, Any]) -> dict[str, Any]:
    """
    Normalize a validated payload.

    - sub: User unique identifier
    - scope: Space separated scopes
    """
    scope = payload.get("scope")
    return {
        "user_id": payload.get("sub"),
        "scopes": scope.split() if scope else [],
    }


def check_scope(claims: dict[str, Any], required_scope: str) -> bool:
    """Check if the claims carry ``required_scope``."""
    return required_scope in claims.get("scopes", [])
