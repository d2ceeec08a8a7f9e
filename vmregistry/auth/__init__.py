"""
Authentication and authorization module.
Validates JWT tokens issued by the auth service and decides image operations.
"""

from vmregistry.auth.jwt import ADMIN_SCOPE, JWKSCache, TokenValidator, extract_claims, check_scope
from vmregistry.auth.client import AuthClient, Operation
from vmregistry.auth.dependencies import get_token, get_auth_client, Token, Auth

__all__ = [
    # JWT functions
    "ADMIN_SCOPE",
    "JWKSCache",
    "TokenValidator",
    "extract_claims",
    "check_scope",
    # Authorization
    "AuthClient",
    "Operation",
    # Dependencies
    "get_token",
    "get_auth_client",
    "Token",
    "Auth",
]
