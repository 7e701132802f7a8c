"""Authentication dependencies: resolve a bearer token to a gateway identity."""
import logging
from dataclasses import dataclass

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from core.auth_cache import get_auth_cache
from core.config import Settings, get_settings
from core.gateway import GatewayClient, GatewayError, get_gateway
from schemas.auth import AuthUser

logger = logging.getLogger(__name__)

# HTTP Bearer token scheme
security = HTTPBearer(auto_error=False)

# Audience claim the gateway puts on tokens issued to signed-in users
TOKEN_AUDIENCE = "authenticated"


@dataclass
class CurrentUser:
    """
    Authenticated caller.

    Carries the raw access token so route handlers can forward it to the
    gateway, where row-level security enforces ownership.
    """

    id: str
    email: str | None
    access_token: str


class InvalidTokenError(Exception):
    """Raised when a bearer token cannot be verified."""


def decode_jwt(token: str, settings: Settings) -> dict:
    """
    Decode and validate a gateway-issued JWT with the project secret.

    Raises:
        InvalidTokenError: If token is invalid, expired, or has the wrong audience.
    """
    try:
        return jwt.decode(
            token,
            settings.gateway_jwt_secret,
            algorithms=["HS256"],
            audience=TOKEN_AUDIENCE,
        )
    except jwt.ExpiredSignatureError as e:
        raise InvalidTokenError("Token has expired") from e
    except jwt.PyJWTError as e:
        logger.warning("JWT validation failed: %s", e)
        raise InvalidTokenError("Invalid token") from e


async def resolve_identity(
    token: str,
    settings: Settings,
    gateway: GatewayClient,
) -> AuthUser | None:
    """
    Resolve an access token to the identity it was issued for.

    With a configured JWT secret the token is verified locally; otherwise the
    gateway is asked, and the answer cached for a few minutes.

    Returns:
        The identity, or None if the token is not valid.

    Raises:
        GatewayError: If the gateway could not be asked.
    """
    if settings.gateway_jwt_secret:
        try:
            payload = decode_jwt(token, settings)
        except InvalidTokenError:
            return None
        sub = payload.get("sub")
        if not sub:
            return None
        return AuthUser(
            id=sub,
            email=payload.get("email"),
            user_metadata=payload.get("user_metadata") or {},
        )

    cache = get_auth_cache()
    if cache is not None:
        cached = await cache.get(token)
        if cached is not None:
            return cached

    user = await gateway.get_user(token)
    if user is not None and cache is not None:
        await cache.set(token, user)
    return user


async def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    settings: Settings = Depends(get_settings),
    gateway: GatewayClient = Depends(get_gateway),
) -> CurrentUser | None:
    """Dependency returning the caller, or None when unauthenticated."""
    if credentials is None:
        return None
    token = credentials.credentials
    try:
        identity = await resolve_identity(token, settings, gateway)
    except GatewayError as e:
        logger.error("Failed to resolve token with gateway: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not validate credentials",
        ) from e
    if identity is None:
        return None
    return CurrentUser(id=identity.id, email=identity.email, access_token=token)


async def get_current_user(
    current_user: CurrentUser | None = Depends(get_optional_user),
) -> CurrentUser:
    """Dependency that requires an authenticated caller."""
    if current_user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return current_user
