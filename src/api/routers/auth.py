"""Account endpoints: sign-up, sign-in, sign-out and current user."""
import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from api.dependencies import get_gateway, get_settings, security
from core.auth import resolve_identity
from core.auth_cache import get_auth_cache
from core.config import Settings
from core.gateway import GatewayClient, GatewayError
from schemas.auth import (
    AuthResult,
    CurrentUserResponse,
    MessageResponse,
    SignInRequest,
    SignUpRequest,
)
from schemas.errors import ERROR_RESPONSES
from services import auth_service
from services.exceptions import AuthError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"], responses=ERROR_RESPONSES)


@router.post("/signup", response_model=AuthResult, status_code=201)
async def sign_up(
    data: SignUpRequest,
    gateway: GatewayClient = Depends(get_gateway),
) -> AuthResult:
    """Create an account and its profile (full name and grade)."""
    try:
        result = await auth_service.sign_up(gateway, data)
    except AuthError as e:
        raise HTTPException(status_code=400, detail=e.message) from e
    return AuthResult(message="User created successfully", data=result)


@router.post("/signin", response_model=AuthResult)
async def sign_in(
    data: SignInRequest,
    gateway: GatewayClient = Depends(get_gateway),
) -> AuthResult:
    """Sign in with email and password, returning the session."""
    try:
        result = await auth_service.sign_in(gateway, data)
    except AuthError as e:
        raise HTTPException(status_code=400, detail=e.message) from e
    return AuthResult(message="Signed in successfully", data=result)


@router.post("/signout", response_model=MessageResponse)
async def sign_out(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    gateway: GatewayClient = Depends(get_gateway),
) -> MessageResponse:
    """Revoke the caller's session. Succeeds when there is no session."""
    token = credentials.credentials if credentials else None
    try:
        await auth_service.sign_out(gateway, token)
    except AuthError as e:
        raise HTTPException(status_code=400, detail=e.message) from e
    cache = get_auth_cache()
    if token and cache is not None:
        await cache.invalidate(token)
    return MessageResponse(message="Signed out successfully")


@router.get("/user", response_model=CurrentUserResponse)
async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    settings: Settings = Depends(get_settings),
    gateway: GatewayClient = Depends(get_gateway),
) -> CurrentUserResponse:
    """Get the signed-in identity, or `{"user": null}`. Never fails."""
    if credentials is None:
        return CurrentUserResponse(user=None)
    try:
        user = await resolve_identity(credentials.credentials, settings, gateway)
    except GatewayError as e:
        logger.warning("current_user_lookup_failed error=%s", e)
        return CurrentUserResponse(user=None)
    return CurrentUserResponse(user=user)
