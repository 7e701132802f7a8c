"""User profile endpoints."""
from fastapi import APIRouter, Depends, HTTPException, Query

from api.dependencies import CurrentUser, get_current_user, get_gateway
from core.gateway import GatewayClient
from schemas.auth import MessageResponse
from schemas.errors import ERROR_RESPONSES
from schemas.user import UserCreate, UserEnvelope, UserListResponse, UserUpdate
from services import user_service
from services.exceptions import ForbiddenError, UserNotFoundError

router = APIRouter(prefix="/api/users", tags=["users"], responses=ERROR_RESPONSES)


@router.get("", response_model=UserListResponse)
async def list_users(
    page: int = Query(default=1, ge=1, description="1-based page number"),
    limit: int = Query(default=10, ge=1, le=100, description="Page size"),
    search: str | None = Query(default=None, description="Match full name or email (case-insensitive)"),  # noqa: E501
    grade: str | None = Query(default=None, description="Only users in this grade"),
    current_user: CurrentUser = Depends(get_current_user),
    gateway: GatewayClient = Depends(get_gateway),
) -> UserListResponse:
    """List user profiles, newest first."""
    return await user_service.list_users(
        gateway,
        current_user.access_token,
        page=page,
        limit=limit,
        search=search or None,
        grade=grade or None,
    )


@router.post("", response_model=UserEnvelope, status_code=201)
async def upsert_user(
    data: UserCreate,
    current_user: CurrentUser = Depends(get_current_user),
    gateway: GatewayClient = Depends(get_gateway),
) -> UserEnvelope:
    """Create a user profile, or refresh it if the id already exists."""
    user = await user_service.upsert_user(gateway, current_user.access_token, data)
    return UserEnvelope(user=user)


@router.get("/{user_id}", response_model=UserEnvelope)
async def get_user(
    user_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    gateway: GatewayClient = Depends(get_gateway),
) -> UserEnvelope:
    """Get a user profile by ID."""
    try:
        user = await user_service.get_user(gateway, current_user.access_token, user_id)
    except UserNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return UserEnvelope(user=user)


@router.put("/{user_id}", response_model=UserEnvelope)
async def update_user(
    user_id: str,
    data: UserUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    gateway: GatewayClient = Depends(get_gateway),
) -> UserEnvelope:
    """Update the caller's own profile (full name and grade only)."""
    try:
        user = await user_service.update_user(
            gateway, current_user.access_token, current_user.id, user_id, data,
        )
    except ForbiddenError as e:
        raise HTTPException(status_code=403, detail=str(e)) from e
    except UserNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return UserEnvelope(user=user)


@router.delete("/{user_id}", response_model=MessageResponse)
async def delete_user(
    user_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    gateway: GatewayClient = Depends(get_gateway),
) -> MessageResponse:
    """Delete the caller's own profile."""
    try:
        await user_service.delete_user(
            gateway, current_user.access_token, current_user.id, user_id,
        )
    except ForbiddenError as e:
        raise HTTPException(status_code=403, detail=str(e)) from e
    return MessageResponse(message="User deleted successfully")
