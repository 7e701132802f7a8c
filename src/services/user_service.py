"""Service layer for user profile records."""
import logging
from datetime import UTC, datetime

from core.gateway import GatewayClient, GatewayError
from schemas.summary import Pagination
from schemas.user import UserCreate, UserListResponse, UserResponse, UserUpdate
from services.exceptions import ForbiddenError, UserNotFoundError
from services.utils import ilike_any, page_range

logger = logging.getLogger(__name__)

USERS_TABLE = "users"
SEARCH_COLUMNS = ("full_name", "email")


async def list_users(
    gateway: GatewayClient,
    token: str,
    *,
    page: int = 1,
    limit: int = 10,
    search: str | None = None,
    grade: str | None = None,
) -> UserListResponse:
    """List user profiles, newest first, optionally searched by name or email."""
    result = await gateway.select(
        USERS_TABLE,
        token,
        filters={"grade": grade} if grade else None,
        or_filter=ilike_any(SEARCH_COLUMNS, search) if search else None,
        order=("created_at", False),
        range_=page_range(page, limit),
        count=True,
    )
    return UserListResponse(
        users=[UserResponse.model_validate(row) for row in result.rows],
        pagination=Pagination.build(page, limit, result.count or 0),
    )


async def get_user(gateway: GatewayClient, token: str | None, user_id: str) -> UserResponse:
    """
    Get a user profile by id.

    Raises:
        UserNotFoundError: If no profile has this id.
    """
    try:
        row = await gateway.select_single(USERS_TABLE, token, filters={"id": user_id})
    except GatewayError as e:
        if e.is_not_found:
            raise UserNotFoundError() from e
        raise
    return UserResponse.model_validate(row)


async def upsert_user(
    gateway: GatewayClient,
    token: str | None,
    data: UserCreate,
) -> UserResponse:
    """Create a user profile, or refresh the existing row with the same id."""
    row = await gateway.insert(
        USERS_TABLE,
        {
            "id": data.id,
            "email": data.email,
            "full_name": data.full_name,
            "grade": data.grade,
            "updated_at": datetime.now(UTC).isoformat(),
        },
        token,
        upsert=True,
    )
    logger.info("user_upserted id=%s", data.id)
    return UserResponse.model_validate(row)


async def update_user(
    gateway: GatewayClient,
    token: str,
    current_user_id: str,
    user_id: str,
    data: UserUpdate,
) -> UserResponse:
    """
    Update the caller's own profile with the fields present in `data`.

    Raises:
        ForbiddenError: If `user_id` is not the caller.
        UserNotFoundError: If the profile does not exist.
    """
    if current_user_id != user_id:
        raise ForbiddenError("Forbidden: You can only update your own profile")

    updates = data.model_dump(exclude_unset=True)
    updates["updated_at"] = datetime.now(UTC).isoformat()
    try:
        row = await gateway.update(USERS_TABLE, updates, {"id": user_id}, token)
    except GatewayError as e:
        if e.is_not_found:
            raise UserNotFoundError() from e
        raise
    logger.info("user_updated id=%s fields=%s", user_id, sorted(updates))
    return UserResponse.model_validate(row)


async def delete_user(
    gateway: GatewayClient,
    token: str,
    current_user_id: str,
    user_id: str,
) -> None:
    """
    Delete the caller's own profile.

    Raises:
        ForbiddenError: If `user_id` is not the caller.
    """
    if current_user_id != user_id:
        raise ForbiddenError("Forbidden: You can only delete your own profile")
    await gateway.delete(USERS_TABLE, {"id": user_id}, token)
    logger.info("user_deleted id=%s", user_id)
