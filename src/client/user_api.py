"""Resource functions for user profiles."""
import httpx

from client.api_client import ApiError, api_request, parse_model
from schemas.auth import AuthUser
from schemas.user import UserCreate, UserEnvelope, UserListResponse, UserResponse, UserUpdate

USERS_PATH = "/api/users"


async def get_user(client: httpx.AsyncClient, user_id: str) -> UserResponse | None:
    """Fetch a user profile, or None if it does not exist."""
    try:
        body = await api_request(
            client, "GET", f"{USERS_PATH}/{user_id}", entity_type="user", entity_id=user_id,
        )
    except ApiError as e:
        if e.category == "not_found":
            return None
        raise
    return parse_model(UserEnvelope, body, "user").user


async def create_or_update_user(client: httpx.AsyncClient, data: UserCreate) -> UserResponse:
    """Create a user profile, or refresh the existing one."""
    body = await api_request(client, "POST", USERS_PATH, json=data.model_dump(mode="json"))
    return parse_model(UserEnvelope, body, "user").user


async def update_user(
    client: httpx.AsyncClient,
    user_id: str,
    data: UserUpdate,
) -> UserResponse:
    """Update the signed-in user's own profile."""
    body = await api_request(
        client, "PUT", f"{USERS_PATH}/{user_id}",
        json=data.model_dump(mode="json", exclude_unset=True),
        entity_type="user", entity_id=user_id,
    )
    return parse_model(UserEnvelope, body, "user").user


async def delete_user(client: httpx.AsyncClient, user_id: str) -> bool:
    """
    Delete the signed-in user's own profile.

    Returns:
        True if deleted, False if the profile is not the caller's.
    """
    try:
        await api_request(client, "DELETE", f"{USERS_PATH}/{user_id}")
    except ApiError as e:
        if e.category in ("not_found", "forbidden"):
            return False
        raise
    return True


async def list_users(
    client: httpx.AsyncClient,
    *,
    page: int | None = None,
    limit: int | None = None,
    search: str | None = None,
    grade: str | None = None,
) -> UserListResponse:
    """Fetch one page of user profiles."""
    params = {
        key: value
        for key, value in {"page": page, "limit": limit, "search": search, "grade": grade}.items()
        if value
    }
    body = await api_request(client, "GET", USERS_PATH, params=params)
    return parse_model(UserListResponse, body, "user list")


class ApiUserStore:
    """Profile lookups used by the realtime user synchronizer, backed by the API."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def get_user(self, user_id: str) -> UserResponse | None:
        """Fetch the profile for `user_id`, or None if it does not exist."""
        return await get_user(self._client, user_id)

    async def create_from_identity(self, identity: AuthUser) -> UserResponse:
        """Create a profile from the identity provider's email and display name."""
        return await create_or_update_user(
            self._client,
            UserCreate(
                id=identity.id,
                email=identity.email or "",
                full_name=identity.display_name,
            ),
        )
