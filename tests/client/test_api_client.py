"""Tests for the client-core HTTP helpers and resource functions."""
import json

import httpx
import pytest
import respx
from httpx import Response

from client import auth_api, user_api
from client.api_client import (
    ApiError,
    MalformedResponseError,
    api_request,
    create_api_client,
    set_access_token,
)
from client.user_api import ApiUserStore
from core.config import Settings
from schemas.auth import AuthUser
from schemas.user import UserUpdate

BASE_URL = "http://test"

USER = {
    "id": "u-1",
    "email": "a@x.com",
    "full_name": "Dana Levi",
    "grade": "C",
    "created_at": "2024-05-01T10:00:00Z",
    "updated_at": "2024-05-01T10:00:00Z",
}


@pytest.fixture
def mock_api() -> respx.MockRouter:
    """Context manager for mocking API responses."""
    with respx.mock(base_url=BASE_URL) as respx_mock:
        yield respx_mock


@pytest.fixture
async def http(settings: Settings) -> httpx.AsyncClient:
    """Client-core HTTP client."""
    client = create_api_client(settings)
    yield client
    await client.aclose()


async def test__api_request__request_source_header_set(
    mock_api: respx.MockRouter, http: httpx.AsyncClient,
) -> None:
    """Test that X-Request-Source header identifies the client core."""
    route = mock_api.get("/anything").mock(return_value=Response(200, json={}))

    await api_request(http, "GET", "/anything")

    assert route.calls[0].request.headers["x-request-source"] == "client-core"


async def test__set_access_token__adds_and_clears_authorization(
    mock_api: respx.MockRouter, http: httpx.AsyncClient,
) -> None:
    """Test the bearer header follows the session."""
    route = mock_api.get("/anything").mock(return_value=Response(200, json={}))

    set_access_token(http, "tok-1")
    await api_request(http, "GET", "/anything")
    set_access_token(http, None)
    await api_request(http, "GET", "/anything")

    assert route.calls[0].request.headers["authorization"] == "Bearer tok-1"
    assert "authorization" not in route.calls[1].request.headers


async def test__api_request__error_status_raises_api_error(
    mock_api: respx.MockRouter, http: httpx.AsyncClient,
) -> None:
    """Test error responses become categorized ApiErrors."""
    mock_api.put("/api/users/u-2").mock(
        return_value=Response(403, json={"error": "Forbidden: You can only update your own profile"}),  # noqa: E501
    )

    with pytest.raises(ApiError) as exc_info:
        await user_api.update_user(http, "u-2", UserUpdate(full_name="X"))

    assert exc_info.value.category == "forbidden"
    assert exc_info.value.status_code == 403
    assert str(exc_info.value) == "Forbidden: You can only update your own profile"


async def test__api_request__non_object_body(
    mock_api: respx.MockRouter, http: httpx.AsyncClient,
) -> None:
    """Test success bodies must be JSON objects."""
    mock_api.get("/anything").mock(return_value=Response(200, json=[1, 2]))

    with pytest.raises(MalformedResponseError):
        await api_request(http, "GET", "/anything")


async def test__api_request__non_json_body(
    mock_api: respx.MockRouter, http: httpx.AsyncClient,
) -> None:
    """Test non-JSON success bodies are malformed."""
    mock_api.get("/anything").mock(return_value=Response(200, text="<html>"))

    with pytest.raises(MalformedResponseError):
        await api_request(http, "GET", "/anything")


async def test__get_user__not_found_is_none(
    mock_api: respx.MockRouter, http: httpx.AsyncClient,
) -> None:
    """Test a missing profile is None."""
    mock_api.get("/api/users/u-1").mock(
        return_value=Response(404, json={"error": "User not found"}),
    )

    assert await user_api.get_user(http, "u-1") is None


async def test__list_users__skips_empty_params(
    mock_api: respx.MockRouter, http: httpx.AsyncClient,
) -> None:
    """Test only set list parameters are sent."""
    route = mock_api.get("/api/users").mock(return_value=Response(200, json={
        "users": [USER],
        "pagination": {"page": 1, "limit": 10, "total": 1, "totalPages": 1},
    }))

    result = await user_api.list_users(http, search="dana", grade="")

    assert dict(route.calls[0].request.url.params) == {"search": "dana"}
    assert result.users[0].full_name == "Dana Levi"


async def test__api_user_store__creates_from_identity(
    mock_api: respx.MockRouter, http: httpx.AsyncClient,
) -> None:
    """Test a missing profile is created from the identity's email and name."""
    route = mock_api.post("/api/users").mock(return_value=Response(201, json={"user": USER}))
    store = ApiUserStore(http)

    user = await store.create_from_identity(AuthUser(
        id="u-1", email="a@x.com", user_metadata={"full_name": "Dana Levi"},
    ))

    assert json.loads(route.calls[0].request.content) == {
        "id": "u-1", "email": "a@x.com", "full_name": "Dana Levi", "grade": None,
    }
    assert user.id == "u-1"


async def test__sign_up__sends_camel_case_full_name(
    mock_api: respx.MockRouter, http: httpx.AsyncClient,
) -> None:
    """Test the sign-up body uses the route layer's field names."""
    route = mock_api.post("/api/auth/signup").mock(return_value=Response(201, json={
        "message": "User created successfully",
        "data": {"user": {"id": "u-1", "email": "a@x.com"}, "session": None},
    }))

    result = await auth_api.sign_up(http, "a@x.com", "secret1", "Dana Levi", "C")

    assert json.loads(route.calls[0].request.content)["fullName"] == "Dana Levi"
    assert result.session is None
    assert result.user is not None


async def test__get_current_user__null_user(
    mock_api: respx.MockRouter, http: httpx.AsyncClient,
) -> None:
    """Test an anonymous client resolves to no identity."""
    mock_api.get("/api/auth/user").mock(return_value=Response(200, json={"user": None}))

    assert await auth_api.get_current_user(http) is None
