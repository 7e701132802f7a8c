"""Resource functions for account sign-up, sign-in and sign-out."""
import httpx

from client.api_client import api_request, parse_model
from schemas.auth import AuthResponse, AuthResult, AuthUser, CurrentUserResponse

AUTH_PATH = "/api/auth"


async def sign_up(
    client: httpx.AsyncClient,
    email: str,
    password: str,
    full_name: str,
    grade: str,
) -> AuthResponse:
    """Create an account. `session` is None when email confirmation is required."""
    body = await api_request(
        client, "POST", f"{AUTH_PATH}/signup",
        json={"email": email, "password": password, "fullName": full_name, "grade": grade},
    )
    return parse_model(AuthResult, body, "sign-up response").data


async def sign_in(client: httpx.AsyncClient, email: str, password: str) -> AuthResponse:
    """Sign in with email and password."""
    body = await api_request(
        client, "POST", f"{AUTH_PATH}/signin", json={"email": email, "password": password},
    )
    return parse_model(AuthResult, body, "sign-in response").data


async def sign_out(client: httpx.AsyncClient) -> None:
    """Revoke the session the client is authenticated with."""
    await api_request(client, "POST", f"{AUTH_PATH}/signout")


async def get_current_user(client: httpx.AsyncClient) -> AuthUser | None:
    """Get the identity the client is authenticated as, or None."""
    body = await api_request(client, "GET", f"{AUTH_PATH}/user")
    return parse_model(CurrentUserResponse, body, "current user").user
