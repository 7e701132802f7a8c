"""Service layer for account sign-up, sign-in and sign-out."""
import logging
from datetime import UTC, datetime

from core.gateway import GatewayClient, GatewayError
from schemas.auth import AuthResponse, SignInRequest, SignUpRequest
from services.exceptions import AuthError
from services.user_service import USERS_TABLE

logger = logging.getLogger(__name__)


async def sign_up(gateway: GatewayClient, data: SignUpRequest) -> AuthResponse:
    """
    Create an auth identity and its user profile.

    The profile is written with the new session's token when the gateway
    returns one. A failed profile write is logged and does not fail sign-up;
    the profile is created on first sign-in instead.

    Raises:
        AuthError: If the gateway rejects the sign-up.
    """
    try:
        result = await gateway.sign_up(
            data.email, data.password, {"full_name": data.full_name, "grade": data.grade},
        )
    except GatewayError as e:
        logger.info("sign_up_rejected code=%s", e.code)
        raise AuthError(e.message) from e

    if result.user is not None:
        now = datetime.now(UTC).isoformat()
        token = result.session.access_token if result.session else None
        try:
            await gateway.insert(
                USERS_TABLE,
                {
                    "id": result.user.id,
                    "email": result.user.email or data.email,
                    "full_name": data.full_name,
                    "grade": data.grade,
                    "created_at": now,
                    "updated_at": now,
                },
                token,
                upsert=True,
            )
        except GatewayError as e:
            logger.warning("profile_create_failed user_id=%s error=%s", result.user.id, e)
    logger.info("user_signed_up user_id=%s", result.user.id if result.user else None)
    return result


async def sign_in(gateway: GatewayClient, data: SignInRequest) -> AuthResponse:
    """
    Sign in with email and password.

    Raises:
        AuthError: With the gateway's message if the credentials are rejected.
    """
    try:
        return await gateway.sign_in_with_password(data.email, data.password)
    except GatewayError as e:
        raise AuthError(e.message) from e


async def sign_out(gateway: GatewayClient, access_token: str | None) -> None:
    """
    Revoke the caller's session. Signing out without a session succeeds.

    Raises:
        AuthError: If the gateway refuses to revoke the session.
    """
    if not access_token:
        return
    try:
        await gateway.sign_out(access_token)
    except GatewayError as e:
        # An already-expired session is as good as signed out
        if e.status_code in (401, 403):
            return
        raise AuthError(e.message) from e
