"""Authentication session of the client core and its change events."""
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum

import httpx

from client import auth_api
from client.api_client import set_access_token
from core.gateway import GatewayClient
from schemas.auth import AuthResponse, AuthSession, AuthUser

logger = logging.getLogger(__name__)


class AuthEvent(StrEnum):
    """Kinds of session change."""

    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"


@dataclass(frozen=True)
class AuthChangeEvent:
    """A session change; `session` is None on sign-out."""

    event: AuthEvent
    session: AuthSession | None


AuthListener = Callable[[AuthChangeEvent], Awaitable[None] | None]


class AuthSessionManager:
    """
    Holds the current session and tells listeners when it changes.

    The API client is re-authenticated with the session's access token before
    listeners run, so a listener can immediately make authenticated calls.
    """

    def __init__(self, client: httpx.AsyncClient, gateway: GatewayClient | None = None) -> None:
        self._client = client
        self._gateway = gateway
        self._session: AuthSession | None = None
        self._listeners: list[AuthListener] = []

    @property
    def session(self) -> AuthSession | None:
        """Current session, if signed in."""
        return self._session

    @property
    def user(self) -> AuthUser | None:
        """Identity of the current session."""
        return self._session.user if self._session else None

    @property
    def access_token(self) -> str | None:
        """Access token of the current session."""
        return self._session.access_token if self._session else None

    def on_change(self, listener: AuthListener) -> Callable[[], None]:
        """Register a session-change listener. Returns a remover."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener) if listener in self._listeners else None

    async def sign_up(
        self,
        email: str,
        password: str,
        full_name: str,
        grade: str,
    ) -> AuthResponse:
        """Create an account; signs in when the server returns a session."""
        result = await auth_api.sign_up(self._client, email, password, full_name, grade)
        if result.session is not None:
            await self._set(AuthEvent.SIGNED_IN, result.session)
        return result

    async def sign_in(self, email: str, password: str) -> AuthResponse:
        """Sign in with email and password."""
        result = await auth_api.sign_in(self._client, email, password)
        if result.session is None:
            logger.warning("sign_in_without_session email=%s", email)
            return result
        await self._set(AuthEvent.SIGNED_IN, result.session)
        return result

    async def restore(self, session: AuthSession) -> None:
        """Resume a session persisted from an earlier run."""
        await self._set(AuthEvent.SIGNED_IN, session)

    async def refresh(self) -> AuthSession | None:
        """
        Exchange the refresh token for a new session.

        Returns:
            The new session, or None when there is nothing to refresh.
        """
        if self._gateway is None or self._session is None or not self._session.refresh_token:
            return None
        session = await self._gateway.refresh_session(self._session.refresh_token)
        await self._set(AuthEvent.TOKEN_REFRESHED, session)
        return session

    async def sign_out(self) -> None:
        """Revoke the session server-side and forget it locally."""
        if self._session is None:
            return
        try:
            await auth_api.sign_out(self._client)
        finally:
            await self._set(AuthEvent.SIGNED_OUT, None)

    async def get_current_user(self) -> AuthUser | None:
        """Ask the server which identity the client is authenticated as."""
        return await auth_api.get_current_user(self._client)

    async def _set(self, event: AuthEvent, session: AuthSession | None) -> None:
        self._session = session
        set_access_token(self._client, session.access_token if session else None)
        logger.debug(
            "auth_state_changed event=%s user_id=%s", event, session.user.id if session else None,
        )
        change = AuthChangeEvent(event=event, session=session)
        for listener in list(self._listeners):
            result = listener(change)
            if inspect.isawaitable(result):
                await result
