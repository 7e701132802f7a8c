"""Tests for the client-core auth session manager."""
import httpx
import pytest

from client.api_client import ApiError
from client.session import AuthChangeEvent, AuthEvent, AuthSessionManager
from core.gateway import GatewayClient
from tests.fake_gateway import FakeGateway


@pytest.fixture
def manager(api_client: httpx.AsyncClient, gateway: GatewayClient) -> AuthSessionManager:
    return AuthSessionManager(api_client, gateway)


@pytest.fixture
def events(manager: AuthSessionManager) -> list[AuthChangeEvent]:
    """Session changes seen by a listener."""
    seen: list[AuthChangeEvent] = []
    manager.on_change(seen.append)
    return seen


class TestSignIn:
    """Tests for signing up and in."""

    async def test__sign_up__signs_in_and_writes_profile(
        self, manager: AuthSessionManager, events: list[AuthChangeEvent],
        fake_gateway: FakeGateway,
    ) -> None:
        result = await manager.sign_up("a@x.com", "secret1", "  Dana Levi ", "C")

        assert manager.user.id == result.user.id
        assert [e.event for e in events] == [AuthEvent.SIGNED_IN]
        profile = fake_gateway.profile(result.user.id)
        assert profile["full_name"] == "Dana Levi"
        assert profile["grade"] == "C"

    async def test__sign_in__authenticates_client_before_listeners(
        self, manager: AuthSessionManager, api_client: httpx.AsyncClient,
        fake_gateway: FakeGateway,
    ) -> None:
        """Listeners can make authenticated calls straight away."""
        fake_gateway.create_account("a@x.com", full_name="Dana Levi", grade="C")
        seen_headers: list[str | None] = []

        async def listener(change: AuthChangeEvent) -> None:
            seen_headers.append(api_client.headers.get("authorization"))
            assert (await manager.get_current_user()).email == "a@x.com"

        manager.on_change(listener)

        await manager.sign_in("a@x.com", "secret1")

        assert seen_headers == [f"Bearer {manager.access_token}"]

    async def test__sign_in__bad_password_raises(
        self, manager: AuthSessionManager, events: list[AuthChangeEvent],
        fake_gateway: FakeGateway,
    ) -> None:
        fake_gateway.create_account("a@x.com")

        with pytest.raises(ApiError) as exc_info:
            await manager.sign_in("a@x.com", "wrong-password")

        assert exc_info.value.category == "validation"
        assert manager.session is None
        assert events == []

    async def test__on_change__remover(
        self, manager: AuthSessionManager, fake_gateway: FakeGateway,
    ) -> None:
        fake_gateway.create_account("a@x.com")
        seen: list[AuthChangeEvent] = []
        remove = manager.on_change(seen.append)
        remove()

        await manager.sign_in("a@x.com", "secret1")

        assert seen == []


class TestSessionLifecycle:
    """Tests for refresh and sign-out."""

    async def test__refresh__replaces_tokens(
        self, manager: AuthSessionManager, events: list[AuthChangeEvent],
        fake_gateway: FakeGateway, api_client: httpx.AsyncClient,
    ) -> None:
        fake_gateway.create_account("a@x.com")
        await manager.sign_in("a@x.com", "secret1")
        old_token = manager.access_token

        session = await manager.refresh()

        assert session.access_token != old_token
        assert manager.access_token == session.access_token
        assert api_client.headers["authorization"] == f"Bearer {session.access_token}"
        assert [e.event for e in events] == [AuthEvent.SIGNED_IN, AuthEvent.TOKEN_REFRESHED]

    async def test__refresh__without_session(self, manager: AuthSessionManager) -> None:
        assert await manager.refresh() is None

    async def test__sign_out__clears_session(
        self, manager: AuthSessionManager, events: list[AuthChangeEvent],
        fake_gateway: FakeGateway, api_client: httpx.AsyncClient,
    ) -> None:
        fake_gateway.create_account("a@x.com")
        await manager.sign_in("a@x.com", "secret1")
        token = manager.access_token

        await manager.sign_out()

        assert manager.session is None
        assert "authorization" not in api_client.headers
        assert events[-1] == AuthChangeEvent(AuthEvent.SIGNED_OUT, None)
        assert token not in fake_gateway.tokens
        assert await manager.get_current_user() is None

    async def test__sign_out__revoked_token_still_clears(
        self, manager: AuthSessionManager, fake_gateway: FakeGateway,
    ) -> None:
        """The local session is dropped even if the server already forgot it."""
        fake_gateway.create_account("a@x.com")
        await manager.sign_in("a@x.com", "secret1")
        fake_gateway.tokens.clear()

        await manager.sign_out()

        assert manager.session is None

    async def test__sign_out__when_signed_out_is_noop(
        self, manager: AuthSessionManager, events: list[AuthChangeEvent],
    ) -> None:
        await manager.sign_out()

        assert events == []
