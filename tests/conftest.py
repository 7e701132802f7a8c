"""Pytest fixtures for testing."""
import os
from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

# Settings are read when the app module is imported, so configure them first.
# Tokens are verified by asking the (fake) gateway, and Redis stays off.
os.environ["SUPABASE_URL"] = "http://gateway.test"
os.environ["SUPABASE_ANON_KEY"] = "anon-key"
os.environ["SUPABASE_JWT_SECRET"] = ""
os.environ["REDIS_ENABLED"] = "false"
os.environ["API_URL"] = "http://test"

from core.config import Settings, get_settings  # noqa: E402
from core.gateway import GatewayClient  # noqa: E402
from tests.fake_gateway import GATEWAY_URL, FakeGateway  # noqa: E402


@pytest.fixture
def settings() -> Settings:
    """Fresh settings built from the test environment."""
    get_settings.cache_clear()
    return get_settings()


@pytest.fixture
def fake_gateway() -> FakeGateway:
    """Empty in-process gateway."""
    return FakeGateway()


@pytest.fixture
async def gateway(fake_gateway: FakeGateway) -> AsyncGenerator[GatewayClient]:
    """Gateway client wired to the in-process gateway."""
    client = GatewayClient(
        GATEWAY_URL, "anon-key", transport=ASGITransport(app=fake_gateway.app),
    )
    yield client
    await client.aclose()


@pytest.fixture
async def app_transport(
    settings: Settings,  # noqa: ARG001
    gateway: GatewayClient,
) -> AsyncGenerator[ASGITransport]:
    """ASGI transport into the route layer, backed by the in-process gateway."""
    from api.main import app
    from core.gateway import get_gateway

    app.dependency_overrides[get_gateway] = lambda: gateway
    yield ASGITransport(app=app)
    app.dependency_overrides.clear()


@pytest.fixture
async def client(app_transport: ASGITransport) -> AsyncGenerator[AsyncClient]:
    """Create a test client for the route layer."""
    async with AsyncClient(transport=app_transport, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture
async def api_client(
    settings: Settings,
    app_transport: ASGITransport,
) -> AsyncGenerator[AsyncClient]:
    """Client-core HTTP client talking to the route layer."""
    from client.api_client import create_api_client

    http = create_api_client(settings, transport=app_transport)
    yield http
    await http.aclose()
