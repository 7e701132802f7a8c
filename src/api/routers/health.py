"""Health check endpoints."""
import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from api.dependencies import get_gateway
from core.gateway import GatewayClient
from core.redis import get_redis_client

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    gateway: str
    cache: str


@router.get("/health", response_model=HealthResponse)
async def health_check(
    gateway: GatewayClient = Depends(get_gateway),
) -> HealthResponse:
    """Check application, gateway and cache health."""
    gateway_status = "healthy" if await gateway.health() else "unhealthy"

    redis_client = get_redis_client()
    cache_status = "disabled" if redis_client is None else await redis_client.status()

    return HealthResponse(
        status="healthy" if gateway_status == "healthy" else "degraded",
        gateway=gateway_status,
        cache=cache_status,
    )
