"""FastAPI application entry point."""
import logging
from collections.abc import AsyncGenerator
from contextlib import AsyncExitStack, asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from api.routers import auth, health, summaries, users
from core.auth_cache import AuthCache, set_auth_cache
from core.config import Settings, get_settings
from core.gateway import GatewayError, create_gateway_client, set_gateway
from core.redis import RedisClient, set_redis_client

logger = logging.getLogger(__name__)

# Sent on every response; the API is never framed or content-sniffed
SECURITY_HEADERS = {
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
}


async def start_services(settings: Settings, stack: AsyncExitStack) -> None:
    """
    Create the process-wide gateway client, Redis connection and auth cache.

    Teardown is registered on `stack` in reverse order of creation.
    """
    gateway = create_gateway_client(settings)
    set_gateway(gateway)
    stack.push_async_callback(gateway.aclose)
    stack.callback(set_gateway, None)

    redis_client = RedisClient(
        settings.redis_url,
        enabled=settings.redis_enabled,
        pool_size=settings.redis_pool_size,
    )
    await redis_client.connect()
    set_redis_client(redis_client)
    stack.push_async_callback(redis_client.close)
    stack.callback(set_redis_client, None)

    set_auth_cache(AuthCache(redis_client) if redis_client.is_connected else None)
    stack.callback(set_auth_cache, None)
    logger.info(
        "services_started gateway=%s cache=%s",
        settings.gateway_url, "redis" if redis_client.is_connected else "off",
    )


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None]:
    """Start shared clients on startup and release them on shutdown."""
    async with AsyncExitStack() as stack:
        await start_services(get_settings(), stack)
        yield
    logger.info("services_stopped")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add `SECURITY_HEADERS` to every response."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        """Pass the request on, then stamp the headers."""
        response = await call_next(request)
        response.headers.update(SECURITY_HEADERS)
        return response


def validation_message(exc: RequestValidationError) -> str:
    """
    Render the first validation error as a single message.

    Messages raised by our own validators are already user-facing and are
    returned as-is; anything else is prefixed with the offending field.
    """
    errors = exc.errors()
    if not errors:
        return "Validation error"
    first = errors[0]
    msg = str(first.get("msg", "invalid"))
    if first.get("type") == "value_error":
        return msg.removeprefix("Value error, ")
    loc = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path")]
    return f"{loc[-1]}: {msg}" if loc else msg


app_settings = get_settings()

app = FastAPI(
    title="Summaries API",
    description="Share, search and manage study summaries and their files.",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(
    _request: Request, exc: StarletteHTTPException,
) -> JSONResponse:
    """Render HTTP errors with the `{"error": ...}` envelope."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    _request: Request, exc: RequestValidationError,
) -> JSONResponse:
    """Report request validation failures as 400 with a single message."""
    return JSONResponse(status_code=400, content={"error": validation_message(exc)})


@app.exception_handler(GatewayError)
async def gateway_exception_handler(request: Request, exc: GatewayError) -> JSONResponse:
    """Hide unexpected gateway failures behind a generic 500."""
    logger.error(
        "gateway_failure path=%s status=%s code=%s message=%s",
        request.url.path, exc.status_code, exc.code, exc.message,
    )
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler for anything the routers did not anticipate."""
    logger.error("unhandled_error path=%s", request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# Registered first, so it sits inside CORS and preflight answers skip it
app.add_middleware(SecurityHeadersMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=app_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-Source"],
)

app.include_router(health.router)
app.include_router(auth.router)
app.include_router(summaries.router)
app.include_router(users.router)
