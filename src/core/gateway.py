"""
Typed access to the hosted backend gateway through the Supabase client libraries.

The gateway provides authentication (`/auth/v1`), PostgREST table access
(`/rest/v1`) and object storage (`/storage/v1`). Auth goes through
`supabase_auth`, tables through `postgrest` and storage through `storage3`.

Every call carries the caller's access token (or the anon key) so row-level
security applies. The SDK's all-in-one client holds a single signed-in
session, so instead the component clients are opened per call, each on a
short-lived `httpx.AsyncClient` that borrows one shared connection pool.

SDK exceptions become `GatewayError` and SDK models become this project's
schemas at this boundary, so callers never depend on the SDK's types.
"""
import logging
from collections.abc import AsyncIterator, Iterator, Mapping
from contextlib import asynccontextmanager, contextmanager
from dataclasses import dataclass
from typing import Any, TypeVar
from urllib.parse import quote

import httpx
from postgrest import AsyncPostgrestClient
from postgrest.exceptions import APIError
from postgrest.types import CountMethod
from pydantic import BaseModel, ValidationError
from storage3 import AsyncStorageClient
from storage3.exceptions import StorageApiError
from supabase_auth import AsyncGoTrueClient
from supabase_auth.errors import AuthError

from core.config import Settings
from schemas.auth import AuthResponse, AuthSession, AuthUser

logger = logging.getLogger(__name__)

# PostgREST code returned when a single-row request matched zero rows
NOT_FOUND_CODE = "PGRST116"

ModelT = TypeVar("ModelT", bound=BaseModel)


class GatewayError(Exception):
    """
    Raised when the gateway rejects a request.

    `code` is the gateway's machine-readable error code when one was supplied
    (e.g. 'PGRST116', 'invalid_credentials').
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        code: str | None = None,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.code = code
        super().__init__(message)

    @property
    def is_not_found(self) -> bool:
        """True when the request addressed a row or object that does not exist."""
        return self.code == NOT_FOUND_CODE or self.status_code == 404


class GatewayResponseError(GatewayError):
    """Raised when a gateway response does not have the expected shape."""


@dataclass
class RowsResult:
    """Rows returned by a select, plus the exact total when it was requested."""

    rows: list[dict[str, Any]]
    count: int | None = None


def _status(value: object) -> int | None:
    """Read an HTTP status out of an SDK error field, which may be an int or a string."""
    text = str(value) if value is not None else ""
    if len(text) == 3 and text.isdigit():
        return int(text)
    return None


def _rest_error(error: APIError) -> GatewayError:
    # Non-JSON error bodies are reported with the HTTP status as the code
    code = error.code or None
    status_code = _status(code)
    return GatewayError(
        error.message or f"Gateway error {code or ''}".strip(),
        status_code=status_code,
        code=None if status_code else code,
    )


def _auth_error(error: AuthError) -> GatewayError:
    return GatewayError(
        error.message,
        status_code=_status(getattr(error, "status", None)),
        code=getattr(error, "code", None),
    )


def _storage_error(error: StorageApiError) -> GatewayError:
    return GatewayError(
        error.message,
        status_code=_status(error.status),
        code=error.code if isinstance(error.code, str) else None,
    )


def _logged(error: GatewayError) -> GatewayError:
    logger.debug(
        "gateway_error status=%s code=%s message=%s",
        error.status_code, error.code, error.message,
    )
    return error


@contextmanager
def _gateway_errors() -> Iterator[None]:
    """Translate SDK exceptions into `GatewayError`."""
    try:
        yield
    except APIError as e:
        raise _logged(_rest_error(e)) from e
    except AuthError as e:
        raise _logged(_auth_error(e)) from e
    except StorageApiError as e:
        raise _logged(_storage_error(e)) from e


def _convert(model: type[ModelT], value: BaseModel | None) -> ModelT | None:
    """Re-validate an SDK model as one of this project's schemas."""
    if value is None:
        return None
    try:
        return model.model_validate(value.model_dump(mode="json"))
    except ValidationError as e:
        raise GatewayResponseError(f"Malformed {model.__name__} from gateway: {e}") from e


def _rows(data: Any, table: str) -> list[dict[str, Any]]:
    if not isinstance(data, list) or not all(isinstance(row, dict) for row in data):
        raise GatewayResponseError(f"Expected a list of rows from {table}")
    return data


def _one_row(data: Any, table: str) -> dict[str, Any]:
    rows = _rows(data, table)
    if not rows:
        raise GatewayResponseError(f"Expected the written row back from {table}")
    return rows[0]


class _SharedTransport(httpx.AsyncBaseTransport):
    """Lends one connection pool to short-lived clients; closing them leaves it open."""

    def __init__(self, inner: httpx.AsyncBaseTransport) -> None:
        self._inner = inner

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        return await self._inner.handle_async_request(request)

    async def aclose(self) -> None:
        pass


class GatewayClient:
    """Typed access to the gateway's auth, table and storage services."""

    def __init__(
        self,
        url: str,
        anon_key: str,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url.rstrip("/")
        self._anon_key = anon_key
        self._timeout = timeout
        self._transport = transport or httpx.AsyncHTTPTransport()
        self._shared = _SharedTransport(self._transport)

    @property
    def base_url(self) -> str:
        """Root URL of the gateway."""
        return self._url

    async def aclose(self) -> None:
        """Close the shared connection pool."""
        await self._transport.aclose()

    def _headers(self, token: str | None = None) -> dict[str, str]:
        return {
            "apikey": self._anon_key,
            "Authorization": f"Bearer {token or self._anon_key}",
        }

    @asynccontextmanager
    async def _http(self, service: str, token: str | None) -> AsyncIterator[httpx.AsyncClient]:
        async with httpx.AsyncClient(
            base_url=f"{self._url}/{service}",
            headers=self._headers(token),
            timeout=self._timeout,
            transport=self._shared,
        ) as http:
            yield http

    @asynccontextmanager
    async def _auth(self) -> AsyncIterator[AsyncGoTrueClient]:
        async with self._http("auth/v1", None) as http:
            yield AsyncGoTrueClient(
                url=f"{self._url}/auth/v1",
                headers=self._headers(),
                http_client=http,
                auto_refresh_token=False,
                persist_session=False,
            )

    @asynccontextmanager
    async def _rest(self, token: str | None) -> AsyncIterator[AsyncPostgrestClient]:
        async with self._http("rest/v1", token) as http:
            yield AsyncPostgrestClient(
                f"{self._url}/rest/v1", headers=self._headers(token), http_client=http,
            )

    @asynccontextmanager
    async def _storage(self, token: str | None) -> AsyncIterator[AsyncStorageClient]:
        async with self._http("storage/v1", token) as http:
            yield AsyncStorageClient(
                f"{self._url}/storage/v1", self._headers(token), http_client=http,
            )

    async def health(self) -> bool:
        """Check that the gateway's auth service answers."""
        try:
            async with self._http("auth/v1", None) as http:
                response = await http.get("health")
        except httpx.TransportError as e:
            logger.warning("gateway_health_check_failed error=%s", e)
            return False
        if response.is_error:
            logger.warning("gateway_health_check_failed status=%s", response.status_code)
            return False
        return True

    # --- Auth ---

    async def sign_up(
        self,
        email: str,
        password: str,
        metadata: dict[str, Any] | None = None,
    ) -> AuthResponse:
        """Create an auth identity. The session is absent when email confirmation is on."""
        with _gateway_errors():
            async with self._auth() as auth:
                result = await auth.sign_up({
                    "email": email,
                    "password": password,
                    "options": {"data": metadata or {}},
                })
        return AuthResponse(
            user=_convert(AuthUser, result.user),
            session=_convert(AuthSession, result.session),
        )

    async def sign_in_with_password(self, email: str, password: str) -> AuthResponse:
        """Exchange credentials for a session."""
        with _gateway_errors():
            async with self._auth() as auth:
                result = await auth.sign_in_with_password({"email": email, "password": password})
        session = _convert(AuthSession, result.session)
        if session is None:
            raise GatewayResponseError("Sign-in returned no session")
        return AuthResponse(user=session.user, session=session)

    async def refresh_session(self, refresh_token: str) -> AuthSession:
        """Exchange a refresh token for a new session."""
        with _gateway_errors():
            async with self._auth() as auth:
                result = await auth.refresh_session(refresh_token)
        session = _convert(AuthSession, result.session)
        if session is None:
            raise GatewayResponseError("Refresh returned no session")
        return session

    async def sign_out(self, access_token: str) -> None:
        """Revoke the sessions behind an access token."""
        with _gateway_errors():
            async with self._auth() as auth:
                await auth.admin.sign_out(access_token, "global")

    async def get_user(self, access_token: str) -> AuthUser | None:
        """Resolve an access token to its identity, or None if the token is not valid."""
        try:
            with _gateway_errors():
                async with self._auth() as auth:
                    result = await auth.get_user(access_token)
        except GatewayError as e:
            if e.status_code in (401, 403):
                return None
            raise
        return _convert(AuthUser, result.user) if result is not None else None

    # --- Tables ---

    async def select(
        self,
        table: str,
        token: str | None = None,
        *,
        columns: str = "*",
        filters: Mapping[str, object] | None = None,
        or_filter: str | None = None,
        order: tuple[str, bool] | None = None,
        range_: tuple[int, int] | None = None,
        count: bool = False,
    ) -> RowsResult:
        """
        Select rows from a table or view.

        Args:
            table: Table or view name.
            token: Caller's access token (anon key when omitted).
            columns: PostgREST select list.
            filters: Column -> value equality filters.
            or_filter: Raw PostgREST `or=(...)` body, without the parentheses.
            order: (column, ascending) pair.
            range_: Inclusive (first, last) row offsets.
            count: Request the exact total.
        """
        with _gateway_errors():
            async with self._rest(token) as rest:
                query = rest.table(table).select(
                    columns, count=CountMethod.exact if count else None,
                )
                for column, value in (filters or {}).items():
                    query = query.eq(column, value)
                if or_filter:
                    query = query.or_(or_filter)
                if order:
                    column, ascending = order
                    query = query.order(column, desc=not ascending)
                if range_:
                    query = query.range(*range_)
                response = await query.execute()
        return RowsResult(
            rows=_rows(response.data, table), count=response.count if count else None,
        )

    async def select_single(
        self,
        table: str,
        token: str | None = None,
        *,
        columns: str = "*",
        filters: Mapping[str, object],
    ) -> dict[str, Any]:
        """
        Select exactly one row.

        Raises:
            GatewayError: With code 'PGRST116' when no row matched.
        """
        with _gateway_errors():
            async with self._rest(token) as rest:
                query = rest.table(table).select(columns)
                for column, value in filters.items():
                    query = query.eq(column, value)
                response = await query.single().execute()
        if not isinstance(response.data, dict):
            raise GatewayResponseError(f"Expected one row from {table}")
        return response.data

    async def insert(
        self,
        table: str,
        row: Mapping[str, Any],
        token: str | None = None,
        *,
        upsert: bool = False,
    ) -> dict[str, Any]:
        """Insert one row (or merge it into an existing row when upserting) and return it."""
        with _gateway_errors():
            async with self._rest(token) as rest:
                builder = rest.table(table)
                query = builder.upsert(dict(row)) if upsert else builder.insert(dict(row))
                response = await query.execute()
        return _one_row(response.data, table)

    async def update(
        self,
        table: str,
        values: Mapping[str, Any],
        filters: Mapping[str, object],
        token: str | None = None,
    ) -> dict[str, Any]:
        """
        Update the single row matching `filters` and return it.

        Raises:
            GatewayError: With code 'PGRST116' when no row matched.
        """
        with _gateway_errors():
            async with self._rest(token) as rest:
                query = rest.table(table).update(dict(values))
                for column, value in filters.items():
                    query = query.eq(column, value)
                response = await query.execute()
        rows = _rows(response.data, table)
        if not rows:
            raise GatewayError("No row matched the update", code=NOT_FOUND_CODE)
        return rows[0]

    async def delete(
        self,
        table: str,
        filters: Mapping[str, object],
        token: str | None = None,
    ) -> None:
        """Delete rows matching `filters`."""
        with _gateway_errors():
            async with self._rest(token) as rest:
                query = rest.table(table).delete()
                for column, value in filters.items():
                    query = query.eq(column, value)
                await query.execute()

    # --- Storage ---

    async def upload(
        self,
        bucket: str,
        path: str,
        content: bytes,
        token: str | None = None,
        *,
        content_type: str = "application/octet-stream",
        cache_control: str = "3600",
        upsert: bool = False,
    ) -> str:
        """Store an object and return its path within the bucket."""
        with _gateway_errors():
            async with self._storage(token) as storage:
                await storage.from_(bucket).upload(
                    path,
                    content,
                    {
                        "content-type": content_type,
                        "cache-control": cache_control,
                        "upsert": "true" if upsert else "false",
                    },
                )
        return path

    def get_public_url(self, bucket: str, path: str) -> str:
        """Build the public URL of a stored object."""
        return f"{self._url}/storage/v1/object/public/{bucket}/{quote(path)}"

    async def remove(self, bucket: str, paths: list[str], token: str | None = None) -> None:
        """Remove stored objects by path."""
        with _gateway_errors():
            async with self._storage(token) as storage:
                await storage.from_(bucket).remove(paths)


def create_gateway_client(
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> GatewayClient:
    """Create a gateway client from settings."""
    return GatewayClient(
        settings.gateway_url,
        settings.gateway_anon_key,
        timeout=settings.request_timeout,
        transport=transport,
    )


# Global gateway client state using a container to avoid global statement
class _GatewayState:
    """Container for the application's gateway client."""

    client: GatewayClient | None = None


_state = _GatewayState()


def get_gateway() -> GatewayClient:
    """
    Get the application's gateway client.

    Usable as a FastAPI dependency. Raises RuntimeError if called before
    the lifespan handler has created the client.
    """
    if _state.client is None:
        raise RuntimeError("Gateway client not initialized")
    return _state.client


def set_gateway(client: GatewayClient | None) -> None:
    """Set the application's gateway client."""
    _state.client = client
