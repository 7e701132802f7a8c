"""HTTP client helpers for calling the Summaries API route layer."""
import logging
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from core.config import Settings, get_settings
from shared.api_errors import ParsedApiError, parse_http_error

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class ApiError(Exception):
    """Raised when the route layer answers with an error status."""

    def __init__(self, error: ParsedApiError) -> None:
        self.error = error
        super().__init__(error.message)

    @property
    def category(self) -> str:
        """Semantic error category (auth, not_found, validation, ...)."""
        return self.error.category

    @property
    def status_code(self) -> int | None:
        """HTTP status of the failed response."""
        return self.error.status_code


class MalformedResponseError(Exception):
    """Raised when a successful response does not match its schema."""


def create_api_client(
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create an HTTP client pointed at the route layer."""
    settings = settings or get_settings()
    return httpx.AsyncClient(
        base_url=settings.api_url,
        timeout=settings.request_timeout,
        headers={"X-Request-Source": "client-core"},
        transport=transport,
    )


def set_access_token(client: httpx.AsyncClient, token: str | None) -> None:
    """Authenticate subsequent requests with `token`, or clear authentication."""
    if token:
        client.headers["Authorization"] = f"Bearer {token}"
    else:
        client.headers.pop("Authorization", None)


async def api_request(
    client: httpx.AsyncClient,
    method: str,
    path: str,
    *,
    params: dict[str, Any] | None = None,
    json: dict[str, Any] | None = None,
    entity_type: str = "",
    entity_id: str = "",
) -> dict[str, Any]:
    """
    Make a request to the API and return its JSON object body.

    Raises:
        ApiError: If the response has an error status.
        MalformedResponseError: If the body is not a JSON object.
        httpx.TransportError: If the request could not be sent.
    """
    response = await client.request(method, path, params=params, json=json)
    try:
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        parsed = parse_http_error(e, entity_type=entity_type, entity_id=entity_id)
        logger.debug(
            "api_error method=%s path=%s status=%s category=%s",
            method, path, response.status_code, parsed.category,
        )
        raise ApiError(parsed) from e
    try:
        body = response.json()
    except ValueError as e:
        raise MalformedResponseError(f"{method} {path} returned a non-JSON body") from e
    if not isinstance(body, dict):
        raise MalformedResponseError(f"{method} {path} returned {type(body).__name__}")
    return body


def parse_model(model: type[ModelT], data: Any, what: str) -> ModelT:
    """
    Validate `data` against `model`.

    Raises:
        MalformedResponseError: If the data does not match.
    """
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise MalformedResponseError(f"Malformed {what}: {e}") from e
