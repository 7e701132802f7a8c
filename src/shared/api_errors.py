"""
Shared API error parsing for the client core.

Turns an HTTP error from the route layer into a semantic category plus a
user-presentable message. Route-layer error bodies have the shape
`{"error": "..."}`; FastAPI's default `{"detail": ...}` shape is also
understood so the parser works against any FastAPI service.
"""

from dataclasses import dataclass
from typing import Any, Literal

import httpx

ErrorCategory = Literal[
    "auth",        # 401 - Missing, invalid or expired token
    "forbidden",   # 403 - Acting on someone else's resource
    "not_found",   # 404 - Resource not found
    "validation",  # 400/422 - Validation error
    "conflict",    # 409 - Duplicate resource
    "internal",    # 5xx or unexpected errors
]


@dataclass
class ParsedApiError:
    """Parsed API error with semantic category and message."""

    category: ErrorCategory
    message: str
    status_code: int | None = None


def parse_http_error(  # noqa: PLR0911
    e: httpx.HTTPStatusError,
    entity_type: str = "",
    entity_id: str = "",
) -> ParsedApiError:
    """
    Parse HTTP error into semantic categories.

    Args:
        e: The HTTP status error from httpx
        entity_type: Type of entity (e.g., "summary", "user") for error messages
        entity_id: ID of entity for error messages

    Returns:
        ParsedApiError with category and message
    """
    status = e.response.status_code
    server_message = _extract_message(e)

    if status == 401:
        return ParsedApiError("auth", server_message or "Invalid or expired token", status)

    if status == 403:
        return ParsedApiError("forbidden", server_message or "Access denied", status)

    if status == 404:
        if server_message:
            msg = server_message
        elif entity_id:
            msg = f"{entity_type.title()} '{entity_id}' not found" if entity_type else f"'{entity_id}' not found"  # noqa: E501
        else:
            msg = f"{entity_type.title()} not found" if entity_type else "Not found"
        return ParsedApiError("not_found", msg, status)

    if status == 409:
        return ParsedApiError(
            "conflict", server_message or "A resource with this id already exists", status,
        )

    if status in (400, 422):
        return ParsedApiError("validation", server_message or "Validation error", status)

    # Generic error for other status codes
    return ParsedApiError("internal", server_message or f"API error {status}", status)


def _safe_json(e: httpx.HTTPStatusError) -> dict[str, Any]:
    """Safely extract a JSON object body from an error response."""
    try:
        body = e.response.json()
    except ValueError:
        return {}
    # Non-dict JSON body (list, string, etc.) - return empty
    return body if isinstance(body, dict) else {}


def _extract_message(e: httpx.HTTPStatusError) -> str:
    """Extract the server's error message, or '' when there is none."""
    body = _safe_json(e)
    error = body.get("error")
    if isinstance(error, str) and error:
        return error

    detail = body.get("detail")
    if isinstance(detail, str):
        return detail
    if isinstance(detail, dict):
        return str(detail.get("message", ""))
    if isinstance(detail, list):
        # FastAPI validation errors return a list of error objects
        messages = []
        for err in detail:
            if isinstance(err, dict):
                loc = err.get("loc", ["unknown"])
                field = loc[-1] if loc else "unknown"
                msg = err.get("msg", "invalid")
                messages.append(f"{field}: {msg}")
        return "; ".join(messages)
    return ""
