"""
Error response schemas for API endpoints.

Every non-2xx response from the route layer has the shape `{"error": "..."}`.
"""
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Structured error body used in OpenAPI documentation."""

    error: str


ERROR_RESPONSES: dict[int | str, dict] = {
    400: {"model": ErrorResponse, "description": "Validation error"},
    401: {"model": ErrorResponse, "description": "Not authenticated"},
    403: {"model": ErrorResponse, "description": "Forbidden"},
    404: {"model": ErrorResponse, "description": "Not found"},
    500: {"model": ErrorResponse, "description": "Unexpected error"},
}
