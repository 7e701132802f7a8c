"""Tests for shared API error parsing."""

from typing import Any
from unittest.mock import MagicMock

from shared.api_errors import parse_http_error

_RAISE_VALUE_ERROR = object()  # Sentinel to indicate json() should raise


def _make_http_error(status_code: int, json_body: Any = _RAISE_VALUE_ERROR) -> MagicMock:
    """Create a mock HTTPStatusError for testing."""
    mock_response = MagicMock()
    mock_response.status_code = status_code
    if json_body is _RAISE_VALUE_ERROR:
        mock_response.json.side_effect = ValueError("No JSON")
    else:
        mock_response.json.return_value = json_body

    mock_error = MagicMock()
    mock_error.response = mock_response
    return mock_error


class TestParseHttpError:
    """Tests for parse_http_error function."""

    def test__parse_http_error__error_envelope_preferred(self) -> None:
        """Test the route layer's {"error": ...} body supplies the message."""
        error = _make_http_error(404, {"error": "Summary not found"})
        result = parse_http_error(error, entity_type="summary", entity_id="s-1")

        assert result.category == "not_found"
        assert result.message == "Summary not found"
        assert result.status_code == 404

    def test__parse_http_error__401_returns_auth_category(self) -> None:
        """Test 401 returns auth category."""
        error = _make_http_error(401, {"error": "Unauthorized"})
        result = parse_http_error(error)

        assert result.category == "auth"
        assert result.message == "Unauthorized"

    def test__parse_http_error__401_without_body(self) -> None:
        """Test 401 without JSON falls back to a generic message."""
        error = _make_http_error(401)
        result = parse_http_error(error)

        assert result.category == "auth"
        assert "expired" in result.message.lower()

    def test__parse_http_error__403_returns_forbidden_category(self) -> None:
        """Test 403 returns forbidden category."""
        error = _make_http_error(403, {"error": "Forbidden: You can only update your own profile"})
        result = parse_http_error(error)

        assert result.category == "forbidden"
        assert "own profile" in result.message

    def test__parse_http_error__404_with_entity_info(self) -> None:
        """Test 404 without a server message names the entity."""
        error = _make_http_error(404, {})
        result = parse_http_error(error, entity_type="summary", entity_id="s-1")

        assert result.category == "not_found"
        assert result.message == "Summary 's-1' not found"

    def test__parse_http_error__404_without_entity_info(self) -> None:
        """Test 404 without entity info returns generic message."""
        error = _make_http_error(404)
        result = parse_http_error(error)

        assert result.message == "Not found"

    def test__parse_http_error__409_returns_conflict(self) -> None:
        """Test 409 returns conflict category."""
        error = _make_http_error(409, {"detail": ""})
        result = parse_http_error(error)

        assert result.category == "conflict"
        assert "already exists" in result.message

    def test__parse_http_error__400_validation(self) -> None:
        """Test 400 returns validation category with the server message."""
        error = _make_http_error(400, {"error": "Name is required"})
        result = parse_http_error(error)

        assert result.category == "validation"
        assert result.message == "Name is required"

    def test__parse_http_error__422_fastapi_validation_list(self) -> None:
        """Test 422 with FastAPI-style list of validation errors."""
        error = _make_http_error(422, {
            "detail": [
                {"loc": ["body", "name"], "msg": "field required"},
                {"loc": ["body", "file_urls"], "msg": "list too short"},
            ],
        })
        result = parse_http_error(error)

        assert result.category == "validation"
        assert result.message == "name: field required; file_urls: list too short"

    def test__parse_http_error__dict_detail_message(self) -> None:
        """Test dict detail contributes its message."""
        error = _make_http_error(400, {"detail": {"message": "Bad grade"}})
        result = parse_http_error(error)

        assert result.message == "Bad grade"

    def test__parse_http_error__500_returns_internal(self) -> None:
        """Test 5xx returns internal category."""
        error = _make_http_error(500, {"error": "Internal server error"})
        result = parse_http_error(error)

        assert result.category == "internal"
        assert result.message == "Internal server error"

    def test__parse_http_error__non_dict_body(self) -> None:
        """Test non-object JSON bodies are ignored."""
        error = _make_http_error(502, ["unexpected"])
        result = parse_http_error(error)

        assert result.category == "internal"
        assert result.message == "API error 502"
