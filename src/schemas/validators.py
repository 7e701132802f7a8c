"""
Shared validation functions for Pydantic schemas.

Used by the user, summary and auth schemas, and by the client core for
checks that run before any network call.
"""
import re
from typing import Literal, get_args

GradeLevel = Literal["A", "B", "C", "D", "E", "F", "G"]
GRADE_LEVELS: tuple[str, ...] = get_args(GradeLevel)

# Google Docs, Sheets and Slides share the same /d/<id> URL shape
GOOGLE_DOCS_URL_PATTERN = re.compile(
    r"^https://docs\.google\.com/(document|spreadsheets|presentation)/d/[a-zA-Z0-9\-_]+",
)


def validate_grade(grade: str | None) -> str | None:
    """
    Validate an optional grade value.

    Empty strings are treated as "no grade".

    Raises:
        ValueError: If grade is not one of A-G.
    """
    if grade is None or grade == "":
        return None
    if grade not in GRADE_LEVELS:
        raise ValueError(f"Invalid grade. Must be one of: {', '.join(GRADE_LEVELS)}")
    return grade


def normalize_required_text(value: str, message: str) -> str:
    """Trim a required text field, raising ValueError with `message` when it is blank."""
    trimmed = value.strip()
    if not trimmed:
        raise ValueError(message)
    return trimmed


def normalize_optional_text(value: str | None) -> str | None:
    """Trim an optional text field, collapsing blank values to None."""
    if value is None:
        return None
    return value.strip() or None


def validate_file_urls(file_urls: list[str]) -> list[str]:
    """
    Validate that a summary references at least one file or link.

    Raises:
        ValueError: If the list is empty or contains blank entries.
    """
    if not file_urls:
        raise ValueError("At least one file URL is required")
    if any(not url.strip() for url in file_urls):
        raise ValueError("File URLs cannot be empty")
    return file_urls


def is_google_docs_url(url: str) -> bool:
    """Check if URL points at a Google Docs, Sheets or Slides document."""
    return GOOGLE_DOCS_URL_PATTERN.match(url) is not None
