"""Shared utility functions for service layer."""
from collections.abc import Iterable

# Characters that must be quoted inside a PostgREST `or=(...)` expression
_RESERVED_FILTER_CHARS = set(',.:()"\\ ')


def escape_ilike(value: str) -> str:
    r"""
    Escape special ILIKE characters for safe use in LIKE/ILIKE patterns.

    PostgreSQL LIKE/ILIKE treats these characters specially:
    - % matches any sequence of characters
    - _ matches any single character
    - \\ is the escape character

    This function escapes them so they match literally.
    """
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def quote_filter_value(value: str) -> str:
    """
    Quote a value for use inside a PostgREST logical filter.

    Values containing commas, dots, colons, parentheses, quotes or spaces are
    wrapped in double quotes with embedded quotes and backslashes escaped.
    """
    if not _RESERVED_FILTER_CHARS.intersection(value):
        return value
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def ilike_any(columns: Iterable[str], term: str) -> str:
    """
    Build the body of an `or=(...)` filter matching `term` as a substring of
    any of `columns`, case-insensitively.

    `*` is PostgREST's URL-safe spelling of the `%` wildcard.
    """
    pattern = quote_filter_value(f"*{escape_ilike(term)}*")
    return ",".join(f"{column}.ilike.{pattern}" for column in columns)


def page_range(page: int, limit: int) -> tuple[int, int]:
    """Convert a 1-based page and page size to an inclusive row range."""
    offset = (page - 1) * limit
    return offset, offset + limit - 1
