"""Pydantic schemas for summary records and their list/detail projections."""
import math
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from schemas.validators import (
    normalize_optional_text,
    normalize_required_text,
    validate_file_urls,
)

SummarySortField = Literal["created_at", "updated_at", "upload_date", "last_edited_at", "name"]
SortOrder = Literal["asc", "desc"]

SUMMARY_SORT_FIELDS: tuple[str, ...] = (
    "created_at", "updated_at", "upload_date", "last_edited_at", "name",
)

# Columns read from the summaries table (and the summaries_with_users view)
SUMMARY_COLUMNS = (
    "id,name,description,user_id,file_urls,upload_date,last_edited_at,created_at,updated_at"
)


class Pagination(BaseModel):
    """Page metadata returned alongside every list response."""

    model_config = ConfigDict(populate_by_name=True)

    page: int
    limit: int
    total: int
    total_pages: int = Field(alias="totalPages", serialization_alias="totalPages")

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        """Compute total pages for a page/limit/total triple."""
        return cls(
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit) if limit else 0,
        )


class SummaryOwner(BaseModel):
    """Denormalized snapshot of a summary's owner for display."""

    id: str
    full_name: str | None = None


class SummaryResponse(BaseModel):
    """A summary row as stored by the gateway."""

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    description: str | None = None
    user_id: str
    file_urls: list[str]
    upload_date: datetime
    last_edited_at: datetime
    created_at: datetime
    updated_at: datetime


class SummaryWithUser(SummaryResponse):
    """
    Read-only projection of a summary plus its owner.

    Built per request, either from a `summaries_with_users` view row (which
    carries `user_full_name`) or from a summary row joined with a user row.
    """

    user: SummaryOwner | None = None

    @model_validator(mode="before")
    @classmethod
    def extract_owner(cls, data: Any) -> Any:
        """Fold flattened view columns into the nested `user` object."""
        if isinstance(data, dict) and "user_full_name" in data and "user" not in data:
            data = dict(data)
            full_name = data.pop("user_full_name")
            data.pop("user_grade", None)
            data["user"] = (
                {"id": data.get("user_id"), "full_name": full_name} if full_name else None
            )
        return data


class SummaryCreate(BaseModel):
    """Schema for creating a new summary."""

    # Defaults are validated so a missing field reports the same message as a blank one
    name: str = Field(default="", validate_default=True)
    description: str | None = None
    file_urls: list[str] = Field(default_factory=list, validate_default=True)

    @field_validator("name")
    @classmethod
    def check_name(cls, v: str) -> str:
        """Trim name and require it to be non-empty."""
        return normalize_required_text(v, "Name is required")

    @field_validator("description")
    @classmethod
    def trim_description(cls, v: str | None) -> str | None:
        """Trim description, storing blank values as null."""
        return normalize_optional_text(v)

    @field_validator("file_urls")
    @classmethod
    def check_file_urls(cls, v: list[str]) -> list[str]:
        """Require at least one file or link."""
        return validate_file_urls(v)


class SummaryUpdate(BaseModel):
    """
    Schema for updating an existing summary.

    Omitted fields are left unchanged.
    """

    name: str | None = None
    description: str | None = None
    file_urls: list[str] | None = None

    @field_validator("name")
    @classmethod
    def check_name(cls, v: str | None) -> str | None:
        """Trim name if provided; an explicitly blank name is rejected."""
        if v is None:
            return None
        return normalize_required_text(v, "Name cannot be empty")

    @field_validator("description")
    @classmethod
    def trim_description(cls, v: str | None) -> str | None:
        """Trim description, storing blank values as null."""
        return normalize_optional_text(v)

    @field_validator("file_urls")
    @classmethod
    def check_file_urls(cls, v: list[str] | None) -> list[str] | None:
        """Require at least one file or link if the list is being replaced."""
        if v is None:
            return None
        return validate_file_urls(v)


class SummaryListResponse(BaseModel):
    """Schema for paginated summary list responses."""

    summaries: list[SummaryWithUser]
    pagination: Pagination


class SummaryDeleteResponse(BaseModel):
    """Schema for the delete response; file URLs are returned for storage cleanup."""

    model_config = ConfigDict(populate_by_name=True)

    message: str
    deleted_file_urls: list[str] = Field(
        alias="deletedFileUrls", serialization_alias="deletedFileUrls",
    )


class SummaryEnvelope(BaseModel):
    """Envelope returned by the single-summary routes."""

    summary: SummaryWithUser


class SummaryFilters(BaseModel):
    """
    Query parameters of a summary list request.

    Immutable so it can identify a cached list. Blank strings are normalized
    to None, so `search=""` and an omitted search are the same query.
    """

    model_config = ConfigDict(frozen=True)

    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1)
    search: str | None = None
    user_id: str | None = None
    sort_by: str | None = None
    sort_order: SortOrder | None = None

    @field_validator("search", "user_id", "sort_by", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        """Treat blank strings as absent filters."""
        if isinstance(v, str):
            return v.strip() or None
        return v

    @field_validator("sort_order", mode="before")
    @classmethod
    def blank_order_to_none(cls, v: Any) -> Any:
        """Treat a blank sort order as absent."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    def cache_key(self) -> tuple[tuple[str, Any], ...]:
        """
        Ordered (name, value) pairs of the filters that are set.

        Field order is fixed by the model, so equal filters always produce
        equal keys regardless of how they were constructed.
        """
        return tuple(
            (name, value) for name, value in self.model_dump().items() if value is not None
        )

    def to_params(self) -> dict[str, str | int]:
        """Query string parameters for the list route."""
        return dict(self.cache_key())
