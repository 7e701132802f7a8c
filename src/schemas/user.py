"""Pydantic schemas for user profile records."""
from datetime import datetime

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from schemas.summary import Pagination
from schemas.validators import GradeLevel, validate_grade


class UserResponse(BaseModel):
    """A user profile row as stored by the gateway."""

    model_config = ConfigDict(extra="ignore")

    id: str
    email: str
    full_name: str | None = None
    grade: GradeLevel | None = None
    created_at: datetime
    updated_at: datetime


class UserCreate(BaseModel):
    """
    Schema for creating (or re-creating) a user profile.

    The route layer upserts, so posting an existing id refreshes the row.
    """

    id: str = ""
    email: str = ""
    full_name: str | None = None
    grade: str | None = None

    @model_validator(mode="after")
    def check_required(self) -> "UserCreate":
        """Reject missing or blank identity fields."""
        if not self.id.strip() or not self.email.strip():
            raise ValueError("Missing required fields: id and email")
        self.id = self.id.strip()
        self.email = self.email.strip()
        return self

    @field_validator("full_name")
    @classmethod
    def blank_name_to_none(cls, v: str | None) -> str | None:
        """Store blank names as null."""
        return v or None

    @field_validator("grade")
    @classmethod
    def check_grade(cls, v: str | None) -> str | None:
        """Validate grade if provided."""
        return validate_grade(v)


class UserUpdate(BaseModel):
    """
    Schema for profile edits.

    Only fields present in the request body are written.
    """

    full_name: str | None = None
    grade: str | None = None

    @field_validator("grade")
    @classmethod
    def check_grade(cls, v: str | None) -> str | None:
        """Validate grade if provided."""
        return validate_grade(v)


class UserListResponse(BaseModel):
    """Schema for paginated user list responses."""

    users: list[UserResponse]
    pagination: Pagination


class UserEnvelope(BaseModel):
    """Envelope returned by the single-user routes."""

    user: UserResponse
