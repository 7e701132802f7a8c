"""Pydantic schemas for authentication requests and gateway auth responses."""
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from schemas.validators import GRADE_LEVELS


class SignUpRequest(BaseModel):
    """Request body for account creation."""

    model_config = ConfigDict(populate_by_name=True)

    email: str = ""
    password: str = ""
    full_name: str = Field(default="", alias="fullName")
    grade: str = ""

    @model_validator(mode="after")
    def check_fields(self) -> "SignUpRequest":
        """Validate in the order the sign-up form reports problems."""
        if not self.email or not self.password:
            raise ValueError("Email and password are required")
        if not self.full_name.strip():
            raise ValueError("Full name is required")
        if not self.grade:
            raise ValueError("Grade is required")
        if self.grade not in GRADE_LEVELS:
            raise ValueError(f"Invalid grade. Must be one of: {', '.join(GRADE_LEVELS)}")
        self.full_name = self.full_name.strip()
        return self


class SignInRequest(BaseModel):
    """Request body for password sign-in."""

    email: str = ""
    password: str = ""

    @model_validator(mode="after")
    def check_fields(self) -> "SignInRequest":
        """Both credentials are required."""
        if not self.email or not self.password:
            raise ValueError("Email and password are required")
        return self


class AuthUser(BaseModel):
    """Identity issued by the gateway's auth service."""

    model_config = ConfigDict(extra="ignore")

    id: str
    email: str | None = None
    user_metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def display_name(self) -> str | None:
        """Display name supplied by the identity provider, if any."""
        return self.user_metadata.get("full_name") or self.user_metadata.get("name") or None


class AuthSession(BaseModel):
    """Token pair returned on sign-in, sign-up and refresh."""

    model_config = ConfigDict(extra="ignore")

    access_token: str
    refresh_token: str | None = None
    token_type: str = "bearer"
    expires_in: int | None = None
    expires_at: int | None = None
    user: AuthUser


class AuthResponse(BaseModel):
    """
    Result of sign-in or sign-up.

    `session` is null when the gateway requires email confirmation before
    the first sign-in.
    """

    user: AuthUser | None = None
    session: AuthSession | None = None


class AuthResult(BaseModel):
    """Envelope returned by the sign-in and sign-up routes."""

    message: str
    data: AuthResponse


class CurrentUserResponse(BaseModel):
    """Envelope returned by the current-user route."""

    user: AuthUser | None = None


class MessageResponse(BaseModel):
    """Plain acknowledgement."""

    message: str
