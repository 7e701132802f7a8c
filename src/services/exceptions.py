"""Shared exceptions for service layer operations."""


class SummaryNotFoundError(Exception):
    """
    Raised when a summary does not exist or is not visible to the caller.

    Ownership failures on update and delete surface as this error too, since
    the gateway does not distinguish "absent" from "not yours".
    """

    def __init__(self, message: str = "Summary not found") -> None:
        super().__init__(message)


class UserNotFoundError(Exception):
    """Raised when a user profile does not exist."""

    def __init__(self, message: str = "User not found") -> None:
        super().__init__(message)


class ForbiddenError(Exception):
    """Raised when the caller may not act on another user's resource."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class AuthError(Exception):
    """
    Raised when the gateway rejects a sign-up, sign-in or sign-out.

    The gateway's message is user-facing (e.g. 'Invalid login credentials').
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)
