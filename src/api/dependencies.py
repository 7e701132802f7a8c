"""FastAPI dependencies for injection."""
from core.auth import CurrentUser, get_current_user, get_optional_user, security
from core.config import get_settings
from core.gateway import get_gateway

__all__ = [
    "CurrentUser",
    "get_current_user",
    "get_gateway",
    "get_optional_user",
    "get_settings",
    "security",
]
