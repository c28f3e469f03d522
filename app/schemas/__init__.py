"""Public schema exports."""

from .auth import AuthorizationStartResponse, DisplayNameResponse
from .profile import ErrorResponse, ProfileResponse

__all__ = [
    "AuthorizationStartResponse",
    "DisplayNameResponse",
    "ErrorResponse",
    "ProfileResponse",
]
