# app/core/exceptions.py
"""
Request-scoped failures raised by the kudos service and identity resolver.

Each exception carries the HTTP status it maps to; the handlers registered in
``app.main`` turn them into ``{"detail": ...}`` JSON responses.
"""

from fastapi import status


class KudosError(Exception):
    """Base class for kudos domain errors."""
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailure(KudosError):
    """Raised when request input has the wrong shape or length."""
    status_code = status.HTTP_400_BAD_REQUEST


class AuthenticationFailure(KudosError):
    """Raised when no external identity can be resolved from the credentials."""
    status_code = status.HTTP_401_UNAUTHORIZED


class AuthorizationFailure(KudosError):
    """Raised when a non-admin caller attempts an admin-only action."""
    status_code = status.HTTP_403_FORBIDDEN


class NotFound(KudosError):
    """Raised when a referenced user or kudos id does not exist."""
    status_code = status.HTTP_404_NOT_FOUND
