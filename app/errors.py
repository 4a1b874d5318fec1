"""
Domain error taxonomy for the incident lifecycle.

Errors are raised by the lifecycle manager and the identity boundary and
turned into JSON responses by the handlers registered in app.main.
"""
from fastapi import status


class CyberShieldError(Exception):
    """Base class for all typed failures surfaced to API callers."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "internal_error"

    def __init__(self, detail: str = "Internal server error"):
        super().__init__(detail)
        self.detail = detail


class ValidationError(CyberShieldError):
    """Malformed or missing input, or an illegal status transition."""
    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_error"


class ConflictError(ValidationError):
    """Attempted mutation of an incident in a terminal state."""
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


class AuthenticationError(CyberShieldError):
    """Missing or invalid bearer token."""
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "authentication_error"

    def __init__(self, detail: str = "Authentication failed"):
        super().__init__(detail)


class AuthorizationError(CyberShieldError):
    """Caller's role or identity does not permit the requested action."""
    status_code = status.HTTP_403_FORBIDDEN
    code = "authorization_error"

    def __init__(self, detail: str = "Insufficient permissions"):
        super().__init__(detail)


class NotFoundError(CyberShieldError):
    """Referenced incident or user does not exist."""
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"

    def __init__(self, detail: str = "Resource not found"):
        super().__init__(detail)
