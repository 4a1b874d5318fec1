"""
Identity boundary and request-security helpers.

Bearer tokens are issued by the external auth provider and signed with a
secret shared with this service. The claims are trusted as-is once the
signature and expiry check out; this module never issues tokens or
handles passwords.
"""
from typing import Optional, Union

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from pydantic import ValidationError
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.errors import AuthenticationError, AuthorizationError
from app.models import Administrator, PrincipalClaims, Reporter, UserRole

# HTTP Bearer security; missing credentials are reported as 401 below.
security = HTTPBearer(auto_error=False)

# Rate limiter shared by all routers; enabled/disabled by create_app.
limiter = Limiter(key_func=get_remote_address)


def principal_from_claims(payload: dict) -> Union[Reporter, Administrator]:
    """
    Build the typed principal from identity claims.

    Expected claims: sub, role (user|admin), email, name and, for
    administrators, badge_number and department.
    """
    data = {
        "id": payload.get("sub"),
        "role": payload.get("role", UserRole.USER.value),
        "email": payload.get("email"),
        "name": payload.get("name"),
    }
    if data["role"] == UserRole.ADMIN.value:
        data["badge_number"] = payload.get("badge_number")
        data["department"] = payload.get("department")

    return PrincipalClaims(principal=data).principal


async def get_current_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Union[Reporter, Administrator]:
    """
    Validate JWT token and extract the principal.
    Used as dependency in protected endpoints.
    """
    if credentials is None:
        raise AuthenticationError("Missing bearer token")

    settings = request.app.state.settings
    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
        if payload.get("sub") is None:
            raise AuthenticationError("Invalid token structure")

        principal = principal_from_claims(payload)

    except JWTError as e:
        raise AuthenticationError(f"Invalid token: {str(e)}")
    except (ValidationError, ValueError) as e:
        raise AuthenticationError(f"Invalid token payload: {str(e)}")

    request.state.principal_id = principal.id
    return principal


def require_role(*required_roles: UserRole):
    """
    Dependency factory requiring one of the given roles.
    Usage: Depends(require_role(UserRole.ADMIN))
    """
    async def role_checker(principal=Depends(get_current_principal)):
        if principal.role not in {role.value for role in required_roles}:
            raise AuthorizationError(
                f"Requires one of: {', '.join(r.value for r in required_roles)}"
            )
        return principal

    return role_checker


class SecurityHeaders:
    """Security headers middleware configuration."""

    @staticmethod
    def get_headers() -> dict:
        """Return recommended security headers."""
        return {
            "X-Content-Type-Options": "nosniff",
            "X-Frame-Options": "DENY",
            "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
            "Content-Security-Policy": "default-src 'self'",
            "Referrer-Policy": "strict-origin-when-cross-origin",
        }


class RateLimitConfig:
    """Rate limiting configuration."""

    DEFAULT_LIMIT = "100/minute"
    ADMIN_LIMIT = "200/minute"
    CREATE_INCIDENT_LIMIT = "20/minute"
    HEALTH_LIMIT = "1000/minute"
