"""Session routes for principals authenticated by the external auth provider."""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.models import User
from app.repository import AuditRepository, UserRepository
from app.security import get_current_principal, limiter, RateLimitConfig

router = APIRouter()


@router.post("/session", response_model=User)
@limiter.limit(RateLimitConfig.DEFAULT_LIMIT)
async def open_session(
    request: Request,
    principal=Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    """
    Record the calling principal as a user on first sign-in.
    Role and admin attributes are fixed from the first set of claims seen.
    """
    user, created = await UserRepository(db).get_or_create(principal)
    if not created:
        return user

    await AuditRepository(db).log(
        user_id=principal.id,
        action="register",
        resource_type="user",
        resource_id=principal.id,
        ip_address=request.state.client_ip,
    )
    await db.commit()
    return user


@router.get("/me")
async def get_current_principal_info(
    request: Request,
    principal=Depends(get_current_principal),
):
    """Get the principal described by the bearer token."""
    return principal.model_dump()
