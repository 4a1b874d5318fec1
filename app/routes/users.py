"""User profile routes."""
from typing import List

from fastapi import APIRouter, Depends, Request, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.errors import NotFoundError
from app.lifecycle import IncidentLifecycleManager, get_lifecycle_manager
from app.models import IncidentFilters, IncidentListItem, User
from app.repository import UserRepository
from app.security import get_current_principal

router = APIRouter()


@router.get("/me", response_model=User)
async def get_profile(
    request: Request,
    principal=Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    """Stored profile of the caller; open a session first to create it."""
    user = await UserRepository(db).get(principal.id)
    if user is None:
        raise NotFoundError("User profile not found")
    return user


@router.get("/me/incidents", response_model=List[IncidentListItem])
async def get_my_incidents(
    request: Request,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    principal=Depends(get_current_principal),
    manager: IncidentLifecycleManager = Depends(get_lifecycle_manager),
):
    incidents = await manager.list_incidents(
        principal, IncidentFilters(user_id=principal.id), skip=skip, limit=limit
    )
    return [IncidentListItem.model_validate(i, from_attributes=True) for i in incidents]
