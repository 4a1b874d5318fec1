"""Reporter-facing incident routes."""
from typing import List, Optional

from fastapi import APIRouter, Depends, Request, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.lifecycle import IncidentLifecycleManager, get_lifecycle_manager
from app.models import (
    Incident,
    IncidentCreate,
    IncidentFilters,
    IncidentListItem,
    IncidentStatus,
    IncidentUpdateEntry,
)
from app.security import get_current_principal, limiter, RateLimitConfig

router = APIRouter()


@router.post("", response_model=Incident, status_code=status.HTTP_201_CREATED)
@limiter.limit(RateLimitConfig.CREATE_INCIDENT_LIMIT)
async def create_incident(
    request: Request,
    incident_data: IncidentCreate,
    principal=Depends(get_current_principal),
    manager: IncidentLifecycleManager = Depends(get_lifecycle_manager),
    db: AsyncSession = Depends(get_db),
):
    """Report a new incident. It starts in the pending state."""
    incident = await manager.create_incident(
        principal,
        title=incident_data.title,
        description=incident_data.description,
        category=incident_data.category,
        severity=incident_data.severity,
        incident_date=incident_data.incident_date,
    )
    await db.commit()
    return incident


@router.get("", response_model=List[IncidentListItem])
@limiter.limit(RateLimitConfig.DEFAULT_LIMIT)
async def list_my_incidents(
    request: Request,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    status_filter: Optional[IncidentStatus] = Query(None),
    principal=Depends(get_current_principal),
    manager: IncidentLifecycleManager = Depends(get_lifecycle_manager),
):
    """List the caller's own incidents, newest first."""
    filters = IncidentFilters(user_id=principal.id, status=status_filter)
    incidents = await manager.list_incidents(principal, filters, skip=skip, limit=limit)
    return [IncidentListItem.model_validate(i, from_attributes=True) for i in incidents]


@router.get("/{incident_id}", response_model=Incident)
@limiter.limit(RateLimitConfig.DEFAULT_LIMIT)
async def get_incident(
    request: Request,
    incident_id: str,
    principal=Depends(get_current_principal),
    manager: IncidentLifecycleManager = Depends(get_lifecycle_manager),
):
    """Get incident details. Reporters can only see their own reports."""
    return await manager.view_incident_detail(principal, incident_id)


@router.post("/{incident_id}/escalate", response_model=Incident)
@limiter.limit(RateLimitConfig.DEFAULT_LIMIT)
async def escalate_incident(
    request: Request,
    incident_id: str,
    principal=Depends(get_current_principal),
    manager: IncidentLifecycleManager = Depends(get_lifecycle_manager),
    db: AsyncSession = Depends(get_db),
):
    """Escalate one of the caller's incidents to emergency severity."""
    incident = await manager.escalate_incident(principal, incident_id)
    await db.commit()
    return incident


@router.get("/{incident_id}/history", response_model=List[IncidentUpdateEntry])
@limiter.limit(RateLimitConfig.DEFAULT_LIMIT)
async def get_incident_history(
    request: Request,
    incident_id: str,
    principal=Depends(get_current_principal),
    manager: IncidentLifecycleManager = Depends(get_lifecycle_manager),
):
    """Status history of an incident, oldest first."""
    return await manager.incident_history(principal, incident_id)
