"""Administrator console routes."""
from typing import List, Optional

from fastapi import APIRouter, Depends, Request, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.dashboard import build_dashboard_stats, law_enforcement_queue
from app.database import get_db
from app.lifecycle import IncidentLifecycleManager, get_lifecycle_manager
from app.models import (
    AssignmentRequest,
    CaseStatusUpdateRequest,
    Category,
    DashboardStats,
    ForwardRequest,
    Incident,
    IncidentFilters,
    IncidentListItem,
    IncidentStatus,
    LawEnforcementCase,
    Severity,
    SeverityUpdateRequest,
    StatusUpdateRequest,
    User,
    UserRole,
)
from app.repository import UserRepository
from app.security import require_role, limiter, RateLimitConfig

router = APIRouter()

require_admin = require_role(UserRole.ADMIN)


@router.get("/incidents", response_model=List[IncidentListItem])
@limiter.limit(RateLimitConfig.ADMIN_LIMIT)
async def list_incidents(
    request: Request,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    status_filter: Optional[IncidentStatus] = Query(None),
    severity_filter: Optional[Severity] = Query(None),
    category_filter: Optional[Category] = Query(None),
    assigned_to: Optional[str] = Query(None),
    principal=Depends(require_admin),
    manager: IncidentLifecycleManager = Depends(get_lifecycle_manager),
):
    """List all incidents with pagination and filtering (admin only)."""
    filters = IncidentFilters(
        status=status_filter,
        severity=severity_filter,
        category=category_filter,
        assigned_to=assigned_to,
    )
    incidents = await manager.list_incidents(principal, filters, skip=skip, limit=limit)
    return [IncidentListItem.model_validate(i, from_attributes=True) for i in incidents]


@router.put("/incidents/{incident_id}/status", response_model=Incident)
@limiter.limit(RateLimitConfig.ADMIN_LIMIT)
async def update_incident_status(
    request: Request,
    incident_id: str,
    update: StatusUpdateRequest,
    principal=Depends(require_admin),
    manager: IncidentLifecycleManager = Depends(get_lifecycle_manager),
    db: AsyncSession = Depends(get_db),
):
    """Move an incident to a new status, optionally with notes and an assignee."""
    incident = await manager.update_status(
        principal,
        incident_id,
        update.status,
        admin_notes=update.admin_notes,
        assigned_to=update.assigned_to,
        law_enforcement_ref=update.law_enforcement_ref,
    )
    await db.commit()
    return incident


@router.post("/incidents/{incident_id}/forward-le", response_model=Incident)
@limiter.limit(RateLimitConfig.ADMIN_LIMIT)
async def forward_to_law_enforcement(
    request: Request,
    incident_id: str,
    forward: ForwardRequest,
    principal=Depends(require_admin),
    manager: IncidentLifecycleManager = Depends(get_lifecycle_manager),
    db: AsyncSession = Depends(get_db),
):
    """Forward an incident to law enforcement under an external case reference."""
    incident = await manager.forward_to_law_enforcement(
        principal,
        incident_id,
        forward.law_enforcement_ref,
        agency_name=forward.agency_name,
        priority_level=forward.priority_level,
        case_notes=forward.case_notes,
        assigned_to=forward.assigned_to,
        admin_notes=forward.admin_notes,
    )
    await db.commit()
    return incident


@router.get("/incidents/{incident_id}/law-enforcement", response_model=List[LawEnforcementCase])
@limiter.limit(RateLimitConfig.ADMIN_LIMIT)
async def list_law_enforcement_cases(
    request: Request,
    incident_id: str,
    principal=Depends(require_admin),
    manager: IncidentLifecycleManager = Depends(get_lifecycle_manager),
):
    """Law-enforcement cases opened for an incident, most recent first."""
    return await manager.law_enforcement_cases(principal, incident_id)


@router.put(
    "/incidents/{incident_id}/law-enforcement/{case_id}/status",
    response_model=LawEnforcementCase,
)
@limiter.limit(RateLimitConfig.ADMIN_LIMIT)
async def update_law_enforcement_case_status(
    request: Request,
    incident_id: str,
    case_id: int,
    update: CaseStatusUpdateRequest,
    principal=Depends(require_admin),
    manager: IncidentLifecycleManager = Depends(get_lifecycle_manager),
    db: AsyncSession = Depends(get_db),
):
    """Record progress reported back by the law-enforcement agency."""
    case = await manager.update_case_status(
        principal,
        incident_id,
        case_id,
        update.case_status,
        case_notes=update.case_notes,
    )
    await db.commit()
    return case


@router.put("/incidents/{incident_id}/severity", response_model=Incident)
@limiter.limit(RateLimitConfig.ADMIN_LIMIT)
async def set_incident_severity(
    request: Request,
    incident_id: str,
    update: SeverityUpdateRequest,
    principal=Depends(require_admin),
    manager: IncidentLifecycleManager = Depends(get_lifecycle_manager),
    db: AsyncSession = Depends(get_db),
):
    incident = await manager.set_severity(principal, incident_id, update.severity)
    await db.commit()
    return incident


@router.put("/incidents/{incident_id}/assignment", response_model=Incident)
@limiter.limit(RateLimitConfig.ADMIN_LIMIT)
async def assign_incident(
    request: Request,
    incident_id: str,
    assignment: AssignmentRequest,
    principal=Depends(require_admin),
    manager: IncidentLifecycleManager = Depends(get_lifecycle_manager),
    db: AsyncSession = Depends(get_db),
):
    incident = await manager.assign_incident(principal, incident_id, assignment.assigned_to)
    await db.commit()
    return incident


@router.get("/dashboard", response_model=DashboardStats)
@limiter.limit(RateLimitConfig.ADMIN_LIMIT)
async def get_dashboard(
    request: Request,
    principal=Depends(require_admin),
    manager: IncidentLifecycleManager = Depends(get_lifecycle_manager),
):
    """Counts by status, severity and category plus the most recent reports."""
    incidents = await manager.list_incidents(principal)
    return build_dashboard_stats(
        incidents,
        recent_limit=request.app.state.settings.recent_limit,
    )


@router.get("/law-enforcement", response_model=List[Incident])
@limiter.limit(RateLimitConfig.ADMIN_LIMIT)
async def list_forwarded_incidents(
    request: Request,
    principal=Depends(require_admin),
    manager: IncidentLifecycleManager = Depends(get_lifecycle_manager),
):
    """Incidents handed to law enforcement, emergencies first."""
    incidents = await manager.list_incidents(principal)
    return law_enforcement_queue(incidents)


@router.get("/users", response_model=List[User])
async def list_users(
    request: Request,
    role: Optional[UserRole] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    principal=Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """List users known to the service (admin only)."""
    return await UserRepository(db).list(role=role, skip=skip, limit=limit)
