"""Audit log routes for compliance."""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.models import AuditLog, UserRole
from app.repository import AuditRepository
from app.security import require_role

router = APIRouter()


@router.get("", response_model=List[AuditLog])
async def get_audit_logs(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    incident_id: Optional[str] = Query(None),
    user_id: Optional[str] = Query(None),
    action: Optional[str] = Query(None),
    principal=Depends(require_role(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    """Get audit logs (admin only), newest first."""
    return await AuditRepository(db).list(
        resource_id=incident_id,
        user_id=user_id,
        action=action,
        skip=skip,
        limit=limit,
    )
