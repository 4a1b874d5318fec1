"""Notification inbox routes."""
from typing import List

from fastapi import APIRouter, Depends, Request, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.models import Notification
from app.repository import NotificationRepository
from app.security import get_current_principal

router = APIRouter()


@router.get("", response_model=List[Notification])
async def list_notifications(
    request: Request,
    unread_only: bool = Query(False),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    principal=Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    """Notifications for the caller, newest first."""
    return await NotificationRepository(db).list_for_user(
        principal.id, unread_only=unread_only, skip=skip, limit=limit
    )


@router.put("/{notification_id}/read", response_model=Notification)
async def mark_notification_read(
    request: Request,
    notification_id: int,
    principal=Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    notification = await NotificationRepository(db).mark_read(notification_id, principal.id)
    await db.commit()
    return notification
