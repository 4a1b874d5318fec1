"""
Persistence gateway over the incident and user collections.

Repositories flush but never commit; the caller owns the unit of work.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple, Union

from sqlalchemy import select, desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import (
    Incident as IncidentModel,
    IncidentUpdate as IncidentUpdateModel,
    LawEnforcementCase as LawEnforcementCaseModel,
    Notification as NotificationModel,
    AuditLog as AuditLogModel,
    User as UserModel,
    utcnow,
)
from app.errors import NotFoundError
from app.models import (
    Administrator,
    AuditLog,
    CaseStatus,
    Incident,
    IncidentFilters,
    IncidentUpdateEntry,
    LawEnforcementCase,
    Notification,
    NotificationType,
    Reporter,
    User,
)

logger = logging.getLogger(__name__)


def _plain(value: Any) -> Any:
    """Enum members are stored by value."""
    return getattr(value, "value", value)


class IncidentRepository:
    """Incident records plus their status history and law-enforcement cases."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _get_model(self, incident_id: str) -> Optional[IncidentModel]:
        result = await self.session.execute(
            select(IncidentModel).filter(IncidentModel.id == incident_id)
        )
        return result.scalars().first()

    async def get(self, incident_id: str) -> Optional[Incident]:
        model = await self._get_model(incident_id)
        return Incident.model_validate(model) if model else None

    async def list(
        self,
        filters: Optional[IncidentFilters] = None,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[Incident]:
        """List incidents newest first, filtered by field equality."""
        query = select(IncidentModel).order_by(desc(IncidentModel.reported_at))

        if filters is not None:
            for field_name, value in filters.model_dump(exclude_none=True).items():
                query = query.filter(getattr(IncidentModel, field_name) == _plain(value))

        if skip:
            query = query.offset(skip)
        if limit is not None:
            query = query.limit(limit)

        result = await self.session.execute(query)
        return [Incident.model_validate(m) for m in result.scalars().all()]

    async def create(self, incident: Incident) -> Incident:
        model = IncidentModel(
            **{key: _plain(value) for key, value in incident.model_dump().items()}
        )
        self.session.add(model)
        await self.session.flush()
        return Incident.model_validate(model)

    async def update(self, incident_id: str, patch: Dict[str, Any]) -> Incident:
        model = await self._get_model(incident_id)
        if model is None:
            raise NotFoundError(f"Incident {incident_id} not found")

        for key, value in patch.items():
            setattr(model, key, _plain(value))

        await self.session.flush()
        return Incident.model_validate(model)

    async def add_status_update(
        self,
        incident_id: str,
        updated_by: str,
        old_status: str,
        new_status: str,
        update_notes: Optional[str] = None,
    ) -> IncidentUpdateEntry:
        entry = IncidentUpdateModel(
            incident_id=incident_id,
            updated_by=updated_by,
            old_status=_plain(old_status),
            new_status=_plain(new_status),
            update_notes=update_notes,
            created_at=utcnow(),
        )
        self.session.add(entry)
        await self.session.flush()
        return IncidentUpdateEntry.model_validate(entry)

    async def list_status_updates(self, incident_id: str) -> List[IncidentUpdateEntry]:
        result = await self.session.execute(
            select(IncidentUpdateModel)
            .filter(IncidentUpdateModel.incident_id == incident_id)
            .order_by(IncidentUpdateModel.id)
        )
        return [IncidentUpdateEntry.model_validate(u) for u in result.scalars().all()]

    async def add_law_enforcement_case(self, **fields: Any) -> LawEnforcementCase:
        fields.setdefault("case_status", CaseStatus.FORWARDED)
        case = LawEnforcementCaseModel(**{key: _plain(value) for key, value in fields.items()})
        self.session.add(case)
        await self.session.flush()
        return LawEnforcementCase.model_validate(case)

    async def list_law_enforcement_cases(self, incident_id: str) -> List[LawEnforcementCase]:
        result = await self.session.execute(
            select(LawEnforcementCaseModel)
            .filter(LawEnforcementCaseModel.incident_id == incident_id)
            .order_by(desc(LawEnforcementCaseModel.forwarded_at))
        )
        return [LawEnforcementCase.model_validate(c) for c in result.scalars().all()]

    async def update_law_enforcement_case(
        self, incident_id: str, case_id: int, patch: Dict[str, Any]
    ) -> LawEnforcementCase:
        result = await self.session.execute(
            select(LawEnforcementCaseModel).filter(
                LawEnforcementCaseModel.id == case_id,
                LawEnforcementCaseModel.incident_id == incident_id,
            )
        )
        case = result.scalars().first()
        if case is None:
            raise NotFoundError(f"Law enforcement case {case_id} not found for incident {incident_id}")

        for key, value in patch.items():
            setattr(case, key, _plain(value))

        await self.session.flush()
        return LawEnforcementCase.model_validate(case)


class UserRepository:
    """User records mirrored from the identity provider."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, user_id: str) -> Optional[User]:
        result = await self.session.execute(
            select(UserModel).filter(UserModel.id == user_id)
        )
        user = result.scalars().first()
        return User.model_validate(user) if user else None

    async def list(self, role: Optional[str] = None, skip: int = 0, limit: int = 50) -> List[User]:
        query = select(UserModel).order_by(UserModel.created_at)
        if role:
            query = query.filter(UserModel.role == _plain(role))
        result = await self.session.execute(query.offset(skip).limit(limit))
        return [User.model_validate(u) for u in result.scalars().all()]

    async def create(self, principal: Union[Reporter, Administrator]) -> User:
        user = UserModel(
            id=principal.id,
            email=principal.email,
            full_name=principal.name,
            role=principal.role,
            created_at=utcnow(),
        )
        if isinstance(principal, Administrator):
            user.badge_number = principal.badge_number
            user.department = principal.department

        self.session.add(user)
        await self.session.flush()
        logger.info("Recorded %s user %s", principal.role, principal.id)
        return User.model_validate(user)

    async def get_or_create(self, principal: Union[Reporter, Administrator]) -> Tuple[User, bool]:
        """
        Return the stored user for a principal and whether it was created now.

        Must run before any other write in the unit of work: losing an insert
        race to a concurrent request rolls the session back and re-reads the
        row the other request committed.
        """
        existing = await self.get(principal.id)
        if existing is not None:
            return existing, False

        try:
            return await self.create(principal), True
        except IntegrityError:
            await self.session.rollback()
            logger.info("User %s was recorded concurrently, re-reading", principal.id)
            existing = await self.get(principal.id)
            if existing is None:
                raise
            return existing, False

    async def ensure(self, principal: Union[Reporter, Administrator]) -> User:
        """Return the stored user for a principal, creating it on first sight."""
        user, _ = await self.get_or_create(principal)
        return user


class NotificationRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        user_id: str,
        title: str,
        message: str,
        type: NotificationType = NotificationType.INFO,
        incident_id: Optional[str] = None,
    ) -> Notification:
        notification = NotificationModel(
            user_id=user_id,
            incident_id=incident_id,
            title=title,
            message=message,
            type=_plain(type),
            is_read=False,
            created_at=utcnow(),
        )
        self.session.add(notification)
        await self.session.flush()
        return Notification.model_validate(notification)

    async def list_for_user(
        self, user_id: str, unread_only: bool = False, skip: int = 0, limit: int = 50
    ) -> List[Notification]:
        query = (
            select(NotificationModel)
            .filter(NotificationModel.user_id == user_id)
            .order_by(desc(NotificationModel.created_at), desc(NotificationModel.id))
        )
        if unread_only:
            query = query.filter(NotificationModel.is_read.is_(False))
        result = await self.session.execute(query.offset(skip).limit(limit))
        return [Notification.model_validate(n) for n in result.scalars().all()]

    async def mark_read(self, notification_id: int, user_id: str) -> Notification:
        result = await self.session.execute(
            select(NotificationModel).filter(
                NotificationModel.id == notification_id,
                NotificationModel.user_id == user_id,
            )
        )
        notification = result.scalars().first()
        if notification is None:
            raise NotFoundError(f"Notification {notification_id} not found")

        notification.is_read = True
        await self.session.flush()
        return Notification.model_validate(notification)


class AuditRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def log(
        self,
        user_id: Optional[str],
        action: str,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None,
        ip_address: Optional[str] = None,
    ) -> None:
        """Log audit trail for compliance."""
        audit_entry = AuditLogModel(
            user_id=user_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            details=details,
            ip_address=ip_address,
            created_at=utcnow(),
        )
        self.session.add(audit_entry)
        await self.session.flush()

    async def list(
        self,
        resource_id: Optional[str] = None,
        user_id: Optional[str] = None,
        action: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[AuditLog]:
        query = select(AuditLogModel).order_by(desc(AuditLogModel.created_at), desc(AuditLogModel.id))

        if resource_id:
            query = query.filter(AuditLogModel.resource_id == resource_id)

        if user_id:
            query = query.filter(AuditLogModel.user_id == user_id)

        if action:
            query = query.filter(AuditLogModel.action == action)

        result = await self.session.execute(query.offset(skip).limit(limit))
        return [AuditLog.model_validate(log) for log in result.scalars().all()]
