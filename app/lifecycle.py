"""
Incident lifecycle manager.

Owns the status state machine and role-gated mutation rules for incidents:

    pending -> reviewing -> resolved -> forwarded_to_le -> closed

Only administrators move an incident through the lifecycle; a reporter's
sole mutation is escalating the severity of their own incident to
``emergency``. ``closed`` is terminal and every later mutation is rejected
with ConflictError.

The manager holds no incident state itself. It re-reads the incident from
the injected repositories before each mutation, applies the rules and
writes the patch back; committing is left to the caller.
"""
import logging
import secrets
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, FrozenSet, List, Optional, Union

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from app.models import (
    Administrator,
    CaseStatus,
    Category,
    Incident,
    IncidentFilters,
    IncidentStatus,
    IncidentUpdateEntry,
    LawEnforcementCase,
    NotificationType,
    Reporter,
    Severity,
    UserRole,
)
from app.repository import (
    AuditRepository,
    IncidentRepository,
    NotificationRepository,
    UserRepository,
)

logger = logging.getLogger(__name__)

PrincipalType = Union[Reporter, Administrator]

ALLOWED_TRANSITIONS: Dict[IncidentStatus, FrozenSet[IncidentStatus]] = {
    IncidentStatus.PENDING: frozenset({
        IncidentStatus.REVIEWING,
        IncidentStatus.RESOLVED,
        IncidentStatus.FORWARDED_TO_LE,
        IncidentStatus.CLOSED,
    }),
    IncidentStatus.REVIEWING: frozenset({
        IncidentStatus.RESOLVED,
        IncidentStatus.FORWARDED_TO_LE,
        IncidentStatus.CLOSED,
    }),
    IncidentStatus.RESOLVED: frozenset({
        IncidentStatus.FORWARDED_TO_LE,
        IncidentStatus.CLOSED,
    }),
    IncidentStatus.FORWARDED_TO_LE: frozenset({IncidentStatus.CLOSED}),
    IncidentStatus.CLOSED: frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, targets in ALLOWED_TRANSITIONS.items() if not targets)

# Reporter-facing wording for status notifications.
STATUS_NOTIFICATIONS = {
    IncidentStatus.REVIEWING: ("Report under review", NotificationType.INFO),
    IncidentStatus.RESOLVED: ("Report resolved", NotificationType.SUCCESS),
    IncidentStatus.FORWARDED_TO_LE: ("Report forwarded to law enforcement", NotificationType.WARNING),
    IncidentStatus.CLOSED: ("Report closed", NotificationType.INFO),
}


def gen_case_number() -> str:
    """Generate case number in format: CS-YYYYMMDD-XXXXXX"""
    random_suffix = secrets.token_hex(3)
    today = datetime.now(timezone.utc)
    return f"CS-{today:%Y%m%d}-{random_suffix.upper()}"


# ============= Pure rules =============

def parse_status(value) -> IncidentStatus:
    try:
        return IncidentStatus(value)
    except ValueError:
        raise ValidationError(f"Unknown status: {value!r}")


def parse_severity(value) -> Severity:
    try:
        return Severity(value)
    except ValueError:
        raise ValidationError(f"Unknown severity: {value!r}")


def parse_category(value) -> Category:
    try:
        return Category(value)
    except ValueError:
        raise ValidationError(f"Unknown category: {value!r}")


def parse_case_status(value) -> CaseStatus:
    try:
        return CaseStatus(value)
    except ValueError:
        raise ValidationError(f"Unknown case status: {value!r}")


def require_text(value: Optional[str], field_name: str) -> str:
    """Return the stripped value, rejecting missing or blank input."""
    if value is None or not str(value).strip():
        raise ValidationError(f"{field_name} must not be empty")
    return str(value).strip()


def require_administrator(principal: PrincipalType) -> Administrator:
    if not isinstance(principal, Administrator):
        raise AuthorizationError("Administrator role required")
    return principal


def ensure_mutable(incident: Incident) -> None:
    if incident.status in TERMINAL_STATUSES:
        raise ConflictError(f"Incident {incident.id} is {incident.status.value} and can no longer be changed")


def check_transition(current: IncidentStatus, target: IncidentStatus) -> None:
    """Raise unless ``current -> target`` is an edge of the lifecycle graph."""
    if current in TERMINAL_STATUSES:
        raise ConflictError(f"Cannot change status of a {current.value} incident")
    if target not in ALLOWED_TRANSITIONS[current]:
        raise ValidationError(f"Transition {current.value} -> {target.value} is not allowed")


def can_view(principal: PrincipalType, incident: Incident) -> bool:
    return isinstance(principal, Administrator) or incident.user_id == principal.id


# ============= Manager =============

class IncidentLifecycleManager:
    """Applies lifecycle operations on behalf of a principal."""

    def __init__(
        self,
        incidents: IncidentRepository,
        users: UserRepository,
        notifications: NotificationRepository,
        audit: AuditRepository,
        clock: Optional[Callable[[], datetime]] = None,
        id_factory: Optional[Callable[[], str]] = None,
        ip_address: Optional[str] = None,
    ):
        self.incidents = incidents
        self.users = users
        self.notifications = notifications
        self.audit = audit
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.id_factory = id_factory or (lambda: str(uuid.uuid4()))
        self.ip_address = ip_address

    @classmethod
    def from_session(cls, session: AsyncSession, **kwargs) -> "IncidentLifecycleManager":
        return cls(
            incidents=IncidentRepository(session),
            users=UserRepository(session),
            notifications=NotificationRepository(session),
            audit=AuditRepository(session),
            **kwargs,
        )

    async def _load(self, incident_id: str) -> Incident:
        incident = await self.incidents.get(incident_id)
        if incident is None:
            raise NotFoundError(f"Incident {incident_id} not found")
        return incident

    async def _log(self, principal: PrincipalType, action: str, incident_id: str, details: dict = None):
        await self.audit.log(
            user_id=principal.id,
            action=action,
            resource_type="incident",
            resource_id=incident_id,
            details=details,
            ip_address=self.ip_address,
        )

    async def _notify_reporter(self, incident: Incident, new_status: IncidentStatus) -> None:
        title, kind = STATUS_NOTIFICATIONS[new_status]
        await self.notifications.create(
            user_id=incident.user_id,
            incident_id=incident.id,
            title=title,
            message=f'Your report "{incident.title}" ({incident.case_number}) is now {new_status.value.replace("_", " ")}.',
            type=kind,
        )

    # ------------------------------------------------------------------
    # Reporter operations
    # ------------------------------------------------------------------

    async def create_incident(
        self,
        principal: PrincipalType,
        title: str,
        description: str,
        category,
        severity,
        incident_date: Optional[datetime] = None,
    ) -> Incident:
        """Record a new report owned by the calling principal, in ``pending``."""
        incident = Incident(
            id=self.id_factory(),
            case_number=gen_case_number(),
            title=require_text(title, "title"),
            description=require_text(description, "description"),
            category=parse_category(category),
            severity=parse_severity(severity),
            status=IncidentStatus.PENDING,
            user_id=principal.id,
            reported_at=self.clock(),
            incident_date=incident_date,
        )

        await self.users.ensure(principal)
        created = await self.incidents.create(incident)
        await self._log(principal, "create", created.id, {
            "category": created.category.value,
            "severity": created.severity.value,
        })

        logger.info("Incident %s (%s) reported by %s", created.id, created.case_number, principal.id)
        return created

    async def escalate_incident(self, principal: PrincipalType, incident_id: str) -> Incident:
        """
        Promote the severity of the caller's own incident to ``emergency``.

        Idempotent. last_updated_by/at only track administrator updates and
        are left untouched.
        """
        incident = await self._load(incident_id)

        if incident.user_id != principal.id:
            logger.warning("Escalation of %s refused for non-owner %s", incident_id, principal.id)
            raise AuthorizationError("Only the reporting user can escalate this incident")

        ensure_mutable(incident)

        if incident.severity == Severity.EMERGENCY:
            return incident

        updated = await self.incidents.update(incident_id, {"severity": Severity.EMERGENCY})
        await self._log(principal, "escalate", incident_id, {
            "severity": {"old": incident.severity.value, "new": Severity.EMERGENCY.value},
        })

        logger.info("Incident %s escalated to emergency by %s", incident_id, principal.id)
        return updated

    # ------------------------------------------------------------------
    # Administrator operations
    # ------------------------------------------------------------------

    async def update_status(
        self,
        principal: PrincipalType,
        incident_id: str,
        new_status,
        admin_notes: Optional[str] = None,
        assigned_to: Optional[str] = None,
        law_enforcement_ref: Optional[str] = None,
    ) -> Incident:
        """
        Move an incident along the lifecycle graph.

        Moving to ``forwarded_to_le`` needs a law-enforcement reference and is
        handled exactly like forward_to_law_enforcement.
        """
        admin = require_administrator(principal)
        target = parse_status(new_status)
        incident = await self._load(incident_id)
        check_transition(incident.status, target)

        if target == IncidentStatus.FORWARDED_TO_LE:
            if law_enforcement_ref is None or not law_enforcement_ref.strip():
                raise ValidationError("law_enforcement_ref is required to forward an incident")
            return await self.forward_to_law_enforcement(
                admin,
                incident_id,
                law_enforcement_ref,
                case_notes=admin_notes,
                assigned_to=assigned_to,
                admin_notes=admin_notes,
            )

        await self.users.ensure(admin)
        now = self.clock()
        patch = {
            "status": target,
            "last_updated_by": admin.id,
            "last_updated_at": now,
        }
        if admin_notes is not None:
            patch["admin_notes"] = admin_notes
        if assigned_to is not None:
            patch["assigned_to"] = (await self._require_admin_user(assigned_to)).id
        if target == IncidentStatus.RESOLVED:
            patch["resolved_at"] = now

        updated = await self.incidents.update(incident_id, patch)
        await self.incidents.add_status_update(
            incident_id, admin.id, incident.status, target, admin_notes
        )
        await self._notify_reporter(updated, target)
        await self._log(admin, "update_status", incident_id, {
            "status": {"old": incident.status.value, "new": target.value},
        })

        logger.info(
            "Incident %s moved %s -> %s by %s",
            incident_id, incident.status.value, target.value, admin.id,
        )
        return updated

    async def forward_to_law_enforcement(
        self,
        principal: PrincipalType,
        incident_id: str,
        law_enforcement_ref: str,
        agency_name: Optional[str] = None,
        priority_level: int = 3,
        case_notes: Optional[str] = None,
        assigned_to: Optional[str] = None,
        admin_notes: Optional[str] = None,
    ) -> Incident:
        """
        Hand an incident to law enforcement under an external case reference.

        ``assigned_to`` and ``admin_notes`` are applied to the incident the
        same way update_status applies them.
        """
        admin = require_administrator(principal)
        reference = require_text(law_enforcement_ref, "law_enforcement_ref")
        if not 1 <= priority_level <= 5:
            raise ValidationError("priority_level must be between 1 and 5")

        incident = await self._load(incident_id)
        check_transition(incident.status, IncidentStatus.FORWARDED_TO_LE)

        await self.users.ensure(admin)
        now = self.clock()
        patch = {
            "status": IncidentStatus.FORWARDED_TO_LE,
            "law_enforcement_ref": reference,
            "forwarded_at": now,
            "last_updated_by": admin.id,
            "last_updated_at": now,
        }
        if admin_notes is not None:
            patch["admin_notes"] = admin_notes
        if assigned_to is not None:
            patch["assigned_to"] = (await self._require_admin_user(assigned_to)).id

        updated = await self.incidents.update(incident_id, patch)
        await self.incidents.add_law_enforcement_case(
            incident_id=incident_id,
            reference_number=reference,
            agency_name=agency_name,
            priority_level=priority_level,
            case_notes=case_notes,
            forwarded_by=admin.id,
            forwarded_at=now,
        )
        await self.incidents.add_status_update(
            incident_id, admin.id, incident.status, IncidentStatus.FORWARDED_TO_LE, case_notes
        )
        await self._notify_reporter(updated, IncidentStatus.FORWARDED_TO_LE)
        await self._log(admin, "forward", incident_id, {
            "law_enforcement_ref": reference,
            "agency_name": agency_name,
        })

        logger.info("Incident %s forwarded to law enforcement as %s by %s", incident_id, reference, admin.id)
        return updated

    async def set_severity(self, principal: PrincipalType, incident_id: str, severity) -> Incident:
        """Administrators may set any severity, including lowering it."""
        admin = require_administrator(principal)
        target = parse_severity(severity)
        incident = await self._load(incident_id)
        ensure_mutable(incident)

        await self.users.ensure(admin)
        updated = await self.incidents.update(incident_id, {
            "severity": target,
            "last_updated_by": admin.id,
            "last_updated_at": self.clock(),
        })
        await self._log(admin, "set_severity", incident_id, {
            "severity": {"old": incident.severity.value, "new": target.value},
        })
        return updated

    async def assign_incident(self, principal: PrincipalType, incident_id: str, assignee_id: str) -> Incident:
        admin = require_administrator(principal)
        incident = await self._load(incident_id)
        ensure_mutable(incident)
        await self.users.ensure(admin)
        assignee = await self._require_admin_user(require_text(assignee_id, "assigned_to"))

        updated = await self.incidents.update(incident_id, {
            "assigned_to": assignee.id,
            "last_updated_by": admin.id,
            "last_updated_at": self.clock(),
        })
        await self._log(admin, "assign", incident_id, {
            "assigned_to": {"old": incident.assigned_to, "new": assignee.id},
        })
        return updated

    async def update_case_status(
        self,
        principal: PrincipalType,
        incident_id: str,
        case_id: int,
        case_status,
        case_notes: Optional[str] = None,
    ) -> LawEnforcementCase:
        """
        Record law-enforcement progress on a forwarded case.

        Only the case row changes, so cases of closed incidents can still be
        updated. A closed case accepts no further changes.
        """
        admin = require_administrator(principal)
        target = parse_case_status(case_status)
        await self._load(incident_id)

        cases = await self.incidents.list_law_enforcement_cases(incident_id)
        case = next((c for c in cases if c.id == case_id), None)
        if case is None:
            raise NotFoundError(f"Law enforcement case {case_id} not found for incident {incident_id}")
        if case.case_status == CaseStatus.CLOSED:
            raise ConflictError(f"Law enforcement case {case_id} is closed")

        await self.users.ensure(admin)
        patch = {
            "case_status": target,
            "last_contact": self.clock(),
            "last_updated_by": admin.id,
        }
        if case_notes is not None:
            patch["case_notes"] = case_notes

        updated = await self.incidents.update_law_enforcement_case(incident_id, case_id, patch)
        await self._log(admin, "update_case_status", incident_id, {
            "case_id": case_id,
            "case_status": {"old": case.case_status.value, "new": target.value},
        })

        logger.info(
            "Law enforcement case %s of incident %s moved %s -> %s by %s",
            case_id, incident_id, case.case_status.value, target.value, admin.id,
        )
        return updated

    async def _require_admin_user(self, user_id: str):
        user = await self.users.get(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        if user.role != UserRole.ADMIN:
            raise ValidationError(f"User {user_id} is not an administrator")
        return user

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def view_incident_detail(self, principal: PrincipalType, incident_id: str) -> Incident:
        incident = await self._load(incident_id)
        if not can_view(principal, incident):
            raise AuthorizationError("You do not have permission to view this incident")
        return incident

    async def list_incidents(
        self,
        principal: PrincipalType,
        filters: Optional[IncidentFilters] = None,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[Incident]:
        """Reporters only ever see their own incidents."""
        filters = filters.model_copy() if filters else IncidentFilters()
        if not isinstance(principal, Administrator):
            filters.user_id = principal.id
        return await self.incidents.list(filters, skip=skip, limit=limit)

    async def law_enforcement_cases(self, principal: PrincipalType, incident_id: str) -> List[LawEnforcementCase]:
        require_administrator(principal)
        await self._load(incident_id)
        return await self.incidents.list_law_enforcement_cases(incident_id)

    async def incident_history(self, principal: PrincipalType, incident_id: str) -> List[IncidentUpdateEntry]:
        await self.view_incident_detail(principal, incident_id)
        return await self.incidents.list_status_updates(incident_id)


def get_lifecycle_manager(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> IncidentLifecycleManager:
    """FastAPI dependency building a manager bound to the request's session."""
    return IncidentLifecycleManager.from_session(
        db,
        ip_address=getattr(request.state, "client_ip", None),
    )
