"""
Pydantic models for request/response validation and the typed principal.
"""
from typing import Annotated, Optional, List, Dict, Union, Literal
from datetime import datetime, timezone
from enum import Enum
from pydantic import AfterValidator, BaseModel, ConfigDict, Field, EmailStr


class IncidentStatus(str, Enum):
    """Incident lifecycle states."""
    PENDING = "pending"
    REVIEWING = "reviewing"
    RESOLVED = "resolved"
    FORWARDED_TO_LE = "forwarded_to_le"
    CLOSED = "closed"


class Severity(str, Enum):
    """Incident severity levels, lowest first."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    EMERGENCY = "emergency"

    @property
    def rank(self) -> int:
        return list(Severity).index(self)


class Category(str, Enum):
    """Cybercrime categories a reporter can choose from."""
    PHISHING = "phishing"
    MALWARE = "malware"
    RANSOMWARE = "ransomware"
    DATA_BREACH = "data_breach"
    IDENTITY_THEFT = "identity_theft"
    FINANCIAL_FRAUD = "financial_fraud"
    SOCIAL_ENGINEERING = "social_engineering"
    OTHER = "other"


class UserRole(str, Enum):
    """System user roles."""
    USER = "user"
    ADMIN = "admin"


class CaseStatus(str, Enum):
    """Progress of a case on the law-enforcement side."""
    FORWARDED = "forwarded"
    UNDER_INVESTIGATION = "under_investigation"
    COMPLETED = "completed"
    CLOSED = "closed"


class NotificationType(str, Enum):
    INFO = "info"
    WARNING = "warning"
    SUCCESS = "success"
    ERROR = "error"


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


UtcDatetime = Annotated[datetime, AfterValidator(_as_utc)]


# ============= Principal Models =============

class Reporter(BaseModel):
    """A citizen reporting incidents."""
    role: Literal["user"] = "user"
    id: str = Field(..., min_length=1)
    email: Optional[EmailStr] = None
    name: Optional[str] = None


class Administrator(BaseModel):
    """A reviewing officer in the administrator console."""
    role: Literal["admin"] = "admin"
    id: str = Field(..., min_length=1)
    email: Optional[EmailStr] = None
    name: Optional[str] = None
    badge_number: Optional[str] = None
    department: Optional[str] = None


Principal = Annotated[Union[Reporter, Administrator], Field(discriminator="role")]


class PrincipalClaims(BaseModel):
    """Wrapper used to parse identity claims into the right principal variant."""
    principal: Principal


# ============= User Models =============

class User(BaseModel):
    """User response."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    role: UserRole
    badge_number: Optional[str] = None
    department: Optional[str] = None
    created_at: UtcDatetime


# ============= Incident Models =============

class IncidentCreate(BaseModel):
    """Create incident request."""
    title: str = Field(..., max_length=200)
    description: str = Field(..., max_length=5000)
    category: Category
    severity: Severity
    incident_date: Optional[UtcDatetime] = None


class StatusUpdateRequest(BaseModel):
    """Administrator status change."""
    status: IncidentStatus
    admin_notes: Optional[str] = Field(None, max_length=5000)
    assigned_to: Optional[str] = None
    law_enforcement_ref: Optional[str] = Field(None, max_length=100)


class ForwardRequest(BaseModel):
    """Forward an incident to law enforcement."""
    law_enforcement_ref: str = Field(..., max_length=100)
    agency_name: Optional[str] = Field(None, max_length=200)
    priority_level: int = Field(3, ge=1, le=5)
    case_notes: Optional[str] = Field(None, max_length=5000)
    assigned_to: Optional[str] = None
    admin_notes: Optional[str] = Field(None, max_length=5000)


class CaseStatusUpdateRequest(BaseModel):
    """Law-enforcement progress reported back to the console."""
    case_status: CaseStatus
    case_notes: Optional[str] = Field(None, max_length=5000)


class SeverityUpdateRequest(BaseModel):
    severity: Severity


class AssignmentRequest(BaseModel):
    assigned_to: str = Field(..., min_length=1)


class Incident(BaseModel):
    """Full incident response."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    case_number: str
    title: str
    description: str
    category: Category
    severity: Severity
    status: IncidentStatus
    user_id: str
    reported_at: UtcDatetime
    incident_date: Optional[UtcDatetime] = None

    assigned_to: Optional[str] = None
    admin_notes: Optional[str] = None
    law_enforcement_ref: Optional[str] = None
    forwarded_at: Optional[UtcDatetime] = None
    resolved_at: Optional[UtcDatetime] = None
    last_updated_by: Optional[str] = None
    last_updated_at: Optional[UtcDatetime] = None


class IncidentListItem(BaseModel):
    """Incident list response."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    case_number: str
    title: str
    category: Category
    severity: Severity
    status: IncidentStatus
    reported_at: UtcDatetime
    assigned_to: Optional[str] = None


class IncidentFilters(BaseModel):
    """Filters for incident listings."""
    user_id: Optional[str] = None
    status: Optional[IncidentStatus] = None
    severity: Optional[Severity] = None
    category: Optional[Category] = None
    assigned_to: Optional[str] = None


class IncidentUpdateEntry(BaseModel):
    """One row of an incident's status history."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    incident_id: str
    updated_by: str
    old_status: IncidentStatus
    new_status: IncidentStatus
    update_notes: Optional[str] = None
    created_at: UtcDatetime


class LawEnforcementCase(BaseModel):
    """Case record written when an incident is forwarded."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    incident_id: str
    reference_number: str
    agency_name: Optional[str] = None
    priority_level: int
    case_status: CaseStatus = CaseStatus.FORWARDED
    case_notes: Optional[str] = None
    forwarded_by: str
    forwarded_at: UtcDatetime
    last_contact: Optional[UtcDatetime] = None
    last_updated_by: Optional[str] = None


# ============= Notification Models =============

class Notification(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    incident_id: Optional[str] = None
    title: str
    message: str
    type: NotificationType
    is_read: bool
    created_at: UtcDatetime


# ============= Dashboard Models =============

class DashboardStats(BaseModel):
    """Aggregated counts for the administrator dashboard."""
    total_incidents: int
    emergency_incidents: int
    incidents_today: int
    incidents_this_week: int
    incidents_this_month: int
    average_resolution_time: Optional[float] = None  # hours
    status_breakdown: Dict[IncidentStatus, int]
    severity_breakdown: Dict[Severity, int]
    category_breakdown: Dict[Category, int]
    recent_incidents: List[IncidentListItem]


class AuditLog(BaseModel):
    """Audit log entry."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: Optional[str] = None
    action: str
    resource_type: str
    resource_id: Optional[str] = None
    details: Optional[dict] = None
    ip_address: Optional[str] = None
    created_at: UtcDatetime


# ============= Error Models =============

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    detail: Optional[str] = None
    request_id: Optional[str] = None


class ValidationErrorResponse(BaseModel):
    """Validation error response."""
    errors: List[dict]
    request_id: Optional[str] = None
