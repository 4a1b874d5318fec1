"""
Database models using SQLAlchemy ORM, plus engine and session wiring.
"""
from datetime import datetime, timezone
from typing import AsyncIterator

from fastapi import Request
from sqlalchemy import Column, Integer, String, Text, ForeignKey, DateTime, Boolean, JSON, Index
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.pool import NullPool

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """Principal recorded from the identity provider's claims."""
    __tablename__ = "users"
    __table_args__ = (
        Index("ix_users_email", "email"),
    )

    id = Column(String(128), primary_key=True)
    email = Column(String(255), nullable=True)
    full_name = Column(String(200), nullable=True)
    role = Column(String(10), nullable=False, default="user")  # user, admin
    badge_number = Column(String(50), nullable=True)
    department = Column(String(200), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    incidents = relationship("Incident", back_populates="reporter")


class Incident(Base):
    """Reported cybercrime incident."""
    __tablename__ = "incidents"
    __table_args__ = (
        Index("ix_incidents_case_number", "case_number", unique=True),
        Index("ix_incidents_user", "user_id"),
        Index("ix_incidents_status", "status"),
        Index("ix_incidents_reported_at", "reported_at"),
    )

    id = Column(String(36), primary_key=True)
    case_number = Column(String(20), nullable=False, unique=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    category = Column(String(30), nullable=False)
    severity = Column(String(20), nullable=False)  # low, medium, high, emergency
    status = Column(String(20), default="pending", nullable=False)
    user_id = Column(String(128), ForeignKey("users.id"), nullable=False)
    reported_at = Column(DateTime, default=utcnow, nullable=False)
    incident_date = Column(DateTime, nullable=True)

    assigned_to = Column(String(128), nullable=True)
    admin_notes = Column(Text, nullable=True)
    law_enforcement_ref = Column(String(100), nullable=True)
    forwarded_at = Column(DateTime, nullable=True)
    resolved_at = Column(DateTime, nullable=True)
    last_updated_by = Column(String(128), nullable=True)
    last_updated_at = Column(DateTime, nullable=True)

    # Relationships
    reporter = relationship("User", back_populates="incidents")
    updates = relationship("IncidentUpdate", back_populates="incident", order_by="IncidentUpdate.id")
    law_enforcement_cases = relationship("LawEnforcementCase", back_populates="incident")


class IncidentUpdate(Base):
    """Status history of an incident, one row per administrator transition."""
    __tablename__ = "incident_updates"
    __table_args__ = (Index("ix_incident_updates_incident", "incident_id"),)

    id = Column(Integer, primary_key=True)
    incident_id = Column(String(36), ForeignKey("incidents.id"), nullable=False)
    updated_by = Column(String(128), nullable=False)
    old_status = Column(String(20), nullable=False)
    new_status = Column(String(20), nullable=False)
    update_notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    incident = relationship("Incident", back_populates="updates")


class LawEnforcementCase(Base):
    """Case handed over to an external law-enforcement agency."""
    __tablename__ = "law_enforcement_cases"
    __table_args__ = (Index("ix_le_cases_incident", "incident_id"),)

    id = Column(Integer, primary_key=True)
    incident_id = Column(String(36), ForeignKey("incidents.id"), nullable=False)
    reference_number = Column(String(100), nullable=False)
    agency_name = Column(String(200), nullable=True)
    priority_level = Column(Integer, default=3, nullable=False)
    case_status = Column(String(30), default="forwarded", nullable=False)  # forwarded, under_investigation, completed, closed
    case_notes = Column(Text, nullable=True)
    forwarded_by = Column(String(128), nullable=False)
    forwarded_at = Column(DateTime, nullable=False)
    last_contact = Column(DateTime, nullable=True)
    last_updated_by = Column(String(128), nullable=True)

    # Relationships
    incident = relationship("Incident", back_populates="law_enforcement_cases")


class Notification(Base):
    """In-app message for a user, optionally about an incident."""
    __tablename__ = "notifications"
    __table_args__ = (Index("ix_notifications_user", "user_id"),)

    id = Column(Integer, primary_key=True)
    user_id = Column(String(128), ForeignKey("users.id"), nullable=False)
    incident_id = Column(String(36), ForeignKey("incidents.id"), nullable=True)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String(10), default="info", nullable=False)  # info, warning, success, error
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class AuditLog(Base):
    """Audit log for all mutations."""
    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_user", "user_id"),
        Index("ix_audit_logs_resource", "resource_type", "resource_id"),
        Index("ix_audit_logs_created_at", "created_at"),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(String(128), nullable=True)
    action = Column(String(100), nullable=False)  # create, escalate, update_status, forward, ...
    resource_type = Column(String(50), nullable=False)
    resource_id = Column(String(100), nullable=True)
    details = Column(JSON, nullable=True)
    ip_address = Column(String(45), nullable=True)  # IPv4 or IPv6
    created_at = Column(DateTime, default=utcnow, nullable=False)


# ============= Engine / Sessions =============

def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create the async engine; SQLite connections are not pooled across event loops."""
    kwargs = {"echo": echo}
    if database_url.startswith("sqlite"):
        kwargs["poolclass"] = NullPool
    return create_async_engine(database_url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """Get database session."""
    async with request.app.state.db_session() as session:
        yield session
