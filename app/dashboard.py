"""Read-only aggregations over incident collections for the admin console."""
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional

from app.models import (
    Category,
    DashboardStats,
    Incident,
    IncidentListItem,
    IncidentStatus,
    Severity,
)


def status_breakdown(incidents: Iterable[Incident]) -> Dict[IncidentStatus, int]:
    counts = Counter(i.status for i in incidents)
    return {s: counts.get(s, 0) for s in IncidentStatus}


def severity_breakdown(incidents: Iterable[Incident]) -> Dict[Severity, int]:
    counts = Counter(i.severity for i in incidents)
    return {s: counts.get(s, 0) for s in Severity}


def category_breakdown(incidents: Iterable[Incident]) -> Dict[Category, int]:
    counts = Counter(i.category for i in incidents)
    return {c: counts.get(c, 0) for c in Category}


def recent_incidents(incidents: Iterable[Incident], limit: int = 5) -> List[Incident]:
    """Top ``limit`` incidents by reported_at, newest first."""
    return sorted(incidents, key=lambda i: i.reported_at, reverse=True)[:limit]


def average_resolution_hours(incidents: Iterable[Incident]) -> Optional[float]:
    durations = [
        (i.resolved_at - i.reported_at).total_seconds() / 3600
        for i in incidents
        if i.resolved_at is not None
    ]
    if not durations:
        return None
    return round(sum(durations) / len(durations), 2)


def law_enforcement_queue(incidents: Iterable[Incident]) -> List[Incident]:
    """
    Incidents handed to law enforcement, most severe first and then most
    recently forwarded first.
    """
    forwarded = [
        i for i in incidents
        if i.status == IncidentStatus.FORWARDED_TO_LE or i.law_enforcement_ref
    ]
    oldest = datetime.min.replace(tzinfo=timezone.utc)
    return sorted(
        forwarded,
        key=lambda i: (i.severity.rank, i.forwarded_at or oldest),
        reverse=True,
    )


def build_dashboard_stats(
    incidents: Iterable[Incident],
    now: Optional[datetime] = None,
    recent_limit: int = 5,
) -> DashboardStats:
    incidents = list(incidents)
    now = now or datetime.now(timezone.utc)
    start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)

    def reported_since(since: datetime) -> int:
        return sum(1 for i in incidents if i.reported_at >= since)

    return DashboardStats(
        total_incidents=len(incidents),
        emergency_incidents=sum(1 for i in incidents if i.severity == Severity.EMERGENCY),
        incidents_today=reported_since(start_of_day),
        incidents_this_week=reported_since(now - timedelta(days=7)),
        incidents_this_month=reported_since(now - timedelta(days=30)),
        average_resolution_time=average_resolution_hours(incidents),
        status_breakdown=status_breakdown(incidents),
        severity_breakdown=severity_breakdown(incidents),
        category_breakdown=category_breakdown(incidents),
        recent_incidents=[
            IncidentListItem.model_validate(i, from_attributes=True)
            for i in recent_incidents(incidents, recent_limit)
        ],
    )
