"""Unit tests for the pure lifecycle rules."""

import pytest
from datetime import datetime, timezone

from app.errors import AuthorizationError, ConflictError, ValidationError
from app.lifecycle import (
    ALLOWED_TRANSITIONS,
    TERMINAL_STATUSES,
    can_view,
    check_transition,
    gen_case_number,
    parse_category,
    parse_severity,
    parse_status,
    require_administrator,
    require_text,
)
from app.models import (
    Administrator,
    Category,
    Incident,
    IncidentStatus,
    Reporter,
    Severity,
)


def _incident(**overrides) -> Incident:
    data = dict(
        id="inc-1",
        case_number="CS-20240101-ABCDEF",
        title="Phishing email",
        description="Received fake bank email",
        category=Category.PHISHING,
        severity=Severity.LOW,
        status=IncidentStatus.PENDING,
        user_id="U1",
        reported_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )
    data.update(overrides)
    return Incident(**data)


class TestTransitionGraph:
    """Tests for the status state machine."""

    @pytest.mark.parametrize(
        "current,target",
        [
            (IncidentStatus.PENDING, IncidentStatus.REVIEWING),
            (IncidentStatus.PENDING, IncidentStatus.RESOLVED),
            (IncidentStatus.REVIEWING, IncidentStatus.RESOLVED),
            (IncidentStatus.PENDING, IncidentStatus.FORWARDED_TO_LE),
            (IncidentStatus.REVIEWING, IncidentStatus.FORWARDED_TO_LE),
            (IncidentStatus.RESOLVED, IncidentStatus.FORWARDED_TO_LE),
            (IncidentStatus.PENDING, IncidentStatus.CLOSED),
            (IncidentStatus.RESOLVED, IncidentStatus.CLOSED),
            (IncidentStatus.FORWARDED_TO_LE, IncidentStatus.CLOSED),
        ],
    )
    def test_allowed_transitions_pass(self, current, target):
        """Test every documented edge is accepted"""
        check_transition(current, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            (IncidentStatus.REVIEWING, IncidentStatus.PENDING),
            (IncidentStatus.RESOLVED, IncidentStatus.REVIEWING),
            (IncidentStatus.FORWARDED_TO_LE, IncidentStatus.RESOLVED),
            (IncidentStatus.REVIEWING, IncidentStatus.REVIEWING),
            (IncidentStatus.PENDING, IncidentStatus.PENDING),
        ],
    )
    def test_backward_and_self_transitions_rejected(self, current, target):
        """Test transitions outside the graph raise ValidationError"""
        with pytest.raises(ValidationError) as exc_info:
            check_transition(current, target)

        assert not isinstance(exc_info.value, ConflictError)

    @pytest.mark.parametrize("target", list(IncidentStatus))
    def test_closed_is_terminal(self, target):
        """Test any transition out of closed is a conflict"""
        with pytest.raises(ConflictError):
            check_transition(IncidentStatus.CLOSED, target)

    def test_conflict_is_a_validation_error(self):
        """Test closed-state rejections also match ValidationError handlers"""
        with pytest.raises(ValidationError):
            check_transition(IncidentStatus.CLOSED, IncidentStatus.REVIEWING)

    def test_only_closed_is_terminal(self):
        assert TERMINAL_STATUSES == frozenset({IncidentStatus.CLOSED})

    def test_graph_covers_every_status(self):
        assert set(ALLOWED_TRANSITIONS) == set(IncidentStatus)
        for targets in ALLOWED_TRANSITIONS.values():
            assert targets <= set(IncidentStatus)


class TestParsing:
    """Tests for boundary parsing of enumerated values."""

    def test_parse_known_values(self):
        assert parse_status("forwarded_to_le") == IncidentStatus.FORWARDED_TO_LE
        assert parse_severity("emergency") == Severity.EMERGENCY
        assert parse_category("data_breach") == Category.DATA_BREACH

    def test_parse_enum_members_pass_through(self):
        assert parse_status(IncidentStatus.CLOSED) == IncidentStatus.CLOSED

    @pytest.mark.parametrize(
        "parser,value",
        [
            (parse_status, "archived"),
            (parse_severity, "critical"),
            (parse_category, "spam"),
        ],
    )
    def test_parse_unknown_values_raise_validation_error(self, parser, value):
        with pytest.raises(ValidationError):
            parser(value)

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_require_text_rejects_blank(self, value):
        with pytest.raises(ValidationError):
            require_text(value, "title")

    def test_require_text_strips(self):
        assert require_text("  Phishing email ", "title") == "Phishing email"


class TestRoleRules:
    """Tests for role-gated helpers."""

    def test_require_administrator_accepts_admin(self):
        admin = Administrator(id="A1", badge_number="B-1")

        assert require_administrator(admin) is admin

    def test_require_administrator_rejects_reporter(self):
        with pytest.raises(AuthorizationError):
            require_administrator(Reporter(id="U1"))

    def test_reporter_views_only_own_incidents(self):
        incident = _incident(user_id="U1")

        assert can_view(Reporter(id="U1"), incident)
        assert not can_view(Reporter(id="U2"), incident)

    def test_admin_views_any_incident(self):
        assert can_view(Administrator(id="A1"), _incident(user_id="U9"))


def test_case_number_format():
    """Test case numbers look like CS-YYYYMMDD-XXXXXX"""
    case_number = gen_case_number()

    prefix, date_part, suffix = case_number.split("-")
    assert prefix == "CS"
    assert len(date_part) == 8 and date_part.isdigit()
    assert len(suffix) == 6
    assert suffix == suffix.upper()
