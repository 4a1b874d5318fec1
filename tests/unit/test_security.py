"""Unit tests for identity claims parsing and security helpers."""

import pytest
from pydantic import ValidationError

from app.models import Administrator, Reporter
from app.security import RateLimitConfig, SecurityHeaders, principal_from_claims


class TestPrincipalFromClaims:
    """Tests for building the typed principal from token claims."""

    def test_user_claims_build_reporter(self):
        principal = principal_from_claims({"sub": "U1", "role": "user", "email": "u1@cybershield.org"})

        assert isinstance(principal, Reporter)
        assert principal.id == "U1"
        assert principal.email == "u1@cybershield.org"

    def test_role_defaults_to_user(self):
        assert isinstance(principal_from_claims({"sub": "U1"}), Reporter)

    def test_admin_claims_build_administrator(self):
        principal = principal_from_claims({
            "sub": "A1",
            "role": "admin",
            "badge_number": "B-1001",
            "department": "Cyber Crime Unit",
        })

        assert isinstance(principal, Administrator)
        assert principal.badge_number == "B-1001"
        assert principal.department == "Cyber Crime Unit"

    def test_reporter_ignores_admin_attributes(self):
        principal = principal_from_claims({"sub": "U1", "badge_number": "B-1"})

        assert not hasattr(principal, "badge_number")

    @pytest.mark.parametrize(
        "claims",
        [
            {"sub": "U1", "role": "superuser"},
            {"sub": "", "role": "user"},
            {"sub": "U1", "email": "not-an-email"},
        ],
    )
    def test_invalid_claims_rejected(self, claims):
        with pytest.raises(ValidationError):
            principal_from_claims(claims)


def test_security_headers_present():
    headers = SecurityHeaders.get_headers()

    assert headers["X-Content-Type-Options"] == "nosniff"
    assert headers["X-Frame-Options"] == "DENY"


def test_rate_limits_are_limit_strings():
    for limit in (
        RateLimitConfig.DEFAULT_LIMIT,
        RateLimitConfig.ADMIN_LIMIT,
        RateLimitConfig.CREATE_INCIDENT_LIMIT,
        RateLimitConfig.HEALTH_LIMIT,
    ):
        count, period = limit.split("/")
        assert int(count) > 0
        assert period == "minute"
