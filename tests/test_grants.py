"""
Tests for grants.py - issuance, validation and lifecycle of access tokens.
"""

import re
from datetime import datetime, timedelta

import pytest

from careerfit import grants
from careerfit.database import AccessGrant, session_scope
from careerfit.errors import GrantInvalid, ValidationError
from careerfit.grants import (
    create_token_string,
    get_grant_status,
    issue_grant,
    revoke_grant,
    validate_grant,
    validate_token,
)

NOW = datetime(2026, 3, 1, 9, 0, 0)


def set_grant(db_path, token, **values):
    with session_scope(db_path) as db:
        db.query(AccessGrant).filter(AccessGrant.token == token).update(values)


class TestTokenString:
    """Test token string format."""

    def test_institution_prefix(self):
        token = create_token_string("Lincoln High")
        assert re.fullmatch(r"LINCO-[0-9A-F]{4}", token)

    def test_short_or_missing_institution_padded(self):
        assert re.fullmatch(r"ABXXX-[0-9A-F]{4}", create_token_string("a.b"))
        assert re.fullmatch(r"XXXXX-[0-9A-F]{4}", create_token_string(None))


class TestIssueGrant:
    """Test grant issuance."""

    def test_individual_terms(self, db_path):
        grant = issue_grant(db_path, email="ada@example.com", grant_type="INDIVIDUAL", now=NOW)

        assert grant["maxUsage"] == 1
        assert grant["expiresAt"] == (NOW + timedelta(days=30)).isoformat()
        status = get_grant_status(db_path, grant["token"], now=NOW)
        assert status["status"] == "ACTIVE"
        assert status["usageCount"] == 0

    def test_individual_ignores_max_usage(self, db_path):
        grant = issue_grant(db_path, email="ada@example.com", grant_type="INDIVIDUAL", max_usage=50)
        assert grant["maxUsage"] == 1

    def test_enterprise_terms(self, db_path):
        grant = issue_grant(
            db_path,
            email="admin@lincoln.edu",
            grant_type="ENTERPRISE",
            institution="Lincoln High",
            max_usage=40,
            now=NOW,
        )
        assert grant["maxUsage"] == 40
        assert grant["expiresAt"] == (NOW + timedelta(days=365)).isoformat()
        assert grant["token"].startswith("LINCO-")

    @pytest.mark.parametrize("kwargs", [
        {"email": "a@b.com", "grant_type": "ENTERPRISE"},
        {"email": "a@b.com", "grant_type": "ENTERPRISE", "max_usage": 0},
        {"email": "a@b.com", "grant_type": "FAMILY"},
        {"email": "not-an-email", "grant_type": "INDIVIDUAL"},
    ])
    def test_invalid_requests(self, db_path, kwargs):
        with pytest.raises(ValidationError):
            issue_grant(db_path, **kwargs)

    def test_collision_retried(self, db_path, monkeypatch):
        """A token string that already exists is regenerated."""
        first = issue_grant(db_path, email="a@b.com", grant_type="INDIVIDUAL", institution="Lincoln")
        candidates = iter([first["token"], first["token"], "LINCO-BEEF"])
        monkeypatch.setattr(grants, "create_token_string", lambda institution: next(candidates))

        second = issue_grant(db_path, email="c@d.com", grant_type="INDIVIDUAL", institution="Lincoln")

        assert second["token"] == "LINCO-BEEF"

    def test_collisions_exhausted(self, db_path, monkeypatch):
        first = issue_grant(db_path, email="a@b.com", grant_type="INDIVIDUAL")
        monkeypatch.setattr(grants, "create_token_string", lambda institution: first["token"])

        with pytest.raises(RuntimeError):
            issue_grant(db_path, email="c@d.com", grant_type="INDIVIDUAL")


class TestValidateGrant:
    """Test the validation contract and its reasons."""

    @pytest.fixture
    def token(self, db_path):
        return issue_grant(db_path, email="a@b.com", grant_type="ENTERPRISE", max_usage=2, now=NOW)["token"]

    def test_valid(self, db_path, token):
        verdict = validate_token(db_path, token, now=NOW + timedelta(days=1))
        assert verdict == {
            "valid": True,
            "type": "ENTERPRISE",
            "remainingUsage": 2,
            "expiresAt": (NOW + timedelta(days=365)).isoformat(),
        }

    def test_not_found(self, db_path):
        assert validate_token(db_path, "NOPE0-0000") == {"valid": False, "reason": "not found"}

    def test_validation_does_not_consume(self, db_path, token):
        for _ in range(3):
            assert validate_token(db_path, token, now=NOW)["valid"]
        assert get_grant_status(db_path, token, now=NOW)["usageCount"] == 0

    def test_lazy_expiry_persists(self, db_path, token):
        """Observing an expired ACTIVE grant moves it to EXPIRED."""
        later = NOW + timedelta(days=366)
        assert validate_token(db_path, token, now=later) == {"valid": False, "reason": "expired"}

        status = get_grant_status(db_path, token, now=NOW)
        assert status["status"] == "EXPIRED"

    def test_exact_expiry_instant_still_valid(self, db_path, token):
        assert validate_token(db_path, token, now=NOW + timedelta(days=365))["valid"]

    def test_usage_limit_exceeded(self, db_path, token):
        set_grant(db_path, token, usage_count=2, status="USED")
        assert validate_token(db_path, token, now=NOW)["reason"] == "usage limit exceeded"

    def test_revoked(self, db_path, token):
        revoke_grant(db_path, token)
        assert validate_token(db_path, token, now=NOW)["reason"] == "revoked is not active"

    def test_revoked_wins_over_expiry(self, db_path, token):
        revoke_grant(db_path, token)
        verdict = validate_token(db_path, token, now=NOW + timedelta(days=400))
        assert verdict["reason"] == "revoked is not active"
        assert get_grant_status(db_path, token)["status"] == "REVOKED"

    def test_expiry_outranks_usage_limit(self, db_path, token):
        set_grant(db_path, token, usage_count=2, status="USED")
        verdict = validate_token(db_path, token, now=NOW + timedelta(days=400))
        assert verdict["reason"] == "expired"

    def test_used_status_below_limit(self, db_path, token):
        set_grant(db_path, token, usage_count=1, status="USED")
        assert validate_token(db_path, token, now=NOW)["reason"] == "used is not active"

    def test_rejections_counted(self, db_path):
        before = grants.logger.metrics["grants_rejected"].get("not found", 0)
        validate_token(db_path, "NOPE0-0000")
        assert grants.logger.metrics["grants_rejected"]["not found"] == before + 1

    def test_validate_grant_within_session(self, db_path, token):
        with session_scope(db_path) as db:
            verdict = validate_grant(db, token, now=NOW)
            assert verdict.valid
            assert verdict.grant.token == token


class TestRevokeAndStatus:
    """Test administrative operations."""

    def test_revoke_from_used(self, db_path):
        token = issue_grant(db_path, email="a@b.com", grant_type="INDIVIDUAL")["token"]
        set_grant(db_path, token, usage_count=1, status="USED")

        assert revoke_grant(db_path, token)["status"] == "REVOKED"

    def test_revoke_unknown(self, db_path):
        with pytest.raises(GrantInvalid) as exc:
            revoke_grant(db_path, "NOPE0-0000")
        assert exc.value.reason == "not found"

    def test_status_unknown(self, db_path):
        with pytest.raises(GrantInvalid):
            get_grant_status(db_path, "NOPE0-0000")

    def test_status_fields(self, db_path):
        token = issue_grant(db_path, email="a@b.com", grant_type="ENTERPRISE", max_usage=3, now=NOW)["token"]
        status = get_grant_status(db_path, token, now=NOW)
        assert status["remainingUsage"] == 3
        assert status["firstUsedAt"] is None
        assert status["type"] == "ENTERPRISE"
