"""Tests for core type definitions."""

from __future__ import annotations

from dataclasses import FrozenInstanceError
from datetime import timedelta

import pytest

from src.core.types import Plan, Principal, Session, User, utcnow


# ── Fixtures ─────────────────────────────────────────────────────

@pytest.fixture
def session() -> Session:
    now = utcnow()
    return Session(
        session_id="sess_abc",
        issued_at=now,
        expires_at=now + timedelta(days=7),
        last_activity=now,
    )


class TestSession:
    def test_valid_when_active_and_unexpired(self, session: Session) -> None:
        assert session.is_valid() is True

    def test_invalid_after_expiry(self, session: Session) -> None:
        assert session.is_valid(session.expires_at) is False
        assert session.is_valid(session.expires_at + timedelta(seconds=1)) is False

    def test_invalid_when_revoked(self, session: Session) -> None:
        session.is_active = False
        assert session.is_valid() is False

    def test_expiry_must_follow_issue(self) -> None:
        now = utcnow()
        with pytest.raises(ValueError):
            Session(session_id="sess_bad", issued_at=now, expires_at=now, last_activity=now)


class TestUser:
    def test_email_lowercased(self) -> None:
        user = User(user_id="u1", email="  Mixed@Case.COM ", password_hash="h")
        assert user.email == "mixed@case.com"

    def test_defaults(self) -> None:
        user = User(user_id="u1", email="a@b.com", password_hash="h")
        assert user.plan == Plan.BASIC
        assert user.is_active is True
        assert user.sessions == []
        assert user.login_attempts == 0

    def test_find_session(self, session: Session) -> None:
        user = User(user_id="u1", email="a@b.com", password_hash="h", sessions=[session])
        assert user.find_session("sess_abc") is session
        assert user.find_session("sess_missing") is None

    def test_is_locked(self) -> None:
        now = utcnow()
        user = User(user_id="u1", email="a@b.com", password_hash="h")
        assert user.is_locked(now) is False

        user.locked_until = now + timedelta(minutes=5)
        assert user.is_locked(now) is True
        assert user.is_locked(now + timedelta(minutes=6)) is False


class TestPrincipal:
    def test_frozen(self) -> None:
        principal = Principal(user_id="u1", email="a@b.com", plan=Plan.PRO, session_id="sess_1")
        with pytest.raises(FrozenInstanceError):
            principal.plan = Plan.ENTERPRISE  # type: ignore[misc]


class TestPlan:
    def test_values(self) -> None:
        assert [p.value for p in Plan] == ["basic", "pro", "enterprise"]

    def test_from_string(self) -> None:
        assert Plan("pro") is Plan.PRO
