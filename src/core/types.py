"""System-wide shared types — the single source of truth for auth data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Enums ────────────────────────────────────────────────────────

class Plan(str, Enum):
    BASIC = "basic"
    PRO = "pro"
    ENTERPRISE = "enterprise"


# ── Sessions ─────────────────────────────────────────────────────

@dataclass
class Session:
    """One login instance of a user, tracked independently of any token."""

    session_id: str
    issued_at: datetime
    expires_at: datetime
    last_activity: datetime
    is_active: bool = True
    ip_address: str = ""
    user_agent: str = ""
    device: dict[str, str] = field(default_factory=dict)
    revoked_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.expires_at <= self.issued_at:
            msg = f"session {self.session_id} expires before it is issued"
            raise ValueError(msg)

    def is_valid(self, now: datetime | None = None) -> bool:
        """Active and not yet expired. Expiry is evaluated lazily, here."""
        now = now or utcnow()
        return self.is_active and now < self.expires_at


# ── Users ────────────────────────────────────────────────────────

@dataclass
class User:
    """A platform account. ``password_hash`` never leaves the auth layer."""

    user_id: str
    email: str
    password_hash: str
    plan: Plan = Plan.BASIC
    full_name: str = ""
    is_active: bool = True
    website_limit: int | None = 3
    features: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    last_login: datetime | None = None
    login_attempts: int = 0
    locked_until: datetime | None = None
    sessions: list[Session] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.email = self.email.strip().lower()

    def find_session(self, session_id: str) -> Session | None:
        for session in self.sessions:
            if session.session_id == session_id:
                return session
        return None

    def is_locked(self, now: datetime | None = None) -> bool:
        now = now or utcnow()
        return self.locked_until is not None and self.locked_until > now


# ── API keys ─────────────────────────────────────────────────────

@dataclass
class ApiKey:
    """A long-lived credential for machine clients.

    Only the sha256 of the key is stored; the raw key is shown once, at
    creation.
    """

    key_id: str
    user_id: str
    name: str
    key_hash: str
    key_preview: str
    created_at: datetime = field(default_factory=utcnow)
    last_used: datetime | None = None
    expires_at: datetime | None = None
    is_active: bool = True
    revoked_at: datetime | None = None

    def is_valid(self, now: datetime | None = None) -> bool:
        now = now or utcnow()
        if not self.is_active:
            return False
        return self.expires_at is None or now < self.expires_at


# ── Authenticated identity ───────────────────────────────────────

@dataclass(frozen=True)
class Principal:
    """Identity resolved from a valid token + session pair, or an API key.

    This is all that business subsystems ever receive.
    """

    user_id: str
    email: str
    plan: Plan
    session_id: str | None = None
    api_key_id: str | None = None
