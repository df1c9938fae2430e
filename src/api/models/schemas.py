"""Pydantic V2 request/response schemas for the auth API.

Field names on the wire are camelCase to match the web client.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel

from src.core.types import ApiKey, Plan, Session, User
from src.saas.plans import PlanEntitlements

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_NAME_RE = re.compile(r"^[^\W\d_]+(?:[\s'.-][^\W\d_]+)*$")


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _normalize_email(value: str) -> str:
    value = value.strip().lower()
    if len(value) > 254 or not _EMAIL_RE.match(value):
        msg = "Invalid email address"
        raise ValueError(msg)
    return value


# ── Requests ─────────────────────────────────────────────────────

class SignupRequest(_CamelModel):
    full_name: str = Field(..., min_length=2, max_length=100)
    email: str = Field(..., max_length=255)
    password: str = Field(..., min_length=8, max_length=128)
    confirm_password: str
    plan: Plan = Plan.BASIC

    @field_validator("full_name")
    @classmethod
    def _check_name(cls, v: str) -> str:
        v = v.strip()
        if not _NAME_RE.match(v):
            msg = "Full name can only contain letters and spaces"
            raise ValueError(msg)
        return v

    @field_validator("email")
    @classmethod
    def _check_email(cls, v: str) -> str:
        return _normalize_email(v)

    @field_validator("password")
    @classmethod
    def _check_password(cls, v: str) -> str:
        if not re.search(r"[A-Za-z]", v) or not re.search(r"\d", v):
            msg = "Password must contain at least one letter and one number"
            raise ValueError(msg)
        return v

    @field_validator("confirm_password")
    @classmethod
    def _passwords_match(cls, v: str, info: ValidationInfo) -> str:
        # Only compared when the password itself passed validation.
        password = info.data.get("password")
        if password is not None and v != password:
            msg = "Passwords don't match"
            raise ValueError(msg)
        return v


class ApiKeyCreate(_CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    expires_in: Literal["30d", "90d", "1y"] | None = None

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            msg = "Key name is required"
            raise ValueError(msg)
        return v


class DeviceInfo(BaseModel):
    name: str | None = None
    type: str | None = None
    os: str | None = None
    browser: str | None = None


class LoginRequest(_CamelModel):
    email: str = Field(..., max_length=255)
    password: str = Field(..., min_length=1, max_length=128)
    remember_me: bool = False
    device_info: DeviceInfo | None = None

    @field_validator("email")
    @classmethod
    def _check_email(cls, v: str) -> str:
        return _normalize_email(v)


# ── Responses ────────────────────────────────────────────────────

class UserOut(_CamelModel):
    """Public view of an account — never includes the password hash."""

    id: str
    full_name: str
    email: str
    plan: Plan
    website_limit: int | None
    features: list[str]
    is_active: bool
    created_at: datetime
    last_login: datetime | None = None

    @classmethod
    def from_user(cls, user: User) -> UserOut:
        return cls(
            id=user.user_id,
            full_name=user.full_name,
            email=user.email,
            plan=user.plan,
            website_limit=user.website_limit,
            features=list(user.features),
            is_active=user.is_active,
            created_at=user.created_at,
            last_login=user.last_login,
        )


class SessionOut(_CamelModel):
    id: str
    issued_at: datetime
    expires_at: datetime
    last_activity: datetime
    ip_address: str = ""
    user_agent: str = ""
    current: bool = False

    @classmethod
    def from_session(cls, session: Session, current_id: str | None = None) -> SessionOut:
        return cls(
            id=session.session_id,
            issued_at=session.issued_at,
            expires_at=session.expires_at,
            last_activity=session.last_activity,
            ip_address=session.ip_address,
            user_agent=session.user_agent,
            current=session.session_id == current_id,
        )


class LoginSessionOut(_CamelModel):
    id: str
    expires_at: datetime
    remember_me: bool


class TokenInfo(_CamelModel):
    issued_at: datetime
    expires_at: datetime
    session_id: str | None = None


class AuthResponse(_CamelModel):
    success: bool = True
    message: str = ""
    user: UserOut
    session: LoginSessionOut | None = None
    token_info: TokenInfo | None = None


class SessionsResponse(_CamelModel):
    success: bool = True
    sessions: list[SessionOut] = Field(default_factory=list)


class MessageResponse(_CamelModel):
    success: bool = True
    message: str = ""


class EntitlementsOut(_CamelModel):
    plan: Plan
    website_quota: int | None
    unlimited: bool
    features: list[str]
    price_usd: int
    display_features: list[str]

    @classmethod
    def from_entitlements(cls, ent: PlanEntitlements) -> EntitlementsOut:
        return cls(
            plan=ent.plan,
            website_quota=ent.website_quota,
            unlimited=ent.unlimited,
            features=sorted(ent.features),
            price_usd=ent.price_usd,
            display_features=list(ent.display_features),
        )


class PlanResponse(_CamelModel):
    success: bool = True
    current_plan: Plan
    entitlements: EntitlementsOut
    plans: list[EntitlementsOut]


class ApiKeyOut(_CamelModel):
    id: str
    name: str
    key_preview: str
    created_at: datetime
    last_used: datetime | None = None
    expires_at: datetime | None = None
    is_active: bool = True

    @classmethod
    def from_key(cls, key: ApiKey) -> ApiKeyOut:
        return cls(
            id=key.key_id,
            name=key.name,
            key_preview=key.key_preview,
            created_at=key.created_at,
            last_used=key.last_used,
            expires_at=key.expires_at,
            is_active=key.is_active,
        )


class ApiKeyCreated(_CamelModel):
    """The raw ``key`` appears here once and is never retrievable again."""

    success: bool = True
    message: str = ""
    api_key: ApiKeyOut
    key: str


class ApiKeysResponse(_CamelModel):
    success: bool = True
    api_keys: list[ApiKeyOut] = Field(default_factory=list)


# ── Generic ───────────────────────────────────────────────────────

class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = "0.1.0"
    environment: str = "dev"


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    code: str
    details: list[dict[str, str]] | None = None
