"""Custom exception hierarchy for the Affilify auth service.

Every error carries a machine-readable ``code`` and the HTTP status it maps
to; the API layer renders them as ``{success: false, error, code}``.
"""

from __future__ import annotations

from typing import Any


class AffilifyError(Exception):
    """Base exception for all Affilify errors."""

    code: str = "INTERNAL_ERROR"
    status_code: int = 500
    public_message: str = "Internal server error. Please try again later."

    def __init__(self, message: str | None = None, context: dict[str, Any] | None = None) -> None:
        super().__init__(message or self.public_message)
        self.message: str = message or self.public_message
        self.context: dict[str, Any] = context or {}


# ── Request validation ───────────────────────────────────────────

class ValidationError(AffilifyError):
    """Request body failed field-level validation."""

    code = "VALIDATION_ERROR"
    status_code = 400
    public_message = "Validation failed"

    def __init__(
        self,
        message: str | None = None,
        details: list[dict[str, str]] | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, context)
        self.details: list[dict[str, str]] = details or []


# ── Credentials ──────────────────────────────────────────────────

class InvalidCredentialsError(AffilifyError):
    """Unknown email or wrong password. Deliberately indistinguishable."""

    code = "INVALID_CREDENTIALS"
    status_code = 401
    public_message = "Invalid email or password"


class AccountDeactivatedError(AffilifyError):
    code = "ACCOUNT_DEACTIVATED"
    status_code = 403
    public_message = "Account has been deactivated. Please contact support."


class AccountLockedError(AffilifyError):
    """Too many failed logins; the account is temporarily locked."""

    code = "ACCOUNT_LOCKED"
    status_code = 423
    public_message = "Account temporarily locked due to multiple failed login attempts."

    def __init__(self, minutes_remaining: int, context: dict[str, Any] | None = None) -> None:
        super().__init__(
            f"{self.public_message} Try again in {minutes_remaining} minutes.",
            context,
        )
        self.minutes_remaining: int = minutes_remaining


class DuplicateAccountError(AffilifyError):
    code = "USER_EXISTS"
    status_code = 409
    public_message = "An account with this email address already exists"


# ── Tokens & sessions ────────────────────────────────────────────

class NotAuthenticatedError(AffilifyError):
    code = "NO_TOKEN"
    status_code = 401
    public_message = "No authentication token provided"


class InvalidTokenError(AffilifyError):
    """Malformed token, bad signature, wrong issuer/audience or claim shape."""

    code = "INVALID_TOKEN"
    status_code = 401
    public_message = "Invalid or expired token"


class TokenExpiredError(AffilifyError):
    code = "TOKEN_EXPIRED"
    status_code = 401
    public_message = "Token has expired"


class SessionRevokedError(AffilifyError):
    """Token is cryptographically valid but its session is gone."""

    code = "SESSION_EXPIRED"
    status_code = 401
    public_message = "Session expired or invalid"


class InvalidApiKeyError(AffilifyError):
    """Unknown, revoked, expired or malformed API key."""

    code = "INVALID_API_KEY"
    status_code = 401
    public_message = "Invalid or expired API key"


class ApiKeyLimitError(AffilifyError):
    code = "API_KEY_LIMIT"
    status_code = 400
    public_message = "Maximum number of API keys reached"


class ApiKeyNotFoundError(AffilifyError):
    code = "API_KEY_NOT_FOUND"
    status_code = 404
    public_message = "API key not found"


# ── Throttling ───────────────────────────────────────────────────

class RateLimitedError(AffilifyError):
    """Too many requests from one client in the current window."""

    code = "RATE_LIMITED"
    status_code = 429
    public_message = "Too many requests. Please try again later."

    def __init__(self, retry_after: int, context: dict[str, Any] | None = None) -> None:
        super().__init__(context=context)
        self.retry_after: int = retry_after


# ── Plans ────────────────────────────────────────────────────────

class PlanUpgradeRequiredError(AffilifyError):
    code = "PLAN_UPGRADE_REQUIRED"
    status_code = 403
    public_message = "Your current plan does not include this feature"


# ── Infrastructure ───────────────────────────────────────────────

class InfrastructureUnavailableError(AffilifyError):
    """Persistent store unreachable or timed out. Retryable."""

    code = "SERVICE_UNAVAILABLE"
    status_code = 503
    public_message = "Service temporarily unavailable. Please try again later."


AUTHENTICATION_ERRORS: tuple[type[AffilifyError], ...] = (
    NotAuthenticatedError,
    InvalidTokenError,
    TokenExpiredError,
    SessionRevokedError,
    AccountDeactivatedError,
    InvalidApiKeyError,
)
