"""Signed bearer tokens (HS256 JWT) and their strict claim model."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import jwt
from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr
from pydantic import ValidationError as PydanticValidationError

from src.auth.sessions import session_ttl
from src.core.constants import JWT_ALGORITHM
from src.core.exceptions import InvalidTokenError, TokenExpiredError
from src.core.logging import get_logger
from src.core.types import Plan, User, utcnow

log = get_logger(__name__)


class TokenClaims(BaseModel):
    """Exact claim set of an Affilify token.

    Missing, extra or mistyped fields are rejected rather than coerced.
    """

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    user_id: StrictStr = Field(alias="userId", min_length=1)
    email: StrictStr
    plan: Plan
    session_id: StrictStr | None = Field(default=None, alias="sessionId")
    iat: StrictInt
    exp: StrictInt
    iss: StrictStr
    aud: StrictStr

    @property
    def issued_at(self) -> datetime:
        return datetime.fromtimestamp(self.iat, tz=timezone.utc)

    @property
    def expires_at(self) -> datetime:
        return datetime.fromtimestamp(self.exp, tz=timezone.utc)

    def to_payload(self) -> dict[str, Any]:
        payload = self.model_dump(by_alias=True, exclude_none=True, mode="json")
        return payload


@dataclass(frozen=True)
class IssuedToken:
    token: str
    claims: TokenClaims
    max_age: int  # cookie Max-Age, seconds

    @property
    def expires_at(self) -> datetime:
        return self.claims.expires_at


class TokenIssuer:
    """Mints tokens binding a user and session to an expiry.

    Issuing has no side effects; the caller creates the session first.
    """

    def __init__(self, secret: str, issuer: str, audience: str) -> None:
        if not secret:
            raise ValueError("jwt_secret_blank")
        self._secret = secret
        self._issuer = issuer
        self._audience = audience

    def issue(self, user: User, session_id: str | None, remember_me: bool = False) -> IssuedToken:
        ttl = session_ttl(remember_me)
        now = int(utcnow().timestamp())
        max_age = int(ttl.total_seconds())
        claims = TokenClaims(
            user_id=user.user_id,
            email=user.email,
            plan=user.plan,
            session_id=session_id,
            iat=now,
            exp=now + max_age,
            iss=self._issuer,
            aud=self._audience,
        )
        token = jwt.encode(claims.to_payload(), self._secret, algorithm=JWT_ALGORITHM)
        log.debug("token_issued", user_id=user.user_id, session_id=session_id, max_age=max_age)
        return IssuedToken(token=token, claims=claims, max_age=max_age)


def decode_claims(token: str, secret: str, issuer: str, audience: str) -> TokenClaims:
    """Check signature, expiry, issuer and audience, then parse strictly.

    Raises ``TokenExpiredError`` for an otherwise valid but expired token and
    ``InvalidTokenError`` for everything else.
    """
    if not token:
        raise InvalidTokenError(context={"reason": "empty"})
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[JWT_ALGORITHM],
            audience=audience,
            issuer=issuer,
            options={"require": ["exp", "iat", "iss", "aud"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise TokenExpiredError(context={"reason": "expired"}) from exc
    except jwt.InvalidTokenError as exc:
        raise InvalidTokenError(context={"reason": type(exc).__name__}) from exc

    try:
        return TokenClaims.model_validate(payload)
    except PydanticValidationError as exc:
        fields = [".".join(str(p) for p in err["loc"]) for err in exc.errors()]
        raise InvalidTokenError(context={"reason": "claims_shape", "fields": fields}) from exc
