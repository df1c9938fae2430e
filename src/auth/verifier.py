"""Token verification — signature/claims first, then the session registry."""

from __future__ import annotations

from src.auth.sessions import SessionRegistry
from src.auth.tokens import TokenClaims, decode_claims
from src.core.exceptions import (
    AccountDeactivatedError,
    InvalidTokenError,
    SessionRevokedError,
    TokenExpiredError,
)
from src.core.interfaces import UserStore
from src.core.logging import get_logger
from src.core.types import Principal, utcnow

log = get_logger(__name__)


class TokenVerifier:
    """Resolve a presented token to a ``Principal``.

    A valid signature is necessary but not sufficient: the user must still be
    active and the session the token names must still be live in the
    registry. Revoking a session therefore takes effect even while the token
    itself is cryptographically valid.
    """

    def __init__(
        self,
        store: UserStore,
        sessions: SessionRegistry,
        secret: str,
        issuer: str,
        audience: str,
    ) -> None:
        self._store = store
        self._sessions = sessions
        self._secret = secret
        self._issuer = issuer
        self._audience = audience

    def decode(self, token: str) -> TokenClaims:
        return decode_claims(token, self._secret, self._issuer, self._audience)

    async def verify(self, token: str) -> Principal:
        principal, _ = await self.verify_with_claims(token)
        return principal

    async def verify_with_claims(self, token: str) -> tuple[Principal, TokenClaims]:
        try:
            claims = self.decode(token)
        except (InvalidTokenError, TokenExpiredError) as exc:
            log.info("token_rejected", error=type(exc).__name__, **exc.context)
            raise

        user = await self._store.get_by_id(claims.user_id)
        if user is None or not user.is_active:
            log.warning(
                "token_rejected",
                error="AccountDeactivatedError",
                user_id=claims.user_id,
                missing=user is None,
            )
            raise AccountDeactivatedError(context={"user_id": claims.user_id})

        if claims.session_id is not None:
            session = user.find_session(claims.session_id)
            if session is None or not session.is_valid(utcnow()):
                log.warning(
                    "token_rejected",
                    error="SessionRevokedError",
                    user_id=user.user_id,
                    session_id=claims.session_id,
                    session_found=session is not None,
                )
                raise SessionRevokedError(
                    context={"user_id": user.user_id, "session_id": claims.session_id},
                )
            await self._sessions.touch(user.user_id, claims.session_id)

        principal = Principal(
            user_id=user.user_id,
            email=user.email,
            plan=user.plan,
            session_id=claims.session_id,
        )
        return principal, claims
