"""Session registry — server-tracked login sessions, independent of tokens."""

from __future__ import annotations

import secrets
from datetime import timedelta

from src.core.constants import (
    REMEMBER_ME_TTL_SECONDS,
    SESSION_ID_PREFIX,
    SESSION_TTL_SECONDS,
)
from src.core.exceptions import InfrastructureUnavailableError
from src.core.interfaces import UserStore
from src.core.logging import get_logger
from src.core.types import Session, utcnow

log = get_logger(__name__)


def session_ttl(remember_me: bool) -> timedelta:
    return timedelta(seconds=REMEMBER_ME_TTL_SECONDS if remember_me else SESSION_TTL_SECONDS)


def new_session_id() -> str:
    return f"{SESSION_ID_PREFIX}{secrets.token_urlsafe(18)}"


class SessionRegistry:
    """Tracks active sessions per user.

    A session is valid iff it is active and ``now < expires_at``. Expiry is
    evaluated lazily on lookup; nothing sweeps in the background.
    """

    def __init__(self, store: UserStore, max_sessions_per_user: int = 10) -> None:
        self._store = store
        self._max_sessions = max_sessions_per_user

    async def create_session(
        self,
        user_id: str,
        remember_me: bool = False,
        ip_address: str = "",
        user_agent: str = "",
        device: dict[str, str] | None = None,
    ) -> Session:
        now = utcnow()
        session = Session(
            session_id=new_session_id(),
            issued_at=now,
            expires_at=now + session_ttl(remember_me),
            last_activity=now,
            ip_address=ip_address,
            user_agent=user_agent,
            device=dict(device or {}),
        )
        await self._store.add_session(user_id, session, keep_last=self._max_sessions)
        log.info(
            "session_created",
            user_id=user_id,
            session_id=session.session_id,
            remember_me=remember_me,
            expires_at=session.expires_at.isoformat(),
        )
        return session

    async def find_session(self, user_id: str, session_id: str) -> Session | None:
        user = await self._store.get_by_id(user_id)
        if user is None:
            return None
        return user.find_session(session_id)

    async def is_valid(self, user_id: str, session_id: str) -> bool:
        session = await self.find_session(user_id, session_id)
        return session is not None and session.is_valid()

    async def touch(self, user_id: str, session_id: str) -> None:
        """Bump ``last_activity``. Failure never invalidates the request."""
        try:
            await self._store.touch_session(user_id, session_id, utcnow())
        except InfrastructureUnavailableError as exc:
            log.warning(
                "session_touch_failed",
                user_id=user_id,
                session_id=session_id,
                error=str(exc),
            )

    async def revoke(self, user_id: str, session_id: str) -> None:
        """Mark one session inactive. Revoking twice is a no-op."""
        found = await self._store.revoke_session(user_id, session_id, utcnow())
        log.info("session_revoked", user_id=user_id, session_id=session_id, found=found)

    async def revoke_all(self, user_id: str) -> int:
        count = await self._store.revoke_all_sessions(user_id, utcnow())
        log.info("sessions_revoked_all", user_id=user_id, count=count)
        return count

    async def list_sessions(self, user_id: str, active_only: bool = True) -> list[Session]:
        user = await self._store.get_by_id(user_id)
        if user is None:
            return []
        sessions = user.sessions
        if active_only:
            now = utcnow()
            sessions = [s for s in sessions if s.is_valid(now)]
        return sorted(sessions, key=lambda s: s.issued_at, reverse=True)
