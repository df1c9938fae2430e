"""DB-backed user store — replaces the in-memory store in production."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from src.core.exceptions import DuplicateAccountError, InfrastructureUnavailableError
from src.core.interfaces import UserStore
from src.core.logging import get_logger
from src.core.types import ApiKey, Plan, Session, User

log = get_logger(__name__)

_USER_COLUMNS = (
    "user_id, email, full_name, password_hash, plan, is_active, website_limit, "
    "features, created_at, updated_at, last_login, login_attempts, locked_until"
)

_SESSION_COLUMNS = (
    "session_id, issued_at, expires_at, last_activity, is_active, "
    "ip_address, user_agent, device, revoked_at"
)

_API_KEY_COLUMNS = (
    "key_id, user_id, name, key_hash, key_preview, created_at, last_used, "
    "expires_at, is_active, revoked_at"
)


class SqlUserStore(UserStore):
    """Async PostgreSQL-backed user storage.

    Every method runs in its own short transaction. Driver, pool and timeout
    failures surface as ``InfrastructureUnavailableError`` so callers fail
    closed instead of treating the user as unauthenticated.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    @asynccontextmanager
    async def _begin(self, op: str) -> AsyncIterator[AsyncConnection]:
        try:
            async with self._engine.begin() as conn:
                yield conn
        except IntegrityError:
            raise
        except (SQLAlchemyError, OSError, asyncio.TimeoutError) as exc:
            log.error("user_store_unavailable", op=op, error=str(exc))
            raise InfrastructureUnavailableError(context={"op": op}) from exc

    # ── Reads ────────────────────────────────────────────────────

    async def get_by_id(self, user_id: str) -> User | None:
        async with self._begin("get_by_id") as conn:
            row = await conn.execute(
                text(f"SELECT {_USER_COLUMNS} FROM users WHERE user_id = :uid"),
                {"uid": user_id},
            )
            r = row.mappings().first()
            if r is None:
                return None
            return await self._load(conn, r)

    async def get_by_email(self, email: str) -> User | None:
        async with self._begin("get_by_email") as conn:
            row = await conn.execute(
                text(f"SELECT {_USER_COLUMNS} FROM users WHERE email = :email"),
                {"email": email.strip().lower()},
            )
            r = row.mappings().first()
            if r is None:
                return None
            return await self._load(conn, r)

    async def _load(self, conn: AsyncConnection, r: Mapping[str, Any]) -> User:
        rows = await conn.execute(
            text(
                f"SELECT {_SESSION_COLUMNS} FROM user_sessions "
                "WHERE user_id = :uid ORDER BY issued_at"
            ),
            {"uid": r["user_id"]},
        )
        sessions = [self._row_to_session(s) for s in rows.mappings().all()]
        return self._row_to_user(r, sessions)

    # ── Writes ───────────────────────────────────────────────────

    async def insert_user(self, user: User) -> None:
        try:
            async with self._begin("insert_user") as conn:
                await conn.execute(
                    text(
                        """
                        INSERT INTO users
                            (user_id, email, full_name, password_hash, plan,
                             is_active, website_limit, features,
                             created_at, updated_at, login_attempts)
                        VALUES
                            (:uid, :email, :name, :hash, :plan,
                             :active, :limit, CAST(:features AS JSONB),
                             :created, :updated, 0)
                        """
                    ),
                    {
                        "uid": user.user_id,
                        "email": user.email,
                        "name": user.full_name,
                        "hash": user.password_hash,
                        "plan": user.plan.value,
                        "active": user.is_active,
                        "limit": user.website_limit,
                        "features": json.dumps(user.features),
                        "created": user.created_at,
                        "updated": user.updated_at,
                    },
                )
        except IntegrityError as exc:
            log.info("user_insert_conflict", email=user.email)
            raise DuplicateAccountError(context={"email": user.email}) from exc
        log.info("user_inserted", user_id=user.user_id)

    async def increment_failed_logins(
        self, user_id: str, max_attempts: int, lock_until: datetime,
    ) -> int:
        async with self._begin("increment_failed_logins") as conn:
            row = await conn.execute(
                text(
                    """
                    UPDATE users SET
                        login_attempts = login_attempts + 1,
                        locked_until = CASE
                            WHEN login_attempts + 1 >= :max THEN :lock
                            ELSE locked_until
                        END,
                        updated_at = now()
                    WHERE user_id = :uid
                    RETURNING login_attempts
                    """
                ),
                {"uid": user_id, "max": max_attempts, "lock": lock_until},
            )
            return row.scalar() or 0

    async def record_successful_login(self, user_id: str, at: datetime) -> None:
        async with self._begin("record_successful_login") as conn:
            await conn.execute(
                text(
                    "UPDATE users SET login_attempts = 0, locked_until = NULL, "
                    "last_login = :now, updated_at = :now WHERE user_id = :uid"
                ),
                {"now": at, "uid": user_id},
            )

    async def add_session(self, user_id: str, session: Session, keep_last: int) -> None:
        async with self._begin("add_session") as conn:
            await conn.execute(
                text(
                    """
                    INSERT INTO user_sessions
                        (user_id, session_id, issued_at, expires_at, last_activity,
                         is_active, ip_address, user_agent, device)
                    VALUES
                        (:uid, :sid, :issued, :expires, :last,
                         :active, :ip, :ua, CAST(:device AS JSONB))
                    """
                ),
                {
                    "uid": user_id,
                    "sid": session.session_id,
                    "issued": session.issued_at,
                    "expires": session.expires_at,
                    "last": session.last_activity,
                    "active": session.is_active,
                    "ip": session.ip_address,
                    "ua": session.user_agent,
                    "device": json.dumps(session.device),
                },
            )
            if keep_last > 0:
                await conn.execute(
                    text(
                        """
                        DELETE FROM user_sessions
                        WHERE user_id = :uid AND session_id NOT IN (
                            SELECT session_id FROM user_sessions
                            WHERE user_id = :uid
                            ORDER BY issued_at DESC
                            LIMIT :keep
                        )
                        """
                    ),
                    {"uid": user_id, "keep": keep_last},
                )

    async def touch_session(self, user_id: str, session_id: str, at: datetime) -> None:
        async with self._begin("touch_session") as conn:
            await conn.execute(
                text(
                    "UPDATE user_sessions SET last_activity = :now "
                    "WHERE user_id = :uid AND session_id = :sid AND is_active"
                ),
                {"now": at, "uid": user_id, "sid": session_id},
            )

    async def revoke_session(self, user_id: str, session_id: str, at: datetime) -> bool:
        async with self._begin("revoke_session") as conn:
            result = await conn.execute(
                text(
                    """
                    UPDATE user_sessions SET
                        is_active = false,
                        revoked_at = COALESCE(revoked_at, :now)
                    WHERE user_id = :uid AND session_id = :sid
                    """
                ),
                {"now": at, "uid": user_id, "sid": session_id},
            )
            return (result.rowcount or 0) > 0

    async def revoke_all_sessions(self, user_id: str, at: datetime) -> int:
        async with self._begin("revoke_all_sessions") as conn:
            result = await conn.execute(
                text(
                    "UPDATE user_sessions SET is_active = false, revoked_at = :now "
                    "WHERE user_id = :uid AND is_active"
                ),
                {"now": at, "uid": user_id},
            )
            return result.rowcount or 0

    async def set_active(self, user_id: str, is_active: bool) -> bool:
        async with self._begin("set_active") as conn:
            result = await conn.execute(
                text(
                    "UPDATE users SET is_active = :active, updated_at = now() "
                    "WHERE user_id = :uid"
                ),
                {"active": is_active, "uid": user_id},
            )
            return (result.rowcount or 0) > 0

    async def ping(self) -> None:
        async with self._begin("ping") as conn:
            await conn.execute(text("SELECT 1"))

    # ── API keys ─────────────────────────────────────────────────

    async def insert_api_key(self, key: ApiKey) -> None:
        async with self._begin("insert_api_key") as conn:
            await conn.execute(
                text(
                    """
                    INSERT INTO api_keys
                        (key_id, user_id, name, key_hash, key_preview,
                         created_at, expires_at, is_active)
                    VALUES
                        (:kid, :uid, :name, :hash, :preview,
                         :created, :expires, :active)
                    """
                ),
                {
                    "kid": key.key_id,
                    "uid": key.user_id,
                    "name": key.name,
                    "hash": key.key_hash,
                    "preview": key.key_preview,
                    "created": key.created_at,
                    "expires": key.expires_at,
                    "active": key.is_active,
                },
            )
        log.info("api_key_inserted", key_id=key.key_id, user_id=key.user_id)

    async def get_api_key_by_hash(self, key_hash: str) -> ApiKey | None:
        async with self._begin("get_api_key_by_hash") as conn:
            row = await conn.execute(
                text(f"SELECT {_API_KEY_COLUMNS} FROM api_keys WHERE key_hash = :hash"),
                {"hash": key_hash},
            )
            r = row.mappings().first()
            return self._row_to_api_key(r) if r is not None else None

    async def list_api_keys(self, user_id: str) -> list[ApiKey]:
        async with self._begin("list_api_keys") as conn:
            rows = await conn.execute(
                text(
                    f"SELECT {_API_KEY_COLUMNS} FROM api_keys "
                    "WHERE user_id = :uid ORDER BY created_at DESC"
                ),
                {"uid": user_id},
            )
            return [self._row_to_api_key(r) for r in rows.mappings().all()]

    async def revoke_api_key(self, user_id: str, key_id: str, at: datetime) -> bool:
        async with self._begin("revoke_api_key") as conn:
            result = await conn.execute(
                text(
                    """
                    UPDATE api_keys SET
                        is_active = false,
                        revoked_at = COALESCE(revoked_at, :now)
                    WHERE user_id = :uid AND key_id = :kid
                    """
                ),
                {"now": at, "uid": user_id, "kid": key_id},
            )
            return (result.rowcount or 0) > 0

    async def touch_api_key(self, key_id: str, at: datetime) -> None:
        async with self._begin("touch_api_key") as conn:
            await conn.execute(
                text("UPDATE api_keys SET last_used = :now WHERE key_id = :kid"),
                {"now": at, "kid": key_id},
            )

    # ── Row mapping ──────────────────────────────────────────────

    @staticmethod
    def _json(value: object, default: Any) -> Any:
        if value is None:
            return default
        if isinstance(value, str):
            return json.loads(value)
        return value

    @classmethod
    def _row_to_session(cls, r: Mapping[str, Any]) -> Session:
        return Session(
            session_id=r["session_id"],
            issued_at=r["issued_at"],
            expires_at=r["expires_at"],
            last_activity=r["last_activity"],
            is_active=r["is_active"],
            ip_address=r.get("ip_address") or "",
            user_agent=r.get("user_agent") or "",
            device=cls._json(r.get("device"), {}),
            revoked_at=r.get("revoked_at"),
        )

    @classmethod
    def _row_to_user(cls, r: Mapping[str, Any], sessions: list[Session]) -> User:
        """Convert a DB row mapping to a User dataclass."""
        plan_str: str = r["plan"]
        try:
            plan = Plan(plan_str)
        except ValueError:
            log.warning("unknown_plan_in_store", user_id=r["user_id"], plan=plan_str)
            plan = Plan.BASIC

        return User(
            user_id=r["user_id"],
            email=r["email"],
            password_hash=r["password_hash"],
            plan=plan,
            full_name=r.get("full_name") or "",
            is_active=r["is_active"],
            website_limit=r.get("website_limit"),
            features=cls._json(r.get("features"), []),
            created_at=r["created_at"],
            updated_at=r["updated_at"],
            last_login=r.get("last_login"),
            login_attempts=r.get("login_attempts") or 0,
            locked_until=r.get("locked_until"),
            sessions=sessions,
        )

    @staticmethod
    def _row_to_api_key(r: Mapping[str, Any]) -> ApiKey:
        return ApiKey(
            key_id=r["key_id"],
            user_id=r["user_id"],
            name=r["name"],
            key_hash=r["key_hash"],
            key_preview=r["key_preview"],
            created_at=r["created_at"],
            last_used=r.get("last_used"),
            expires_at=r.get("expires_at"),
            is_active=r["is_active"],
            revoked_at=r.get("revoked_at"),
        )
