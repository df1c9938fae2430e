"""In-memory user store. Use the DB-backed ``SqlUserStore`` for production."""

from __future__ import annotations

import copy
from datetime import datetime

from src.core.exceptions import DuplicateAccountError
from src.core.interfaces import UserStore
from src.core.logging import get_logger
from src.core.types import ApiKey, Session, User

log = get_logger(__name__)


class InMemoryUserStore(UserStore):
    """Dict-backed ``UserStore`` for local development and tests.

    Reads hand out deep copies so callers cannot mutate stored state without
    going through the store, same as with a real database.
    """

    def __init__(self) -> None:
        self._users: dict[str, User] = {}
        self._email_index: dict[str, str] = {}  # lowercased email -> user_id
        self._api_keys: dict[str, ApiKey] = {}
        self._key_index: dict[str, str] = {}  # key_hash -> key_id

    async def get_by_id(self, user_id: str) -> User | None:
        user = self._users.get(user_id)
        return copy.deepcopy(user) if user else None

    async def get_by_email(self, email: str) -> User | None:
        user_id = self._email_index.get(email.strip().lower())
        if user_id is None:
            return None
        return await self.get_by_id(user_id)

    async def insert_user(self, user: User) -> None:
        if user.email in self._email_index:
            raise DuplicateAccountError(context={"email": user.email})
        self._users[user.user_id] = copy.deepcopy(user)
        self._email_index[user.email] = user.user_id
        log.debug("memory_user_inserted", user_id=user.user_id)

    async def increment_failed_logins(
        self, user_id: str, max_attempts: int, lock_until: datetime,
    ) -> int:
        user = self._users.get(user_id)
        if user is None:
            return 0
        user.login_attempts += 1
        if user.login_attempts >= max_attempts:
            user.locked_until = lock_until
        return user.login_attempts

    async def record_successful_login(self, user_id: str, at: datetime) -> None:
        user = self._users.get(user_id)
        if user is None:
            return
        user.login_attempts = 0
        user.locked_until = None
        user.last_login = at
        user.updated_at = at

    async def add_session(self, user_id: str, session: Session, keep_last: int) -> None:
        user = self._users.get(user_id)
        if user is None:
            return
        user.sessions.append(copy.deepcopy(session))
        if keep_last > 0 and len(user.sessions) > keep_last:
            user.sessions = user.sessions[-keep_last:]

    async def touch_session(self, user_id: str, session_id: str, at: datetime) -> None:
        user = self._users.get(user_id)
        session = user.find_session(session_id) if user else None
        if session is not None:
            session.last_activity = at

    async def revoke_session(self, user_id: str, session_id: str, at: datetime) -> bool:
        user = self._users.get(user_id)
        session = user.find_session(session_id) if user else None
        if session is None:
            return False
        if session.is_active:
            session.is_active = False
            session.revoked_at = at
        return True

    async def revoke_all_sessions(self, user_id: str, at: datetime) -> int:
        user = self._users.get(user_id)
        if user is None:
            return 0
        changed = 0
        for session in user.sessions:
            if session.is_active:
                session.is_active = False
                session.revoked_at = at
                changed += 1
        return changed

    async def set_active(self, user_id: str, is_active: bool) -> bool:
        user = self._users.get(user_id)
        if user is None:
            return False
        user.is_active = is_active
        return True

    async def ping(self) -> None:
        return None

    # ── API keys ─────────────────────────────────────────────────

    async def insert_api_key(self, key: ApiKey) -> None:
        self._api_keys[key.key_id] = copy.deepcopy(key)
        self._key_index[key.key_hash] = key.key_id
        log.debug("memory_api_key_inserted", key_id=key.key_id, user_id=key.user_id)

    async def get_api_key_by_hash(self, key_hash: str) -> ApiKey | None:
        key_id = self._key_index.get(key_hash)
        if key_id is None:
            return None
        return copy.deepcopy(self._api_keys[key_id])

    async def list_api_keys(self, user_id: str) -> list[ApiKey]:
        return [copy.deepcopy(k) for k in self._api_keys.values() if k.user_id == user_id]

    async def revoke_api_key(self, user_id: str, key_id: str, at: datetime) -> bool:
        key = self._api_keys.get(key_id)
        if key is None or key.user_id != user_id:
            return False
        if key.is_active:
            key.is_active = False
            key.revoked_at = at
        return True

    async def touch_api_key(self, key_id: str, at: datetime) -> None:
        key = self._api_keys.get(key_id)
        if key is not None:
            key.last_used = at
