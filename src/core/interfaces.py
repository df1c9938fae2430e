"""Abstract base classes — persistence ports the auth components depend on."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from src.core.types import ApiKey, Session, User


class UserStore(ABC):
    """Document-shaped user storage: each user owns an embedded session list.

    Every write touches a single user document, so implementations need no
    cross-document locking. Implementations raise
    ``InfrastructureUnavailableError`` when the backing store is unreachable
    or times out, and ``DuplicateAccountError`` on an email collision.
    """

    @abstractmethod
    async def get_by_id(self, user_id: str) -> User | None:
        """Load a user together with its sessions."""
        ...

    @abstractmethod
    async def get_by_email(self, email: str) -> User | None:
        """Load a user by lowercased email."""
        ...

    @abstractmethod
    async def insert_user(self, user: User) -> None:
        ...

    @abstractmethod
    async def increment_failed_logins(
        self, user_id: str, max_attempts: int, lock_until: datetime,
    ) -> int:
        """Bump the failed-login counter and lock the account once it reaches
        ``max_attempts``. Returns the new counter value."""
        ...

    @abstractmethod
    async def record_successful_login(self, user_id: str, at: datetime) -> None:
        """Reset lockout state and stamp ``last_login``."""
        ...

    @abstractmethod
    async def add_session(self, user_id: str, session: Session, keep_last: int) -> None:
        """Append a session, retaining only the newest ``keep_last`` entries."""
        ...

    @abstractmethod
    async def touch_session(self, user_id: str, session_id: str, at: datetime) -> None:
        ...

    @abstractmethod
    async def revoke_session(self, user_id: str, session_id: str, at: datetime) -> bool:
        """Mark one session inactive. Returns False if it did not exist."""
        ...

    @abstractmethod
    async def revoke_all_sessions(self, user_id: str, at: datetime) -> int:
        """Mark every active session inactive. Returns how many changed."""
        ...

    @abstractmethod
    async def set_active(self, user_id: str, is_active: bool) -> bool:
        ...

    @abstractmethod
    async def ping(self) -> None:
        """Round-trip to the store; raises if it is unavailable."""
        ...

    # ── API keys ─────────────────────────────────────────────────

    @abstractmethod
    async def insert_api_key(self, key: ApiKey) -> None:
        ...

    @abstractmethod
    async def get_api_key_by_hash(self, key_hash: str) -> ApiKey | None:
        """Look up a key by the sha256 of its raw value."""
        ...

    @abstractmethod
    async def list_api_keys(self, user_id: str) -> list[ApiKey]:
        """All of a user's keys, revoked ones included."""
        ...

    @abstractmethod
    async def revoke_api_key(self, user_id: str, key_id: str, at: datetime) -> bool:
        """Deactivate a key owned by ``user_id``. Returns False if there is none."""
        ...

    @abstractmethod
    async def touch_api_key(self, key_id: str, at: datetime) -> None:
        ...
