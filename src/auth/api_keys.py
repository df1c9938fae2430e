"""API keys — long-lived credentials for machine clients on Enterprise plans.

Keys look like ``ak_live_<64 hex>``. Only their sha256 is stored, so a
leaked table cannot be replayed; the raw key is returned once, at creation.
"""

from __future__ import annotations

import hashlib
import hmac
import re
import secrets
from datetime import timedelta

from uuid_extensions import uuid7

from src.core.constants import (
    API_ACCESS_FEATURE,
    API_KEY_EXPIRY_DAYS,
    API_KEY_PREFIX,
    API_KEY_PREVIEW_CHARS,
)
from src.core.exceptions import (
    AccountDeactivatedError,
    ApiKeyLimitError,
    ApiKeyNotFoundError,
    InfrastructureUnavailableError,
    InvalidApiKeyError,
    PlanUpgradeRequiredError,
)
from src.core.interfaces import UserStore
from src.core.logging import get_logger
from src.core.types import ApiKey, Principal, utcnow
from src.saas.plans import has_access

log = get_logger(__name__)

_KEY_RE = re.compile(rf"^{API_KEY_PREFIX}[a-f0-9]{{64}}$")


def generate_api_key() -> str:
    return f"{API_KEY_PREFIX}{secrets.token_hex(32)}"


def hash_api_key(key: str) -> str:
    return hashlib.sha256(key.encode()).hexdigest()


def key_preview(key: str) -> str:
    return f"{key[:API_KEY_PREVIEW_CHARS]}****"


def is_well_formed(key: str) -> bool:
    return bool(_KEY_RE.match(key))


class ApiKeyManager:
    """Issues, lists, revokes and verifies a user's API keys."""

    def __init__(self, store: UserStore, max_keys_per_user: int = 10) -> None:
        self._store = store
        self._max_keys = max_keys_per_user

    async def issue(
        self, user_id: str, name: str, expires_in: str | None = None,
    ) -> tuple[str, ApiKey]:
        """Create a key. Returns the raw key alongside its stored record."""
        active = await self.list_keys(user_id)
        if len(active) >= self._max_keys:
            log.info("api_key_limit_reached", user_id=user_id, active=len(active))
            raise ApiKeyLimitError(
                f"Maximum of {self._max_keys} API keys allowed",
                context={"user_id": user_id},
            )

        now = utcnow()
        expires_at = None
        if expires_in is not None:
            if expires_in not in API_KEY_EXPIRY_DAYS:
                msg = f"unknown expiry: {expires_in!r}"
                raise ValueError(msg)
            expires_at = now + timedelta(days=API_KEY_EXPIRY_DAYS[expires_in])

        raw = generate_api_key()
        key = ApiKey(
            key_id=str(uuid7()),
            user_id=user_id,
            name=name.strip(),
            key_hash=hash_api_key(raw),
            key_preview=key_preview(raw),
            created_at=now,
            expires_at=expires_at,
        )
        await self._store.insert_api_key(key)
        log.info("api_key_issued", user_id=user_id, key_id=key.key_id, expires_in=expires_in)
        return raw, key

    async def list_keys(self, user_id: str) -> list[ApiKey]:
        """Usable keys, newest first."""
        now = utcnow()
        keys = [k for k in await self._store.list_api_keys(user_id) if k.is_valid(now)]
        keys.sort(key=lambda k: k.created_at, reverse=True)
        return keys

    async def revoke(self, user_id: str, key_id: str) -> None:
        found = await self._store.revoke_api_key(user_id, key_id, utcnow())
        if not found:
            raise ApiKeyNotFoundError(context={"user_id": user_id, "key_id": key_id})
        log.info("api_key_revoked", user_id=user_id, key_id=key_id)

    async def verify(self, raw_key: str) -> Principal:
        """Resolve a presented key to its owner.

        The owner must still be active and still on a plan with API access;
        a downgraded account's keys stop working without being revoked.
        """
        if not is_well_formed(raw_key):
            raise InvalidApiKeyError(context={"reason": "malformed"})

        key_hash = hash_api_key(raw_key)
        key = await self._store.get_api_key_by_hash(key_hash)
        if key is None or not hmac.compare_digest(key.key_hash, key_hash):
            log.warning("api_key_rejected", reason="unknown")
            raise InvalidApiKeyError(context={"reason": "unknown"})

        now = utcnow()
        if not key.is_valid(now):
            log.warning("api_key_rejected", reason="revoked_or_expired", key_id=key.key_id)
            raise InvalidApiKeyError(context={"key_id": key.key_id})

        user = await self._store.get_by_id(key.user_id)
        if user is None or not user.is_active:
            log.warning("api_key_rejected", reason="user_inactive", key_id=key.key_id)
            raise AccountDeactivatedError(context={"user_id": key.user_id})

        if not has_access(user.plan, API_ACCESS_FEATURE):
            log.info("api_key_plan_denied", user_id=user.user_id, plan=user.plan.value)
            raise PlanUpgradeRequiredError(
                "Enterprise plan required for API access",
                context={"user_id": user.user_id, "plan": user.plan.value},
            )

        try:
            await self._store.touch_api_key(key.key_id, now)
        except InfrastructureUnavailableError:
            # Usage stamp only; the key itself was verified.
            log.warning("api_key_touch_failed", key_id=key.key_id)

        return Principal(
            user_id=user.user_id,
            email=user.email,
            plan=user.plan,
            api_key_id=key.key_id,
        )
