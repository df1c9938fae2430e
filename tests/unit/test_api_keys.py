"""Tests for API key generation, issuance, revocation and verification."""

from __future__ import annotations

import hashlib
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from src.auth.api_keys import (
    ApiKeyManager,
    generate_api_key,
    hash_api_key,
    is_well_formed,
    key_preview,
)
from src.core.exceptions import (
    AccountDeactivatedError,
    ApiKeyLimitError,
    ApiKeyNotFoundError,
    InfrastructureUnavailableError,
    InvalidApiKeyError,
    PlanUpgradeRequiredError,
)
from src.core.types import Plan, User, utcnow
from src.saas.memory_store import InMemoryUserStore


@pytest.fixture
def store() -> InMemoryUserStore:
    return InMemoryUserStore()


@pytest.fixture
def manager(store: InMemoryUserStore) -> ApiKeyManager:
    return ApiKeyManager(store, max_keys_per_user=3)


async def _add_user(store: InMemoryUserStore, plan: Plan = Plan.ENTERPRISE) -> User:
    user = User(user_id="u1", email="ops@example.com", password_hash="h", plan=plan)
    await store.insert_user(user)
    return user


class TestKeyFormat:
    def test_generated_key_shape(self) -> None:
        key = generate_api_key()
        assert key.startswith("ak_live_")
        assert len(key) == len("ak_live_") + 64
        assert is_well_formed(key)

    def test_keys_are_unique(self) -> None:
        assert generate_api_key() != generate_api_key()

    def test_hash_is_sha256(self) -> None:
        key = generate_api_key()
        assert hash_api_key(key) == hashlib.sha256(key.encode()).hexdigest()

    def test_preview(self) -> None:
        key = "ak_live_" + "ab" * 32
        assert key_preview(key) == "ak_live_abab****"

    @pytest.mark.parametrize(
        "key",
        ["", "ak_live_", "ak_test_" + "a" * 64, "ak_live_" + "A" * 64, "ak_live_" + "a" * 63],
    )
    def test_malformed(self, key: str) -> None:
        assert is_well_formed(key) is False


class TestIssue:
    @pytest.mark.asyncio
    async def test_issue_stores_hash_only(
        self, manager: ApiKeyManager, store: InMemoryUserStore,
    ) -> None:
        await _add_user(store)
        raw, key = await manager.issue("u1", "  CI deploy ")

        assert key.name == "CI deploy"
        assert key.key_hash == hash_api_key(raw)
        assert key.key_preview == key_preview(raw)
        assert key.expires_at is None
        stored = await store.get_api_key_by_hash(key.key_hash)
        assert stored is not None
        assert raw not in (stored.key_hash, stored.key_preview)

    @pytest.mark.asyncio
    async def test_expiry(self, manager: ApiKeyManager, store: InMemoryUserStore) -> None:
        await _add_user(store)
        _, key = await manager.issue("u1", "short", expires_in="30d")
        assert key.expires_at is not None
        assert key.expires_at - key.created_at == timedelta(days=30)

    @pytest.mark.asyncio
    async def test_unknown_expiry_rejected(self, manager: ApiKeyManager) -> None:
        with pytest.raises(ValueError):
            await manager.issue("u1", "k", expires_in="2w")

    @pytest.mark.asyncio
    async def test_limit(self, manager: ApiKeyManager, store: InMemoryUserStore) -> None:
        await _add_user(store)
        for i in range(3):
            await manager.issue("u1", f"key {i}")
        with pytest.raises(ApiKeyLimitError):
            await manager.issue("u1", "one too many")

    @pytest.mark.asyncio
    async def test_revoked_keys_free_the_limit(
        self, manager: ApiKeyManager, store: InMemoryUserStore,
    ) -> None:
        await _add_user(store)
        keys = [await manager.issue("u1", f"key {i}") for i in range(3)]
        await manager.revoke("u1", keys[0][1].key_id)
        await manager.issue("u1", "replacement")


class TestListAndRevoke:
    @pytest.mark.asyncio
    async def test_list_newest_first_without_revoked(
        self, manager: ApiKeyManager, store: InMemoryUserStore,
    ) -> None:
        await _add_user(store)
        _, first = await manager.issue("u1", "first")
        _, second = await manager.issue("u1", "second")
        _, third = await manager.issue("u1", "third")
        now = utcnow()
        for offset, key in enumerate((first, second, third)):
            store._api_keys[key.key_id].created_at = now + timedelta(seconds=offset)
        await manager.revoke("u1", second.key_id)

        listed = await manager.list_keys("u1")
        assert [k.key_id for k in listed] == [third.key_id, first.key_id]

    @pytest.mark.asyncio
    async def test_revoke_someone_elses_key(
        self, manager: ApiKeyManager, store: InMemoryUserStore,
    ) -> None:
        await _add_user(store)
        _, key = await manager.issue("u1", "mine")
        with pytest.raises(ApiKeyNotFoundError):
            await manager.revoke("u2", key.key_id)


class TestVerify:
    @pytest.mark.asyncio
    async def test_valid_key(self, manager: ApiKeyManager, store: InMemoryUserStore) -> None:
        await _add_user(store)
        raw, key = await manager.issue("u1", "CI")

        principal = await manager.verify(raw)
        assert principal.user_id == "u1"
        assert principal.plan == Plan.ENTERPRISE
        assert principal.api_key_id == key.key_id
        assert principal.session_id is None

        stored = await store.get_api_key_by_hash(key.key_hash)
        assert stored is not None
        assert stored.last_used is not None

    @pytest.mark.asyncio
    async def test_malformed_never_reaches_store(self) -> None:
        store = AsyncMock()
        manager = ApiKeyManager(store)
        with pytest.raises(InvalidApiKeyError):
            await manager.verify("not-a-key")
        store.get_api_key_by_hash.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_key(self, manager: ApiKeyManager) -> None:
        with pytest.raises(InvalidApiKeyError):
            await manager.verify(generate_api_key())

    @pytest.mark.asyncio
    async def test_revoked_key(self, manager: ApiKeyManager, store: InMemoryUserStore) -> None:
        await _add_user(store)
        raw, key = await manager.issue("u1", "CI")
        await manager.revoke("u1", key.key_id)
        with pytest.raises(InvalidApiKeyError):
            await manager.verify(raw)

    @pytest.mark.asyncio
    async def test_expired_key(self, manager: ApiKeyManager, store: InMemoryUserStore) -> None:
        await _add_user(store)
        raw, key = await manager.issue("u1", "CI", expires_in="30d")
        store._api_keys[key.key_id].expires_at = utcnow() - timedelta(seconds=1)
        with pytest.raises(InvalidApiKeyError):
            await manager.verify(raw)

    @pytest.mark.asyncio
    async def test_downgraded_owner(self, manager: ApiKeyManager, store: InMemoryUserStore) -> None:
        await _add_user(store)
        raw, _ = await manager.issue("u1", "CI")
        store._users["u1"].plan = Plan.PRO
        with pytest.raises(PlanUpgradeRequiredError):
            await manager.verify(raw)

    @pytest.mark.asyncio
    async def test_deactivated_owner(self, manager: ApiKeyManager, store: InMemoryUserStore) -> None:
        await _add_user(store)
        raw, _ = await manager.issue("u1", "CI")
        await store.set_active("u1", False)
        with pytest.raises(AccountDeactivatedError):
            await manager.verify(raw)

    @pytest.mark.asyncio
    async def test_touch_failure_does_not_reject(
        self, manager: ApiKeyManager, store: InMemoryUserStore,
    ) -> None:
        await _add_user(store)
        raw, _ = await manager.issue("u1", "CI")
        store.touch_api_key = AsyncMock(side_effect=InfrastructureUnavailableError())  # type: ignore[method-assign]

        principal = await manager.verify(raw)
        assert principal.user_id == "u1"
