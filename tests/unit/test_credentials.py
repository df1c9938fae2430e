"""Tests for CredentialStore — signup, password checks, lockout."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from src.auth.credentials import CredentialStore
from src.core.exceptions import (
    AccountDeactivatedError,
    AccountLockedError,
    DuplicateAccountError,
    InfrastructureUnavailableError,
    InvalidCredentialsError,
)
from src.core.types import Plan, utcnow
from src.saas.memory_store import InMemoryUserStore


@pytest.fixture
def store() -> InMemoryUserStore:
    return InMemoryUserStore()


@pytest.fixture
def creds(store: InMemoryUserStore) -> CredentialStore:
    return CredentialStore(store, bcrypt_rounds=4, max_login_attempts=5, lockout_minutes=15)


class TestCreateUser:
    @pytest.mark.asyncio
    async def test_creates_with_plan_defaults(self, creds: CredentialStore) -> None:
        user = await creds.create_user("Jane@Example.com", "password123", Plan.PRO, "Jane Doe")
        assert user.email == "jane@example.com"
        assert user.plan == Plan.PRO
        assert user.website_limit == 10
        assert "discordAccess" in user.features
        assert user.password_hash != "password123"

    @pytest.mark.asyncio
    async def test_duplicate_is_case_insensitive(self, creds: CredentialStore) -> None:
        await creds.create_user("jane@example.com", "password123")
        with pytest.raises(DuplicateAccountError):
            await creds.create_user("JANE@EXAMPLE.COM", "another456")

    @pytest.mark.asyncio
    async def test_plan_string_accepted(self, creds: CredentialStore) -> None:
        user = await creds.create_user("e@example.com", "password123", "enterprise")
        assert user.plan == Plan.ENTERPRISE
        assert user.website_limit is None

    @pytest.mark.asyncio
    async def test_store_failure_propagates(self) -> None:
        store = AsyncMock()
        store.get_by_email.side_effect = InfrastructureUnavailableError()
        creds = CredentialStore(store, bcrypt_rounds=4)
        with pytest.raises(InfrastructureUnavailableError):
            await creds.create_user("a@b.com", "password123")


class TestVerifyCredentials:
    @pytest.mark.asyncio
    async def test_correct_password(self, creds: CredentialStore) -> None:
        created = await creds.create_user("jane@example.com", "password123")
        user = await creds.verify_credentials("Jane@Example.com", "password123")
        assert user.user_id == created.user_id
        assert user.last_login is not None

    @pytest.mark.asyncio
    async def test_unknown_email_and_wrong_password_identical(self, creds: CredentialStore) -> None:
        await creds.create_user("jane@example.com", "password123")

        with pytest.raises(InvalidCredentialsError) as unknown:
            await creds.verify_credentials("nobody@example.com", "password123")
        with pytest.raises(InvalidCredentialsError) as wrong:
            await creds.verify_credentials("jane@example.com", "wrong-password1")

        assert unknown.value.code == wrong.value.code
        assert unknown.value.status_code == wrong.value.status_code
        assert str(unknown.value) == str(wrong.value)

    @pytest.mark.asyncio
    async def test_lockout_after_max_attempts(
        self, creds: CredentialStore, store: InMemoryUserStore,
    ) -> None:
        created = await creds.create_user("jane@example.com", "password123")
        for _ in range(5):
            with pytest.raises(InvalidCredentialsError):
                await creds.verify_credentials("jane@example.com", "wrong-password1")

        # Even the right password is refused while locked.
        with pytest.raises(AccountLockedError) as exc_info:
            await creds.verify_credentials("jane@example.com", "password123")
        assert exc_info.value.status_code == 423
        assert 14 <= exc_info.value.minutes_remaining <= 15

        user = await store.get_by_id(created.user_id)
        assert user is not None
        assert user.login_attempts == 5

    @pytest.mark.asyncio
    async def test_wrong_password_while_locked_matches_unknown_email(
        self, creds: CredentialStore, store: InMemoryUserStore,
    ) -> None:
        created = await creds.create_user("jane@example.com", "password123")
        for _ in range(5):
            with pytest.raises(InvalidCredentialsError):
                await creds.verify_credentials("jane@example.com", "wrong-password1")

        with pytest.raises(InvalidCredentialsError) as locked:
            await creds.verify_credentials("jane@example.com", "wrong-password1")
        with pytest.raises(InvalidCredentialsError) as unknown:
            await creds.verify_credentials("nobody@example.com", "wrong-password1")

        assert locked.value.code == unknown.value.code
        assert str(locked.value) == str(unknown.value)
        user = await store.get_by_id(created.user_id)
        assert user is not None
        assert user.login_attempts == 6

    @pytest.mark.asyncio
    async def test_expired_lock_allows_login(
        self, creds: CredentialStore, store: InMemoryUserStore,
    ) -> None:
        created = await creds.create_user("jane@example.com", "password123")
        store._users[created.user_id].locked_until = utcnow() - timedelta(seconds=1)
        store._users[created.user_id].login_attempts = 5

        user = await creds.verify_credentials("jane@example.com", "password123")
        assert user.login_attempts == 0
        assert user.locked_until is None

    @pytest.mark.asyncio
    async def test_success_resets_failed_attempts(
        self, creds: CredentialStore, store: InMemoryUserStore,
    ) -> None:
        created = await creds.create_user("jane@example.com", "password123")
        with pytest.raises(InvalidCredentialsError):
            await creds.verify_credentials("jane@example.com", "wrong-password1")

        await creds.verify_credentials("jane@example.com", "password123")
        stored = await store.get_by_id(created.user_id)
        assert stored is not None
        assert stored.login_attempts == 0

    @pytest.mark.asyncio
    async def test_deactivated_account(self, creds: CredentialStore) -> None:
        created = await creds.create_user("jane@example.com", "password123")
        assert await creds.deactivate(created.user_id) is True

        with pytest.raises(AccountDeactivatedError):
            await creds.verify_credentials("jane@example.com", "password123")

    @pytest.mark.asyncio
    async def test_deactivated_account_wrong_password_stays_generic(
        self, creds: CredentialStore,
    ) -> None:
        created = await creds.create_user("jane@example.com", "password123")
        await creds.deactivate(created.user_id)

        with pytest.raises(InvalidCredentialsError):
            await creds.verify_credentials("jane@example.com", "wrong-password1")
