"""Credential store — account creation and password verification."""

from __future__ import annotations

import asyncio
import math
from datetime import timedelta

from uuid_extensions import uuid7

from src.auth.passwords import DummyHash, hash_password, verify_password
from src.core.exceptions import (
    AccountDeactivatedError,
    AccountLockedError,
    DuplicateAccountError,
    InvalidCredentialsError,
)
from src.core.interfaces import UserStore
from src.core.logging import get_logger
from src.core.types import Plan, User, utcnow
from src.saas.plans import account_defaults

log = get_logger(__name__)


class CredentialStore:
    """Owns user identity records and password verification.

    Unknown email and wrong password raise the same
    ``InvalidCredentialsError`` so a caller cannot discover which emails exist.
    The real reason is only ever logged.
    """

    def __init__(
        self,
        store: UserStore,
        bcrypt_rounds: int = 12,
        max_login_attempts: int = 5,
        lockout_minutes: int = 15,
    ) -> None:
        self._store = store
        self._rounds = bcrypt_rounds
        self._max_attempts = max_login_attempts
        self._lockout = timedelta(minutes=lockout_minutes)
        self._dummy = DummyHash(bcrypt_rounds)

    async def create_user(
        self,
        email: str,
        password: str,
        plan: Plan | str = Plan.BASIC,
        full_name: str = "",
    ) -> User:
        """Create an account. Raises ``DuplicateAccountError`` if the
        lowercased email is already registered."""
        email = email.strip().lower()
        plan = Plan(plan)

        if await self._store.get_by_email(email) is not None:
            log.info("signup_rejected_duplicate", email=email)
            raise DuplicateAccountError(context={"email": email})

        password_hash = await asyncio.to_thread(hash_password, password, self._rounds)
        website_limit, features = account_defaults(plan)
        user = User(
            user_id=str(uuid7()),
            email=email,
            password_hash=password_hash,
            plan=plan,
            full_name=full_name.strip(),
            website_limit=website_limit,
            features=features,
        )
        # The store's unique index settles races between concurrent signups.
        await self._store.insert_user(user)

        log.info("user_created", user_id=user.user_id, email=email, plan=plan.value)
        return user

    async def verify_credentials(self, email: str, password: str) -> User:
        """Return the user for a correct email/password pair.

        The password is always checked first. A wrong password gets the
        generic error whether or not the account is locked, so the lock is
        only revealed to someone who already holds the password.
        """
        email = email.strip().lower()
        user = await self._store.get_by_email(email)

        if user is None:
            await asyncio.to_thread(self._dummy.check, password)
            log.warning("login_failed", reason="unknown_email", email=email)
            raise InvalidCredentialsError(context={"email": email})

        now = utcnow()
        ok = await asyncio.to_thread(verify_password, password, user.password_hash)
        if not ok:
            attempts = await self._store.increment_failed_logins(
                user.user_id, self._max_attempts, now + self._lockout,
            )
            log.warning(
                "login_failed",
                reason="wrong_password",
                user_id=user.user_id,
                attempts=attempts,
                locked=user.is_locked(now),
            )
            raise InvalidCredentialsError(context={"user_id": user.user_id})

        if user.locked_until is not None and user.locked_until > now:
            remaining = math.ceil((user.locked_until - now).total_seconds() / 60)
            log.warning("login_rejected_locked", user_id=user.user_id, minutes_remaining=remaining)
            raise AccountLockedError(remaining, context={"user_id": user.user_id})

        # Only someone holding the password learns the account is disabled.
        if not user.is_active:
            log.warning("login_rejected_deactivated", user_id=user.user_id)
            raise AccountDeactivatedError(context={"user_id": user.user_id})

        await self._store.record_successful_login(user.user_id, now)
        user.login_attempts = 0
        user.locked_until = None
        user.last_login = now
        return user

    async def deactivate(self, user_id: str) -> bool:
        """Disable an account. Its sessions are revoked by the caller."""
        changed = await self._store.set_active(user_id, False)
        if changed:
            log.info("user_deactivated", user_id=user_id)
        return changed
