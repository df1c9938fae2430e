"""Password hashing with bcrypt."""

from __future__ import annotations

import bcrypt

# bcrypt only looks at the first 72 bytes; newer releases refuse longer input.
_BCRYPT_MAX_BYTES = 72


def _encode(password: str) -> bytes:
    return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(password: str, rounds: int = 12) -> str:
    if not password:
        raise ValueError("password_blank")
    return bcrypt.hashpw(_encode(password), bcrypt.gensalt(rounds)).decode("ascii")


def verify_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(_encode(password), password_hash.encode("ascii"))
    except ValueError:
        # Malformed stored hash
        return False


class DummyHash:
    """A throwaway hash compared against when the email is unknown, so a
    missing account costs the same bcrypt work as a wrong password."""

    def __init__(self, rounds: int) -> None:
        self._rounds = rounds
        self._hash: str | None = None

    def check(self, password: str) -> bool:
        if self._hash is None:
            self._hash = hash_password("affilify-timing-equaliser", self._rounds)
        verify_password(password or "x", self._hash)
        return False
