"""Credential generation and bcrypt hashing."""

from __future__ import annotations

import secrets

import bcrypt

from app.core.constants import (
    PASSWORD_DIGITS,
    PASSWORD_LOWERCASE,
    PASSWORD_MIN_LENGTH,
    PASSWORD_SYMBOLS,
    PASSWORD_UPPERCASE,
)

BCRYPT_ROUNDS = 12

# bcrypt ignores input beyond 72 bytes
_BCRYPT_MAX_BYTES = 72


def generate_password(length: int = 12) -> str:
    """Return a random password with at least one character of each class."""
    length = max(PASSWORD_MIN_LENGTH, length)
    pools = (PASSWORD_LOWERCASE, PASSWORD_UPPERCASE, PASSWORD_DIGITS, PASSWORD_SYMBOLS)
    alphabet = "".join(pools)

    chars = [secrets.choice(pool) for pool in pools]
    chars.extend(secrets.choice(alphabet) for _ in range(length - len(chars)))
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)


def hash_password(password: str) -> str:
    if not password:
        raise ValueError("Password cannot be empty")
    encoded = password.encode("utf-8")
    if len(encoded) > _BCRYPT_MAX_BYTES:
        raise ValueError(f"Password exceeds {_BCRYPT_MAX_BYTES} bytes")
    return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False
