"""
auth/tokens.py -- Password hashing, bearer token and verification code generation.

Security design decisions:
  Passwords: bcrypt directly (no passlib wrapper). Bcrypt is the right choice
       for low-entropy secrets because its cost factor makes brute-force
       expensive. The service only sees the hashing capability through the
       PasswordHasher protocol, so tests can swap in a cheaper hasher.

  Bearer tokens: secrets.token_hex(32) gives 256 bits of entropy as 64 hex
       characters. Used for both access tokens and service tokens. Tokens are
       stored as-is and looked up by exact match -- unguessability is the
       whole security property, so never substitute the `random` module.

  Verification codes: short numeric strings, each digit drawn independently
       with secrets.choice(). The code is the only secret binding two
       identities during its TTL window.

Layer rule: no imports from api/ or cache/.
"""

from __future__ import annotations

import secrets
import string
from typing import Protocol

import bcrypt

TOKEN_BYTES = 32


# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str, rounds: int = 12) -> str:
    """Return a bcrypt hash of the given plaintext password.

    rounds is the bcrypt cost factor (log2 of the work). 12 is the library
    default; tests drop it to 4 to keep suites fast.

    Passwords longer than 72 bytes are silently truncated by bcrypt. The REST
    boundary caps passwords at 50 characters, which keeps inputs below that.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed stored hash is a mismatch, not a crash -- bcrypt raises
    ValueError for salts it cannot parse.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


class PasswordHasher(Protocol):
    def hash(self, plain: str) -> str: ...

    def verify(self, plain: str, digest: str) -> bool: ...


class BcryptHasher:
    """PasswordHasher backed by hash_password() / verify_password()."""

    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds

    def hash(self, plain: str) -> str:
        return hash_password(plain, self.rounds)

    def verify(self, plain: str, digest: str) -> bool:
        return verify_password(plain, digest)


# ---------------------------------------------------------------------------
# Token and code generation
# ---------------------------------------------------------------------------


def generate_token() -> str:
    """Return a new bearer token: 32 CSPRNG bytes, hex-encoded (64 chars)."""
    return secrets.token_hex(TOKEN_BYTES)


def generate_auth_code(length: int) -> str:
    """Return a numeric verification code of exactly `length` ASCII digits.

    Leading zeros are kept ("004213" is a valid 6-digit code), so the code is
    a string, never an int.
    """
    if length <= 0:
        raise ValueError("code length must be positive")
    return "".join(secrets.choice(string.digits) for _ in range(length))
