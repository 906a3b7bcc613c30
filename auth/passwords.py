"""
auth/passwords.py -- Credential hashing (bcrypt) and the password policy.

Hashing: bcrypt directly, no passlib wrapper. passlib's wrap-bug detection
builds a password longer than 72 bytes, which bcrypt 4.x rejects, so the
library is used as-is. The cost factor is injected so tests can run with
rounds=4 while production keeps the configured default.

Policy: at least 8 characters, with at least one letter, one digit and one
symbol from SYMBOLS. There is no upper bound here; request models cap
body fields at 255 characters. bcrypt ignores everything past 72 bytes, so longer
input is truncated before hashing and verifying.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import re

import bcrypt

from core.errors import InvalidPasswordError

PASSWORD_MIN_LEN = 8

SYMBOLS = '!@#$%&? "'

_LETTER_RE = re.compile(r"[A-Za-z]")
_DIGIT_RE = re.compile(r"\d")
_SYMBOL_RE = re.compile("[" + re.escape(SYMBOLS) + "]")

PASSWORD_RULES = (
    f"Password must be at least {PASSWORD_MIN_LEN} characters long and contain "
    f"at least one letter, one digit and one of these symbols: {SYMBOLS}"
)


def password_satisfies_policy(password: str) -> bool:
    """Return True if password meets every rule of the password policy."""
    return (
        len(password) >= PASSWORD_MIN_LEN
        and _LETTER_RE.search(password) is not None
        and _DIGIT_RE.search(password) is not None
        and _SYMBOL_RE.search(password) is not None
    )


def validate_password(password: str) -> None:
    """Raise InvalidPasswordError unless password satisfies the policy."""
    if not password_satisfies_policy(password):
        raise InvalidPasswordError(f"Invalid password format. {PASSWORD_RULES}.")


def _encode(plain: str) -> bytes:
    # bcrypt only reads the first 72 bytes and recent releases refuse longer input.
    return plain.encode("utf-8")[:72]


class PasswordHasher:
    """bcrypt hash/verify with a configurable cost factor."""

    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds

    def hash(self, plain: str) -> str:
        return bcrypt.hashpw(_encode(plain), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, plain: str, hashed: str) -> bool:
        """Return True if plain matches hashed. A malformed hash never matches."""
        try:
            return bcrypt.checkpw(_encode(plain), hashed.encode("utf-8"))
        except (ValueError, TypeError):
            return False
