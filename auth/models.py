"""
auth/models.py -- Domain types for accounts and sessions.

Pattern: Data class (pure data container, almost zero logic). Stores and the
account service do the work; routes map these to API models.

The one piece of logic here is parse_role(): the Role enum's only entry point
for untrusted input. It is total and fails closed -- anything that is not a
recognised role raises InvalidRoleError instead of defaulting to USER.

Layer rule: no imports from api/. core/errors is allowed.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from core.errors import InvalidRoleError


class Role(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"


def parse_role(value: object) -> Role:
    """Return the canonical Role for value, compared case-insensitively.

    Accepts a Role member or a string such as "admin" / " User ". Raises
    InvalidRoleError for empty strings, unknown names and non-strings.
    """
    if isinstance(value, Role):
        return value
    if not isinstance(value, str):
        raise InvalidRoleError(f"Unknown role: {value!r}")
    try:
        return Role(value.strip().upper())
    except ValueError:
        raise InvalidRoleError(f"Unknown role: {value!r}") from None


@dataclass
class User:
    """A registered account.

    password_hash is always a bcrypt digest and is never serialised outward.
    id, created_at and updated_at are None until the store writes the record.
    """

    name: str
    email: str
    password_hash: str
    role: Role = Role.USER
    id: int | None = None
    created_at: str | None = None  # ISO 8601, set by the store on insert
    updated_at: str | None = None  # ISO 8601, refreshed by the store on every save

    @property
    def identity(self) -> Identity:
        if self.id is None:
            raise ValueError("User has not been persisted yet")
        return Identity(id=self.id, name=self.name, role=self.role)


@dataclass(frozen=True)
class Identity:
    """The claims a token carries and the gate attaches to a request."""

    id: int
    name: str
    role: Role


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass
class ProfilePatch:
    """Partial update of an account. None means "leave unchanged".

    An empty string is a present value and is validated like any other, so a
    client sending name="" gets a ValidationError rather than a silent no-op.
    """

    name: str | None = None
    email: str | None = None
    role: str | Role | None = None

    def is_empty(self) -> bool:
        return self.name is None and self.email is None and self.role is None
