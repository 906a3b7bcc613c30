"""
auth/tokens.py -- Access and refresh token issuance and verification.

Security design decisions:
  JWT: python-jose with HS256. Two token kinds, each with its own secret and
       lifetime:
         access  -- short-lived (default 1h), sent as Authorization: Bearer.
         refresh -- long-lived (default 30d), sent only in the path-scoped
                    httpOnly refreshToken cookie.
       A leaked access secret cannot mint or verify refresh tokens, and each
       secret can be rotated on its own.

  Claims: sub (user id as a string, per RFC 7519), name, role, typ, iat, exp.
       typ is checked on verification so a token of one kind is never accepted
       as the other, even if an operator misconfigures both secrets.

  Expiry: checked against the injected clock rather than inside jose, so a
       token is rejected at or after exp -- and tests can move time.

  Stateless: there is no revocation list. Expiry is the only token-side
       invalidation; the gate's per-request account lookup covers deletion.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from auth.models import Identity, Role, TokenPair
from core.errors import ConfigurationError, InvalidTokenError

logger = logging.getLogger("accounts.auth")

ACCESS = "access"
REFRESH = "refresh"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TokenService:
    """Mints and verifies access/refresh tokens.

    Usage:
        tokens = TokenService(access_secret="...", refresh_secret="...")
        pair = tokens.issue_pair(user.identity)
        identity = tokens.verify_access_token(pair.access_token)
    """

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        access_expire_seconds: int = 3600,
        refresh_expire_seconds: int = 30 * 24 * 3600,
        algorithm: str = "HS256",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._secrets = {ACCESS: access_secret, REFRESH: refresh_secret}
        self._lifetimes = {ACCESS: access_expire_seconds, REFRESH: refresh_expire_seconds}
        self.algorithm = algorithm
        self.clock = clock

    @property
    def access_expire_seconds(self) -> int:
        return self._lifetimes[ACCESS]

    @property
    def refresh_expire_seconds(self) -> int:
        return self._lifetimes[REFRESH]

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def issue_access_token(self, identity: Identity) -> str:
        return self._issue(identity, ACCESS)

    def issue_refresh_token(self, identity: Identity) -> str:
        return self._issue(identity, REFRESH)

    def issue_pair(self, identity: Identity) -> TokenPair:
        return TokenPair(
            access_token=self.issue_access_token(identity),
            refresh_token=self.issue_refresh_token(identity),
        )

    def _issue(self, identity: Identity, kind: str) -> str:
        secret = self._secrets[kind]
        if not secret:
            # Fatal: the service cannot issue sessions until an operator sets the secret.
            raise ConfigurationError(f"Missing {kind} token signing secret.")
        now = self.clock()
        expire = now + timedelta(seconds=self._lifetimes[kind])
        payload = {
            "sub": str(identity.id),
            "name": identity.name,
            "role": identity.role.value,
            "typ": kind,
            "iat": int(now.timestamp()),
            "exp": int(expire.timestamp()),
        }
        return jwt.encode(payload, secret, algorithm=self.algorithm)

    # ------------------------------------------------------------------
    # Verify
    # ------------------------------------------------------------------

    def verify_access_token(self, token: str) -> Identity:
        """Return the identity in a valid access token. Raises InvalidTokenError otherwise."""
        return self._verify(token, ACCESS, "Invalid or expired token.")

    def verify_refresh_token(self, token: str) -> Identity:
        """Return the identity in a valid refresh token. Raises InvalidTokenError otherwise."""
        return self._verify(token, REFRESH, "Invalid or expired refresh token.")

    def _verify(self, token: str, kind: str, message: str) -> Identity:
        secret = self._secrets[kind]
        if not secret:
            raise ConfigurationError(f"Missing {kind} token signing secret.")
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[self.algorithm],
                options={"verify_exp": False},
            )
        except JWTError as exc:
            logger.debug("Rejected %s token: %s", kind, exc)
            raise InvalidTokenError(message) from None

        exp = payload.get("exp")
        if payload.get("typ") != kind or not isinstance(exp, int):
            raise InvalidTokenError(message)
        if self.clock().timestamp() >= exp:
            raise InvalidTokenError(message)

        try:
            return Identity(
                id=int(payload["sub"]),
                name=str(payload["name"]),
                role=Role(payload["role"]),
            )
        except (KeyError, TypeError, ValueError):
            raise InvalidTokenError(message) from None
