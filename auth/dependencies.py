"""
auth/dependencies.py -- FastAPI Depends() helpers: the authorization gate.

Two stages:
  1. get_current_identity() -- authenticate. Reads "Authorization: Bearer <token>",
     verifies the access token, then re-checks that the account still exists.
     Tokens are stateless and cannot be revoked, so this single point lookup is
     what stops a deleted account's still-valid token from getting through.
     The identity attached to request.state carries the account's current
     name and role, so a demotion takes effect on the very next request.

  2. require_roles(*roles) -- authorize. A dependency factory; accepted roles are
     compared case-insensitively. Runs stage 1 first via Depends, then reads
     the identity from request.state.

require_admin is require_roles(Role.ADMIN).

Failures are raised as core.errors types; api/main.py renders them (401 with
WWW-Authenticate: Bearer, 403).

Layer rule: auth/dependencies.py may import from fastapi (for Depends/Request)
because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Depends, Request

from auth.models import Identity, Role
from auth.service import AccountService
from core.errors import AuthenticationError, AuthorizationError

_SCHEME = "Bearer "


def get_account_service(request: Request) -> AccountService:
    return request.app.state.accounts


def get_current_identity(request: Request) -> Identity:
    """Require a valid Bearer access token for an account that still exists.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(identity: Identity = Depends(get_current_identity)): ...
    """
    header = request.headers.get("Authorization", "")
    if not header.startswith(_SCHEME) or not header[len(_SCHEME):].strip():
        raise AuthenticationError("Authentication required.")
    token = header[len(_SCHEME):].strip()

    accounts = get_account_service(request)
    claims = accounts.tokens.verify_access_token(token)
    user = accounts.store.find_by_id(claims.id)
    if user is None:
        raise AuthenticationError("Account no longer exists.")

    identity = user.identity
    request.state.identity = identity
    return identity


def require_roles(*roles: str | Role) -> Callable[..., Identity]:
    """Build a dependency that admits only identities holding one of roles.

    Raises 401 if the request has no authenticated identity, 403 if the role
    is not accepted.
    """
    accepted = {(r.value if isinstance(r, Role) else str(r)).strip().upper() for r in roles}

    def dependency(request: Request, _identity: Identity = Depends(get_current_identity)) -> Identity:
        identity: Identity | None = getattr(request.state, "identity", None)
        if identity is None:
            raise AuthenticationError("You need to be logged in to access this resource.")
        if identity.role.value.upper() not in accepted:
            raise AuthorizationError("Insufficient rights to access this resource.")
        return identity

    return dependency


require_admin = require_roles(Role.ADMIN)
