"""
api/routes/v1/users.py -- Account, session and user management REST endpoints.

Routes (all under /api/v1):
  POST   /users/register        -- create account; access token in body, refresh cookie set
  POST   /users/login           -- name or e-mail + password; same response shape
  POST   /users/refresh         -- new access token from the refreshToken cookie
  POST   /users/logout          -- clears the refresh cookie; 200
  GET    /users/profile         -- current user's profile (requires auth)
  PUT    /users                 -- partial profile update; re-issues tokens (requires auth)
  PUT    /users/passwordChange  -- change password; re-issues tokens (requires auth)
  DELETE /users                 -- delete own account, password-confirmed (requires auth)
  GET    /users                 -- list accounts (admin only)
  GET    /users/{id}            -- one account (admin only)
  PATCH  /users/{id}            -- update name/email/role (admin only)
  DELETE /users/{id}            -- delete account, no password (admin only)

Security:
  The refresh token is only ever sent as an httpOnly, SameSite=strict cookie
  scoped to the refresh path, so scripts cannot read it and browsers never
  attach it to any other endpoint.
  Cache-Control: no-store on every response that carries a token.
  login/register/refresh are rate-limited per client address (api/limiter.py).

Handlers are plain `def`: Starlette runs them in its thread pool, which keeps
bcrypt and database work off the event loop.

No `from __future__ import annotations` here: the slowapi wrappers do not
carry this module's globals, so FastAPI could not resolve string annotations
on the rate-limited handlers.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import login_limit, refresh_limit, register_limit
from api.models import (
    AccessTokenData,
    AccessTokenResponse,
    LoginRequest,
    MessageResponse,
    PasswordChangeRequest,
    PasswordConfirmation,
    ProfileResponse,
    ProfileUpdateRequest,
    RegisterRequest,
    SessionData,
    SessionResponse,
    UserDetail,
    UserDetailResponse,
    UserListResponse,
    UserProfile,
    UserSummary,
)
from auth.dependencies import get_account_service, get_current_identity, require_admin
from auth.models import Identity, ProfilePatch, TokenPair, User
from auth.service import AccountService
from core.config import get_settings

REFRESH_COOKIE = "refreshToken"

_settings = get_settings()

# Auth policy:
# - POST   /users/register, /users/login, /users/refresh, /users/logout: public
# - GET    /users/profile, PUT /users, PUT /users/passwordChange, DELETE /users:
#          requires auth (get_current_identity)
# - GET    /users, GET/PATCH/DELETE /users/{id}: requires admin (require_admin)
router = APIRouter()


# ---------------------------------------------------------------------------
# Cookie / response helpers
# ---------------------------------------------------------------------------


def _set_refresh_cookie(response: JSONResponse, token: str, max_age: int) -> None:
    response.set_cookie(
        REFRESH_COOKIE,
        value=token,
        max_age=max_age,
        path=_settings.refresh_cookie_path,
        httponly=True,
        secure=_settings.secure_cookies,
        samesite="strict",
    )


def _clear_refresh_cookie(response: JSONResponse) -> None:
    response.delete_cookie(
        REFRESH_COOKIE,
        path=_settings.refresh_cookie_path,
        httponly=True,
        secure=_settings.secure_cookies,
        samesite="strict",
    )


def _session_response(accounts: AccountService, status_code: int, user: User, pair: TokenPair) -> JSONResponse:
    """Access token + public profile in the body, refresh token in the scoped cookie."""
    body = SessionResponse(data=SessionData(user=UserSummary.from_user(user), access_token=pair.access_token))
    resp = JSONResponse(status_code=status_code, content=body.model_dump(mode="json", by_alias=True))
    _set_refresh_cookie(resp, pair.refresh_token, accounts.tokens.refresh_expire_seconds)
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/users/register", response_model=SessionResponse, status_code=201)
@register_limit
def register(
    request: Request,
    body: RegisterRequest,
    accounts: AccountService = Depends(get_account_service),
) -> JSONResponse:
    """Create a USER account and log it in."""
    user, pair = accounts.register(body.name, body.email, body.password)
    return _session_response(accounts, 201, user, pair)


@router.post("/users/login", response_model=SessionResponse)
@login_limit
def login(
    request: Request,
    body: LoginRequest,
    accounts: AccountService = Depends(get_account_service),
) -> JSONResponse:
    """Authenticate with a name or an e-mail plus password.

    Unknown accounts and wrong passwords get the same 401 so the endpoint
    cannot be used to probe which names or e-mails are registered.
    """
    user, pair = accounts.authenticate(body.password, name=body.name, email=body.email)
    return _session_response(accounts, 200, user, pair)


@router.post("/users/refresh", response_model=AccessTokenResponse)
@refresh_limit
def refresh(
    request: Request,
    accounts: AccountService = Depends(get_account_service),
) -> JSONResponse:
    """Mint a new access token from the refreshToken cookie. The refresh token is not rotated."""
    access_token = accounts.refresh(request.cookies.get(REFRESH_COOKIE))
    body = AccessTokenResponse(data=AccessTokenData(access_token=access_token))
    resp = JSONResponse(content=body.model_dump(by_alias=True))
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/users/logout", response_model=MessageResponse)
def logout() -> JSONResponse:
    """Clear the refresh cookie. Issued tokens stay valid until they expire."""
    resp = JSONResponse(content=MessageResponse(message="Logout successful.").model_dump())
    _clear_refresh_cookie(resp)
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/users/profile", response_model=ProfileResponse)
def get_profile(
    identity: Identity = Depends(get_current_identity),
    accounts: AccountService = Depends(get_account_service),
) -> ProfileResponse:
    user = accounts.get_profile(identity.id)
    return ProfileResponse(data=UserProfile.from_user(user))


@router.put("/users", response_model=SessionResponse)
def update_profile(
    body: ProfileUpdateRequest,
    identity: Identity = Depends(get_current_identity),
    accounts: AccountService = Depends(get_account_service),
) -> JSONResponse:
    """Apply the fields present in the body, then re-issue tokens carrying the new claims."""
    patch = ProfilePatch(**body.model_dump(exclude_unset=True))
    user, pair = accounts.update_profile(identity, patch)
    return _session_response(accounts, 200, user, pair)


@router.put("/users/passwordChange", response_model=SessionResponse)
def change_password(
    body: PasswordChangeRequest,
    identity: Identity = Depends(get_current_identity),
    accounts: AccountService = Depends(get_account_service),
) -> JSONResponse:
    user, pair = accounts.change_password(identity.id, body.password, body.new_password)
    return _session_response(accounts, 200, user, pair)


@router.delete("/users", response_model=MessageResponse)
def delete_account(
    body: Optional[PasswordConfirmation] = None,
    identity: Identity = Depends(get_current_identity),
    accounts: AccountService = Depends(get_account_service),
) -> JSONResponse:
    """Delete the caller's own account after confirming the password, then clear the refresh cookie."""
    accounts.delete_account(identity.id, body.password if body else None)
    resp = JSONResponse(content=MessageResponse(message="Account deleted successfully.").model_dump())
    _clear_refresh_cookie(resp)
    return resp


# ---------------------------------------------------------------------------
# User management (admin only)
# ---------------------------------------------------------------------------


@router.get("/users", response_model=UserListResponse)
def list_users(
    _admin: Identity = Depends(require_admin),
    accounts: AccountService = Depends(get_account_service),
) -> UserListResponse:
    return UserListResponse(data=[UserDetail.from_user(u) for u in accounts.list_users()])


@router.get("/users/{user_id:int}", response_model=UserDetailResponse)
def get_user(
    user_id: int,
    _admin: Identity = Depends(require_admin),
    accounts: AccountService = Depends(get_account_service),
) -> UserDetailResponse:
    return UserDetailResponse(data=UserDetail.from_user(accounts.get_user(user_id)))


@router.patch("/users/{user_id:int}", response_model=UserDetailResponse)
def update_user(
    user_id: int,
    body: ProfileUpdateRequest,
    _admin: Identity = Depends(require_admin),
    accounts: AccountService = Depends(get_account_service),
) -> UserDetailResponse:
    """Update another account's name, e-mail or role. No tokens are issued."""
    patch = ProfilePatch(**body.model_dump(exclude_unset=True))
    return UserDetailResponse(data=UserDetail.from_user(accounts.admin_update_user(user_id, patch)))


@router.delete("/users/{user_id:int}", response_model=MessageResponse)
def delete_user(
    user_id: int,
    _admin: Identity = Depends(require_admin),
    accounts: AccountService = Depends(get_account_service),
) -> MessageResponse:
    accounts.delete_user(user_id)
    return MessageResponse(message=f"User {user_id} has been deleted successfully.")
