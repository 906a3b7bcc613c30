"""
auth/service.py -- The account service: credential checks, session issuance,
and every account mutation.

Collaborators are constructor-injected (store, token service, hasher), so the
service holds no module-level singletons and tests can substitute any of them.

Session protocol (all stateless, one call per HTTP request):
  register        -> validate, reject claimed name/email, hash, create, issue pair
  authenticate    -> look up by email or name, verify bcrypt hash, issue pair
  refresh         -> verify refresh token, re-read account, issue access token only
  update_profile  -> apply present fields, persist, issue a fresh pair
  change_password -> verify current password, validate new one, persist, issue pair
  delete_account  -> verify password, delete

Every failure is raised as a typed error from core.errors before the store is
touched, so a rejected call never leaves a partial mutation behind.

Login failure policy: an unknown identifier and a wrong password both raise
the same AuthenticationError("Invalid credentials."), and bcrypt runs against
a dummy hash when the account does not exist so response time does not reveal
which case occurred.

Stale claims: tokens issued before a name/role change keep the old claims
until they expire. The gate re-reads the account on each request and the
refresh path mints from the current record, which bounds the window to the
lifetime of access tokens already in flight for other sessions.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging

from email_validator import EmailNotValidError, validate_email

from auth.models import Identity, ProfilePatch, Role, TokenPair, User, parse_role
from auth.passwords import PasswordHasher, validate_password
from auth.store import UserStore
from auth.tokens import TokenService
from core.config import Settings
from core.errors import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    MissingFieldError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger("accounts.auth")

NAME_MIN_LEN = 3
NAME_MAX_LEN = 100

_BAD_CREDENTIALS = "Invalid credentials."


def _present(value: str | None) -> bool:
    return value is not None and value.strip() != ""


def normalize_name(name: str) -> str:
    """Strip surrounding whitespace and enforce the 3-100 character rule."""
    name = name.strip()
    if not (NAME_MIN_LEN <= len(name) <= NAME_MAX_LEN):
        raise ValidationError(
            f"Name must be between {NAME_MIN_LEN} and {NAME_MAX_LEN} characters.",
            code="invalid_name",
        )
    return name


def normalize_email(email: str) -> str:
    """Return the normalized form of email, or raise ValidationError.

    Syntax only -- no DNS deliverability lookup.
    """
    try:
        info = validate_email(email.strip(), check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValidationError(f"Invalid e-mail address: {exc}", code="invalid_email") from None
    return info.normalized


class AccountService:
    """Orchestrates credential testing, token issuance and account mutation."""

    def __init__(self, store: UserStore, tokens: TokenService, hasher: PasswordHasher) -> None:
        self.store = store
        self.tokens = tokens
        self.hasher = hasher
        # Timing equalization: computed once with the configured cost so an
        # unknown identifier costs the same bcrypt work as a wrong password.
        self._dummy_hash = hasher.hash("timing-equalization-dummy")

    @classmethod
    def from_settings(cls, settings: Settings, store: UserStore) -> AccountService:
        """Wire a service from application settings."""
        tokens = TokenService(
            settings.jwt_secret,
            settings.jwt_refresh_secret,
            access_expire_seconds=settings.access_token_expire_seconds,
            refresh_expire_seconds=settings.refresh_token_expire_seconds,
        )
        return cls(store, tokens, PasswordHasher(rounds=settings.bcrypt_rounds))

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def register(self, name: str | None, email: str | None, password: str | None) -> tuple[User, TokenPair]:
        if not (_present(name) and _present(email) and password):
            raise MissingFieldError("You need a name, an e-mail and a password to create a user account.")
        user = self._create(name, email, password, Role.USER)
        logger.info("Registered user id=%s", user.id)
        return user, self.tokens.issue_pair(user.identity)

    def create_account(self, name: str, email: str, password: str, role: str | Role = Role.USER) -> User:
        """Create an account with an explicit role and no session (admin CLI)."""
        if not (_present(name) and _present(email) and password):
            raise MissingFieldError("A name, an e-mail and a password are required.")
        return self._create(name, email, password, parse_role(role))

    def _create(self, name: str, email: str, password: str, role: Role) -> User:
        name = normalize_name(name)
        email = normalize_email(email)
        if self.store.find_by_email(email) is not None:
            raise ConflictError(f"E-mail {email} is already in use, please try a different one.")
        if self.store.find_by_name(name) is not None:
            raise ConflictError(f"Username {name} is already in use, please try a different one.")
        validate_password(password)
        return self.store.create(
            User(name=name, email=email, password_hash=self.hasher.hash(password), role=role)
        )

    def authenticate(
        self, password: str | None, name: str | None = None, email: str | None = None
    ) -> tuple[User, TokenPair]:
        """Log in with a password plus a name or an email (email wins if both are given)."""
        if not password or not (_present(name) or _present(email)):
            raise MissingFieldError("A password and a name or an e-mail are required to log in.")
        if _present(email):
            user = self.store.find_by_email(_lookup_email(email))
        else:
            user = self.store.find_by_name(name.strip())

        if user is None:
            self.hasher.verify(password, self._dummy_hash)
            logger.info("Login failed: unknown identifier")
            raise AuthenticationError(_BAD_CREDENTIALS)
        if not self.hasher.verify(password, user.password_hash):
            logger.info("Login failed: wrong password for user id=%s", user.id)
            raise AuthenticationError(_BAD_CREDENTIALS)
        return user, self.tokens.issue_pair(user.identity)

    def refresh(self, refresh_token: str | None) -> str:
        """Mint a new access token from a refresh token. The refresh token is not rotated."""
        if not refresh_token:
            raise MissingFieldError("Missing refresh token.")
        claims = self.tokens.verify_refresh_token(refresh_token)
        user = self.store.find_by_id(claims.id)
        if user is None:
            raise AuthenticationError("Account no longer exists.")
        return self.tokens.issue_access_token(user.identity)

    # ------------------------------------------------------------------
    # Self-service
    # ------------------------------------------------------------------

    def get_profile(self, user_id: int) -> User:
        return self._get(user_id)

    def update_profile(self, identity: Identity, patch: ProfilePatch) -> tuple[User, TokenPair]:
        """Apply a partial update to the caller's own account and re-issue tokens.

        Changing one's own role requires the caller to hold ADMIN; otherwise a
        USER could promote themselves.
        """
        user = self._get(identity.id)
        if patch.role is not None and parse_role(patch.role) != user.role and user.role != Role.ADMIN:
            raise AuthorizationError("Only administrators can change roles.")
        user = self._apply_patch(user, patch)
        return user, self.tokens.issue_pair(user.identity)

    def change_password(
        self, user_id: int, current_password: str | None, new_password: str | None
    ) -> tuple[User, TokenPair]:
        if not current_password or not new_password:
            raise MissingFieldError("Both the current password and the new password are required.")
        user = self._get(user_id)
        if not self.hasher.verify(current_password, user.password_hash):
            raise AuthenticationError("Incorrect password.")
        if new_password == current_password:
            raise ValidationError("New password cannot be the same as the old one.", code="password_reused")
        validate_password(new_password)
        user.password_hash = self.hasher.hash(new_password)
        user = self._save(user)
        logger.info("Password changed for user id=%s", user.id)
        return user, self.tokens.issue_pair(user.identity)

    def delete_account(self, user_id: int, password: str | None) -> None:
        if not password:
            raise MissingFieldError("Your password is required to delete your account.")
        user = self._get(user_id)
        if not self.hasher.verify(password, user.password_hash):
            raise AuthenticationError("Cannot delete user account: incorrect password.")
        self.store.delete(user.id)

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def list_users(self) -> list[User]:
        return self.store.list_users()

    def get_user(self, user_id: int) -> User:
        return self._get(user_id)

    def admin_update_user(self, user_id: int, patch: ProfilePatch) -> User:
        if patch.is_empty():
            raise ValidationError("No fields to update.", code="no_changes")
        return self._apply_patch(self._get(user_id), patch)

    def delete_user(self, user_id: int) -> None:
        if not self.store.delete(user_id):
            raise NotFoundError("User not found.")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get(self, user_id: int) -> User:
        user = self.store.find_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found.")
        return user

    def _save(self, user: User) -> User:
        try:
            return self.store.save(user)
        except LookupError:
            raise NotFoundError("User not found.") from None

    def _apply_patch(self, user: User, patch: ProfilePatch) -> User:
        # Validate everything before touching the record.
        name = normalize_name(patch.name) if patch.name is not None else None
        email = normalize_email(patch.email) if patch.email is not None else None
        role = parse_role(patch.role) if patch.role is not None else None

        if name is not None and name != user.name:
            other = self.store.find_by_name(name)
            if other is not None and other.id != user.id:
                raise ConflictError(f"Username {name} is already in use, please try a different one.")
            user.name = name
        if email is not None and email != user.email:
            other = self.store.find_by_email(email)
            if other is not None and other.id != user.id:
                raise ConflictError(f"E-mail {email} is already in use, please try a different one.")
            user.email = email
        if role is not None:
            user.role = role
        return self._save(user)


def _lookup_email(email: str) -> str:
    # Login must find accounts stored in normalized form, but a malformed
    # address is simply a non-match rather than a validation error.
    try:
        return normalize_email(email)
    except ValidationError:
        return email.strip()
