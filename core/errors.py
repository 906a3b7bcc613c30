"""
core/errors.py -- Typed error taxonomy shared by every layer.

Every operation-level failure is raised as an AppError subclass carrying an
HTTP status code, a machine-readable code and a caller-facing message. The
exception handlers in api/main.py are the only place these are turned into
HTTP responses; auth/ and core/ never import fastapi to signal a failure.

Hierarchy:
  ValidationError (400)
    MissingFieldError, InvalidPasswordError, InvalidRoleError
  AuthenticationError (401)
    InvalidTokenError
  AuthorizationError (403)
  NotFoundError (404)
  ConflictError (409)
  InternalError (500)
    ConfigurationError

Layer rule: core/ is the kernel. No imports from api/ or auth/.
"""

from __future__ import annotations


class AppError(Exception):
    """Base class for all typed application errors."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def __repr__(self) -> str:
        return f"{type(self).__name__}(status_code={self.status_code}, code={self.code!r}, message={self.message!r})"


# ---------------------------------------------------------------------------
# 4xx
# ---------------------------------------------------------------------------


class ValidationError(AppError):
    status_code = 400
    code = "validation_error"


class MissingFieldError(ValidationError):
    """A required input field was absent or blank."""

    code = "missing_field"


class InvalidPasswordError(ValidationError):
    """The password does not satisfy the password policy."""

    code = "invalid_password"


class InvalidRoleError(ValidationError):
    code = "invalid_role"


class AuthenticationError(AppError):
    """Bad credentials, or a missing / invalid / expired credential."""

    status_code = 401
    code = "unauthorized"


class InvalidTokenError(AuthenticationError):
    code = "invalid_token"


class AuthorizationError(AppError):
    """Authenticated, but the role is not allowed to do this."""

    status_code = 403
    code = "forbidden"


class NotFoundError(AppError):
    status_code = 404
    code = "not_found"


class ConflictError(AppError):
    """A unique field (name or email) is already claimed."""

    status_code = 409
    code = "conflict"


# ---------------------------------------------------------------------------
# 5xx
# ---------------------------------------------------------------------------


class InternalError(AppError):
    """Unexpected failure. The message is hidden from clients outside debug mode."""

    status_code = 500
    code = "internal_error"


class ConfigurationError(InternalError):
    """The service is misconfigured (e.g. a signing secret is missing)."""

    code = "configuration_error"
