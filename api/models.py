"""
API request and response models for the account service REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Conventions:
  - JSON field names are camelCase (accessToken, createdAt, newPassword);
    Python attributes stay snake_case via aliases. populate_by_name lets
    handlers build models with either spelling.
  - Request fields are Optional on purpose: presence rules live in the
    account service so a missing field is reported as 400 missing_field,
    distinct from a malformed value.
  - Success bodies use the {"status": "success", "data": ...} envelope;
    errors use {"status": "fail"|"error", "code", "message"}.
"""

from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from auth.models import Role, User

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /users/register."""

    name: Optional[str] = Field(default=None, max_length=255)
    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=255)


class LoginRequest(BaseModel):
    """Request body for POST /users/login. One of name or email is required."""

    name: Optional[str] = Field(default=None, max_length=255)
    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=255)


class ProfileUpdateRequest(BaseModel):
    """Request body for PUT /users and PATCH /users/{id}.

    Only the fields actually sent are applied; see model_dump(exclude_unset=True)
    in the handlers. role is matched case-insensitively against USER/ADMIN.
    """

    name: Optional[str] = Field(default=None, max_length=255)
    email: Optional[str] = Field(default=None, max_length=255)
    role: Optional[str] = Field(default=None, max_length=32)


class PasswordChangeRequest(BaseModel):
    """Request body for PUT /users/passwordChange.

    The current password is accepted as "password" or "oldPassword".
    """

    model_config = ConfigDict(populate_by_name=True)

    password: Optional[str] = Field(
        default=None,
        max_length=255,
        validation_alias=AliasChoices("password", "oldPassword"),
    )
    new_password: Optional[str] = Field(
        default=None,
        max_length=255,
        validation_alias=AliasChoices("newPassword", "new_password"),
    )


class PasswordConfirmation(BaseModel):
    """Request body for DELETE /users."""

    password: Optional[str] = Field(default=None, max_length=255)


# ---------------------------------------------------------------------------
# User representations
# ---------------------------------------------------------------------------


class UserSummary(BaseModel):
    """Public fields returned alongside a freshly issued session."""

    id: int
    name: str
    role: Role

    @classmethod
    def from_user(cls, user: User) -> "UserSummary":
        return cls(id=user.id, name=user.name, role=user.role)


class UserProfile(BaseModel):
    id: int
    name: str
    email: str
    role: Role

    @classmethod
    def from_user(cls, user: User) -> "UserProfile":
        return cls(id=user.id, name=user.name, email=user.email, role=user.role)


class UserDetail(BaseModel):
    """Admin view of an account. Never includes the password hash."""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    name: str
    email: str
    role: Role
    created_at: str = Field(alias="createdAt")
    updated_at: str = Field(alias="updatedAt")

    @classmethod
    def from_user(cls, user: User) -> "UserDetail":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            role=user.role,
            created_at=user.created_at or "",
            updated_at=user.updated_at or "",
        )


# ---------------------------------------------------------------------------
# Response envelopes
# ---------------------------------------------------------------------------


class SessionData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user: UserSummary
    access_token: str = Field(alias="accessToken")


class SessionResponse(BaseModel):
    """Body of register / login / profile update / password change responses.

    The refresh token is never in the body; it travels in the refreshToken cookie.
    """

    status: str = "success"
    data: SessionData


class AccessTokenData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(alias="accessToken")


class AccessTokenResponse(BaseModel):
    status: str = "success"
    data: AccessTokenData


class ProfileResponse(BaseModel):
    status: str = "success"
    data: UserProfile


class UserDetailResponse(BaseModel):
    status: str = "success"
    data: UserDetail


class UserListResponse(BaseModel):
    status: str = "success"
    data: list[UserDetail]


class MessageResponse(BaseModel):
    status: str = "success"
    message: str


class ErrorResponse(BaseModel):
    """Error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    status: str  # "fail" for 4xx, "error" for 5xx
    code: str
    message: str
    detail: Optional[Any] = None


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class PingResponse(BaseModel):
    status: str = "healthy"
    timestamp: str
    uptime: int


class LivenessResponse(BaseModel):
    status: str = "alive"
    timestamp: str


class ReadinessResponse(BaseModel):
    status: str  # "ready" | "not_ready"
    timestamp: str
    dependencies: dict[str, bool]


class DependencyCheck(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: str  # "healthy" | "degraded" | "unhealthy"
    response_time: int = Field(alias="responseTime")  # milliseconds
    message: Optional[str] = None


class DetailedHealthResponse(BaseModel):
    status: str
    timestamp: str
    uptime: int
    checks: dict[str, DependencyCheck]
    version: str
    environment: str
