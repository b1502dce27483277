"""
API request and response models for the account service REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

No response model has a password field. UserResponse is built from
User.without_password(), so even a mapping mistake cannot leak the hash.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from auth.models import UserPage
from auth.tokens import MAX_PASSWORD_BYTES

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Deliberately loose: one @, no whitespace, a dot in the domain. Deliverability
# is not our problem; the UNIQUE constraint is exact-match on whatever passes.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

# Character bounds. bcrypt's 72-byte limit is checked separately by
# _check_password_bytes: multibyte text reaches it well before 72 characters.
PASSWORD_MIN_LENGTH = 6
PASSWORD_MAX_LENGTH = 72


def _check_password_bytes(value: Optional[str]) -> Optional[str]:
    if value is not None and len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes when UTF-8 encoded.")
    return value


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /auth/register."""

    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        return _check_password_bytes(value)


class LoginRequest(BaseModel):
    """Request body for POST /auth/login.

    No email pattern or password minimum here: a malformed login should get
    the same 401 as a wrong one, not a validation error that says more.
    """

    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=PASSWORD_MAX_LENGTH)


class UserPatch(BaseModel):
    """Request body for PATCH /users/{user_id}. At least one field is required."""

    email: Optional[str] = Field(default=None, max_length=255, pattern=EMAIL_PATTERN)
    password: Optional[str] = Field(default=None, min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: Optional[str]) -> Optional[str]:
        return _check_password_bytes(value)

    @model_validator(mode="after")
    def require_one_field(self) -> "UserPatch":
        if self.email is None and self.password is None:
            raise ValueError("Provide at least one of: email, password.")
        return self


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class RoleAssignmentResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: Optional[int] = None
    role: str
    created_at: Optional[str] = None


class UserResponse(BaseModel):
    """A user as clients see it -- no password field, ever."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    created_at: str
    updated_at: str
    roles: list[RoleAssignmentResponse] = Field(default_factory=list)

    @classmethod
    def from_public(cls, data: dict) -> "UserResponse":
        """Build from the dict returned by User.without_password()."""
        return cls(
            id=data["id"],
            email=data["email"],
            created_at=data.get("created_at") or "",
            updated_at=data.get("updated_at") or "",
            roles=[
                RoleAssignmentResponse(id=r.get("id"), role=r["role"], created_at=r.get("created_at"))
                for r in data.get("roles") or []
            ],
        )


class AuthResponse(BaseModel):
    """Response body for POST /auth/register and POST /auth/login."""

    model_config = ConfigDict(frozen=True)

    user: UserResponse
    access_token: str
    token_type: str = "bearer"


class UserListResponse(BaseModel):
    """Response body for GET /users."""

    model_config = ConfigDict(frozen=True)

    users: list[UserResponse]
    total: int
    page: int
    total_pages: int

    @classmethod
    def from_page(cls, page: UserPage) -> "UserListResponse":
        return cls(
            users=[UserResponse.from_public(u.without_password()) for u in page.users],
            total=page.total,
            page=page.page,
            total_pages=page.total_pages,
        )


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
