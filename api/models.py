"""
API request and response models for TaskBoard REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
projects/models.py, which own the internal domain representation. Route
handlers map between the two. Password hashes never appear in a response model.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from auth.tokens import MAX_PASSWORD_BYTES

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MIN_PASSWORD_LENGTH = 8


def _normalize_email(value: object) -> object:
    return value.strip().lower() if isinstance(value, str) else value


def _check_password_bytes(value: str) -> str:
    """bcrypt ignores everything past 72 bytes; refuse instead of truncating."""
    if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes.")
    return value


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class TaskStatusEnum(str, Enum):
    pending = "pending"
    on_hold = "on_hold"
    in_progress = "in_progress"
    under_review = "under_review"
    completed = "completed"


class RoleEnum(str, Enum):
    owner = "owner"
    member = "member"


# ---------------------------------------------------------------------------
# Shared envelopes
# ---------------------------------------------------------------------------


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


class MessageResponse(BaseModel):
    """Plain confirmation returned by state-changing auth and project routes."""

    model_config = ConfigDict(frozen=True)

    message: str


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Auth -- request models
# ---------------------------------------------------------------------------


class _EmailField(BaseModel):
    email: EmailStr

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: object) -> object:
        """Lower-case before validation; storage compares normalized emails."""
        return _normalize_email(value)


class _NewPasswordFields(BaseModel):
    """password + password_confirmation with length and match checks."""

    password: str = Field(min_length=MIN_PASSWORD_LENGTH, max_length=255)
    password_confirmation: str = Field(max_length=255)

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        return _check_password_bytes(value)

    @model_validator(mode="after")
    def passwords_match(self) -> "_NewPasswordFields":
        if self.password != self.password_confirmation:
            raise ValueError("Passwords do not match.")
        return self


class RegisterRequest(_EmailField, _NewPasswordFields):
    """Request body for POST /api/v1/auth/create-account."""

    name: str = Field(min_length=1, max_length=255)


class EmailRequest(_EmailField):
    """Request body for POST /auth/request-code and /auth/forgot-password."""


class TokenRequest(BaseModel):
    """Request body for POST /auth/confirm-account and /auth/validate-token."""

    model_config = ConfigDict(str_strip_whitespace=True)

    token: str = Field(min_length=1, max_length=64)


class LoginRequest(_EmailField):
    """Request body for POST /api/v1/auth/login.

    No minimum length on the password here: a wrong password is an
    InvalidPassword failure, not a validation error.
    """

    password: str = Field(min_length=1, max_length=255)


class NewPasswordRequest(_NewPasswordFields):
    """Request body for POST /api/v1/auth/update-password/{token}."""


class ChangePasswordRequest(_NewPasswordFields):
    """Request body for POST /api/v1/auth/update-password (authenticated)."""

    current_password: str = Field(min_length=1, max_length=255)


class CheckPasswordRequest(BaseModel):
    """Request body for POST /api/v1/auth/check-password."""

    password: str = Field(min_length=1, max_length=255)


class ProfileUpdate(_EmailField):
    """Request body for PUT /api/v1/auth/profile."""

    name: str = Field(min_length=1, max_length=255)


# ---------------------------------------------------------------------------
# Auth -- response models
# ---------------------------------------------------------------------------


class LoginResponse(BaseModel):
    """Response for POST /api/v1/auth/login."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int


class AccountResponse(BaseModel):
    """Response for GET /api/v1/auth/user."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    email: str
    confirmed: bool


class MemberResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    email: str


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------


class ProjectCreate(BaseModel):
    """Request body for POST /projects and PUT /projects/{id}."""

    model_config = ConfigDict(str_strip_whitespace=True)

    project_name: str = Field(min_length=1, max_length=255)
    client_name: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=1, max_length=5000)


class ProjectResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    project_name: str
    client_name: str
    description: str
    owner_id: int
    member_ids: list[int] = Field(default_factory=list)
    role: RoleEnum
    created_at: str


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


class TaskCreate(BaseModel):
    """Request body for POST /projects/{id}/tasks and PUT .../tasks/{task_id}."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=1, max_length=5000)


class TaskStatusUpdate(BaseModel):
    """Request body for POST .../tasks/{task_id}/status."""

    status: TaskStatusEnum


class TaskResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    project_id: int
    name: str
    description: str
    status: str
    status_changed_by: Optional[int] = None
    created_at: str


# ---------------------------------------------------------------------------
# Team
# ---------------------------------------------------------------------------


class TeamFindRequest(_EmailField):
    """Request body for POST /projects/{id}/team/find."""


class TeamAddRequest(BaseModel):
    """Request body for POST /projects/{id}/team."""

    id: int = Field(gt=0)


# ---------------------------------------------------------------------------
# Notes
# ---------------------------------------------------------------------------


class NoteCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    content: str = Field(min_length=1, max_length=5000)


class NoteResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    task_id: int
    content: str
    created_by: int
    created_at: str
