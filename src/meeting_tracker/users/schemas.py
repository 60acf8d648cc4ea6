"""Pydantic v2 schemas for users and account endpoints.

``User`` is the domain representation handed around services (it carries
the password hash, which is excluded from serialization). Request and
response schemas for the account endpoints live alongside it.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator


USERNAME_PATTERN = r"^[a-zA-Z0-9_]+$"


class UserRole(str, Enum):
    """Two-level hierarchy: managers host meetings, staff attend them."""

    MANAGER = "manager"
    STAFF = "staff"


# ── Domain Model ─────────────────────────────────────────────────────────────


class User(BaseModel):
    """A manager or staff account."""

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    username: str
    email: str
    full_name: str
    hashed_password: str = Field(default="", exclude=True, repr=False)
    role: UserRole
    department: str
    job_title: str | None = None
    employee_id: str
    avatar: str | None = None
    manager_id: uuid.UUID | None = None
    timezone: str = "UTC"
    is_active: bool = True
    last_login: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_manager(self) -> bool:
        return self.role == UserRole.MANAGER

    @property
    def display_name(self) -> str:
        """Name used in prompts and emails: full name, falling back to username."""
        return self.full_name or self.username


class UserSummary(BaseModel):
    """Display fields for a user referenced from a meeting."""

    id: uuid.UUID
    username: str
    full_name: str
    email: str
    department: str | None = None
    job_title: str | None = None
    avatar: str | None = None

    @classmethod
    def from_user(cls, user: User) -> UserSummary:
        return cls(
            id=user.id,
            username=user.username,
            full_name=user.full_name,
            email=user.email,
            department=user.department,
            job_title=user.job_title,
            avatar=user.avatar,
        )


# ── Requests ─────────────────────────────────────────────────────────────────


class UserCreate(BaseModel):
    """Registration payload (submitted as multipart form fields)."""

    username: str = Field(..., min_length=3, max_length=20, pattern=USERNAME_PATTERN)
    email: EmailStr
    password: str = Field(..., min_length=6)
    full_name: str = Field(..., min_length=2, max_length=50)
    role: UserRole = UserRole.STAFF
    department: str = Field(..., min_length=1, max_length=30)
    job_title: str | None = Field(None, max_length=50)
    employee_id: str = Field(..., min_length=1, max_length=50)
    manager_id: uuid.UUID | None = None
    timezone: str = "UTC"

    @field_validator("username", "email")
    @classmethod
    def _lowercase(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("employee_id")
    @classmethod
    def _uppercase(cls, value: str) -> str:
        return value.strip().upper()

    @field_validator("full_name", "department")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()

    @model_validator(mode="after")
    def _staff_requires_manager(self) -> UserCreate:
        if self.role == UserRole.STAFF and self.manager_id is None:
            raise ValueError("manager_id is required for staff members")
        if self.role == UserRole.MANAGER:
            self.manager_id = None
        return self


class UserUpdate(BaseModel):
    """Account details a user may change on their own profile."""

    full_name: str | None = Field(None, min_length=2, max_length=50)
    email: EmailStr | None = None
    department: str | None = Field(None, min_length=1, max_length=30)
    job_title: str | None = Field(None, max_length=50)
    timezone: str | None = None

    @field_validator("email")
    @classmethod
    def _lowercase(cls, value: str | None) -> str | None:
        return value.strip().lower() if value else value


class LoginRequest(BaseModel):
    """Login with either email or username."""

    email: str | None = Field(None, description="User email address")
    username: str | None = Field(None, description="Username")
    password: str = Field(..., min_length=1, description="User password")

    @model_validator(mode="after")
    def _identifier_present(self) -> LoginRequest:
        if not (self.email or self.username):
            raise ValueError("username or email is required")
        return self


class TokenRefreshRequest(BaseModel):
    """Request schema to refresh an access token."""

    refresh_token: str = Field(..., description="Valid refresh token")


class ChangePasswordRequest(BaseModel):
    old_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6)


# ── Responses ────────────────────────────────────────────────────────────────


class TokenResponse(BaseModel):
    """Response schema with access and refresh tokens."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class UserResponse(BaseModel):
    """Public view of an account."""

    id: str
    username: str
    email: str
    full_name: str
    role: str
    department: str
    job_title: str | None = None
    employee_id: str
    avatar: str | None = None
    manager_id: str | None = None
    timezone: str
    is_active: bool
    last_login: str | None = None

    @classmethod
    def from_user(cls, user: User) -> UserResponse:
        return cls(
            id=str(user.id),
            username=user.username,
            email=user.email,
            full_name=user.full_name,
            role=user.role.value,
            department=user.department,
            job_title=user.job_title,
            employee_id=user.employee_id,
            avatar=user.avatar,
            manager_id=str(user.manager_id) if user.manager_id else None,
            timezone=user.timezone,
            is_active=user.is_active,
            last_login=user.last_login.isoformat() if user.last_login else None,
        )


class LoginResponse(TokenResponse):
    user: UserResponse
