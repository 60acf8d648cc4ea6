"""AccountService -- registration, login and self-service account changes.

Token issuing and password hashing come from ``core.security``; avatar
files go through the AvatarStorage collaborator.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

import structlog
from fastapi import UploadFile

from src.meeting_tracker.core.errors import (
    AccessDenied,
    Conflict,
    NotFound,
    Unauthorized,
    ValidationError,
)
from src.meeting_tracker.core.security import (
    create_access_token,
    create_refresh_token,
    hash_password,
    verify_password,
    verify_token,
)
from src.meeting_tracker.users.repository import UserRepository
from src.meeting_tracker.users.schemas import (
    LoginRequest,
    TokenResponse,
    User,
    UserCreate,
    UserRole,
    UserUpdate,
)
from src.meeting_tracker.users.storage import AvatarStorage, store_upload

logger = structlog.get_logger(__name__)


def issue_tokens(user: User) -> TokenResponse:
    """Access token with identity and role claims plus a refresh token."""
    claims = {
        "sub": str(user.id),
        "email": user.email,
        "username": user.username,
        "role": user.role.value,
        "department": user.department,
    }
    return TokenResponse(
        access_token=create_access_token(claims),
        refresh_token=create_refresh_token({"sub": str(user.id)}),
    )


class AccountService:
    """Account lifecycle on top of UserRepository.

    Args:
        users: User persistence.
        avatar_storage: Storage collaborator for profile images.
    """

    def __init__(self, users: UserRepository, avatar_storage: AvatarStorage) -> None:
        self._users = users
        self._avatar_storage = avatar_storage

    async def register(self, data: UserCreate, avatar: UploadFile | None = None) -> User:
        """Create an account, uploading the avatar first when one is given.

        Raises:
            Conflict: Username, email or employee id already taken.
            ValidationError: manager_id does not name an active manager.
            ExternalServiceError: Avatar upload failed.
        """
        if await self._users.find_conflicts(data.username, data.email, data.employee_id):
            raise Conflict("User with this username, email or employee id already exists")

        if data.manager_id is not None:
            manager = await self._users.get_user(data.manager_id)
            if manager is None or manager.role != UserRole.MANAGER or not manager.is_active:
                raise ValidationError("manager_id must reference an active manager")

        avatar_url = None
        if avatar is not None and avatar.filename:
            avatar_url = await store_upload(self._avatar_storage, avatar)

        user = User(
            username=data.username,
            email=data.email,
            full_name=data.full_name,
            hashed_password=hash_password(data.password),
            role=data.role,
            department=data.department,
            job_title=data.job_title,
            employee_id=data.employee_id,
            avatar=avatar_url,
            manager_id=data.manager_id,
            timezone=data.timezone,
        )
        return await self._users.create_user(user)

    async def login(self, credentials: LoginRequest) -> tuple[User, TokenResponse]:
        """Authenticate by email or username and stamp last_login.

        Raises:
            Unauthorized: Unknown account or wrong password.
            AccessDenied: Account is deactivated.
        """
        user = await self._users.find_by_email_or_username(
            email=credentials.email, username=credentials.username
        )
        if user is None or not user.hashed_password:
            raise Unauthorized("Invalid user credentials")
        if not verify_password(credentials.password, user.hashed_password):
            raise Unauthorized("Invalid user credentials")
        if not user.is_active:
            raise AccessDenied("Account is deactivated")

        user = await self._users.update_user(user.id, last_login=datetime.now(timezone.utc))
        logger.info("user.logged_in", user_id=str(user.id))
        return user, issue_tokens(user)

    async def refresh(self, refresh_token: str) -> TokenResponse:
        payload = verify_token(refresh_token, token_type="refresh")
        user = await self._users.get_user(_subject(payload))
        if user is None or not user.is_active:
            raise Unauthorized("User not found or inactive")
        return issue_tokens(user)

    async def change_password(self, user: User, old_password: str, new_password: str) -> None:
        current = await self._users.get_user(user.id)
        if current is None:
            raise NotFound("User not found")
        if not verify_password(old_password, current.hashed_password):
            raise ValidationError("Invalid old password")
        await self._users.update_user(user.id, hashed_password=hash_password(new_password))
        logger.info("user.password_changed", user_id=str(user.id))

    async def update_details(self, user: User, patch: UserUpdate) -> User:
        fields = {name: getattr(patch, name) for name in patch.model_fields_set}
        fields = {k: v for k, v in fields.items() if v is not None}
        if not fields:
            raise ValidationError("At least one field is required")

        if "email" in fields:
            existing = await self._users.find_by_email_or_username(email=fields["email"])
            if existing is not None and existing.id != user.id:
                raise Conflict("Email already exists")

        return await self._users.update_user(user.id, **fields)

    async def update_avatar(self, user: User, avatar: UploadFile) -> User:
        if not avatar.filename:
            raise ValidationError("Avatar file is required")
        url = await store_upload(self._avatar_storage, avatar)
        return await self._users.update_user(user.id, avatar=url)

    async def deactivate(self, user: User) -> None:
        await self._users.update_user(user.id, is_active=False)
        logger.info("user.deactivated", user_id=str(user.id))


def _subject(payload: dict) -> uuid.UUID:
    try:
        return uuid.UUID(str(payload["sub"]))
    except (KeyError, ValueError):
        raise Unauthorized("Invalid token subject")
