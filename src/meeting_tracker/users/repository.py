"""User repository -- async CRUD and directory lookups.

Uses the session_factory callable pattern shared with MeetingRepository.
Serialization between the UserModel row and the User schema is handled by
``_model_to_user``.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable, Sequence
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.meeting_tracker.users.models import UserModel
from src.meeting_tracker.users.schemas import User, UserRole

logger = structlog.get_logger(__name__)

# Columns a caller may change through update_user
_UPDATABLE_FIELDS = frozenset({
    "email",
    "full_name",
    "department",
    "job_title",
    "timezone",
    "avatar",
    "hashed_password",
    "is_active",
    "last_login",
})


# ── Serialization Helpers ───────────────────────────────────────────────────


def _model_to_user(model: UserModel) -> User:
    """Convert UserModel to User schema."""
    return User(
        id=model.id,
        username=model.username,
        email=model.email,
        full_name=model.full_name,
        hashed_password=model.hashed_password,
        role=UserRole(model.role),
        department=model.department,
        job_title=model.job_title,
        employee_id=model.employee_id,
        avatar=model.avatar,
        manager_id=model.manager_id,
        timezone=model.timezone or "UTC",
        is_active=model.is_active,
        last_login=model.last_login,
        created_at=model.created_at,
        updated_at=model.updated_at or model.created_at,
    )


# ── Repository ──────────────────────────────────────────────────────────────


class UserRepository:
    """Async persistence and lookups for user accounts.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    async def create_user(self, user: User) -> User:
        """Persist a new user.

        Args:
            user: User with a hashed password already set.

        Returns:
            The stored User with server-side timestamps.
        """
        async for session in self._session_factory():
            model = UserModel(
                id=user.id,
                username=user.username,
                email=user.email,
                full_name=user.full_name,
                hashed_password=user.hashed_password,
                role=user.role.value,
                department=user.department,
                job_title=user.job_title,
                employee_id=user.employee_id,
                avatar=user.avatar,
                manager_id=user.manager_id,
                timezone=user.timezone,
                is_active=user.is_active,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            logger.info("user.created", user_id=str(model.id), role=model.role)
            return _model_to_user(model)

    async def get_user(self, user_id: uuid.UUID) -> User | None:
        async for session in self._session_factory():
            model = await session.get(UserModel, user_id)
            return _model_to_user(model) if model else None

    async def get_users(self, user_ids: Sequence[uuid.UUID]) -> list[User]:
        """Fetch several users at once, in the order requested.

        Missing ids are skipped.
        """
        if not user_ids:
            return []
        async for session in self._session_factory():
            stmt = select(UserModel).where(UserModel.id.in_(list(user_ids)))
            result = await session.execute(stmt)
            by_id = {m.id: _model_to_user(m) for m in result.scalars().all()}
            return [by_id[uid] for uid in user_ids if uid in by_id]

    async def find_by_email_or_username(
        self, email: str | None = None, username: str | None = None
    ) -> User | None:
        """Look up an account by email or username (case-insensitive)."""
        conditions = []
        if email:
            conditions.append(UserModel.email == email.strip().lower())
        if username:
            conditions.append(UserModel.username == username.strip().lower())
        if not conditions:
            return None
        async for session in self._session_factory():
            stmt = select(UserModel).where(or_(*conditions)).limit(1)
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            return _model_to_user(model) if model else None

    async def find_conflicts(
        self, username: str, email: str, employee_id: str
    ) -> bool:
        """Return True if any of the unique identifiers is already taken."""
        async for session in self._session_factory():
            stmt = select(UserModel.id).where(
                or_(
                    UserModel.username == username,
                    UserModel.email == email,
                    UserModel.employee_id == employee_id,
                )
            ).limit(1)
            result = await session.execute(stmt)
            return result.first() is not None

    async def find_staff_by_manager(self, manager_id: uuid.UUID) -> list[User]:
        """Active staff members reporting to a manager, ordered by full name."""
        async for session in self._session_factory():
            stmt = (
                select(UserModel)
                .where(
                    UserModel.manager_id == manager_id,
                    UserModel.role == UserRole.STAFF.value,
                    UserModel.is_active == True,  # noqa: E712
                )
                .order_by(UserModel.full_name)
            )
            result = await session.execute(stmt)
            return [_model_to_user(m) for m in result.scalars().all()]

    async def find_by_name(self, name: str) -> User | None:
        """Exact match on full name, or case-insensitive username, among active users.

        Used to resolve assignee names produced by action-item extraction.
        """
        async for session in self._session_factory():
            stmt = (
                select(UserModel)
                .where(
                    or_(
                        UserModel.full_name == name.strip(),
                        UserModel.username == name.strip().lower(),
                    ),
                    UserModel.is_active == True,  # noqa: E712
                )
                .order_by(UserModel.created_at)
                .limit(1)
            )
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            return _model_to_user(model) if model else None

    async def update_user(self, user_id: uuid.UUID, **fields: Any) -> User:
        """Overwrite the given fields on a user.

        Raises:
            ValueError: If the user does not exist or a field is not updatable.
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not updatable: {sorted(unknown)}")

        async for session in self._session_factory():
            model = await session.get(UserModel, user_id)
            if model is None:
                raise ValueError(f"User not found: {user_id}")
            for key, value in fields.items():
                setattr(model, key, value)
            model.updated_at = datetime.now(timezone.utc)
            await session.commit()
            await session.refresh(model)
            return _model_to_user(model)
