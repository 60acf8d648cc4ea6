"""Tests for AccountService.

Uses the in-memory user repository and a mocked avatar storage backend.
Covers registration rules, login by email or username, token refresh,
and the self-service account changes.
"""

from __future__ import annotations

import io
from unittest.mock import AsyncMock

import pytest
from fastapi import HTTPException, UploadFile

from src.meeting_tracker.core.errors import (
    AccessDenied,
    Conflict,
    Unauthorized,
    ValidationError,
)
from src.meeting_tracker.core.security import (
    create_access_token,
    create_refresh_token,
    verify_password,
    verify_token,
)
from src.meeting_tracker.users.accounts import AccountService, issue_tokens
from src.meeting_tracker.users.schemas import LoginRequest, UserCreate, UserRole, UserUpdate
from tests.conftest import PASSWORD


@pytest.fixture
def avatar_storage():
    storage = AsyncMock()
    storage.upload = AsyncMock(return_value="https://cdn.test/avatars/a.png")
    return storage


@pytest.fixture
def accounts(user_repo, avatar_storage):
    return AccountService(users=user_repo, avatar_storage=avatar_storage)


def _registration(manager_id, **overrides) -> UserCreate:
    defaults = {
        "username": "Carol_1",
        "email": "Carol@Example.com",
        "password": "secret123",
        "full_name": " Carol King ",
        "department": "Sales",
        "employee_id": "emp-9",
        "manager_id": manager_id,
    }
    defaults.update(overrides)
    return UserCreate(**defaults)


def _upload(name: str = "me.png") -> UploadFile:
    return UploadFile(file=io.BytesIO(b"\x89PNG fake"), filename=name)


# ── Registration ─────────────────────────────────────────────────────────────


class TestRegister:

    @pytest.mark.asyncio
    async def test_register_normalizes_and_hashes(self, accounts, manager):
        user = await accounts.register(_registration(manager.id))

        assert user.username == "carol_1"
        assert user.email == "carol@example.com"
        assert user.employee_id == "EMP-9"
        assert user.full_name == "Carol King"
        assert user.role == UserRole.STAFF
        assert user.avatar is None
        assert verify_password("secret123", user.hashed_password)

    @pytest.mark.asyncio
    async def test_register_with_avatar(self, accounts, manager, avatar_storage):
        user = await accounts.register(_registration(manager.id), _upload())

        assert user.avatar == "https://cdn.test/avatars/a.png"
        avatar_storage.upload.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unsupported_avatar_type_rejected(self, accounts, manager, user_repo):
        before = len(user_repo.users)
        with pytest.raises(ValidationError):
            await accounts.register(_registration(manager.id), _upload("me.exe"))
        assert len(user_repo.users) == before

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "field, value",
        [("username", "alice"), ("email", "alice@example.com"), ("employee_id", "ALICE")],
    )
    async def test_duplicate_identity_conflicts(self, accounts, manager, alice, field, value):
        with pytest.raises(Conflict):
            await accounts.register(_registration(manager.id, **{field: value}))

    @pytest.mark.asyncio
    async def test_manager_id_must_be_a_manager(self, accounts, alice):
        with pytest.raises(ValidationError):
            await accounts.register(_registration(alice.id))

    def test_staff_without_manager_rejected_by_schema(self):
        with pytest.raises(ValueError):
            _registration(None)

    @pytest.mark.asyncio
    async def test_manager_registration_drops_manager_id(self, accounts, manager):
        user = await accounts.register(
            _registration(manager.id, role=UserRole.MANAGER)
        )
        assert user.role == UserRole.MANAGER
        assert user.manager_id is None


# ── Login / Refresh ──────────────────────────────────────────────────────────


class TestLogin:

    @pytest.mark.asyncio
    async def test_login_by_username_or_email(self, accounts, alice):
        by_name, tokens = await accounts.login(LoginRequest(username="Alice", password=PASSWORD))
        by_email, _ = await accounts.login(LoginRequest(email="alice@example.com", password=PASSWORD))

        assert by_name.id == by_email.id == alice.id
        assert by_name.last_login is not None
        payload = verify_token(tokens.access_token)
        assert payload["sub"] == str(alice.id)
        assert payload["role"] == "staff"
        assert payload["username"] == "alice"

    @pytest.mark.asyncio
    async def test_wrong_password(self, accounts, alice):
        with pytest.raises(Unauthorized):
            await accounts.login(LoginRequest(username="alice", password="nope"))

    @pytest.mark.asyncio
    async def test_unknown_user(self, accounts):
        with pytest.raises(Unauthorized):
            await accounts.login(LoginRequest(username="nobody", password=PASSWORD))

    @pytest.mark.asyncio
    async def test_deactivated_account(self, accounts, alice, user_repo):
        await user_repo.update_user(alice.id, is_active=False)
        with pytest.raises(AccessDenied):
            await accounts.login(LoginRequest(username="alice", password=PASSWORD))

    def test_login_requires_identifier(self):
        with pytest.raises(ValueError):
            LoginRequest(password=PASSWORD)

    @pytest.mark.asyncio
    async def test_refresh_issues_new_pair(self, accounts, alice):
        tokens = issue_tokens(alice)

        refreshed = await accounts.refresh(tokens.refresh_token)

        assert verify_token(refreshed.access_token)["sub"] == str(alice.id)
        assert verify_token(refreshed.refresh_token, "refresh")["sub"] == str(alice.id)

    @pytest.mark.asyncio
    async def test_refresh_rejects_access_token(self, accounts, alice):
        with pytest.raises(HTTPException):
            await accounts.refresh(issue_tokens(alice).access_token)

    @pytest.mark.asyncio
    async def test_refresh_for_deactivated_user(self, accounts, alice, user_repo):
        tokens = issue_tokens(alice)
        await user_repo.update_user(alice.id, is_active=False)
        with pytest.raises(Unauthorized):
            await accounts.refresh(tokens.refresh_token)

    @pytest.mark.asyncio
    async def test_refresh_with_non_uuid_subject(self, accounts):
        with pytest.raises(Unauthorized):
            await accounts.refresh(create_refresh_token({"sub": "not-a-uuid"}))

    def test_access_claims(self, manager):
        payload = verify_token(issue_tokens(manager).access_token)
        assert payload["email"] == "maria@example.com"
        assert payload["department"] == "Engineering"


# ── Self-Service Changes ─────────────────────────────────────────────────────


class TestAccountChanges:

    @pytest.mark.asyncio
    async def test_change_password(self, accounts, alice, user_repo):
        await accounts.change_password(alice, PASSWORD, "newsecret")
        assert verify_password("newsecret", user_repo.users[alice.id].hashed_password)

    @pytest.mark.asyncio
    async def test_change_password_wrong_old(self, accounts, alice):
        with pytest.raises(ValidationError, match="Invalid old password"):
            await accounts.change_password(alice, "wrong", "newsecret")

    @pytest.mark.asyncio
    async def test_update_details(self, accounts, alice):
        user = await accounts.update_details(alice, UserUpdate(job_title="Lead", department="Ops"))
        assert user.job_title == "Lead"
        assert user.department == "Ops"
        assert user.full_name == "Alice Smith"

    @pytest.mark.asyncio
    async def test_update_details_requires_a_field(self, accounts, alice):
        with pytest.raises(ValidationError):
            await accounts.update_details(alice, UserUpdate())

    @pytest.mark.asyncio
    async def test_update_email_taken(self, accounts, alice, bob):
        with pytest.raises(Conflict):
            await accounts.update_details(alice, UserUpdate(email="bob@example.com"))

    @pytest.mark.asyncio
    async def test_update_email_to_own(self, accounts, alice):
        user = await accounts.update_details(alice, UserUpdate(email="ALICE@example.com"))
        assert user.email == "alice@example.com"

    @pytest.mark.asyncio
    async def test_update_avatar(self, accounts, alice):
        user = await accounts.update_avatar(alice, _upload("new.jpg"))
        assert user.avatar == "https://cdn.test/avatars/a.png"

    @pytest.mark.asyncio
    async def test_deactivate(self, accounts, alice, user_repo):
        await accounts.deactivate(alice)
        assert user_repo.users[alice.id].is_active is False

    def test_issued_access_token_is_for_access_only(self, alice):
        token = create_access_token({"sub": str(alice.id)})
        with pytest.raises(HTTPException):
            verify_token(token, "refresh")
