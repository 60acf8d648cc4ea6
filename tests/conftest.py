"""Shared fixtures for meeting tracker tests.

Provides:
- InMemoryUserRepository / InMemoryMeetingRepository test doubles that
  mirror the SQLAlchemy repositories without a database
- A manager with two staff members, an unrelated manager and their staff
- A MeetingLifecycleEngine wired to a mocked Vexa client, a real
  ActionItemExtractor (completion patched per test) and a dispatcher with a
  mocked email service
- A fixed clock so "future" and "past" are deterministic
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from src.meeting_tracker.core.security import hash_password
from src.meeting_tracker.meetings.actions.extractor import ActionItemExtractor
from src.meeting_tracker.meetings.lifecycle import MeetingLifecycleEngine
from src.meeting_tracker.meetings.notifications.dispatcher import NotificationDispatcher
from src.meeting_tracker.meetings.schemas import (
    ActionItem,
    Meeting,
    MeetingCreate,
    MeetingStatus,
)
from src.meeting_tracker.meetings.transcription.client import VexaClient
from src.meeting_tracker.meetings.transcription.gateway import TranscriptionGateway
from src.meeting_tracker.users.schemas import User, UserRole

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
MEET_LINK = "https://meet.google.com/abc-defg-hij"
PASSWORD = "secret123"
PASSWORD_HASH = hash_password(PASSWORD)


# ── In-Memory Repositories ───────────────────────────────────────────────────


class InMemoryUserRepository:
    """In-memory test double for UserRepository.

    Returns copies so callers cannot mutate stored state without an
    explicit update, like rows loaded from the database.
    """

    def __init__(self) -> None:
        self.users: dict[uuid.UUID, User] = {}

    def add(self, user: User) -> User:
        self.users[user.id] = user
        return user

    async def create_user(self, user: User) -> User:
        stored = user.model_copy(update={"created_at": NOW, "updated_at": NOW})
        self.users[stored.id] = stored
        return stored.model_copy()

    async def get_user(self, user_id: uuid.UUID) -> User | None:
        user = self.users.get(user_id)
        return user.model_copy() if user else None

    async def get_users(self, user_ids) -> list[User]:
        return [self.users[uid].model_copy() for uid in user_ids if uid in self.users]

    async def find_by_email_or_username(
        self, email: str | None = None, username: str | None = None
    ) -> User | None:
        for user in self.users.values():
            if email and user.email == email.strip().lower():
                return user.model_copy()
            if username and user.username == username.strip().lower():
                return user.model_copy()
        return None

    async def find_conflicts(self, username: str, email: str, employee_id: str) -> bool:
        return any(
            u.username == username or u.email == email or u.employee_id == employee_id
            for u in self.users.values()
        )

    async def find_staff_by_manager(self, manager_id: uuid.UUID) -> list[User]:
        staff = [
            u for u in self.users.values()
            if u.manager_id == manager_id and u.role == UserRole.STAFF and u.is_active
        ]
        return sorted(staff, key=lambda u: u.full_name)

    async def find_by_name(self, name: str) -> User | None:
        for user in self.users.values():
            if user.is_active and (
                user.full_name == name.strip() or user.username == name.strip().lower()
            ):
                return user.model_copy()
        return None

    async def update_user(self, user_id: uuid.UUID, **fields) -> User:
        if user_id not in self.users:
            raise ValueError(f"User not found: {user_id}")
        updated = self.users[user_id].model_copy(update=fields)
        self.users[user_id] = updated
        return updated.model_copy()


class InMemoryMeetingRepository:
    """In-memory test double for MeetingRepository.

    Writes apply only the named fields to the stored meeting, like the
    field-scoped UPDATEs of the real repository.
    """

    def __init__(self) -> None:
        self.meetings: dict[uuid.UUID, Meeting] = {}
        self.write_count = 0

    async def create_meeting(self, meeting: Meeting) -> Meeting:
        stored = meeting.model_copy(
            deep=True,
            update={"created_at": NOW, "updated_at": NOW},
        )
        self.meetings[stored.id] = stored
        return stored.model_copy(deep=True)

    async def get_meeting(self, meeting_id: uuid.UUID) -> Meeting | None:
        meeting = self.meetings.get(meeting_id)
        return meeting.model_copy(deep=True) if meeting else None

    async def get_meeting_by_external_id(self, external_id: str) -> Meeting | None:
        matches = [m for m in self.meetings.values() if m.meeting_id == external_id]
        if not matches:
            return None
        newest = max(matches, key=lambda m: m.created_at)
        return newest.model_copy(deep=True)

    async def list_by_host(self, host_id, status=None, upcoming_after=None) -> list[Meeting]:
        return self._list(
            [m for m in self.meetings.values() if m.host_id == host_id],
            status,
            upcoming_after,
        )

    async def list_by_participant(self, user_id, status=None, upcoming_after=None) -> list[Meeting]:
        return self._list(
            [m for m in self.meetings.values() if m.participant(user_id) is not None],
            status,
            upcoming_after,
        )

    async def list_with_assignee(self, user_id) -> list[Meeting]:
        return self._list(
            [
                m for m in self.meetings.values()
                if any(i.assignee_id == user_id for i in m.action_items.values())
            ],
            None,
            None,
        )

    def _list(self, meetings, status, upcoming_after) -> list[Meeting]:
        if status is not None:
            meetings = [m for m in meetings if m.status == status]
        if upcoming_after is not None:
            meetings = [
                m for m in meetings
                if m.scheduled_date_time >= upcoming_after
                and m.status != MeetingStatus.CANCELLED
            ]
        meetings = sorted(meetings, key=lambda m: m.scheduled_date_time)
        return [m.model_copy(deep=True) for m in meetings]

    async def update_fields(self, meeting_id: uuid.UUID, **fields) -> Meeting:
        if meeting_id not in self.meetings:
            raise ValueError(f"Meeting not found: id={meeting_id}")
        self.write_count += 1
        stored = self.meetings[meeting_id].model_copy(
            deep=True, update={**fields, "updated_at": NOW}
        )
        self.meetings[meeting_id] = stored
        return stored.model_copy(deep=True)

    async def update_participant(
        self, meeting_id: uuid.UUID, user_id: uuid.UUID, **changes
    ) -> Meeting | None:
        if meeting_id not in self.meetings:
            raise ValueError(f"Meeting not found: id={meeting_id}")
        participant = self.meetings[meeting_id].participant(user_id)
        if participant is None:
            return None
        self.write_count += 1
        for name, value in changes.items():
            setattr(participant, name, value)
        return self.meetings[meeting_id].model_copy(deep=True)

    async def update_action_item(
        self, meeting_id: uuid.UUID, item_id: uuid.UUID, **changes
    ) -> ActionItem | None:
        if meeting_id not in self.meetings:
            raise ValueError(f"Meeting not found: id={meeting_id}")
        item = self.meetings[meeting_id].action_items.get(item_id)
        if item is None:
            return None
        self.write_count += 1
        for name, value in changes.items():
            setattr(item, name, value)
        return item.model_copy(deep=True)


# ── Builders ─────────────────────────────────────────────────────────────────


def make_user(
    username: str,
    full_name: str,
    role: UserRole = UserRole.STAFF,
    manager_id: uuid.UUID | None = None,
    **overrides,
) -> User:
    defaults = {
        "username": username,
        "email": f"{username}@example.com",
        "full_name": full_name,
        "hashed_password": PASSWORD_HASH,
        "role": role,
        "department": "Engineering",
        "employee_id": username.upper(),
        "manager_id": manager_id,
    }
    defaults.update(overrides)
    return User(**defaults)


def make_meeting_create(participants: list[uuid.UUID], **overrides) -> MeetingCreate:
    defaults = {
        "title": "Sprint Planning",
        "description": "Plan the next sprint",
        "meeting_link": MEET_LINK,
        "scheduled_date_time": NOW + timedelta(days=1),
        "duration": 60,
        "timezone": "UTC",
        "participants": participants,
    }
    defaults.update(overrides)
    return MeetingCreate(**defaults)


# ── Fixtures ─────────────────────────────────────────────────────────────────


@pytest.fixture
def user_repo() -> InMemoryUserRepository:
    return InMemoryUserRepository()


@pytest.fixture
def meeting_repo() -> InMemoryMeetingRepository:
    return InMemoryMeetingRepository()


@pytest.fixture
def manager(user_repo) -> User:
    return user_repo.add(make_user("maria", "Maria Manager", role=UserRole.MANAGER))


@pytest.fixture
def alice(user_repo, manager) -> User:
    return user_repo.add(make_user("alice", "Alice Smith", manager_id=manager.id))


@pytest.fixture
def bob(user_repo, manager) -> User:
    return user_repo.add(make_user("bob", "Bob Jones", manager_id=manager.id))


@pytest.fixture
def other_manager(user_repo) -> User:
    return user_repo.add(make_user("oscar", "Oscar Other", role=UserRole.MANAGER))


@pytest.fixture
def outsider(user_repo, other_manager) -> User:
    """Staff member managed by someone else."""
    return user_repo.add(make_user("olive", "Olive Outside", manager_id=other_manager.id))


@pytest.fixture
def vexa() -> AsyncMock:
    client = AsyncMock(spec=VexaClient)
    client.request_bot = AsyncMock(return_value={"id": 42, "status": "requested"})
    client.get_transcript = AsyncMock(return_value={
        "segments": [
            {"speaker": "Maria Manager", "text": "Alice will draft the proposal."},
            {"speaker": "Alice Smith", "text": "I'll have it by Friday."},
        ]
    })
    client.stop_bot = AsyncMock(return_value={})
    return client


@pytest.fixture
def gateway(vexa) -> TranscriptionGateway:
    return TranscriptionGateway(client=vexa)


@pytest.fixture
def email_service() -> AsyncMock:
    service = AsyncMock()
    service.send_email = AsyncMock(return_value=None)
    return service


@pytest.fixture
def dispatcher(email_service) -> NotificationDispatcher:
    return NotificationDispatcher(email_service=email_service)


@pytest.fixture
def extractor(user_repo) -> ActionItemExtractor:
    return ActionItemExtractor(user_directory=user_repo, model="test/model", timeout=5)


@pytest.fixture
def engine(meeting_repo, user_repo, gateway, extractor, dispatcher) -> MeetingLifecycleEngine:
    return MeetingLifecycleEngine(
        meetings=meeting_repo,
        users=user_repo,
        gateway=gateway,
        extractor=extractor,
        dispatcher=dispatcher,
        bot_name="MeetingActionTracker",
        clock=lambda: NOW,
    )
