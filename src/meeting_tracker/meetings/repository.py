"""Meeting repository -- async persistence for the meeting aggregate.

Provides MeetingRepository with the session_factory callable pattern shared
with UserRepository. Handles serialization between the Meeting schema and
MeetingModel, including the JSONB sub-entity columns. Updates are
field-scoped: callers name the fields they changed and nothing else is
written.

JSON columns use Pydantic model_dump(mode="json") for save and
model_validate() for load. Action items are stored as an ordered list and
rebuilt into an id-keyed mapping on load.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.meeting_tracker.meetings.models import MeetingModel
from src.meeting_tracker.meetings.schemas import (
    ActionItem,
    Attachment,
    Meeting,
    MeetingStatus,
    Participant,
    RecurringPattern,
    ReminderRecord,
    TranscriptSegment,
)

logger = structlog.get_logger(__name__)


# ── Serialization Helpers ───────────────────────────────────────────────────


def _model_to_meeting(model: MeetingModel) -> Meeting:
    """Convert MeetingModel to Meeting schema."""
    action_items = [
        ActionItem.model_validate(a) for a in (model.action_items_data or [])
    ]
    return Meeting(
        id=model.id,
        meeting_id=model.meeting_id,
        title=model.title,
        description=model.description,
        host_id=model.host_id,
        participants=[
            Participant.model_validate(p) for p in (model.participants_data or [])
        ],
        meeting_link=model.meeting_link,
        scheduled_date_time=model.scheduled_date_time,
        duration=model.duration,
        timezone=model.timezone or "UTC",
        status=MeetingStatus(model.status),
        actual_start_time=model.actual_start_time,
        actual_end_time=model.actual_end_time,
        meeting_notes=model.meeting_notes,
        cancellation_reason=model.cancellation_reason,
        attachments=[
            Attachment.model_validate(a) for a in (model.attachments_data or [])
        ],
        is_recurring=model.is_recurring,
        recurring_pattern=(
            RecurringPattern.model_validate(model.recurring_pattern_data)
            if model.recurring_pattern_data
            else None
        ),
        email_sent=model.email_sent,
        reminders_sent=[
            ReminderRecord.model_validate(r) for r in (model.reminders_data or [])
        ],
        transcription_bot_id=model.transcription_bot_id,
        transcription_bot_started=model.transcription_bot_started,
        meeting_transcription=[
            TranscriptSegment.model_validate(s) for s in (model.transcript_data or [])
        ],
        action_items={item.id: item for item in action_items},
        created_at=model.created_at,
        updated_at=model.updated_at or model.created_at,
    )


# Meeting fields stored in a column of the same name
_SCALAR_FIELDS = frozenset({
    "meeting_id",
    "title",
    "description",
    "host_id",
    "meeting_link",
    "scheduled_date_time",
    "duration",
    "timezone",
    "actual_start_time",
    "actual_end_time",
    "meeting_notes",
    "cancellation_reason",
    "is_recurring",
    "email_sent",
    "transcription_bot_id",
    "transcription_bot_started",
})


def _dump_all(values) -> list[dict]:
    return [v.model_dump(mode="json") for v in values]


def _to_columns(fields: dict[str, Any]) -> dict[str, Any]:
    """Map Meeting field values to MeetingModel column values."""
    columns: dict[str, Any] = {}
    for name, value in fields.items():
        if name in _SCALAR_FIELDS:
            columns[name] = value
        elif name == "status":
            columns["status"] = MeetingStatus(value).value
        elif name == "recurring_pattern":
            columns["recurring_pattern_data"] = (
                value.model_dump(mode="json") if value else None
            )
        elif name == "participants":
            columns["participants_data"] = _dump_all(value)
        elif name == "meeting_transcription":
            columns["transcript_data"] = _dump_all(value)
        elif name == "action_items":
            columns["action_items_data"] = _dump_all(value.values())
        elif name == "attachments":
            columns["attachments_data"] = _dump_all(value)
        elif name == "reminders_sent":
            columns["reminders_data"] = _dump_all(value)
        else:
            raise ValueError(f"Unknown meeting field: {name}")
    return columns


def _apply_meeting(model: MeetingModel, meeting: Meeting) -> None:
    """Copy every mutable field of a Meeting onto its row."""
    fields = {
        name: getattr(meeting, name)
        for name in (
            *_SCALAR_FIELDS,
            "status",
            "recurring_pattern",
            "participants",
            "meeting_transcription",
            "action_items",
            "attachments",
            "reminders_sent",
        )
    }
    for column, value in _to_columns(fields).items():
        setattr(model, column, value)


# ── Repository ──────────────────────────────────────────────────────────────


class MeetingRepository:
    """Async CRUD operations for meetings.

    Writes touch only the columns they name. Roster entries and action
    items are changed one at a time under a row lock, so concurrent writers
    to the same meeting lose nothing outside the fields they both set.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    async def create_meeting(self, meeting: Meeting) -> Meeting:
        """Insert a new meeting.

        Args:
            meeting: Fully validated Meeting.

        Returns:
            Meeting with server-side timestamps.
        """
        async for session in self._session_factory():
            model = MeetingModel(id=meeting.id)
            _apply_meeting(model, meeting)
            session.add(model)
            await session.commit()
            await session.refresh(model)
            logger.info(
                "meeting.persisted",
                meeting_id=str(model.id),
                external_id=model.meeting_id,
            )
            return _model_to_meeting(model)

    async def get_meeting(self, meeting_id: uuid.UUID) -> Meeting | None:
        """Get a meeting by surrogate id."""
        async for session in self._session_factory():
            model = await session.get(MeetingModel, meeting_id)
            if model is None:
                return None
            return _model_to_meeting(model)

    async def get_meeting_by_external_id(self, external_id: str) -> Meeting | None:
        """Get the most recently created meeting for an external meeting id.

        Join links can be reused, so several meetings may share an external
        id.
        """
        async for session in self._session_factory():
            stmt = (
                select(MeetingModel)
                .where(MeetingModel.meeting_id == external_id)
                .order_by(MeetingModel.created_at.desc())
                .limit(1)
            )
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            if model is None:
                return None
            return _model_to_meeting(model)

    async def list_by_host(
        self,
        host_id: uuid.UUID,
        status: MeetingStatus | None = None,
        upcoming_after: datetime | None = None,
    ) -> list[Meeting]:
        """Meetings hosted by a manager, ordered by scheduled start.

        Args:
            host_id: Host user id.
            status: Optional status filter.
            upcoming_after: If set, only non-cancelled meetings starting at
                or after this instant.
        """
        stmt = select(MeetingModel).where(MeetingModel.host_id == host_id)
        return await self._list(stmt, status, upcoming_after)

    async def list_by_participant(
        self,
        user_id: uuid.UUID,
        status: MeetingStatus | None = None,
        upcoming_after: datetime | None = None,
    ) -> list[Meeting]:
        """Meetings a staff member is invited to, ordered by scheduled start."""
        stmt = select(MeetingModel).where(
            MeetingModel.participants_data.contains([{"user_id": str(user_id)}])
        )
        return await self._list(stmt, status, upcoming_after)

    async def list_with_assignee(self, user_id: uuid.UUID) -> list[Meeting]:
        """Meetings holding at least one action item assigned to the user."""
        stmt = select(MeetingModel).where(
            MeetingModel.action_items_data.contains([{"assignee_id": str(user_id)}])
        )
        return await self._list(stmt, None, None)

    async def _list(self, stmt, status, upcoming_after) -> list[Meeting]:
        if status is not None:
            stmt = stmt.where(MeetingModel.status == status.value)
        if upcoming_after is not None:
            stmt = stmt.where(
                MeetingModel.scheduled_date_time >= upcoming_after,
                MeetingModel.status != MeetingStatus.CANCELLED.value,
            )
        stmt = stmt.order_by(MeetingModel.scheduled_date_time)
        async for session in self._session_factory():
            result = await session.execute(stmt)
            return [_model_to_meeting(m) for m in result.scalars().all()]

    async def update_fields(self, meeting_id: uuid.UUID, **fields: Any) -> Meeting:
        """Write only the named fields of a meeting in a single UPDATE.

        Fields are Meeting attribute names. Columns that are not named keep
        whatever value is stored, so writers touching disjoint fields do not
        overwrite each other.

        Raises:
            ValueError: If the meeting does not exist.
        """
        values = _to_columns(fields)
        values["updated_at"] = datetime.now(timezone.utc)
        stmt = (
            update(MeetingModel)
            .where(MeetingModel.id == meeting_id)
            .values(**values)
            .returning(MeetingModel)
        )
        async for session in self._session_factory():
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            if model is None:
                raise ValueError(f"Meeting not found: id={meeting_id}")
            meeting = _model_to_meeting(model)
            await session.commit()
            return meeting

    async def update_participant(
        self, meeting_id: uuid.UUID, user_id: uuid.UUID, **changes: Any
    ) -> Meeting | None:
        """Change one roster entry under a row lock.

        Returns:
            The updated meeting, or None if the user is not on the roster.

        Raises:
            ValueError: If the meeting does not exist.
        """
        async for session in self._session_factory():
            model = await session.get(MeetingModel, meeting_id, with_for_update=True)
            if model is None:
                raise ValueError(f"Meeting not found: id={meeting_id}")
            participants = [
                Participant.model_validate(p) for p in (model.participants_data or [])
            ]
            target = next((p for p in participants if p.user_id == user_id), None)
            if target is None:
                await session.rollback()
                return None
            for name, value in changes.items():
                setattr(target, name, value)
            model.participants_data = [p.model_dump(mode="json") for p in participants]
            model.updated_at = datetime.now(timezone.utc)
            meeting = _model_to_meeting(model)
            await session.commit()
            return meeting

    async def update_action_item(
        self, meeting_id: uuid.UUID, item_id: uuid.UUID, **changes: Any
    ) -> ActionItem | None:
        """Change one action item under a row lock.

        Returns:
            The updated item, or None if the meeting has no such item.

        Raises:
            ValueError: If the meeting does not exist.
        """
        async for session in self._session_factory():
            model = await session.get(MeetingModel, meeting_id, with_for_update=True)
            if model is None:
                raise ValueError(f"Meeting not found: id={meeting_id}")
            items = [ActionItem.model_validate(a) for a in (model.action_items_data or [])]
            target = next((i for i in items if i.id == item_id), None)
            if target is None:
                await session.rollback()
                return None
            for name, value in changes.items():
                setattr(target, name, value)
            model.action_items_data = [i.model_dump(mode="json") for i in items]
            model.updated_at = datetime.now(timezone.utc)
            await session.commit()
            return target
