"""Pydantic v2 schemas for the meeting domain.

Defines the data contracts for meetings, participants, transcript segments,
and action items, plus the request payloads accepted by the lifecycle
engine. The lifecycle engine, transcription gateway, action-item extractor,
and notification dispatcher all import from this module.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timedelta
from enum import Enum

from pydantic import BaseModel, Field

from src.meeting_tracker.users.schemas import UserSummary


MEETING_LINK_PATTERN = r"^https?://.+"
MIN_DURATION_MINUTES = 15
MAX_DURATION_MINUTES = 480


# ── Enums ────────────────────────────────────────────────────────────────────


class MeetingStatus(str, Enum):
    """Lifecycle status of a meeting."""

    SCHEDULED = "scheduled"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ParticipantStatus(str, Enum):
    """Response and attendance state of a single invitee."""

    INVITED = "invited"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    ATTENDED = "attended"
    ABSENT = "absent"


class ActionItemStatus(str, Enum):
    OPEN = "open"
    COMPLETED = "completed"


class RecurrenceFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class ReminderType(str, Enum):
    DAY_BEFORE = "24h"
    HOUR_BEFORE = "1h"
    QUARTER_HOUR_BEFORE = "15m"


# ── Embedded Sub-Entities ────────────────────────────────────────────────────


class Participant(BaseModel):
    """An invited staff member and their response/attendance state."""

    user_id: uuid.UUID
    status: ParticipantStatus = ParticipantStatus.INVITED
    joined_at: datetime | None = None
    left_at: datetime | None = None


class TranscriptSegment(BaseModel):
    """One speaker turn in a normalized transcript."""

    speaker_name: str = Field(description="Speaker label as reported by the bot service")
    text: str


class ActionItem(BaseModel):
    """A task extracted from a transcript.

    ``assignee_id`` stays None when the extracted name matched no user.
    """

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    assignee_id: uuid.UUID | None = None
    assignee_name: str | None = Field(
        None, description="Name as it appeared in the extraction reply"
    )
    task: str
    due_date: date | None = None
    status: ActionItemStatus = ActionItemStatus.OPEN


class Attachment(BaseModel):
    file_name: str
    file_url: str
    uploaded_by: uuid.UUID
    uploaded_at: datetime


class RecurringPattern(BaseModel):
    """Descriptive recurrence rule; occurrences are not expanded."""

    frequency: RecurrenceFrequency
    interval: int = Field(default=1, ge=1)
    end_date: datetime | None = None


class ReminderRecord(BaseModel):
    type: ReminderType
    sent_at: datetime


# ── Meeting Aggregate ────────────────────────────────────────────────────────


class Meeting(BaseModel):
    """The meeting aggregate with its embedded roster, transcript, and action items."""

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    meeting_id: str | None = Field(
        None, description="External meeting id parsed from the join link"
    )
    title: str
    description: str
    host_id: uuid.UUID
    participants: list[Participant] = Field(default_factory=list)
    meeting_link: str
    scheduled_date_time: datetime
    duration: int
    timezone: str = "UTC"
    status: MeetingStatus = MeetingStatus.SCHEDULED
    actual_start_time: datetime | None = None
    actual_end_time: datetime | None = None
    meeting_notes: str | None = None
    cancellation_reason: str | None = None
    attachments: list[Attachment] = Field(default_factory=list)
    is_recurring: bool = False
    recurring_pattern: RecurringPattern | None = None
    email_sent: bool = False
    reminders_sent: list[ReminderRecord] = Field(default_factory=list)
    transcription_bot_id: str | None = None
    transcription_bot_started: bool = False
    meeting_transcription: list[TranscriptSegment] = Field(default_factory=list)
    action_items: dict[uuid.UUID, ActionItem] = Field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def scheduled_end_time(self) -> datetime:
        return self.scheduled_date_time + timedelta(minutes=self.duration)

    def participant(self, user_id: uuid.UUID) -> Participant | None:
        for p in self.participants:
            if p.user_id == user_id:
                return p
        return None

    def is_host(self, user_id: uuid.UUID) -> bool:
        return self.host_id == user_id

    def is_member(self, user_id: uuid.UUID) -> bool:
        """True for the host and every listed participant."""
        return self.is_host(user_id) or self.participant(user_id) is not None


# ── Read Models ──────────────────────────────────────────────────────────────


class ParticipantDetail(BaseModel):
    """Participant with the referenced user resolved to display fields."""

    user: UserSummary | None
    user_id: uuid.UUID
    status: ParticipantStatus
    joined_at: datetime | None = None
    left_at: datetime | None = None


class MeetingDetail(BaseModel):
    """A meeting with host and participants resolved for display."""

    meeting: Meeting
    host: UserSummary | None
    participants: list[ParticipantDetail] = Field(default_factory=list)


class EndMeetingResult(BaseModel):
    """Outcome of ending a meeting.

    Transcript retrieval is reported only as present or absent.
    """

    meeting: Meeting
    transcription_available: bool


class MeetingContext(BaseModel):
    id: uuid.UUID
    meeting_id: str | None
    title: str
    scheduled_date_time: datetime


class AssignedActionItem(BaseModel):
    """An open action item together with the meeting it came from."""

    item: ActionItem
    meeting: MeetingContext


# ── Requests ─────────────────────────────────────────────────────────────────


class MeetingCreate(BaseModel):
    """Payload for scheduling a meeting."""

    title: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=500)
    meeting_link: str = Field(..., pattern=MEETING_LINK_PATTERN)
    scheduled_date_time: datetime
    duration: int = Field(..., ge=MIN_DURATION_MINUTES, le=MAX_DURATION_MINUTES)
    timezone: str | None = Field(None, description="Defaults to the host's timezone")
    participants: list[uuid.UUID] = Field(default_factory=list)
    is_recurring: bool = False
    recurring_pattern: RecurringPattern | None = None


class MeetingUpdate(BaseModel):
    """Partial update; only fields that are explicitly set are applied."""

    title: str | None = Field(None, min_length=1, max_length=100)
    description: str | None = Field(None, min_length=1, max_length=500)
    meeting_link: str | None = Field(None, pattern=MEETING_LINK_PATTERN)
    scheduled_date_time: datetime | None = None
    duration: int | None = Field(None, ge=MIN_DURATION_MINUTES, le=MAX_DURATION_MINUTES)
    timezone: str | None = None
    participants: list[uuid.UUID] | None = None
    meeting_notes: str | None = Field(None, max_length=2000)
    is_recurring: bool | None = None
    recurring_pattern: RecurringPattern | None = None


class CancelRequest(BaseModel):
    reason: str | None = Field(None, max_length=500)


class EndRequest(BaseModel):
    notes: str | None = Field(None, max_length=2000)


class RespondRequest(BaseModel):
    status: str = Field(..., description="'accepted' or 'declined'")


class ProcessTranscriptionRequest(BaseModel):
    """Optional transcript text used when the meeting has none stored."""

    transcription_text: str | None = None


class ActionItemStatusUpdate(BaseModel):
    status: ActionItemStatus


class AttendanceUpdate(BaseModel):
    status: ParticipantStatus = Field(..., description="'attended' or 'absent'")
