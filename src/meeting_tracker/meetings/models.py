"""Meeting persistence model.

A single ``meetings`` table holds the aggregate. The embedded sub-entities
(participants, transcript segments, action items, attachments, recurrence,
reminder records) are JSONB columns so that each lifecycle write is one row
update. Participant and action-item lookups use JSONB containment, backed by
GIN indexes.

No foreign key on participants or assignees (application-level referential
integrity via the repository).
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.meeting_tracker.core.database import Base


class MeetingModel(Base):
    """A scheduled meeting hosted by a manager.

    Tracks lifecycle from SCHEDULED through COMPLETED or CANCELLED.
    """

    __tablename__ = "meetings"
    __table_args__ = (
        Index("ix_meetings_host_scheduled", "host_id", "scheduled_date_time"),
        Index("ix_meetings_status_scheduled", "status", "scheduled_date_time"),
        Index(
            "ix_meetings_participants_gin",
            "participants_data",
            postgresql_using="gin",
        ),
        Index(
            "ix_meetings_action_items_gin",
            "action_items_data",
            postgresql_using="gin",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    meeting_id: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    host_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    meeting_link: Mapped[str] = mapped_column(String(1000), nullable=False)
    scheduled_date_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    duration: Mapped[int] = mapped_column(Integer, nullable=False)
    timezone: Mapped[str] = mapped_column(
        String(64), default="UTC", server_default=text("'UTC'")
    )
    status: Mapped[str] = mapped_column(
        String(20),
        default="scheduled",
        server_default=text("'scheduled'"),
    )
    actual_start_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    actual_end_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    meeting_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_recurring: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=text("false")
    )
    recurring_pattern_data: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    email_sent: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=text("false")
    )
    transcription_bot_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    transcription_bot_started: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=text("false")
    )
    participants_data: Mapped[list] = mapped_column(
        JSONB, default=list, server_default=text("'[]'::jsonb")
    )
    transcript_data: Mapped[list] = mapped_column(
        JSONB, default=list, server_default=text("'[]'::jsonb")
    )
    action_items_data: Mapped[list] = mapped_column(
        JSONB, default=list, server_default=text("'[]'::jsonb")
    )
    attachments_data: Mapped[list] = mapped_column(
        JSONB, default=list, server_default=text("'[]'::jsonb")
    )
    reminders_data: Mapped[list] = mapped_column(
        JSONB, default=list, server_default=text("'[]'::jsonb")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True,
    )
