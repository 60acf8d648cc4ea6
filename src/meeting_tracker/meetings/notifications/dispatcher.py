"""NotificationDispatcher -- best-effort meeting emails.

Renders invitation, cancellation, and reminder emails and hands them to the
email service one recipient at a time. A failed send is recorded in the
returned DispatchResult and logged; it never raises, so lifecycle
transitions are not blocked by email delivery.

Without an email service configured, messages are logged and reported as
failed.

Exports:
    NotificationDispatcher: Main dispatch service.
    DispatchResult: Per-recipient outcome of a dispatch.
"""

from __future__ import annotations

from typing import Protocol

import structlog
from pydantic import BaseModel, Field

from src.meeting_tracker.core.monitoring import notifications_sent_total
from src.meeting_tracker.meetings.notifications.templates import (
    build_cancellation_email,
    build_invitation_email,
    build_reminder_email,
)
from src.meeting_tracker.meetings.schemas import Meeting, ReminderType
from src.meeting_tracker.services.gsuite.models import EmailMessage
from src.meeting_tracker.users.schemas import User

logger = structlog.get_logger(__name__)


class EmailSender(Protocol):
    async def send_email(self, email: EmailMessage): ...


class DispatchResult(BaseModel):
    sent: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)

    @property
    def all_sent(self) -> bool:
        """True when at least one message went out and none failed."""
        return bool(self.sent) and not self.failed


class NotificationDispatcher:
    """Sends meeting notifications through an email service.

    Args:
        email_service: GmailService (or any object with ``send_email``), or
            None to log instead of sending.
    """

    def __init__(self, email_service: EmailSender | None = None) -> None:
        self._email_service = email_service

    async def send_invitations(
        self, meeting: Meeting, host: User, participants: list[User]
    ) -> DispatchResult:
        return await self._dispatch(
            "invitation",
            meeting,
            host,
            [(p, build_invitation_email(meeting, p, host)) for p in participants],
        )

    async def send_cancellations(
        self,
        meeting: Meeting,
        host: User,
        participants: list[User],
        reason: str | None = None,
    ) -> DispatchResult:
        return await self._dispatch(
            "cancellation",
            meeting,
            host,
            [
                (p, build_cancellation_email(meeting, p, host, reason))
                for p in participants
            ],
        )

    async def send_reminder(
        self,
        meeting: Meeting,
        host: User,
        participant: User,
        reminder_type: ReminderType,
    ) -> DispatchResult:
        """Send a single reminder. Nothing schedules these automatically."""
        return await self._dispatch(
            "reminder",
            meeting,
            host,
            [(participant, build_reminder_email(meeting, participant, host, reminder_type))],
        )

    async def _dispatch(
        self,
        kind: str,
        meeting: Meeting,
        host: User,
        messages: list[tuple[User, tuple[str, str]]],
    ) -> DispatchResult:
        result = DispatchResult()

        if self._email_service is None:
            for recipient, (subject, _html) in messages:
                logger.info(
                    "notification.logged",
                    kind=kind,
                    to=recipient.email,
                    subject=subject,
                    meeting_id=str(meeting.id),
                )
                result.failed.append(recipient.email)
                notifications_sent_total.labels(kind=kind, outcome="unconfigured").inc()
            return result

        for recipient, (subject, html) in messages:
            try:
                await self._email_service.send_email(
                    EmailMessage(
                        to=recipient.email,
                        subject=subject,
                        body_html=html,
                        reply_to=host.email,
                    )
                )
                result.sent.append(recipient.email)
                notifications_sent_total.labels(kind=kind, outcome="sent").inc()
                logger.info(
                    "notification.sent",
                    kind=kind,
                    to=recipient.email,
                    meeting_id=str(meeting.id),
                )
            except Exception:
                result.failed.append(recipient.email)
                notifications_sent_total.labels(kind=kind, outcome="failed").inc()
                logger.warning(
                    "notification.failed",
                    kind=kind,
                    to=recipient.email,
                    meeting_id=str(meeting.id),
                    exc_info=True,
                )
        return result
