"""MeetingLifecycleEngine -- the meeting state machine and its side effects.

The engine is the only writer of meeting status and lifecycle timestamps.
It validates rosters against the user directory, persists through
MeetingRepository, and calls the transcription gateway, action-item
extractor, and notification dispatcher at fixed points:

- create: persist, then start a transcription bot and send invitations
  (both best effort, inspected through their result objects)
- end: fetch the transcript if a bot was started, complete the meeting,
  persist the transcript, then tear the bot down (best effort)
- cancel: persist, then send cancellation emails (best effort)

Status transitions are validated against VALID_TRANSITIONS. Completed and
cancelled are terminal.

Guard order for host-only mutations: missing meeting (NotFound), caller
neither host nor participant (AccessDenied), meeting already closed
(InvalidState), caller not the host (AccessDenied), then the
operation-specific status precondition (InvalidState).
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import datetime, timezone

import structlog

from src.meeting_tracker.core.errors import (
    AccessDenied,
    InvalidState,
    NotFound,
    ValidationError,
)
from src.meeting_tracker.core.monitoring import meeting_transitions_total
from src.meeting_tracker.meetings.actions.extractor import ActionItemExtractor
from src.meeting_tracker.meetings.notifications.dispatcher import NotificationDispatcher
from src.meeting_tracker.meetings.repository import MeetingRepository
from src.meeting_tracker.meetings.schemas import (
    ActionItem,
    ActionItemStatus,
    AssignedActionItem,
    EndMeetingResult,
    Meeting,
    MeetingContext,
    MeetingCreate,
    MeetingDetail,
    MeetingStatus,
    MeetingUpdate,
    Participant,
    ParticipantDetail,
    ParticipantStatus,
    TranscriptSegment,
)
from src.meeting_tracker.meetings.transcription.gateway import TranscriptionGateway
from src.meeting_tracker.meetings.transcription.links import (
    MeetingLinkParser,
    default_link_parser,
)
from src.meeting_tracker.users.repository import UserRepository
from src.meeting_tracker.users.schemas import User, UserRole, UserSummary

logger = structlog.get_logger(__name__)


# ── State Machine ────────────────────────────────────────────────────────────

VALID_TRANSITIONS: dict[MeetingStatus, set[MeetingStatus]] = {
    MeetingStatus.SCHEDULED: {MeetingStatus.ONGOING, MeetingStatus.CANCELLED},
    MeetingStatus.ONGOING: {MeetingStatus.COMPLETED, MeetingStatus.CANCELLED},
    MeetingStatus.COMPLETED: set(),  # Terminal
    MeetingStatus.CANCELLED: set(),  # Terminal
}

TERMINAL_STATUSES = frozenset({MeetingStatus.COMPLETED, MeetingStatus.CANCELLED})

RESPONSE_STATUSES = frozenset({ParticipantStatus.ACCEPTED, ParticipantStatus.DECLINED})
ATTENDANCE_STATUSES = frozenset({ParticipantStatus.ATTENDED, ParticipantStatus.ABSENT})

# Fields MeetingUpdate may not clear by sending null
_REQUIRED_FIELDS = frozenset({
    "title",
    "description",
    "meeting_link",
    "scheduled_date_time",
    "duration",
    "timezone",
    "participants",
    "is_recurring",
})


class InvalidTransitionError(InvalidState):
    """Raised when a meeting status transition violates the transition rules."""

    def __init__(self, from_status: MeetingStatus, to_status: MeetingStatus) -> None:
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Meeting is {from_status.value} and cannot move to {to_status.value}"
        )


def validate_status_transition(from_status: MeetingStatus, to_status: MeetingStatus) -> None:
    """Validate that a meeting status transition is allowed.

    Unlike stage updates elsewhere, re-entering the current status is not a
    no-op: starting an ongoing meeting is an error.

    Raises:
        InvalidTransitionError: If the transition is not allowed.
    """
    if to_status not in VALID_TRANSITIONS.get(from_status, set()):
        raise InvalidTransitionError(from_status, to_status)


def render_transcript(segments: list[TranscriptSegment]) -> str:
    """Plain-text transcript, one ``Speaker: text`` line per segment."""
    return "\n".join(f"{s.speaker_name}: {s.text}" for s in segments)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _dedupe(ids: list[uuid.UUID]) -> list[uuid.UUID]:
    return list(dict.fromkeys(ids))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Engine ───────────────────────────────────────────────────────────────────


class MeetingLifecycleEngine:
    """Owns meeting state and orchestrates its collaborators.

    Args:
        meetings: Meeting persistence.
        users: User directory for roster validation and display fields.
        gateway: Transcription bot gateway.
        extractor: Action-item extractor.
        dispatcher: Email notification dispatcher.
        link_parser: Join-link parser used to derive external meeting ids.
        bot_name: Display name of the transcription bot.
        clock: Returns the current UTC time.
    """

    def __init__(
        self,
        meetings: MeetingRepository,
        users: UserRepository,
        gateway: TranscriptionGateway,
        extractor: ActionItemExtractor,
        dispatcher: NotificationDispatcher,
        link_parser: MeetingLinkParser | None = None,
        bot_name: str = "MeetingActionTracker",
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._meetings = meetings
        self._users = users
        self._gateway = gateway
        self._extractor = extractor
        self._dispatcher = dispatcher
        self._link_parser = link_parser or default_link_parser()
        self._bot_name = bot_name
        self._clock = clock

    # ── Create / Read / List ────────────────────────────────────────────

    async def create(self, host: User, data: MeetingCreate) -> Meeting:
        """Schedule a meeting hosted by ``host``.

        Validation failures persist nothing. Bot start and invitations run
        after persistence and never fail the call.

        Raises:
            AccessDenied: Host is not a manager.
            ValidationError: Start time not in the future, bad recurrence,
                or a participant that is not the host's active staff.
        """
        if host.role != UserRole.MANAGER:
            raise AccessDenied("Only managers can create meetings")

        scheduled = _as_utc(data.scheduled_date_time)
        if scheduled <= self._clock():
            raise ValidationError("Scheduled date/time must be in the future")
        if data.is_recurring and data.recurring_pattern is None:
            raise ValidationError("recurring_pattern is required for recurring meetings")

        staff = await self._validate_roster(host, _dedupe(data.participants))

        meeting = Meeting(
            meeting_id=self._link_parser.external_id(data.meeting_link),
            title=data.title.strip(),
            description=data.description.strip(),
            host_id=host.id,
            participants=[Participant(user_id=u.id) for u in staff],
            meeting_link=data.meeting_link.strip(),
            scheduled_date_time=scheduled,
            duration=data.duration,
            timezone=data.timezone or host.timezone or "UTC",
            is_recurring=data.is_recurring,
            recurring_pattern=data.recurring_pattern if data.is_recurring else None,
        )
        meeting = await self._meetings.create_meeting(meeting)
        logger.info(
            "meeting.created",
            meeting_id=str(meeting.id),
            external_id=meeting.meeting_id,
            host_id=str(host.id),
            participant_count=len(staff),
        )

        changes: dict = {}

        bot = await self._gateway.start_bot(meeting.meeting_link, self._bot_name)
        if bot.started:
            changes["transcription_bot_id"] = bot.bot_id
            changes["transcription_bot_started"] = True
            logger.info("meeting.bot_started", meeting_id=str(meeting.id), bot_id=bot.bot_id)
        else:
            logger.warning(
                "meeting.bot_not_started",
                meeting_id=str(meeting.id),
                error=bot.error,
            )

        if staff:
            dispatch = await self._dispatcher.send_invitations(meeting, host, staff)
            if dispatch.all_sent:
                changes["email_sent"] = True
            else:
                logger.warning(
                    "meeting.invitations_incomplete",
                    meeting_id=str(meeting.id),
                    failed=dispatch.failed,
                )

        if changes:
            meeting = await self._meetings.update_fields(meeting.id, **changes)
        return meeting

    async def list_meetings(
        self,
        caller: User,
        status: MeetingStatus | None = None,
        upcoming: bool = False,
    ) -> list[Meeting]:
        """Managers see meetings they host; staff see meetings they are invited to."""
        upcoming_after = self._clock() if upcoming else None
        if caller.role == UserRole.MANAGER:
            return await self._meetings.list_by_host(caller.id, status, upcoming_after)
        return await self._meetings.list_by_participant(caller.id, status, upcoming_after)

    async def read(self, meeting_id: uuid.UUID, caller: User) -> MeetingDetail:
        """Return a meeting with host and participants resolved.

        Raises:
            NotFound: No such meeting.
            AccessDenied: Caller is neither host nor participant.
        """
        meeting = await self._get(meeting_id)
        self._require_member(meeting, caller)
        return await self._detail(meeting)

    # ── Host Mutations ──────────────────────────────────────────────────

    async def update(
        self, meeting_id: uuid.UUID, caller: User, patch: MeetingUpdate
    ) -> Meeting:
        """Apply a partial update; only explicitly supplied fields change.

        Replacing participants re-runs roster validation. Users who stay on
        the roster keep their response status.
        """
        meeting = await self._get(meeting_id)
        self._require_open_for_host(meeting, caller, "update")

        supplied = patch.model_fields_set
        for name in supplied:
            value = getattr(patch, name)
            if value is None and name in _REQUIRED_FIELDS:
                raise ValidationError(f"{name} cannot be null")

        # Validate everything before touching the meeting
        changes: dict = {}
        if "scheduled_date_time" in supplied:
            scheduled = _as_utc(patch.scheduled_date_time)
            if scheduled <= self._clock():
                raise ValidationError("Scheduled date/time must be in the future")
            changes["scheduled_date_time"] = scheduled

        if "participants" in supplied:
            staff = await self._validate_roster(caller, _dedupe(patch.participants))
            existing = {p.user_id: p for p in meeting.participants}
            changes["participants"] = [
                existing.get(u.id) or Participant(user_id=u.id) for u in staff
            ]

        if "meeting_link" in supplied:
            link = patch.meeting_link.strip()
            changes["meeting_link"] = link
            changes["meeting_id"] = self._link_parser.external_id(link)

        for name in ("title", "description"):
            if name in supplied:
                changes[name] = getattr(patch, name).strip()
        for name in ("duration", "timezone", "meeting_notes", "is_recurring", "recurring_pattern"):
            if name in supplied:
                changes[name] = getattr(patch, name)

        is_recurring = changes.get("is_recurring", meeting.is_recurring)
        pattern = changes.get("recurring_pattern", meeting.recurring_pattern)
        if is_recurring and pattern is None:
            raise ValidationError("recurring_pattern is required for recurring meetings")
        if not is_recurring:
            changes["recurring_pattern"] = None

        meeting = await self._meetings.update_fields(meeting.id, **changes)
        logger.info(
            "meeting.updated",
            meeting_id=str(meeting.id),
            fields=sorted(supplied),
        )
        return meeting

    async def cancel(
        self, meeting_id: uuid.UUID, caller: User, reason: str | None = None
    ) -> Meeting:
        """Cancel a scheduled or ongoing meeting and notify participants."""
        meeting = await self._get(meeting_id)
        self._require_open_for_host(meeting, caller, "cancel")

        self._transition(meeting, MeetingStatus.CANCELLED)
        meeting = await self._meetings.update_fields(
            meeting.id,
            status=meeting.status,
            cancellation_reason=reason.strip() if reason else None,
        )

        participants = await self._users.get_users([p.user_id for p in meeting.participants])
        if participants:
            dispatch = await self._dispatcher.send_cancellations(
                meeting, caller, participants, meeting.cancellation_reason
            )
            if dispatch.failed:
                logger.warning(
                    "meeting.cancellation_notices_incomplete",
                    meeting_id=str(meeting.id),
                    failed=dispatch.failed,
                )
        return meeting

    async def start(self, meeting_id: uuid.UUID, caller: User) -> Meeting:
        """Move a scheduled meeting to ongoing."""
        meeting = await self._get(meeting_id)
        self._require_open_for_host(meeting, caller, "start")

        self._transition(meeting, MeetingStatus.ONGOING)
        return await self._meetings.update_fields(
            meeting.id, status=meeting.status, actual_start_time=self._clock()
        )

    async def end(
        self, meeting_id: uuid.UUID, caller: User, notes: str | None = None
    ) -> EndMeetingResult:
        """Complete an ongoing meeting and collect its transcript.

        The gateway is only contacted when a bot was started. Transcript
        retrieval and bot teardown are best effort; the result reports
        only whether a transcript was captured.
        """
        meeting = await self._get(meeting_id)
        self._require_open_for_host(meeting, caller, "end")
        validate_status_transition(meeting.status, MeetingStatus.COMPLETED)

        bot_started = meeting.transcription_bot_started
        segments: list[TranscriptSegment] = []
        if bot_started:
            fetched = await self._gateway.fetch_transcript(meeting.meeting_link)
            if fetched.ok:
                segments = fetched.segments
            else:
                logger.warning(
                    "meeting.transcript_unavailable",
                    meeting_id=str(meeting.id),
                    error=fetched.error,
                )

        self._transition(meeting, MeetingStatus.COMPLETED)
        changes = {"status": meeting.status, "actual_end_time": self._clock()}
        if notes is not None:
            changes["meeting_notes"] = notes
        if segments:
            changes["meeting_transcription"] = segments
        meeting = await self._meetings.update_fields(meeting.id, **changes)

        if bot_started:
            teardown = await self._gateway.delete_bot(meeting.meeting_link)
            if not teardown.deleted:
                logger.warning(
                    "meeting.bot_teardown_failed",
                    meeting_id=str(meeting.id),
                    error=teardown.error,
                )
            meeting = await self._meetings.update_fields(
                meeting.id, transcription_bot_started=False
            )

        logger.info(
            "meeting.ended",
            meeting_id=str(meeting.id),
            transcript_segments=len(segments),
        )
        return EndMeetingResult(meeting=meeting, transcription_available=bool(segments))

    async def mark_attendance(
        self,
        meeting_id: uuid.UUID,
        caller: User,
        participant_id: uuid.UUID,
        status: ParticipantStatus,
    ) -> Meeting:
        """Record whether a participant attended.

        ``attended`` stamps joined_at, ``absent`` stamps left_at.
        """
        if status not in ATTENDANCE_STATUSES:
            raise ValidationError("Status must be 'attended' or 'absent'")
        meeting = await self._get(meeting_id)
        self._require_host(meeting, caller, "record attendance for")
        if meeting.status == MeetingStatus.CANCELLED:
            raise InvalidState("Meeting is cancelled")

        stamp = "joined_at" if status == ParticipantStatus.ATTENDED else "left_at"
        updated = await self._meetings.update_participant(
            meeting.id, participant_id, status=status, **{stamp: self._clock()}
        )
        if updated is None:
            raise NotFound("Participant not found in this meeting")
        return updated

    # ── Participant Operations ──────────────────────────────────────────

    async def respond(
        self, meeting_id: uuid.UUID, caller: User, status: str
    ) -> Meeting:
        """Record a participant's accept/decline. Meeting status is unchanged."""
        try:
            response = ParticipantStatus(status)
        except ValueError:
            response = None
        if response not in RESPONSE_STATUSES:
            raise ValidationError("Status must be 'accepted' or 'declined'")

        meeting = await self._get(meeting_id)
        if meeting.participant(caller.id) is None:
            raise AccessDenied("You are not invited to this meeting")

        meeting = await self._meetings.update_participant(
            meeting.id, caller.id, status=response
        )
        if meeting is None:
            raise AccessDenied("You are not invited to this meeting")
        logger.info(
            "meeting.participant_responded",
            meeting_id=str(meeting.id),
            user_id=str(caller.id),
            status=response.value,
        )
        return meeting

    async def available_staff(self, caller: User) -> list[User]:
        """Active staff the manager can invite."""
        if caller.role != UserRole.MANAGER:
            raise AccessDenied("Only managers can view staff members")
        return await self._users.find_staff_by_manager(caller.id)

    # ── Transcription & Action Items ────────────────────────────────────

    async def fetch_transcription(
        self, external_meeting_id: str, caller: User
    ) -> list[TranscriptSegment]:
        """Return the stored transcript, fetching and storing it on first use.

        Raises:
            NotFound: Unknown external id, or no transcript anywhere.
            AccessDenied: Caller is neither host nor participant.
        """
        meeting = await self._meetings.get_meeting_by_external_id(external_meeting_id)
        if meeting is None:
            raise NotFound("Meeting not found")
        self._require_member(meeting, caller)

        if meeting.meeting_transcription:
            return meeting.meeting_transcription

        fetched = await self._gateway.fetch_transcript(meeting.meeting_link)
        if not fetched.has_segments:
            raise NotFound("No transcription available")

        meeting = await self._meetings.update_fields(
            meeting.id, meeting_transcription=fetched.segments
        )
        logger.info(
            "meeting.transcript_stored",
            meeting_id=str(meeting.id),
            segment_count=len(fetched.segments),
        )
        return meeting.meeting_transcription

    async def process_transcription(
        self,
        meeting_id: uuid.UUID,
        caller: User,
        transcription_text: str | None = None,
    ) -> list[ActionItem]:
        """Extract action items and replace the meeting's current list.

        Uses the stored transcript, or ``transcription_text`` when nothing
        is stored.

        Raises:
            ValidationError: No transcript to process.
            ParseError: Extraction reply was malformed.
            ExternalServiceError: Completion service failed.
        """
        meeting = await self._get(meeting_id)
        self._require_member(meeting, caller)

        if meeting.meeting_transcription:
            text = render_transcript(meeting.meeting_transcription)
        elif transcription_text and transcription_text.strip():
            text = transcription_text.strip()
        else:
            raise ValidationError("No transcription available to process")

        participants = await self._users.get_users([p.user_id for p in meeting.participants])
        names = [u.display_name for u in participants]

        extracted = await self._extractor.extract(text, names)
        items = await self._extractor.resolve(extracted)

        meeting = await self._meetings.update_fields(
            meeting.id, action_items={item.id: item for item in items}
        )
        logger.info(
            "meeting.action_items_stored",
            meeting_id=str(meeting.id),
            count=len(items),
            unassigned=sum(1 for i in items if i.assignee_id is None),
        )
        return list(meeting.action_items.values())

    async def action_items_for_user(
        self, user_id: uuid.UUID, caller: User
    ) -> list[AssignedActionItem]:
        """Open action items assigned to a user across all meetings.

        Users may list their own items; managers may list their staff's.
        """
        if caller.id != user_id:
            target = await self._users.get_user(user_id)
            if target is None:
                raise NotFound("User not found")
            if not (caller.role == UserRole.MANAGER and target.manager_id == caller.id):
                raise AccessDenied("You can only view your own action items")

        meetings = await self._meetings.list_with_assignee(user_id)
        assigned = []
        for meeting in meetings:
            context = MeetingContext(
                id=meeting.id,
                meeting_id=meeting.meeting_id,
                title=meeting.title,
                scheduled_date_time=meeting.scheduled_date_time,
            )
            for item in meeting.action_items.values():
                if item.assignee_id == user_id and item.status != ActionItemStatus.COMPLETED:
                    assigned.append(AssignedActionItem(item=item, meeting=context))
        return assigned

    async def update_action_item_status(
        self,
        meeting_id: uuid.UUID,
        item_id: uuid.UUID,
        caller: User,
        status: ActionItemStatus,
    ) -> ActionItem:
        """Set an action item's status.

        The host, any participant, or the item's assignee may update it.
        """
        meeting = await self._get(meeting_id)
        item = meeting.action_items.get(item_id)
        if item is None:
            raise NotFound("Action item not found")
        if not (meeting.is_member(caller.id) or item.assignee_id == caller.id):
            raise AccessDenied("You cannot update action items for this meeting")

        item = await self._meetings.update_action_item(meeting.id, item_id, status=status)
        if item is None:
            raise NotFound("Action item not found")
        logger.info(
            "meeting.action_item_updated",
            meeting_id=str(meeting.id),
            item_id=str(item_id),
            status=status.value,
        )
        return item

    # ── Helpers ─────────────────────────────────────────────────────────

    async def _get(self, meeting_id: uuid.UUID) -> Meeting:
        meeting = await self._meetings.get_meeting(meeting_id)
        if meeting is None:
            raise NotFound("Meeting not found")
        return meeting

    @staticmethod
    def _require_member(meeting: Meeting, caller: User) -> None:
        if not meeting.is_member(caller.id):
            raise AccessDenied("You don't have access to this meeting")

    @staticmethod
    def _require_host(meeting: Meeting, caller: User, action: str) -> None:
        if caller.role != UserRole.MANAGER or not meeting.is_host(caller.id):
            raise AccessDenied(f"Only the meeting host can {action} the meeting")

    def _require_open_for_host(self, meeting: Meeting, caller: User, action: str) -> None:
        self._require_member(meeting, caller)
        if meeting.status in TERMINAL_STATUSES:
            raise InvalidState(f"Cannot {action} a {meeting.status.value} meeting")
        self._require_host(meeting, caller, action)

    def _transition(self, meeting: Meeting, to_status: MeetingStatus) -> None:
        validate_status_transition(meeting.status, to_status)
        meeting_transitions_total.labels(
            from_status=meeting.status.value,
            to_status=to_status.value,
        ).inc()
        logger.info(
            "meeting.status_changed",
            meeting_id=str(meeting.id),
            from_status=meeting.status.value,
            to_status=to_status.value,
        )
        meeting.status = to_status

    async def _validate_roster(
        self, host: User, participant_ids: list[uuid.UUID]
    ) -> list[User]:
        """Resolve participant ids to the host's active staff.

        Raises:
            ValidationError: Any id that is unknown, inactive, not staff, or
                managed by someone else.
        """
        if not participant_ids:
            return []
        users = await self._users.get_users(participant_ids)
        valid = {
            u.id: u
            for u in users
            if u.role == UserRole.STAFF and u.is_active and u.manager_id == host.id
        }
        invalid = [str(uid) for uid in participant_ids if uid not in valid]
        if invalid:
            raise ValidationError(
                "Some participants are invalid or not under your management: "
                + ", ".join(invalid)
            )
        return [valid[uid] for uid in participant_ids]

    async def _detail(self, meeting: Meeting) -> MeetingDetail:
        ids = [meeting.host_id] + [p.user_id for p in meeting.participants]
        users = {u.id: u for u in await self._users.get_users(ids)}
        host = users.get(meeting.host_id)
        return MeetingDetail(
            meeting=meeting,
            host=UserSummary.from_user(host) if host else None,
            participants=[
                ParticipantDetail(
                    user=UserSummary.from_user(users[p.user_id]) if p.user_id in users else None,
                    user_id=p.user_id,
                    status=p.status,
                    joined_at=p.joined_at,
                    left_at=p.left_at,
                )
                for p in meeting.participants
            ],
        )
