"""REST endpoints for the meeting lifecycle.

Scheduling, roster responses, start/end/cancel, transcripts and action
items. Every route requires a Bearer token; role and ownership checks
live in MeetingLifecycleEngine, whose domain errors are rendered by the
handler registered in ``create_app``.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from src.meeting_tracker.api.deps import get_current_user
from src.meeting_tracker.meetings.lifecycle import MeetingLifecycleEngine
from src.meeting_tracker.meetings.schemas import (
    ActionItem,
    ActionItemStatusUpdate,
    AttendanceUpdate,
    CancelRequest,
    EndRequest,
    Meeting,
    MeetingCreate,
    MeetingDetail,
    MeetingStatus,
    MeetingUpdate,
    ProcessTranscriptionRequest,
    RespondRequest,
    TranscriptSegment,
)
from src.meeting_tracker.users.schemas import User, UserSummary

router = APIRouter(prefix="/meetings", tags=["meetings"])


# ── Response Schemas ─────────────────────────────────────────────────────────


class MeetingResponse(BaseModel):
    """Response for meeting data, serializes datetimes to ISO strings."""

    id: str
    meeting_id: str | None = None
    title: str
    description: str
    host_id: str
    participants: list[dict] = Field(default_factory=list)
    meeting_link: str
    scheduled_date_time: str
    scheduled_end_time: str
    duration: int
    timezone: str
    status: str
    actual_start_time: str | None = None
    actual_end_time: str | None = None
    meeting_notes: str | None = None
    cancellation_reason: str | None = None
    is_recurring: bool = False
    recurring_pattern: dict | None = None
    email_sent: bool = False
    transcription_bot_id: str | None = None
    transcription_bot_started: bool = False
    has_transcription: bool = False
    action_items: list[dict] = Field(default_factory=list)
    created_at: str | None = None
    updated_at: str | None = None


class MeetingDetailResponse(MeetingResponse):
    """Meeting with host and participants resolved to display fields."""

    host: dict | None = None


class EndMeetingResponse(BaseModel):
    meeting: MeetingResponse
    transcription_available: bool


class TranscriptionResponse(BaseModel):
    meeting_id: str
    segments: list[dict] = Field(default_factory=list)


class ActionItemResponse(BaseModel):
    id: str
    assignee_id: str | None = None
    assignee_name: str | None = None
    task: str
    due_date: str | None = None
    status: str


class StaffMemberResponse(BaseModel):
    id: str
    username: str
    full_name: str
    email: str
    department: str | None = None
    job_title: str | None = None
    avatar: str | None = None


# ── Dependency Injection Helpers ─────────────────────────────────────────────


def _get_engine(request: Request) -> MeetingLifecycleEngine:
    """Retrieve MeetingLifecycleEngine from app.state, 503 if not available."""
    engine = getattr(request.app.state, "meeting_engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Meeting service not initialized",
        )
    return engine


# ── Conversion Helpers ───────────────────────────────────────────────────────


def _iso(value) -> str | None:
    return value.isoformat() if value else None


def _action_item_to_response(item: ActionItem) -> ActionItemResponse:
    return ActionItemResponse(
        id=str(item.id),
        assignee_id=str(item.assignee_id) if item.assignee_id else None,
        assignee_name=item.assignee_name,
        task=item.task,
        due_date=_iso(item.due_date),
        status=item.status.value,
    )


def _meeting_fields(m: Meeting) -> dict:
    return {
        "id": str(m.id),
        "meeting_id": m.meeting_id,
        "title": m.title,
        "description": m.description,
        "host_id": str(m.host_id),
        "participants": [p.model_dump(mode="json") for p in m.participants],
        "meeting_link": m.meeting_link,
        "scheduled_date_time": m.scheduled_date_time.isoformat(),
        "scheduled_end_time": m.scheduled_end_time.isoformat(),
        "duration": m.duration,
        "timezone": m.timezone,
        "status": m.status.value,
        "actual_start_time": _iso(m.actual_start_time),
        "actual_end_time": _iso(m.actual_end_time),
        "meeting_notes": m.meeting_notes,
        "cancellation_reason": m.cancellation_reason,
        "is_recurring": m.is_recurring,
        "recurring_pattern": (
            m.recurring_pattern.model_dump(mode="json") if m.recurring_pattern else None
        ),
        "email_sent": m.email_sent,
        "transcription_bot_id": m.transcription_bot_id,
        "transcription_bot_started": m.transcription_bot_started,
        "has_transcription": bool(m.meeting_transcription),
        "action_items": [
            _action_item_to_response(i).model_dump() for i in m.action_items.values()
        ],
        "created_at": _iso(m.created_at),
        "updated_at": _iso(m.updated_at),
    }


def _meeting_to_response(m: Meeting) -> MeetingResponse:
    """Convert Meeting schema to MeetingResponse."""
    return MeetingResponse(**_meeting_fields(m))


def _detail_to_response(d: MeetingDetail) -> MeetingDetailResponse:
    fields = _meeting_fields(d.meeting)
    fields["participants"] = [p.model_dump(mode="json") for p in d.participants]
    return MeetingDetailResponse(
        **fields,
        host=d.host.model_dump(mode="json") if d.host else None,
    )


def _segments_to_response(meeting_id: str, segments: list[TranscriptSegment]) -> TranscriptionResponse:
    return TranscriptionResponse(
        meeting_id=meeting_id,
        segments=[s.model_dump(mode="json") for s in segments],
    )


def _staff_to_response(user: User) -> StaffMemberResponse:
    summary = UserSummary.from_user(user)
    return StaffMemberResponse(**summary.model_dump(mode="json"))


# ── REST Endpoints ───────────────────────────────────────────────────────────


@router.post("", response_model=MeetingResponse, status_code=status.HTTP_201_CREATED)
async def create_meeting(
    body: MeetingCreate,
    request: Request,
    user: User = Depends(get_current_user),
) -> MeetingResponse:
    """Schedule a meeting with the caller as host.

    A transcription bot is requested and invitations are emailed; neither
    failing affects the response status.
    """
    engine = _get_engine(request)
    meeting = await engine.create(user, body)
    return _meeting_to_response(meeting)


@router.get("", response_model=list[MeetingResponse])
async def list_meetings(
    request: Request,
    status_filter: MeetingStatus | None = Query(
        default=None,
        alias="status",
        description="Filter by meeting status",
    ),
    upcoming: bool = Query(
        default=False,
        description="Only future meetings that are not cancelled",
    ),
    user: User = Depends(get_current_user),
) -> list[MeetingResponse]:
    """List meetings the caller hosts (managers) or attends (staff)."""
    engine = _get_engine(request)
    meetings = await engine.list_meetings(user, status=status_filter, upcoming=upcoming)
    return [_meeting_to_response(m) for m in meetings]


@router.get("/staff/available", response_model=list[StaffMemberResponse])
async def available_staff(
    request: Request,
    user: User = Depends(get_current_user),
) -> list[StaffMemberResponse]:
    """Active staff the calling manager can invite."""
    engine = _get_engine(request)
    staff = await engine.available_staff(user)
    return [_staff_to_response(s) for s in staff]


@router.get("/{meeting_id}", response_model=MeetingDetailResponse)
async def get_meeting(
    meeting_id: uuid.UUID,
    request: Request,
    user: User = Depends(get_current_user),
) -> MeetingDetailResponse:
    """Get meeting details by ID."""
    engine = _get_engine(request)
    detail = await engine.read(meeting_id, user)
    return _detail_to_response(detail)


@router.patch("/{meeting_id}", response_model=MeetingResponse)
async def update_meeting(
    meeting_id: uuid.UUID,
    body: MeetingUpdate,
    request: Request,
    user: User = Depends(get_current_user),
) -> MeetingResponse:
    engine = _get_engine(request)
    meeting = await engine.update(meeting_id, user, body)
    return _meeting_to_response(meeting)


@router.post("/{meeting_id}/start", response_model=MeetingResponse)
async def start_meeting(
    meeting_id: uuid.UUID,
    request: Request,
    user: User = Depends(get_current_user),
) -> MeetingResponse:
    engine = _get_engine(request)
    meeting = await engine.start(meeting_id, user)
    return _meeting_to_response(meeting)


@router.post("/{meeting_id}/end", response_model=EndMeetingResponse)
async def end_meeting(
    meeting_id: uuid.UUID,
    request: Request,
    body: EndRequest | None = None,
    user: User = Depends(get_current_user),
) -> EndMeetingResponse:
    """Complete an ongoing meeting and collect the bot's transcript."""
    engine = _get_engine(request)
    result = await engine.end(meeting_id, user, notes=body.notes if body else None)
    return EndMeetingResponse(
        meeting=_meeting_to_response(result.meeting),
        transcription_available=result.transcription_available,
    )


@router.post("/{meeting_id}/cancel", response_model=MeetingResponse)
async def cancel_meeting(
    meeting_id: uuid.UUID,
    request: Request,
    body: CancelRequest | None = None,
    user: User = Depends(get_current_user),
) -> MeetingResponse:
    engine = _get_engine(request)
    meeting = await engine.cancel(meeting_id, user, reason=body.reason if body else None)
    return _meeting_to_response(meeting)


@router.patch("/{meeting_id}/respond", response_model=MeetingResponse)
async def respond_to_meeting(
    meeting_id: uuid.UUID,
    body: RespondRequest,
    request: Request,
    user: User = Depends(get_current_user),
) -> MeetingResponse:
    """Accept or decline an invitation."""
    engine = _get_engine(request)
    meeting = await engine.respond(meeting_id, user, body.status)
    return _meeting_to_response(meeting)


@router.patch(
    "/{meeting_id}/participants/{participant_id}/attendance",
    response_model=MeetingResponse,
)
async def mark_attendance(
    meeting_id: uuid.UUID,
    participant_id: uuid.UUID,
    body: AttendanceUpdate,
    request: Request,
    user: User = Depends(get_current_user),
) -> MeetingResponse:
    engine = _get_engine(request)
    meeting = await engine.mark_attendance(meeting_id, user, participant_id, body.status)
    return _meeting_to_response(meeting)


@router.get("/{external_meeting_id}/transcription", response_model=TranscriptionResponse)
async def get_transcription(
    external_meeting_id: str,
    request: Request,
    user: User = Depends(get_current_user),
) -> TranscriptionResponse:
    """Transcript for a meeting, addressed by its external (platform) id.

    Served from storage when present, otherwise fetched from the bot
    service and stored.
    """
    engine = _get_engine(request)
    segments = await engine.fetch_transcription(external_meeting_id, user)
    return _segments_to_response(external_meeting_id, segments)


@router.post(
    "/{meeting_id}/process-transcription",
    response_model=list[ActionItemResponse],
)
async def process_transcription(
    meeting_id: uuid.UUID,
    request: Request,
    body: ProcessTranscriptionRequest | None = None,
    user: User = Depends(get_current_user),
) -> list[ActionItemResponse]:
    """Extract action items from the transcript, replacing existing ones."""
    engine = _get_engine(request)
    items = await engine.process_transcription(
        meeting_id,
        user,
        transcription_text=body.transcription_text if body else None,
    )
    return [_action_item_to_response(i) for i in items]


@router.patch(
    "/{meeting_id}/action-items/{item_id}",
    response_model=ActionItemResponse,
)
async def update_action_item(
    meeting_id: uuid.UUID,
    item_id: uuid.UUID,
    body: ActionItemStatusUpdate,
    request: Request,
    user: User = Depends(get_current_user),
) -> ActionItemResponse:
    engine = _get_engine(request)
    item = await engine.update_action_item_status(meeting_id, item_id, user, body.status)
    return _action_item_to_response(item)
