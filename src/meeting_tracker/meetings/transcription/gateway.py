"""TranscriptionGateway -- result-returning facade over the bot service.

Every operation returns a result object instead of raising: an unparseable
join link, a missing client, an HTTP failure, or a timeout all come back as
``started=False`` / ``ok=False`` / ``deleted=False`` with an error string.
The lifecycle engine inspects these and decides what to log; nothing here
writes meeting state.

Transcript payloads are normalized with a fixed precedence:
bare array of segments, then an object with a ``segments`` array, then a
single segment object. Anything else is an empty transcript.
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog
from pydantic import BaseModel, Field

from src.meeting_tracker.core.monitoring import transcription_gateway_calls_total
from src.meeting_tracker.meetings.schemas import TranscriptSegment
from src.meeting_tracker.meetings.transcription.client import VexaClient
from src.meeting_tracker.meetings.transcription.links import (
    MeetingLinkParser,
    MeetingRef,
    default_link_parser,
)

logger = structlog.get_logger(__name__)

_SPEAKER_KEYS = ("speaker", "speaker_name", "name")
_UNKNOWN_SPEAKER = "Unknown"


# ── Result Types ─────────────────────────────────────────────────────────────


class BotStartResult(BaseModel):
    started: bool
    bot_id: str | None = None
    raw_response: dict | None = None
    error: str | None = None


class TranscriptResult(BaseModel):
    ok: bool
    segments: list[TranscriptSegment] = Field(default_factory=list)
    error: str | None = None

    @property
    def has_segments(self) -> bool:
        return self.ok and bool(self.segments)


class BotTeardownResult(BaseModel):
    deleted: bool
    error: str | None = None


# ── Normalization ────────────────────────────────────────────────────────────


def _to_segment(entry: Any) -> TranscriptSegment | None:
    """Build a segment from one payload entry, or None if it carries no text."""
    if not isinstance(entry, dict):
        return None
    text = entry.get("text")
    if not isinstance(text, str) or not text.strip():
        return None
    speaker = next(
        (entry[key] for key in _SPEAKER_KEYS if entry.get(key)),
        _UNKNOWN_SPEAKER,
    )
    return TranscriptSegment(speaker_name=str(speaker), text=text.strip())


def normalize_transcript(payload: Any) -> list[TranscriptSegment]:
    """Flatten any supported transcript payload into ordered segments.

    Args:
        payload: Decoded JSON body from the transcript endpoint.

    Returns:
        Segments in payload order; empty for unknown or empty shapes.
    """
    if isinstance(payload, list):
        entries = payload
    elif isinstance(payload, dict) and isinstance(payload.get("segments"), list):
        entries = payload["segments"]
    elif isinstance(payload, dict) and "text" in payload:
        entries = [payload]
    else:
        entries = []

    segments = []
    for entry in entries:
        segment = _to_segment(entry)
        if segment is not None:
            segments.append(segment)
    return segments


# ── Gateway ──────────────────────────────────────────────────────────────────


class TranscriptionGateway:
    """Start, read, and stop transcription bots for a join link.

    Args:
        client: VexaClient, or None when no API key is configured.
        link_parser: Platform parser registry used to address the service.
        bot_deadline: Overall budget in seconds for start/stop, retries included.
        transcript_deadline: Overall budget in seconds for transcript fetches.
    """

    def __init__(
        self,
        client: VexaClient | None,
        link_parser: MeetingLinkParser | None = None,
        bot_deadline: float = 15.0,
        transcript_deadline: float = 60.0,
    ) -> None:
        self._client = client
        self._link_parser = link_parser or default_link_parser()
        self._bot_deadline = bot_deadline
        self._transcript_deadline = transcript_deadline

    def _resolve(self, join_link: str, operation: str) -> tuple[MeetingRef | None, str | None]:
        """Address a join link, or explain why it cannot be addressed."""
        if self._client is None:
            transcription_gateway_calls_total.labels(operation=operation, outcome="unconfigured").inc()
            return None, "transcription service not configured"
        ref = self._link_parser.parse(join_link)
        if ref is None:
            transcription_gateway_calls_total.labels(operation=operation, outcome="unsupported_link").inc()
            logger.info("transcription.unsupported_link", operation=operation, link=join_link)
            return None, "could not extract meeting id from link"
        return ref, None

    async def start_bot(self, join_link: str, bot_label: str) -> BotStartResult:
        """Send a transcription bot into the meeting behind ``join_link``."""
        ref, error = self._resolve(join_link, "start_bot")
        if ref is None:
            return BotStartResult(started=False, error=error)

        try:
            data = await asyncio.wait_for(
                self._client.request_bot(ref.platform, ref.native_id, bot_label),
                timeout=self._bot_deadline,
            )
        except Exception as exc:
            transcription_gateway_calls_total.labels(operation="start_bot", outcome="error").inc()
            logger.warning(
                "transcription.bot_start_failed",
                platform=ref.platform,
                native_meeting_id=ref.native_id,
                error=str(exc) or type(exc).__name__,
            )
            return BotStartResult(started=False, error=str(exc) or type(exc).__name__)

        bot_id = data.get("id") or data.get("bot_id") or ref.native_id
        transcription_gateway_calls_total.labels(operation="start_bot", outcome="ok").inc()
        return BotStartResult(started=True, bot_id=str(bot_id), raw_response=data)

    async def fetch_transcript(self, join_link: str) -> TranscriptResult:
        """Fetch and normalize the transcript for ``join_link``."""
        ref, error = self._resolve(join_link, "fetch_transcript")
        if ref is None:
            return TranscriptResult(ok=False, error=error)

        try:
            payload = await asyncio.wait_for(
                self._client.get_transcript(ref.platform, ref.native_id),
                timeout=self._transcript_deadline,
            )
        except Exception as exc:
            transcription_gateway_calls_total.labels(operation="fetch_transcript", outcome="error").inc()
            logger.warning(
                "transcription.fetch_failed",
                platform=ref.platform,
                native_meeting_id=ref.native_id,
                error=str(exc) or type(exc).__name__,
            )
            return TranscriptResult(ok=False, error=str(exc) or type(exc).__name__)

        segments = normalize_transcript(payload)
        transcription_gateway_calls_total.labels(operation="fetch_transcript", outcome="ok").inc()
        logger.info(
            "transcription.fetched",
            native_meeting_id=ref.native_id,
            segment_count=len(segments),
        )
        return TranscriptResult(ok=True, segments=segments)

    async def delete_bot(self, join_link: str) -> BotTeardownResult:
        """Remove the bot from the meeting; failures are reported, not raised."""
        ref, error = self._resolve(join_link, "delete_bot")
        if ref is None:
            return BotTeardownResult(deleted=False, error=error)

        try:
            await asyncio.wait_for(
                self._client.stop_bot(ref.platform, ref.native_id),
                timeout=self._bot_deadline,
            )
        except Exception as exc:
            transcription_gateway_calls_total.labels(operation="delete_bot", outcome="error").inc()
            logger.warning(
                "transcription.bot_delete_failed",
                platform=ref.platform,
                native_meeting_id=ref.native_id,
                error=str(exc) or type(exc).__name__,
            )
            return BotTeardownResult(deleted=False, error=str(exc) or type(exc).__name__)

        transcription_gateway_calls_total.labels(operation="delete_bot", outcome="ok").inc()
        return BotTeardownResult(deleted=True)
