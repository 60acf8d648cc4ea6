"""Unit tests for the transcription bot integration.

Tests VexaClient, join-link parsing, and TranscriptionGateway with mocked
HTTP. Covers:
- VexaClient request construction and retry on transient failures
- Google Meet link parsing and platform registration
- Transcript payload normalization across the supported shapes
- Gateway results for unconfigured service, unsupported links, and errors
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from src.meeting_tracker.meetings.schemas import TranscriptSegment
from src.meeting_tracker.meetings.transcription.client import VexaClient
from src.meeting_tracker.meetings.transcription.gateway import (
    TranscriptionGateway,
    normalize_transcript,
)
from src.meeting_tracker.meetings.transcription.links import (
    GOOGLE_MEET,
    MeetingLinkParser,
    MeetingRef,
    default_link_parser,
)
from tests.conftest import MEET_LINK


# ── Fixtures ────────────────────────────────────────────────────────────────


@pytest.fixture
def vexa_client():
    """VexaClient with test API key."""
    return VexaClient(api_key="test-api-key", base_url="https://vexa.test/")


def _response(method: str, status: int = 200, **kwargs) -> httpx.Response:
    return httpx.Response(status, request=httpx.Request(method, "https://vexa.test"), **kwargs)


SEGMENTS = [
    {"speaker": "Maria Manager", "text": "Alice will draft the proposal."},
    {"speaker": "Alice Smith", "text": "Friday works."},
]


# ── VexaClient Tests ────────────────────────────────────────────────────────


class TestVexaClient:
    """Tests for VexaClient HTTP wrapper."""

    @pytest.mark.asyncio
    async def test_request_bot_builds_correct_request(self, vexa_client):
        """request_bot POSTs platform, native id and bot name to /bots."""
        mock_response = _response("POST", json={"id": 7, "status": "requested"})

        with patch("httpx.AsyncClient.post", new_callable=AsyncMock, return_value=mock_response) as mock_post:
            result = await vexa_client.request_bot(GOOGLE_MEET, "abc-defg-hij", "Tracker")

        assert result["id"] == 7
        assert mock_post.call_args.args[0] == "https://vexa.test/bots"
        assert mock_post.call_args.kwargs["json"] == {
            "platform": "google_meet",
            "native_meeting_id": "abc-defg-hij",
            "bot_name": "Tracker",
        }

    @pytest.mark.asyncio
    async def test_get_transcript_returns_raw_payload(self, vexa_client):
        mock_response = _response("GET", json=SEGMENTS)

        with patch("httpx.AsyncClient.get", new_callable=AsyncMock, return_value=mock_response) as mock_get:
            payload = await vexa_client.get_transcript(GOOGLE_MEET, "abc-defg-hij")

        assert payload == SEGMENTS
        assert mock_get.call_args.args[0] == "https://vexa.test/transcripts/google_meet/abc-defg-hij"

    @pytest.mark.asyncio
    async def test_stop_bot_empty_body(self, vexa_client):
        """stop_bot tolerates an empty 204 response."""
        mock_response = _response("DELETE", 204)

        with patch("httpx.AsyncClient.delete", new_callable=AsyncMock, return_value=mock_response) as mock_delete:
            result = await vexa_client.stop_bot(GOOGLE_MEET, "abc-defg-hij")

        assert result == {}
        assert mock_delete.call_args.args[0] == "https://vexa.test/bots/google_meet/abc-defg-hij"

    @pytest.mark.asyncio
    async def test_retry_on_transient_failure(self, vexa_client):
        """VexaClient retries on transient HTTP errors."""
        error_response = _response("GET", 503)
        success_response = _response("GET", json={"segments": SEGMENTS})

        call_count = 0

        async def mock_get(*args, **kwargs):
            nonlocal call_count
            call_count += 1
            if call_count == 1:
                error_response.raise_for_status()
            return success_response

        with patch("httpx.AsyncClient.get", new_callable=AsyncMock, side_effect=mock_get):
            payload = await vexa_client.get_transcript(GOOGLE_MEET, "abc-defg-hij")

        assert payload["segments"] == SEGMENTS
        assert call_count == 2  # First call failed, second succeeded


# ── Link Parsing Tests ──────────────────────────────────────────────────────


class TestMeetingLinkParser:
    """Join-link parsing."""

    @pytest.mark.parametrize(
        "link",
        [
            "https://meet.google.com/abc-defg-hij",
            "https://meet.google.com/abc-defg-hij/",
            "https://MEET.google.com/abc-defg-hij?authuser=0",
            "http://meet.google.com/lookup/abc-defg-hij",
            "  https://meet.google.com/abc-defg-hij  ",
        ],
    )
    def test_google_meet_variants(self, link):
        ref = default_link_parser().parse(link)
        assert ref == MeetingRef(platform=GOOGLE_MEET, native_id="abc-defg-hij")

    @pytest.mark.parametrize(
        "link",
        [
            "https://zoom.us/j/123456789",
            "https://meet.google.com/",
            "https://meet.google.com/abc-defg",
            "https://meet.google.com.evil.test/abc-defg-hij",
            "meet.google.com/abc-defg-hij",
            "",
            None,
        ],
    )
    def test_unsupported_links(self, link):
        parser = default_link_parser()
        assert parser.parse(link) is None
        assert parser.external_id(link) is None

    def test_registered_platform_is_tried(self):
        parser = default_link_parser()
        parser.register(
            "zoom",
            lambda url: url.path.rsplit("/", 1)[-1] if url.hostname == "zoom.us" else None,
        )

        assert parser.platforms == [GOOGLE_MEET, "zoom"]
        assert parser.parse("https://zoom.us/j/123456789") == MeetingRef("zoom", "123456789")

    def test_empty_registry_parses_nothing(self):
        assert MeetingLinkParser().parse(MEET_LINK) is None


# ── Normalization Tests ─────────────────────────────────────────────────────


class TestNormalizeTranscript:
    """Payload shapes accepted from the transcript endpoint."""

    @pytest.mark.parametrize(
        "payload",
        [SEGMENTS, {"segments": SEGMENTS, "meeting_id": "abc-defg-hij"}],
    )
    def test_list_and_wrapped_shapes_agree(self, payload):
        segments = normalize_transcript(payload)
        assert [(s.speaker_name, s.text) for s in segments] == [
            ("Maria Manager", "Alice will draft the proposal."),
            ("Alice Smith", "Friday works."),
        ]

    def test_single_segment_object(self):
        segments = normalize_transcript({"speaker_name": "Bob", "text": " Done. "})
        assert [(s.speaker_name, s.text) for s in segments] == [("Bob", "Done.")]

    def test_missing_speaker_and_blank_text(self):
        segments = normalize_transcript([
            {"text": "No speaker here"},
            {"speaker": "Alice", "text": "   "},
            "not a segment",
        ])
        assert [(s.speaker_name, s.text) for s in segments] == [("Unknown", "No speaker here")]

    @pytest.mark.parametrize("payload", [None, "text", 42, {"status": "pending"}, []])
    def test_unknown_shapes_are_empty(self, payload):
        assert normalize_transcript(payload) == []


# ── Gateway Tests ───────────────────────────────────────────────────────────


class TestTranscriptionGateway:
    """Result-returning gateway behaviour."""

    @pytest.mark.asyncio
    async def test_start_bot_success(self, gateway, vexa):
        result = await gateway.start_bot(MEET_LINK, "Tracker")

        assert result.started is True
        assert result.bot_id == "42"
        assert result.raw_response == {"id": 42, "status": "requested"}
        vexa.request_bot.assert_awaited_once_with(GOOGLE_MEET, "abc-defg-hij", "Tracker")

    @pytest.mark.asyncio
    async def test_bot_id_falls_back_to_native_id(self, gateway, vexa):
        vexa.request_bot.return_value = {"status": "requested"}
        result = await gateway.start_bot(MEET_LINK, "Tracker")
        assert result.bot_id == "abc-defg-hij"

    @pytest.mark.asyncio
    async def test_unsupported_link_fails_without_network(self, gateway, vexa):
        result = await gateway.start_bot("https://zoom.us/j/123", "Tracker")

        assert result.started is False
        assert result.error == "could not extract meeting id from link"
        vexa.request_bot.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unconfigured_service(self):
        gateway = TranscriptionGateway(client=None)

        start = await gateway.start_bot(MEET_LINK, "Tracker")
        fetched = await gateway.fetch_transcript(MEET_LINK)
        teardown = await gateway.delete_bot(MEET_LINK)

        assert start.error == "transcription service not configured"
        assert fetched.ok is False
        assert teardown.deleted is False

    @pytest.mark.asyncio
    async def test_client_error_becomes_failed_result(self, gateway, vexa):
        vexa.request_bot.side_effect = httpx.ConnectError("refused")
        result = await gateway.start_bot(MEET_LINK, "Tracker")
        assert result.started is False
        assert result.error == "refused"

    @pytest.mark.asyncio
    async def test_fetch_transcript_normalizes(self, gateway):
        result = await gateway.fetch_transcript(MEET_LINK)

        assert result.ok is True
        assert result.has_segments is True
        assert [s.speaker_name for s in result.segments] == ["Maria Manager", "Alice Smith"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [
            [{"speaker": "Bob Jones", "text": "Done."}],
            {"segments": [{"speaker": "Bob Jones", "text": "Done."}]},
            {"speaker": "Bob Jones", "text": "Done."},
        ],
        ids=["bare-list", "segments-wrapper", "single-object"],
    )
    async def test_all_payload_shapes_fetch_identically(self, gateway, vexa, payload):
        vexa.get_transcript.return_value = payload

        result = await gateway.fetch_transcript(MEET_LINK)

        assert result.ok is True
        assert result.segments == [TranscriptSegment(speaker_name="Bob Jones", text="Done.")]

    @pytest.mark.asyncio
    async def test_fetch_timeout_reported(self, vexa):
        async def slow(*args, **kwargs):
            await asyncio.sleep(1)
            return SEGMENTS

        vexa.get_transcript.side_effect = slow
        gateway = TranscriptionGateway(client=vexa, transcript_deadline=0.01)

        result = await gateway.fetch_transcript(MEET_LINK)

        assert result.ok is False
        assert result.has_segments is False
        assert result.error == "TimeoutError"

    @pytest.mark.asyncio
    async def test_empty_transcript_is_ok_without_segments(self, gateway, vexa):
        vexa.get_transcript.return_value = {"segments": []}
        result = await gateway.fetch_transcript(MEET_LINK)
        assert result.ok is True
        assert result.has_segments is False

    @pytest.mark.asyncio
    async def test_delete_bot(self, gateway, vexa):
        result = await gateway.delete_bot(MEET_LINK)
        assert result.deleted is True
        vexa.stop_bot.assert_awaited_once_with(GOOGLE_MEET, "abc-defg-hij")

    @pytest.mark.asyncio
    async def test_delete_bot_failure_reported(self, gateway, vexa):
        vexa.stop_bot.side_effect = RuntimeError("already gone")
        result = await gateway.delete_bot(MEET_LINK)
        assert result.deleted is False
        assert result.error == "already gone"
