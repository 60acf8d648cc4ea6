"""Async HTTP client wrapper for the Vexa transcription bot API.

Provides VexaClient with retry logic (tenacity, 3 attempts, exponential
backoff 1-10s). All methods are async and log with structlog for
observability.

Methods cover the bot lifecycle used by the gateway: request a bot for a
meeting, read its transcript, and stop it.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

logger = structlog.get_logger(__name__)

_vexa_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((httpx.HTTPStatusError, httpx.ConnectError, httpx.TimeoutException)),
)


class VexaClient:
    """Async client for the Vexa REST API.

    Bots are addressed by ``(platform, native_meeting_id)``. Uses
    httpx.AsyncClient with timeouts per operation type.

    Args:
        api_key: Vexa API key.
        base_url: API root (default: the hosted Vexa cloud).
    """

    # Timeouts per operation type
    TIMEOUT_BOT = 5.0          # request/stop bot
    TIMEOUT_TRANSCRIPT = 30.0  # transcript retrieval

    def __init__(self, api_key: str, base_url: str = "https://api.cloud.vexa.ai") -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._headers = {
            "X-API-Key": api_key,
            "Content-Type": "application/json",
        }

    def _client(self, timeout: float) -> httpx.AsyncClient:
        """Create a new httpx client with specified timeout."""
        return httpx.AsyncClient(
            headers=self._headers,
            timeout=timeout,
        )

    @_vexa_retry
    async def request_bot(self, platform: str, native_meeting_id: str, bot_name: str) -> dict:
        """Ask the service to send a bot into a meeting.

        POST /bots with platform, native meeting id and display name.

        Args:
            platform: Platform key, e.g. ``google_meet``.
            native_meeting_id: Platform meeting code.
            bot_name: Name the bot shows in the call.

        Returns:
            Bot creation response.
        """
        async with self._client(self.TIMEOUT_BOT) as client:
            response = await client.post(
                f"{self._base_url}/bots",
                json={
                    "platform": platform,
                    "native_meeting_id": native_meeting_id,
                    "bot_name": bot_name,
                },
            )
            response.raise_for_status()
            data = response.json()
            logger.info(
                "vexa.bot_requested",
                platform=platform,
                native_meeting_id=native_meeting_id,
                bot_id=data.get("id") if isinstance(data, dict) else None,
            )
            return data if isinstance(data, dict) else {"response": data}

    @_vexa_retry
    async def get_transcript(self, platform: str, native_meeting_id: str) -> Any:
        """Get the transcript recorded for a meeting.

        GET /transcripts/{platform}/{native_meeting_id}. The payload shape
        is not fixed; callers normalize it.
        """
        async with self._client(self.TIMEOUT_TRANSCRIPT) as client:
            response = await client.get(
                f"{self._base_url}/transcripts/{platform}/{native_meeting_id}",
            )
            response.raise_for_status()
            logger.info(
                "vexa.transcript_retrieved",
                platform=platform,
                native_meeting_id=native_meeting_id,
            )
            return response.json()

    @_vexa_retry
    async def stop_bot(self, platform: str, native_meeting_id: str) -> dict:
        """Remove the bot from a meeting.

        DELETE /bots/{platform}/{native_meeting_id}.
        """
        async with self._client(self.TIMEOUT_BOT) as client:
            response = await client.delete(
                f"{self._base_url}/bots/{platform}/{native_meeting_id}",
            )
            response.raise_for_status()
            logger.info(
                "vexa.bot_stopped",
                platform=platform,
                native_meeting_id=native_meeting_id,
            )
            if not response.content:
                return {}
            data = response.json()
            return data if isinstance(data, dict) else {"response": data}
