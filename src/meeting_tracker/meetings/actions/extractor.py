"""ActionItemExtractor -- structured action-item extraction from transcripts.

Uses the instructor + litellm pattern for structured LLM extraction: the
completion is requested with ``response_model=ExtractedActionItems`` so the
reply is validated against a fixed shape. Unlike the transcription gateway,
a reply that does not fit that shape is a hard failure (ParseError); a
transport error or timeout is an ExternalServiceError.

After extraction, assignee names are resolved against the user directory by
exact match on full name or username. Items whose assignee cannot be
resolved are kept with ``assignee_id=None``.

Exports:
    ActionItemExtractor: Extraction and resolution service.
    ExtractedActionItem: Pydantic model for one instructor-extracted item.
    ExtractedActionItems: Pydantic model for the full instructor reply.
"""

from __future__ import annotations

import asyncio
import json
from datetime import date
from typing import Protocol

import structlog
from instructor.exceptions import InstructorRetryException
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from src.meeting_tracker.core.errors import ExternalServiceError, ParseError
from src.meeting_tracker.core.monitoring import track_llm_call
from src.meeting_tracker.meetings.schemas import ActionItem
from src.meeting_tracker.users.schemas import User

logger = structlog.get_logger(__name__)


# ── Constants ────────────────────────────────────────────────────────────────

DEFAULT_MODEL = "openai/gpt-4o-mini"
DEFAULT_TIMEOUT = 60.0

SYSTEM_PROMPT = """You extract action items from meeting transcripts.

For each action item identify:
1. The person responsible. Use a name exactly as written in the candidate
   list. If nobody from the list is clearly responsible, leave it null.
2. A concise description of the task.
3. The due date if one is mentioned, formatted as YYYY-MM-DD, otherwise null.

Only include concrete commitments. Do not invent tasks that were not
discussed."""


# ── Pydantic Response Models for Instructor ──────────────────────────────────


class ExtractedActionItem(BaseModel):
    """Action item extracted from a meeting transcript by the LLM."""

    assignee: str | None = Field(None, description="Responsible person, from the candidate list")
    task: str = Field(description="What needs to be done")
    due_date: str | None = Field(None, description="Due date as YYYY-MM-DD, if mentioned")


class ExtractedActionItems(BaseModel):
    """Complete extraction reply."""

    action_items: list[ExtractedActionItem] = Field(default_factory=list)


class UserDirectory(Protocol):
    async def find_by_name(self, name: str) -> User | None: ...


# Reply could not be coerced into ExtractedActionItems
_PARSE_FAILURES = (InstructorRetryException, PydanticValidationError, json.JSONDecodeError)


class ActionItemExtractor:
    """Turns transcript text into resolved ActionItem records.

    Args:
        user_directory: Repository used to resolve assignee names.
        model: litellm model identifier.
        timeout: Seconds allowed for one completion.
    """

    def __init__(
        self,
        user_directory: UserDirectory,
        model: str = DEFAULT_MODEL,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._users = user_directory
        self._model = model
        self._timeout = timeout

    async def extract(
        self, transcript_text: str, candidate_names: list[str]
    ) -> list[ExtractedActionItem]:
        """Extract action items from transcript text.

        Args:
            transcript_text: Plain transcript, one ``Speaker: text`` line per turn.
            candidate_names: Names the model may assign tasks to.

        Returns:
            Extracted items in reply order.

        Raises:
            ParseError: The reply did not match the expected structure.
            ExternalServiceError: The completion service failed or timed out.
        """
        try:
            async with track_llm_call(self._model, "action_items"):
                reply = await asyncio.wait_for(
                    self._complete(transcript_text, candidate_names),
                    timeout=self._timeout,
                )
        except _PARSE_FAILURES as exc:
            logger.error("action_items.parse_failed", model=self._model, error=str(exc))
            raise ParseError("Failed to parse action items from completion reply") from exc
        except asyncio.TimeoutError as exc:
            logger.error("action_items.timeout", model=self._model, timeout=self._timeout)
            raise ExternalServiceError("Action item extraction timed out") from exc
        except Exception as exc:
            logger.error("action_items.completion_failed", model=self._model, exc_info=True)
            raise ExternalServiceError("Failed to process meeting transcription") from exc

        items = [item for item in reply.action_items if item.task and item.task.strip()]
        logger.info(
            "action_items.extracted",
            model=self._model,
            count=len(items),
            candidates=len(candidate_names),
        )
        return items

    async def resolve(self, items: list[ExtractedActionItem]) -> list[ActionItem]:
        """Map extracted assignee names to user ids.

        Unknown names keep the item with a null assignee.
        """
        resolved: list[ActionItem] = []
        cache: dict[str, User | None] = {}
        for item in items:
            user = None
            name = (item.assignee or "").strip()
            if name:
                if name not in cache:
                    cache[name] = await self._users.find_by_name(name)
                user = cache[name]
                if user is None:
                    logger.info("action_items.assignee_unresolved", assignee=name)
            resolved.append(
                ActionItem(
                    assignee_id=user.id if user else None,
                    assignee_name=name or None,
                    task=item.task.strip(),
                    due_date=_parse_due_date(item.due_date),
                )
            )
        return resolved

    async def _complete(
        self, transcript_text: str, candidate_names: list[str]
    ) -> ExtractedActionItems:
        """Run the structured completion.

        Uses instructor.from_litellm(litellm.acompletion) pattern.
        """
        import instructor
        import litellm

        client = instructor.from_litellm(litellm.acompletion)

        return await client.chat.completions.create(
            model=self._model,
            response_model=ExtractedActionItems,
            max_retries=1,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": (
                        f"Candidate assignees: {', '.join(candidate_names) or '(none)'}\n\n"
                        f"Transcript:\n{transcript_text}"
                    ),
                },
            ],
            max_tokens=2048,
            temperature=0.1,
        )


# ── Module-Level Helpers ─────────────────────────────────────────────────────


def _parse_due_date(value: str | None) -> date | None:
    """Parse a YYYY-MM-DD prefix; anything else is treated as no due date."""
    if not value:
        return None
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        return None
