"""Tests for ActionItemExtractor.

The completion call (``_complete``) is patched in every test, so no LLM
is contacted. Covers reply filtering, error mapping, and assignee/due-date
resolution against the in-memory user directory.
"""

from __future__ import annotations

import asyncio
import json
from datetime import date
from unittest.mock import AsyncMock, patch

import pytest

from src.meeting_tracker.core.errors import ExternalServiceError, ParseError
from src.meeting_tracker.meetings.actions.extractor import (
    ActionItemExtractor,
    ExtractedActionItem,
    ExtractedActionItems,
)

TRANSCRIPT = "Maria Manager: Alice, please draft the proposal by Friday.\nAlice Smith: Will do."


def _patch_complete(**kwargs):
    return patch.object(ActionItemExtractor, "_complete", new_callable=AsyncMock, **kwargs)


# ── Extraction ───────────────────────────────────────────────────────────────


class TestExtract:
    """extract(): completion reply handling."""

    @pytest.mark.asyncio
    async def test_returns_items_in_reply_order(self, extractor):
        reply = ExtractedActionItems(action_items=[
            ExtractedActionItem(assignee="Alice Smith", task="Draft the proposal", due_date="2026-03-06"),
            ExtractedActionItem(assignee=None, task="Book a room"),
        ])

        with _patch_complete(return_value=reply) as mock_complete:
            items = await extractor.extract(TRANSCRIPT, ["Alice Smith", "Bob Jones"])

        assert [i.task for i in items] == ["Draft the proposal", "Book a room"]
        mock_complete.assert_awaited_once_with(TRANSCRIPT, ["Alice Smith", "Bob Jones"])

    @pytest.mark.asyncio
    async def test_blank_tasks_dropped(self, extractor):
        reply = ExtractedActionItems(action_items=[
            ExtractedActionItem(assignee="Alice", task="   "),
            ExtractedActionItem(assignee="Bob", task="Send notes"),
        ])

        with _patch_complete(return_value=reply):
            items = await extractor.extract(TRANSCRIPT, [])

        assert [i.assignee for i in items] == ["Bob"]

    @pytest.mark.asyncio
    async def test_empty_reply(self, extractor):
        with _patch_complete(return_value=ExtractedActionItems()):
            assert await extractor.extract(TRANSCRIPT, []) == []

    @pytest.mark.asyncio
    async def test_malformed_reply_is_parse_error(self, extractor):
        with _patch_complete(side_effect=json.JSONDecodeError("Expecting value", "not json", 0)):
            with pytest.raises(ParseError):
                await extractor.extract(TRANSCRIPT, [])

    @pytest.mark.asyncio
    async def test_reply_failing_validation_is_parse_error(self, extractor):
        def invalid_reply(*args, **kwargs):
            # task is required
            ExtractedActionItems.model_validate({"action_items": [{"assignee": "Alice"}]})

        with _patch_complete(side_effect=invalid_reply):
            with pytest.raises(ParseError):
                await extractor.extract(TRANSCRIPT, [])

    @pytest.mark.asyncio
    async def test_service_failure_is_external_error(self, extractor):
        with _patch_complete(side_effect=ConnectionError("provider down")):
            with pytest.raises(ExternalServiceError):
                await extractor.extract(TRANSCRIPT, [])

    @pytest.mark.asyncio
    async def test_timeout_is_external_error(self, user_repo):
        extractor = ActionItemExtractor(user_directory=user_repo, model="test/model", timeout=0.01)

        async def slow(*args, **kwargs):
            await asyncio.sleep(1)
            return ExtractedActionItems()

        with _patch_complete(side_effect=slow):
            with pytest.raises(ExternalServiceError, match="timed out"):
                await extractor.extract(TRANSCRIPT, [])


# ── Resolution ───────────────────────────────────────────────────────────────


class TestResolve:
    """resolve(): assignee and due-date mapping."""

    @pytest.mark.asyncio
    async def test_full_name_and_username_resolve(self, extractor, alice, bob):
        items = await extractor.resolve([
            ExtractedActionItem(assignee="Alice Smith", task="Draft"),
            ExtractedActionItem(assignee="Bob", task="Review"),
        ])

        assert [i.assignee_id for i in items] == [alice.id, bob.id]
        assert [i.assignee_name for i in items] == ["Alice Smith", "Bob"]

    @pytest.mark.asyncio
    async def test_unknown_name_kept_unassigned(self, extractor, alice):
        items = await extractor.resolve([ExtractedActionItem(assignee="Zed", task="Book venue")])

        assert items[0].assignee_id is None
        assert items[0].assignee_name == "Zed"
        assert items[0].task == "Book venue"

    @pytest.mark.asyncio
    async def test_inactive_user_not_assigned(self, extractor, alice, user_repo):
        await user_repo.update_user(alice.id, is_active=False)
        items = await extractor.resolve([ExtractedActionItem(assignee="Alice Smith", task="Draft")])
        assert items[0].assignee_id is None

    @pytest.mark.asyncio
    async def test_missing_assignee(self, extractor):
        items = await extractor.resolve([ExtractedActionItem(assignee="  ", task="Tidy up")])
        assert items[0].assignee_id is None
        assert items[0].assignee_name is None

    @pytest.mark.asyncio
    async def test_name_lookup_cached(self, extractor, alice, user_repo):
        with patch.object(user_repo, "find_by_name", wraps=user_repo.find_by_name) as spy:
            await extractor.resolve([
                ExtractedActionItem(assignee="Alice Smith", task="One"),
                ExtractedActionItem(assignee="Alice Smith", task="Two"),
            ])
        assert spy.call_count == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("2026-03-06", date(2026, 3, 6)),
            ("2026-03-06T17:00:00Z", date(2026, 3, 6)),
            ("next Friday", None),
            ("2026-13-01", None),
            (None, None),
        ],
    )
    async def test_due_date_parsing(self, extractor, raw, expected):
        items = await extractor.resolve([ExtractedActionItem(task="Task", due_date=raw)])
        assert items[0].due_date == expected
