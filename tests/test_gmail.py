"""Unit tests for the Gmail delivery service.

Tests GSuiteAuthManager and GmailService with mocked Google API clients.
Covers:
- Gmail service caching per delegated mailbox
- MIME construction (HTML body, text fallback, Reply-To, Cc)
- send_email request shape and result mapping
"""

from __future__ import annotations

import base64
import email
from email.policy import default as default_policy
from unittest.mock import MagicMock, patch

import pytest

from src.meeting_tracker.services.gsuite.auth import GSuiteAuthManager
from src.meeting_tracker.services.gsuite.gmail import GmailService
from src.meeting_tracker.services.gsuite.models import EmailMessage, SentEmailResult


# ── Fixtures ─────────────────────────────────────────────────────────────────


@pytest.fixture
def mock_credentials():
    """Mock Google service account credentials."""
    with patch(
        "src.meeting_tracker.services.gsuite.auth.service_account.Credentials"
    ) as mock_creds_cls:
        mock_creds = MagicMock()
        mock_creds.with_subject.return_value = mock_creds
        mock_creds_cls.from_service_account_file.return_value = mock_creds
        yield mock_creds_cls


@pytest.fixture
def mock_build():
    """Mock googleapiclient.discovery.build."""
    with patch("src.meeting_tracker.services.gsuite.auth.build") as mock_build_fn:
        yield mock_build_fn


@pytest.fixture
def auth_manager(mock_credentials, mock_build):
    return GSuiteAuthManager(
        service_account_file="/fake/service-account.json",
        delegated_user_email="noreply@example.com",
    )


@pytest.fixture
def gmail_service(auth_manager):
    return GmailService(auth_manager=auth_manager, default_user_email="noreply@example.com")


def _decode(raw: str):
    return email.message_from_bytes(base64.urlsafe_b64decode(raw), policy=default_policy)


# ── Auth Caching Tests ───────────────────────────────────────────────────────


class TestGSuiteAuthManager:

    def test_gmail_service_caches_per_user(self, auth_manager, mock_build):
        """Two calls with the same mailbox return the same service object."""
        service1 = auth_manager.get_gmail_service("user@example.com")
        service2 = auth_manager.get_gmail_service("user@example.com")

        assert service1 is service2
        assert mock_build.call_count == 1

    def test_different_mailboxes_get_different_services(self, auth_manager, mock_build):
        mock_build.side_effect = [MagicMock(), MagicMock()]

        service1 = auth_manager.get_gmail_service("user1@example.com")
        service2 = auth_manager.get_gmail_service("user2@example.com")

        assert service1 is not service2
        assert mock_build.call_count == 2

    def test_defaults_to_delegated_mailbox(self, auth_manager, mock_credentials):
        auth_manager.get_gmail_service()

        mock_creds = mock_credentials.from_service_account_file.return_value
        mock_creds.with_subject.assert_called_once_with("noreply@example.com")


# ── Gmail Service Tests ──────────────────────────────────────────────────────


class TestGmailService:

    def test_build_mime_message_html_only(self, gmail_service):
        raw = gmail_service._build_mime_message(
            EmailMessage(
                to="alice@example.com",
                subject="Meeting Invitation: Sprint Planning",
                body_html="<p>Hello</p>",
                reply_to="maria@example.com",
            ),
            sender="noreply@example.com",
        )

        msg = _decode(raw)
        assert msg["From"] == "noreply@example.com"
        assert msg["To"] == "alice@example.com"
        assert msg["Reply-To"] == "maria@example.com"
        assert msg["Subject"] == "Meeting Invitation: Sprint Planning"
        assert msg.get_content_type() == "text/html"

    def test_build_mime_message_with_text_fallback_and_cc(self, gmail_service):
        raw = gmail_service._build_mime_message(
            EmailMessage(
                to="alice@example.com",
                subject="Hi",
                body_html="<p>HTML body</p>",
                body_text="Plain text body",
                cc=["bob@example.com", "carol@example.com"],
            ),
            sender="noreply@example.com",
        )

        msg = _decode(raw)
        assert msg["Cc"] == "bob@example.com, carol@example.com"
        assert msg.get_content_type() == "multipart/alternative"
        assert "Plain text body" in msg.get_body(preferencelist=("plain",)).get_content()
        assert "<p>HTML body</p>" in msg.get_body(preferencelist=("html",)).get_content()

    @pytest.mark.asyncio
    async def test_send_email_maps_result(self, gmail_service):
        mock_service = gmail_service._auth.get_gmail_service()
        send = mock_service.users.return_value.messages.return_value.send
        send.return_value.execute.return_value = {
            "id": "msg-123",
            "threadId": "thread-456",
            "labelIds": ["SENT"],
        }

        result = await gmail_service.send_email(
            EmailMessage(to="alice@example.com", subject="Test", body_html="<p>Test</p>")
        )

        assert isinstance(result, SentEmailResult)
        assert result.message_id == "msg-123"
        assert result.thread_id == "thread-456"
        assert send.call_args.kwargs["userId"] == "me"
        assert _decode(send.call_args.kwargs["body"]["raw"])["To"] == "alice@example.com"

    def test_email_message_defaults(self):
        msg = EmailMessage(to="a@example.com", subject="S", body_html="<p>x</p>")
        assert msg.body_text is None
        assert msg.reply_to is None
        assert msg.cc == []
