"""Async Gmail API service for sending emails.

All Google API calls are wrapped in asyncio.to_thread() so the blocking
client never stalls the event loop.
"""

from __future__ import annotations

import asyncio
import base64
from email.message import EmailMessage as StdlibEmailMessage

import structlog

from src.meeting_tracker.services.gsuite.auth import GSuiteAuthManager
from src.meeting_tracker.services.gsuite.models import EmailMessage, SentEmailResult

logger = structlog.get_logger(__name__)


class GmailService:
    """Async wrapper around the Gmail API send endpoint."""

    def __init__(
        self,
        auth_manager: GSuiteAuthManager,
        default_user_email: str,
    ) -> None:
        self._auth = auth_manager
        self._default_user_email = default_user_email

    def _build_mime_message(self, email: EmailMessage, sender: str) -> str:
        """Build an RFC 2822 compliant MIME message.

        Args:
            email: The EmailMessage with content and headers.
            sender: Address placed in the From header.

        Returns:
            Base64url-encoded raw message string for the Gmail API.
        """
        msg = StdlibEmailMessage()
        msg["From"] = sender
        msg["To"] = email.to
        msg["Subject"] = email.subject

        if email.cc:
            msg["Cc"] = ", ".join(email.cc)
        if email.reply_to:
            msg["Reply-To"] = email.reply_to

        # HTML body with optional text fallback
        if email.body_text:
            msg.set_content(email.body_text)
            msg.add_alternative(email.body_html, subtype="html")
        else:
            msg.set_content(email.body_html, subtype="html")

        return base64.urlsafe_b64encode(msg.as_bytes()).decode()

    async def send_email(
        self,
        email: EmailMessage,
        user_email: str | None = None,
    ) -> SentEmailResult:
        """Send an email via Gmail API.

        Args:
            email: The email message to send.
            user_email: Sender email (for delegation). Defaults to
                the configured default_user_email.

        Returns:
            SentEmailResult with message_id, thread_id, and label_ids.
        """
        sender = user_email or self._default_user_email
        service = self._auth.get_gmail_service(sender)
        raw = self._build_mime_message(email, sender)

        def _send() -> dict:
            return (
                service.users()
                .messages()
                .send(userId="me", body={"raw": raw})
                .execute()
            )

        logger.info(
            "sending_email",
            to=email.to,
            subject=email.subject,
        )
        result = await asyncio.to_thread(_send)

        return SentEmailResult(
            message_id=result.get("id", ""),
            thread_id=result.get("threadId", ""),
            label_ids=result.get("labelIds", []),
        )
