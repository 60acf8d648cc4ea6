"""GSuite integration for outbound email.

Provides an async-wrapped Gmail service for sending meeting notifications
using Google service account authentication with domain-wide delegation.
"""

from src.meeting_tracker.services.gsuite.auth import GSuiteAuthManager
from src.meeting_tracker.services.gsuite.gmail import GmailService
from src.meeting_tracker.services.gsuite.models import EmailMessage, SentEmailResult

__all__ = [
    "EmailMessage",
    "GmailService",
    "GSuiteAuthManager",
    "SentEmailResult",
]
