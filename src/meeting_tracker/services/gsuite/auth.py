"""GSuite authentication manager with service account and domain-wide delegation.

Caches Gmail service instances per sender so credentials are built once
per mailbox rather than on every send.
"""

from __future__ import annotations

from typing import Any

import structlog
from google.oauth2 import service_account
from googleapiclient.discovery import build

logger = structlog.get_logger(__name__)

GMAIL_SCOPES = [
    "https://www.googleapis.com/auth/gmail.send",
]


class GSuiteAuthManager:
    """Manages Google API authentication with service account credentials.

    Args:
        service_account_file: Path to the service account JSON key.
        delegated_user_email: Mailbox impersonated when no sender is given.
    """

    def __init__(
        self,
        service_account_file: str,
        delegated_user_email: str,
    ) -> None:
        self._service_account_file = service_account_file
        self._delegated_user_email = delegated_user_email
        self._service_cache: dict[str, Any] = {}

    def _build_credentials(self, user_email: str) -> service_account.Credentials:
        """Create service account credentials delegated to ``user_email``."""
        credentials = service_account.Credentials.from_service_account_file(
            self._service_account_file,
            scopes=GMAIL_SCOPES,
        )
        return credentials.with_subject(user_email)

    def get_gmail_service(self, user_email: str | None = None) -> Any:
        """Get a cached Gmail API v1 service instance for the delegated user.

        Args:
            user_email: Email to impersonate. Defaults to the configured
                delegated_user_email.

        Returns:
            Gmail API Resource object.
        """
        email = user_email or self._delegated_user_email
        cache_key = f"gmail:{email}"

        if cache_key not in self._service_cache:
            logger.info(
                "building_gmail_service",
                user_email=email,
            )
            credentials = self._build_credentials(email)
            service = build("gmail", "v1", credentials=credentials, cache_discovery=False)
            self._service_cache[cache_key] = service

        return self._service_cache[cache_key]
