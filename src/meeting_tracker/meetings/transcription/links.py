"""Join-link parsing, one parser per meeting platform.

A parser receives the split URL and returns the platform's native meeting
id or None. ``MeetingLinkParser`` tries registered parsers in registration
order; the default instance knows Google Meet.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from urllib.parse import SplitResult, urlsplit

GOOGLE_MEET = "google_meet"

_GOOGLE_MEET_HOST = "meet.google.com"
_GOOGLE_MEET_PATH = re.compile(r"^/(?:lookup/)?([a-z]{3}-[a-z]{4}-[a-z]{3})/?$")

PlatformParser = Callable[[SplitResult], str | None]


@dataclass(frozen=True)
class MeetingRef:
    """Platform plus native meeting id, the address used by the bot service."""

    platform: str
    native_id: str


def parse_google_meet(url: SplitResult) -> str | None:
    """Return the ``abc-defg-hij`` code of a Google Meet link."""
    if (url.hostname or "").lower() != _GOOGLE_MEET_HOST:
        return None
    match = _GOOGLE_MEET_PATH.match(url.path)
    return match.group(1) if match else None


class MeetingLinkParser:
    """Registry of platform parsers."""

    def __init__(self) -> None:
        self._parsers: dict[str, PlatformParser] = {}

    def register(self, platform: str, parser: PlatformParser) -> None:
        self._parsers[platform] = parser

    @property
    def platforms(self) -> list[str]:
        return list(self._parsers)

    def parse(self, link: str | None) -> MeetingRef | None:
        """Resolve a join link to a MeetingRef, or None if no parser accepts it."""
        if not link:
            return None
        try:
            url = urlsplit(link.strip())
        except ValueError:
            return None
        if url.scheme not in ("http", "https"):
            return None
        for platform, parser in self._parsers.items():
            native_id = parser(url)
            if native_id:
                return MeetingRef(platform=platform, native_id=native_id)
        return None

    def external_id(self, link: str | None) -> str | None:
        ref = self.parse(link)
        return ref.native_id if ref else None


def default_link_parser() -> MeetingLinkParser:
    """Parser preloaded with the supported platforms."""
    parser = MeetingLinkParser()
    parser.register(GOOGLE_MEET, parse_google_meet)
    return parser
