"""API middleware package."""

from src.meeting_tracker.api.middleware.logging import LoggingMiddleware

__all__ = ["LoggingMiddleware"]
