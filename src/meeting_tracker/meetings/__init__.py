"""Meeting domain -- lifecycle, persistence, and integrations.

Provides the Pydantic schemas and SQLAlchemy model for meetings, the
MeetingRepository, and the MeetingLifecycleEngine together with its
collaborators: the transcription bot gateway, the action-item extractor,
and the email notification dispatcher.
"""
