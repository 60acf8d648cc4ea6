"""Transcription bot integration.

Parses join links into platform-specific meeting ids, talks to the
bot-hosting service over HTTP, and exposes a gateway that returns result
objects and normalizes transcript payloads into TranscriptSegment lists.
"""
