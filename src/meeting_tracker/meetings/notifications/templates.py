"""HTML email bodies for meeting notifications.

Each builder returns ``(subject, html)``. Dates are rendered in the
meeting's timezone; user-supplied text is HTML-escaped.
"""

from __future__ import annotations

from datetime import datetime
from html import escape
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from src.meeting_tracker.meetings.schemas import Meeting, ReminderType
from src.meeting_tracker.users.schemas import User

_REMINDER_LEAD = {
    ReminderType.DAY_BEFORE: "24 hours",
    ReminderType.HOUR_BEFORE: "1 hour",
    ReminderType.QUARTER_HOUR_BEFORE: "15 minutes",
}

_FOOTER = "<p><em>This is an automated message from Meeting Action Tracker.</em></p>"


def format_meeting_time(value: datetime, tz_name: str) -> str:
    """Render e.g. ``Monday, March 02, 2026 at 03:30 PM UTC``."""
    try:
        tz = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        tz = ZoneInfo("UTC")
    local = value.astimezone(tz)
    return local.strftime("%A, %B %d, %Y at %I:%M %p ") + (local.tzname() or tz_name)


def _wrap(heading: str, color: str, body: str) -> str:
    return f"""<html>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto;">
<div style="background-color: {color}; color: white; padding: 20px; text-align: center;">
<h1>{heading}</h1>
</div>
<div style="padding: 20px; background-color: #f9f9f9;">
{body}
</div>
<hr>
{_FOOTER}
</body>
</html>"""


def _details(meeting: Meeting, host: User, include_host_contact: bool = True) -> str:
    host_line = (
        f"{escape(host.full_name)} ({escape(host.email)})"
        if include_host_contact
        else escape(host.full_name)
    )
    department = (
        f"<p><strong>Department:</strong> {escape(host.department)}</p>"
        if include_host_contact and host.department
        else ""
    )
    return f"""<div style="background-color: white; padding: 15px; margin: 15px 0;">
<h3>{escape(meeting.title)}</h3>
<p><strong>Description:</strong> {escape(meeting.description)}</p>
<p><strong>Date &amp; Time:</strong> {format_meeting_time(meeting.scheduled_date_time, meeting.timezone)}</p>
<p><strong>Duration:</strong> {meeting.duration} minutes</p>
<p><strong>Host:</strong> {host_line}</p>
{department}
</div>"""


def build_invitation_email(meeting: Meeting, participant: User, host: User) -> tuple[str, str]:
    link = escape(meeting.meeting_link, quote=True)
    body = f"""<p>Hello {escape(participant.display_name)},</p>
<p>You have been invited to join a meeting hosted by <strong>{escape(host.full_name)}</strong>.</p>
{_details(meeting, host)}
<p style="text-align: center;"><a href="{link}">Join Meeting</a></p>
<p><strong>Meeting Link:</strong> <a href="{link}">{link}</a></p>
<p>Please join on time. If you have any questions, contact the meeting host.</p>"""
    return f"Meeting Invitation: {meeting.title}", _wrap("Meeting Invitation", "#4CAF50", body)


def build_cancellation_email(
    meeting: Meeting, participant: User, host: User, reason: str | None = None
) -> tuple[str, str]:
    reason_html = (
        f"<p><strong>Reason:</strong> {escape(reason)}</p>" if reason else ""
    )
    body = f"""<p>Hello {escape(participant.display_name)},</p>
<p>The following meeting has been cancelled by <strong>{escape(host.full_name)}</strong>.</p>
{_details(meeting, host)}
{reason_html}
<p>No further action is required.</p>"""
    return f"Meeting Cancelled: {meeting.title}", _wrap("Meeting Cancelled", "#F44336", body)


def build_reminder_email(
    meeting: Meeting, participant: User, host: User, reminder_type: ReminderType
) -> tuple[str, str]:
    lead = _REMINDER_LEAD[reminder_type]
    link = escape(meeting.meeting_link, quote=True)
    body = f"""<p>Hello {escape(participant.display_name)},</p>
<p>This is a reminder that your meeting "<strong>{escape(meeting.title)}</strong>" is starting in {lead}.</p>
{_details(meeting, host, include_host_contact=False)}
<p style="text-align: center;"><a href="{link}">Join Meeting Now</a></p>"""
    return (
        f"Meeting Reminder: {meeting.title} - Starting in {lead}",
        _wrap("Meeting Reminder", "#FF9800", body),
    )
