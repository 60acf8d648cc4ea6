"""Meeting email notifications (invitation, cancellation, reminder)."""
