"""Action-item extraction from meeting transcripts."""
