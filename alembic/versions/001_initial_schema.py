"""Create users and meetings tables.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19

- users: manager/staff accounts with a self-referencing manager_id
- meetings: meeting aggregate; participants, transcript, action items,
  attachments, recurrence and reminder records are JSONB columns

Participant and action-item lookups use JSONB containment, backed by GIN
indexes.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID

# revision identifiers, used by Alembic.
revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _jsonb_list(name: str) -> sa.Column:
    return sa.Column(
        name,
        JSONB(),
        server_default=sa.text("'[]'::jsonb"),
        nullable=False,
    )


def upgrade() -> None:
    # ── users table ──────────────────────────────────────────────────────

    op.create_table(
        "users",
        sa.Column(
            "id",
            UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("username", sa.String(20), nullable=False, unique=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("full_name", sa.String(50), nullable=False),
        sa.Column("hashed_password", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("department", sa.String(30), nullable=False),
        sa.Column("job_title", sa.String(50), nullable=True),
        sa.Column("employee_id", sa.String(50), nullable=False, unique=True),
        sa.Column("avatar", sa.String(1000), nullable=True),
        sa.Column(
            "manager_id",
            UUID(as_uuid=True),
            sa.ForeignKey("users.id"),
            nullable=True,
        ),
        sa.Column(
            "timezone",
            sa.String(64),
            server_default=sa.text("'UTC'"),
            nullable=False,
        ),
        sa.Column(
            "is_active",
            sa.Boolean(),
            server_default=sa.text("true"),
            nullable=False,
        ),
        sa.Column("last_login", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "ix_users_manager_role_active",
        "users",
        ["manager_id", "role", "is_active"],
    )

    # ── meetings table ───────────────────────────────────────────────────

    op.create_table(
        "meetings",
        sa.Column(
            "id",
            UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("meeting_id", sa.String(100), nullable=True),
        sa.Column("title", sa.String(100), nullable=False),
        sa.Column("description", sa.String(500), nullable=False),
        sa.Column(
            "host_id",
            UUID(as_uuid=True),
            sa.ForeignKey("users.id"),
            nullable=False,
        ),
        sa.Column("meeting_link", sa.String(1000), nullable=False),
        sa.Column("scheduled_date_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration", sa.Integer(), nullable=False),
        sa.Column(
            "timezone",
            sa.String(64),
            server_default=sa.text("'UTC'"),
            nullable=False,
        ),
        sa.Column(
            "status",
            sa.String(20),
            server_default=sa.text("'scheduled'"),
            nullable=False,
        ),
        sa.Column("actual_start_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("actual_end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("meeting_notes", sa.Text(), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column(
            "is_recurring",
            sa.Boolean(),
            server_default=sa.text("false"),
            nullable=False,
        ),
        sa.Column("recurring_pattern_data", JSONB(), nullable=True),
        sa.Column(
            "email_sent",
            sa.Boolean(),
            server_default=sa.text("false"),
            nullable=False,
        ),
        sa.Column("transcription_bot_id", sa.String(200), nullable=True),
        sa.Column(
            "transcription_bot_started",
            sa.Boolean(),
            server_default=sa.text("false"),
            nullable=False,
        ),
        _jsonb_list("participants_data"),
        _jsonb_list("transcript_data"),
        _jsonb_list("action_items_data"),
        _jsonb_list("attachments_data"),
        _jsonb_list("reminders_data"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_index("ix_meetings_meeting_id", "meetings", ["meeting_id"])
    op.create_index(
        "ix_meetings_host_scheduled",
        "meetings",
        ["host_id", "scheduled_date_time"],
    )
    op.create_index(
        "ix_meetings_status_scheduled",
        "meetings",
        ["status", "scheduled_date_time"],
    )
    op.create_index(
        "ix_meetings_participants_gin",
        "meetings",
        ["participants_data"],
        postgresql_using="gin",
    )
    op.create_index(
        "ix_meetings_action_items_gin",
        "meetings",
        ["action_items_data"],
        postgresql_using="gin",
    )


def downgrade() -> None:
    op.drop_table("meetings")
    op.drop_table("users")
