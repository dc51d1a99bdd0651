"""Add sync_events and sync_runs tables

Revision ID: add_sync_tables
Revises: initialize_database
Create Date: 2026-10-19 09:30:00

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "add_sync_tables"
down_revision: Union[str, None] = "initialize_database"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "sync_events",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("owner_id", sa.String(256), nullable=True),
        sa.Column("platform", sa.String(32), nullable=False),
        sa.Column("instance_key", sa.String(256), nullable=True),
        sa.Column("event_type", sa.String(64), nullable=False),
        sa.Column("contact_id", sa.String(256), nullable=True),
        sa.Column("event_data", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("processed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_sync_events_platform_contact_created",
        "sync_events",
        ["platform", "contact_id", "created_at"],
        unique=False,
    )

    op.create_table(
        "sync_runs",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("instance_id", sa.UUID(), nullable=False),
        sa.Column("state", sa.String(16), nullable=False, server_default="started"),
        sa.Column("pages_fetched", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "conversations_touched", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column("messages_accepted", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "messages_superseded", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column("messages_rejected", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "errors",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("fatal_error", sa.Text(), nullable=True),
        sa.Column(
            "cancel_requested", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["instance_id"], ["platform_instances.id"], ondelete="CASCADE"
        ),
    )
    op.create_index("ix_sync_runs_instance_id", "sync_runs", ["instance_id"])


def downgrade() -> None:
    op.drop_index("ix_sync_runs_instance_id", table_name="sync_runs")
    op.drop_table("sync_runs")
    op.drop_index("ix_sync_events_platform_contact_created", table_name="sync_events")
    op.drop_table("sync_events")
