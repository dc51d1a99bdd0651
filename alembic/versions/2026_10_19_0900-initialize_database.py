"""initialize database: platform instances, conversations and messages

Revision ID: initialize_database
Revises:
Create Date: 2026-10-19 09:00:00

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "initialize_database"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
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
    ]


def upgrade() -> None:
    """Upgrade schema: platform_instances, conversations and messages tables."""
    op.create_table(
        "platform_instances",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("instance_key", sa.String(256), nullable=False),
        sa.Column("owner_id", sa.String(256), nullable=False),
        sa.Column("platform", sa.String(32), nullable=False, server_default="whatsapp"),
        sa.Column("display_name", sa.String(256), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_platform_instances_instance_key",
        "platform_instances",
        ["instance_key"],
        unique=True,
    )
    op.create_index(
        "ix_platform_instances_owner_id", "platform_instances", ["owner_id"]
    )

    op.create_table(
        "conversations",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("owner_id", sa.String(256), nullable=False),
        sa.Column("platform", sa.String(32), nullable=False),
        sa.Column("contact_id", sa.String(256), nullable=False),
        sa.Column("contact_name", sa.String(256), nullable=True),
        sa.Column(
            "contact_metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=True
        ),
        sa.Column("instance_id", sa.UUID(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        sa.Column("message_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_message_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_message_preview", sa.String(256), nullable=True),
        sa.Column("last_message_from", sa.String(16), nullable=True),
        sa.Column("sync_status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["instance_id"], ["platform_instances.id"], ondelete="SET NULL"
        ),
        sa.UniqueConstraint(
            "owner_id",
            "platform",
            "contact_id",
            name="uq_conversations_owner_platform_contact",
        ),
    )
    op.create_index("ix_conversations_owner_id", "conversations", ["owner_id"])

    op.create_table(
        "messages",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("conversation_id", sa.UUID(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False, server_default=""),
        sa.Column("message_type", sa.String(16), nullable=False, server_default="text"),
        sa.Column("direction", sa.String(16), nullable=False),
        sa.Column("sender_type", sa.String(16), nullable=False),
        sa.Column("sender_id", sa.String(256), nullable=True),
        sa.Column("sender_name", sa.String(256), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="delivered"),
        sa.Column("external_message_id", sa.String(256), nullable=True),
        sa.Column("external_timestamp", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "external_metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=True
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["conversation_id"], ["conversations.id"], ondelete="CASCADE"
        ),
    )
    op.create_index(
        "ix_messages_conversation_created",
        "messages",
        ["conversation_id", "created_at"],
    )
    op.create_index(
        "uq_messages_external_message_id",
        "messages",
        ["external_message_id"],
        unique=True,
        postgresql_where=sa.text("external_message_id IS NOT NULL"),
    )


def downgrade() -> None:
    """Downgrade schema: drop messages, conversations and platform_instances."""
    op.drop_index("uq_messages_external_message_id", table_name="messages")
    op.drop_index("ix_messages_conversation_created", table_name="messages")
    op.drop_table("messages")
    op.drop_index("ix_conversations_owner_id", table_name="conversations")
    op.drop_table("conversations")
    op.drop_index("ix_platform_instances_owner_id", table_name="platform_instances")
    op.drop_index("ix_platform_instances_instance_key", table_name="platform_instances")
    op.drop_table("platform_instances")
