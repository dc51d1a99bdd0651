"""Conversation model: one row per (owner, platform, contact)."""

from __future__ import annotations

import uuid

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship

from app.db import Base, JSONType
from app.models.mixins import TimestampMixin


class Conversation(Base, TimestampMixin):
    """
    A chat with one contact (or group) on one platform for one owner.

    Identity is the (owner_id, platform, contact_id) tuple; instance_id is
    informational and never part of the uniqueness rule. message_count and the
    last_message_* fields are derived from the messages table and maintained by
    the reconciliation writer.
    """

    __tablename__ = "conversations"

    __table_args__ = (
        UniqueConstraint(
            "owner_id",
            "platform",
            "contact_id",
            name="uq_conversations_owner_platform_contact",
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id = Column(String(256), nullable=False, index=True)
    platform = Column(String(32), nullable=False)
    contact_id = Column(String(256), nullable=False)
    contact_name = Column(String(256), nullable=True)
    contact_metadata = Column(JSONType, nullable=True)
    instance_id = Column(
        Uuid, ForeignKey("platform_instances.id", ondelete="SET NULL"), nullable=True
    )
    status = Column(String(16), nullable=False, default="active")  # active | archived
    message_count = Column(Integer, nullable=False, default=0)
    last_message_at = Column(DateTime(timezone=True), nullable=True)
    last_message_preview = Column(String(256), nullable=True)
    last_message_from = Column(String(16), nullable=True)  # contact | agent
    sync_status = Column(String(16), nullable=False, default="pending")
    last_synced_at = Column(DateTime(timezone=True), nullable=True)

    messages = relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Message.created_at",
    )
