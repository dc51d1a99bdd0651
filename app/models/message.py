"""Message model: one row per stored chat message."""

from __future__ import annotations

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Index, String, Text, Uuid, text
from sqlalchemy.orm import relationship

from app.db import Base, JSONType
from app.models.mixins import TimestampMixin

EXTERNAL_ID_UNIQUE_INDEX = "uq_messages_external_message_id"


class Message(Base, TimestampMixin):
    """
    A message owned by exactly one conversation.

    external_message_id is the platform-assigned id and is unique across the
    whole table when present. created_at is the observation time: the external
    timestamp when the platform supplied one, otherwise the time we received it.
    """

    __tablename__ = "messages"

    __table_args__ = (
        Index("ix_messages_conversation_created", "conversation_id", "created_at"),
        Index(
            EXTERNAL_ID_UNIQUE_INDEX,
            "external_message_id",
            unique=True,
            postgresql_where=text("external_message_id IS NOT NULL"),
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    conversation_id = Column(
        Uuid,
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
    )
    content = Column(Text, nullable=False, default="")
    message_type = Column(String(16), nullable=False, default="text")  # text | media | status
    direction = Column(String(16), nullable=False)  # inbound | outbound
    sender_type = Column(String(16), nullable=False)  # contact | agent
    sender_id = Column(String(256), nullable=True)
    sender_name = Column(String(256), nullable=True)
    status = Column(String(16), nullable=False, default="delivered")
    external_message_id = Column(String(256), nullable=True)
    external_timestamp = Column(DateTime(timezone=True), nullable=True)
    external_metadata = Column(JSONType, nullable=True)

    conversation = relationship("Conversation", back_populates="messages")
