"""
SyncEvent model: audit trail of every gateway event received.

Append-only. The processed flag and error are set by the same call that
records the event and are never updated afterwards.
"""

from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Column, DateTime, Index, String, Text, Uuid

from app.db import Base, JSONType
from app.models.mixins import TimestampMixin


class SyncEvent(Base, TimestampMixin):
    __tablename__ = "sync_events"

    __table_args__ = (
        Index("ix_sync_events_platform_contact_created", "platform", "contact_id", "created_at"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id = Column(String(256), nullable=True)
    platform = Column(String(32), nullable=False)
    instance_key = Column(String(256), nullable=True)
    event_type = Column(String(64), nullable=False)
    contact_id = Column(String(256), nullable=True)
    event_data = Column(JSONType, nullable=True)
    processed = Column(Boolean, nullable=False, default=False)
    error_message = Column(Text, nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)
