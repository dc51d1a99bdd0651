"""SyncRun model: progress and outcome of one bulk historical sync."""

from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, Uuid

from app.db import Base, JSONType
from app.models.mixins import TimestampMixin


class SyncRun(Base, TimestampMixin):
    __tablename__ = "sync_runs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    instance_id = Column(
        Uuid,
        ForeignKey("platform_instances.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # started | fetching | reconciling | done | cancelled | failed
    state = Column(String(16), nullable=False, default="started")
    pages_fetched = Column(Integer, nullable=False, default=0)
    conversations_touched = Column(Integer, nullable=False, default=0)
    messages_accepted = Column(Integer, nullable=False, default=0)
    messages_superseded = Column(Integer, nullable=False, default=0)
    messages_rejected = Column(Integer, nullable=False, default=0)
    errors = Column(JSONType, nullable=False, default=list)
    fatal_error = Column(Text, nullable=True)
    cancel_requested = Column(Boolean, nullable=False, default=False)
    started_at = Column(DateTime(timezone=True), nullable=True)
    finished_at = Column(DateTime(timezone=True), nullable=True)
