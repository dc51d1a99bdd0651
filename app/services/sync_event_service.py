"""
Service for the sync event audit trail.

Events are append-only: one insert per received gateway event, carrying its
final processed flag and error. No update/delete.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.models.sync_event import SyncEvent


class SyncEventService:
    """Create and read sync events. No update/delete (immutable)."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def record_event(
        self,
        event_type: str,
        platform: str,
        event_data: Optional[dict[str, Any]] = None,
        *,
        owner_id: Optional[str] = None,
        instance_key: Optional[str] = None,
        contact_id: Optional[str] = None,
        processed: bool = True,
        error_message: Optional[str] = None,
    ) -> SyncEvent:
        """Persist one received event with its processing outcome."""
        event = SyncEvent(
            event_type=event_type,
            platform=platform,
            owner_id=owner_id,
            instance_key=instance_key,
            contact_id=contact_id,
            event_data=event_data,
            processed=processed,
            error_message=error_message,
            processed_at=datetime.now(timezone.utc) if processed else None,
        )
        self.db.add(event)
        self.db.commit()
        self.db.refresh(event)
        return event

    def get_event(self, event_id: UUID) -> Optional[SyncEvent]:
        return self.db.query(SyncEvent).filter(SyncEvent.id == event_id).first()

    def get_events(
        self,
        platform: Optional[str] = None,
        contact_id: Optional[str] = None,
        processed: Optional[bool] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[SyncEvent]:
        """Fetch events, optionally filtered. Ordered by created_at."""
        q = self.db.query(SyncEvent).order_by(SyncEvent.created_at.asc())
        if platform is not None:
            q = q.filter(SyncEvent.platform == platform)
        if contact_id is not None:
            q = q.filter(SyncEvent.contact_id == contact_id)
        if processed is not None:
            q = q.filter(SyncEvent.processed == processed)
        return q.offset(skip).limit(limit).all()
