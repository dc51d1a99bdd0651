"""Schemas for conversations."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel


class ConversationRead(BaseModel):
    id: UUID
    owner_id: str
    platform: str
    contact_id: str
    contact_name: Optional[str] = None
    contact_metadata: Optional[dict[str, Any]] = None
    instance_id: Optional[UUID] = None
    status: str
    message_count: int
    last_message_at: Optional[datetime] = None
    last_message_preview: Optional[str] = None
    last_message_from: Optional[str] = None
    sync_status: str
    last_synced_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
