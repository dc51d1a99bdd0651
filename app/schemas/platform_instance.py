"""Schemas for gateway instances."""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class PlatformInstanceCreate(BaseModel):
    instance_key: str = Field(min_length=1, max_length=256)
    owner_id: str = Field(min_length=1, max_length=256)
    platform: str = "whatsapp"
    display_name: Optional[str] = None


class PlatformInstanceRead(PlatformInstanceCreate):
    id: UUID
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
