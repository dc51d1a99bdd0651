"""PlatformInstance model: one row per connected gateway instance (e.g. a WhatsApp number)."""

from __future__ import annotations

import uuid

from sqlalchemy import Column, String, Uuid

from app.db import Base
from app.models.mixins import TimestampMixin


class PlatformInstance(Base, TimestampMixin):
    """Maps the gateway's instance name to the owner whose conversations it feeds."""

    __tablename__ = "platform_instances"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    instance_key = Column(String(256), unique=True, nullable=False, index=True)
    owner_id = Column(String(256), nullable=False, index=True)
    platform = Column(String(32), nullable=False, default="whatsapp")
    display_name = Column(String(256), nullable=True)
