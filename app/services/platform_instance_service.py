"""PlatformInstance CRUD and lookup by instance key."""

from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.models.platform_instance import PlatformInstance
from app.schemas.platform_instance import PlatformInstanceCreate


class PlatformInstanceService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_instance(self, instance_id: UUID) -> Optional[PlatformInstance]:
        return (
            self.db.query(PlatformInstance)
            .filter(PlatformInstance.id == instance_id)
            .first()
        )

    def get_by_key(self, instance_key: str) -> Optional[PlatformInstance]:
        return (
            self.db.query(PlatformInstance)
            .filter(PlatformInstance.instance_key == instance_key)
            .first()
        )

    def get_instances(self, skip: int = 0, limit: int = 100) -> List[PlatformInstance]:
        return (
            self.db.query(PlatformInstance)
            .order_by(PlatformInstance.created_at)
            .offset(skip)
            .limit(limit)
            .all()
        )

    def create_instance(self, data: PlatformInstanceCreate) -> PlatformInstance:
        instance = PlatformInstance(**data.model_dump())
        self.db.add(instance)
        self.db.commit()
        self.db.refresh(instance)
        return instance
