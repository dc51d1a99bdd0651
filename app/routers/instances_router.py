"""Gateway instances API."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.db import get_db
from app.models.platform_instance import PlatformInstance
from app.routers.utils.dependencies import get_instance_by_id
from app.schemas.platform_instance import PlatformInstanceCreate, PlatformInstanceRead
from app.services.platform_instance_service import PlatformInstanceService

router = APIRouter(prefix="/instances", tags=["instances"])


@router.get("", response_model=List[PlatformInstanceRead])
def list_instances(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
) -> List[PlatformInstanceRead]:
    """List registered gateway instances."""
    return PlatformInstanceService(db).get_instances(skip=skip, limit=limit)


@router.post("", response_model=PlatformInstanceRead, status_code=201)
def create_instance(
    data: PlatformInstanceCreate,
    db: Session = Depends(get_db),
) -> PlatformInstanceRead:
    """Register a gateway instance and the owner its conversations belong to."""
    svc = PlatformInstanceService(db)
    if svc.get_by_key(data.instance_key) is not None:
        raise HTTPException(status_code=409, detail="Instance key already registered")
    return svc.create_instance(data)


@router.get("/{instance_id}", response_model=PlatformInstanceRead)
def get_instance(
    instance: PlatformInstance = Depends(get_instance_by_id),
) -> PlatformInstanceRead:
    """Get a gateway instance by ID."""
    return instance
