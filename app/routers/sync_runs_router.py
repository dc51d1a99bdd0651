"""Bulk sync runs API: start, inspect and cancel."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.db import get_db
from app.models.sync_run import SyncRun
from app.routers.utils.dependencies import get_sync_run_by_id
from app.schemas.sync import SyncRunCreate, SyncRunRead
from app.services.platform_instance_service import PlatformInstanceService
from app.services.sync_run_service import SyncRunService
from app.tasks.sync_task import run_sync_task

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sync-runs", tags=["sync"])


@router.post("", response_model=SyncRunRead, status_code=202)
def start_sync_run(
    data: SyncRunCreate,
    db: Session = Depends(get_db),
) -> SyncRunRead:
    """Create a sync run for an instance and hand it to a worker."""
    instance = PlatformInstanceService(db).get_by_key(data.instance_key)
    if instance is None:
        raise HTTPException(status_code=404, detail="Instance not found")
    run = SyncRunService(db).create_run(instance.id)
    run_sync_task.delay(str(run.id), data.contacts)
    logger.info("Queued sync run %s for %s", run.id, instance.instance_key)
    return run


@router.get("/{run_id}", response_model=SyncRunRead)
def get_sync_run(
    run: SyncRun = Depends(get_sync_run_by_id),
) -> SyncRunRead:
    """Get a sync run's progress."""
    return run


@router.post("/{run_id}/cancel", response_model=SyncRunRead)
def cancel_sync_run(
    run: SyncRun = Depends(get_sync_run_by_id),
    db: Session = Depends(get_db),
) -> SyncRunRead:
    """Ask a running sync to stop at its next page boundary."""
    return SyncRunService(db).request_cancel(run.id)
