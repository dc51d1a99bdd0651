"""Celery task for bulk history sync runs."""

from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from app.adapters.evolution import EvolutionSyncSource
from app.commands.sync_conversations_command import SyncConversationsCommand
from app.config import get_settings
from app.db import db_manager
from app.infra.celery_app import celery_app
from app.infra.logging_config import get_logger
from app.services.platform_instance_service import PlatformInstanceService
from app.services.sync_run_service import SyncRunService

logger = get_logger("sync")


@celery_app.task(name="app.tasks.sync_task.run_sync_task")
def run_sync_task(run_id_str: str, contacts: Optional[List[str]] = None) -> Optional[str]:
    """
    Execute one sync run. Progress and the final state are written to the
    SyncRun row; the returned value is the terminal state.
    """
    try:
        run_id = UUID(run_id_str)
    except ValueError:
        logger.warning("Invalid run_id for sync: %s", run_id_str)
        return None

    settings = get_settings()
    with db_manager.db_session() as db:
        run = SyncRunService(db).get_run(run_id)
        if run is None:
            logger.warning("Sync run %s not found", run_id)
            return None
        instance = PlatformInstanceService(db).get_instance(run.instance_id)
        if instance is None:
            logger.warning("Sync run %s has no instance", run_id)
            return None

        source = EvolutionSyncSource(
            base_url=settings.evolution_api_url,
            api_key=settings.evolution_api_key,
            instance_key=instance.instance_key,
            page_size=settings.sync_page_size,
            timeout=settings.evolution_timeout_seconds,
        )
        command = SyncConversationsCommand(
            db,
            source,
            session_factory=db_manager.session_factory,
            max_workers=settings.sync_max_workers,
        )
        report = command.execute(instance, run=run, contacts=contacts)

    return report.state.value
