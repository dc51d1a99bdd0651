from uuid import UUID

from fastapi import Depends, HTTPException
from sqlalchemy.orm import Session

from app.db import get_db
from app.models.conversation import Conversation
from app.models.platform_instance import PlatformInstance
from app.models.sync_run import SyncRun
from app.services.conversation_service import ConversationService
from app.services.platform_instance_service import PlatformInstanceService
from app.services.sync_run_service import SyncRunService


def get_conversation_by_id(
    conversation_id: UUID,
    db: Session = Depends(get_db),
) -> Conversation:
    """FastAPI dependency to get a conversation by ID."""
    conversation = ConversationService(db).get_conversation(conversation_id)
    if conversation is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conversation


def get_instance_by_id(
    instance_id: UUID,
    db: Session = Depends(get_db),
) -> PlatformInstance:
    """FastAPI dependency to get a gateway instance by ID."""
    instance = PlatformInstanceService(db).get_instance(instance_id)
    if instance is None:
        raise HTTPException(status_code=404, detail="Instance not found")
    return instance


def get_sync_run_by_id(
    run_id: UUID,
    db: Session = Depends(get_db),
) -> SyncRun:
    """FastAPI dependency to get a sync run by ID."""
    run = SyncRunService(db).get_run(run_id)
    if run is None:
        raise HTTPException(status_code=404, detail="Sync run not found")
    return run
