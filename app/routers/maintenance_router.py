"""Administrative maintenance endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.db import get_db
from app.schemas.sync import CleanupReport, ConversationMergeReport, NameRepairReport
from app.services.conversation_cleanup_service import ConversationCleanupService
from app.services.duplicate_cleanup_service import DuplicateCleanupService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/maintenance", tags=["maintenance"])


@router.post("/duplicate-messages", response_model=CleanupReport)
def cleanup_duplicate_messages(
    confirm: bool = Query(False, description="Delete duplicates; otherwise report only"),
    db: Session = Depends(get_db),
) -> CleanupReport:
    """Find messages stored more than once per external id and optionally remove them."""
    report = DuplicateCleanupService(db).run(confirm=confirm)
    logger.info(
        "Duplicate cleanup (confirm=%s): %d group(s)", confirm, report.groups_found
    )
    return report


@router.post("/duplicate-conversations", response_model=ConversationMergeReport)
def merge_duplicate_conversations(
    confirm: bool = Query(False, description="Merge duplicates; otherwise report only"),
    db: Session = Depends(get_db),
) -> ConversationMergeReport:
    """Merge conversations whose contact ids normalize to the same key."""
    return ConversationCleanupService(db).merge_duplicates(confirm=confirm)


@router.post("/contact-names", response_model=NameRepairReport)
def repair_contact_names(
    confirm: bool = Query(False, description="Apply the fixes; otherwise report only"),
    db: Session = Depends(get_db),
) -> NameRepairReport:
    """Rename direct chats after the push name their contact last sent."""
    return ConversationCleanupService(db).repair_contact_names(confirm=confirm)
