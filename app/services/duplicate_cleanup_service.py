"""
Administrative cleanup of duplicate messages.

Stores populated before the external-id unique index existed can hold several
rows per external_message_id. This service finds those groups, keeps one
survivor per group using the same tie-break as live ingestion, and deletes
the rest. It only reports unless explicitly confirmed.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Set
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.config import get_settings
from app.core.dedup import group_by_external_id, split_survivors
from app.models.message import Message
from app.schemas.sync import CleanupReport, DuplicateGroup
from app.services.reconciliation_service import recompute_conversation_aggregates
from app.utils.metrics import DUPLICATES_REMOVED_TOTAL

logger = logging.getLogger(__name__)


class DuplicateCleanupService:
    def __init__(self, db: Session) -> None:
        self.db = db
        self._preview_length = get_settings().message_preview_length

    def find_duplicate_groups(self) -> Dict[str, List[Message]]:
        """Messages grouped by external id, only for ids stored more than once."""
        duplicated_ids = (
            self.db.query(Message.external_message_id)
            .filter(Message.external_message_id.isnot(None))
            .group_by(Message.external_message_id)
            .having(func.count(Message.id) > 1)
        )
        rows = (
            self.db.query(Message)
            .filter(Message.external_message_id.in_(duplicated_ids.scalar_subquery()))
            .order_by(Message.external_message_id, Message.created_at, Message.id)
            .all()
        )
        return dict(group_by_external_id(rows))

    def run(self, confirm: bool = False) -> CleanupReport:
        """
        Report duplicate groups and, when confirm is True, delete the losers.

        Each group is deleted and its conversations' aggregates recomputed in
        its own transaction.
        """
        groups = self.find_duplicate_groups()
        report = CleanupReport(
            dry_run=not confirm,
            groups_found=len(groups),
            messages_deleted=0,
            would_delete=0,
        )
        for external_id, rows in groups.items():
            survivor, losers = split_survivors(rows)
            report.groups.append(
                DuplicateGroup(
                    external_message_id=external_id,
                    survivor_id=survivor.id,
                    loser_ids=[m.id for m in losers],
                )
            )
            report.would_delete += len(losers)
            if not confirm:
                continue
            affected: Set[UUID] = {survivor.conversation_id}
            for loser in losers:
                affected.add(loser.conversation_id)
                self.db.delete(loser)
            self.db.flush()
            for conversation_id in affected:
                recompute_conversation_aggregates(
                    self.db, conversation_id, self._preview_length
                )
            self.db.commit()
            report.messages_deleted += len(losers)
            DUPLICATES_REMOVED_TOTAL.inc(len(losers))
            logger.info(
                "Removed %d duplicate(s) of %s; kept %s",
                len(losers),
                external_id,
                survivor.id,
            )

        logger.info(
            "%s complete: %d groups, %d %s",
            "Cleanup" if confirm else "Dry run",
            report.groups_found,
            report.messages_deleted if confirm else report.would_delete,
            "deleted" if confirm else "would be deleted",
        )
        return report
