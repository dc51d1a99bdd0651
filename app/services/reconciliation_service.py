"""
Reconciliation writer: applies dedup decisions to the store.

A message write and the refresh of its conversation's aggregates
(message_count, last_message_at, last_message_preview, last_message_from)
happen in one transaction, so readers never see a count that disagrees with
the message rows.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Set
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.config import get_settings
from app.core.dedup import Decision
from app.core.errors import UniquenessConflict
from app.core.retry import RetryPolicy
from app.models.conversation import Conversation
from app.models.message import Message
from app.services.deduplication_service import DedupOutcome

logger = logging.getLogger(__name__)


@dataclass
class WriteResult:
    decision: Decision
    written: bool
    conversation_id: Optional[UUID] = None
    message_id: Optional[UUID] = None
    replaced_message_id: Optional[UUID] = None


def recompute_conversation_aggregates(
    db: Session, conversation_id: UUID, preview_length: int = 100
) -> Optional[Conversation]:
    """
    Recompute a conversation's derived fields from its message rows.

    Runs inside the caller's transaction and does not commit. Pending
    changes must already be flushed.
    """
    conversation = db.get(Conversation, conversation_id)
    if conversation is None:
        return None
    count = (
        db.query(func.count(Message.id))
        .filter(Message.conversation_id == conversation_id)
        .scalar()
    )
    latest = (
        db.query(Message)
        .filter(Message.conversation_id == conversation_id)
        .order_by(Message.created_at.desc(), Message.id.desc())
        .first()
    )
    conversation.message_count = count or 0
    if latest is None:
        conversation.last_message_at = None
        conversation.last_message_preview = None
        conversation.last_message_from = None
    else:
        conversation.last_message_at = latest.created_at
        conversation.last_message_preview = (latest.content or "")[:preview_length]
        conversation.last_message_from = latest.sender_type
    return conversation


class ReconciliationWriter:
    """Writes accepted/superseding candidates; rejects are logged only."""

    def __init__(
        self,
        db: Session,
        retry_policy: Optional[RetryPolicy] = None,
        preview_length: Optional[int] = None,
    ) -> None:
        settings = get_settings()
        self.db = db
        self._retry = retry_policy or RetryPolicy.from_settings(settings)
        self._preview_length = preview_length or settings.message_preview_length

    def apply(self, conversation_id: UUID, outcome: DedupOutcome) -> WriteResult:
        """
        Apply one decision.

        Raises:
            UniquenessConflict: the store changed under us; re-run the decision.
            TransientStoreError: the store stayed unavailable through all retries.
        """
        if outcome.decision == Decision.REJECT:
            logger.debug(
                "Rejected duplicate %s; stored message %s kept",
                outcome.candidate.external_message_id,
                outcome.existing.id if outcome.existing is not None else None,
            )
            return WriteResult(
                decision=Decision.REJECT,
                written=False,
                conversation_id=(
                    outcome.existing.conversation_id
                    if outcome.existing is not None
                    else conversation_id
                ),
                message_id=outcome.existing.id if outcome.existing is not None else None,
            )
        return self._retry.run(
            lambda: self._write(conversation_id, outcome),
            on_retry=lambda _exc: self.db.rollback(),
        )

    def _write(self, conversation_id: UUID, outcome: DedupOutcome) -> WriteResult:
        candidate = outcome.candidate
        target_id = conversation_id
        affected: Set[UUID] = {conversation_id}
        replaced_id: Optional[UUID] = None
        try:
            if outcome.decision == Decision.SUPERSEDE:
                stored = (
                    self.db.get(Message, outcome.existing.id)
                    if outcome.existing is not None
                    else None
                )
                if stored is None:
                    # Replaced or removed by another writer since the decision
                    raise UniquenessConflict(candidate.external_message_id)
                # Messages never move: the replacement stays in the stored row's conversation
                target_id = stored.conversation_id
                affected.add(target_id)
                replaced_id = stored.id
                self.db.delete(stored)
                self.db.flush()

            message = Message(conversation_id=target_id, **candidate.to_row_values())
            self.db.add(message)
            self.db.flush()
            for cid in affected:
                recompute_conversation_aggregates(self.db, cid, self._preview_length)
            self.db.commit()
        except (IntegrityError, StaleDataError) as exc:
            self.db.rollback()
            raise UniquenessConflict(candidate.external_message_id) from exc
        except UniquenessConflict:
            self.db.rollback()
            raise

        logger.debug(
            "%s message %s (external %s) in conversation %s",
            outcome.decision.value,
            message.id,
            candidate.external_message_id,
            target_id,
        )
        return WriteResult(
            decision=outcome.decision,
            written=True,
            conversation_id=target_id,
            message_id=message.id,
            replaced_message_id=replaced_id,
        )
