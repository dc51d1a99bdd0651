"""
Command to reconcile inbound messages into the store.

Shared by webhook handling and bulk sync: normalize the contact, resolve the
conversation, decide against what is stored, write. A uniqueness conflict on
write means another producer got there first, so the decision is re-run
against the row it wrote.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import Settings, get_settings
from app.core.dedup import Decision, collapse_batch
from app.core.errors import ConversyncError, UniquenessConflict
from app.core.identity import is_group_contact, normalize_contact_id
from app.core.retry import RetryPolicy
from app.models.conversation import Conversation
from app.models.platform_instance import PlatformInstance
from app.schemas.message import MessageCandidate
from app.services.conversation_service import ConversationService
from app.services.deduplication_service import MessageDeduplicator
from app.services.reconciliation_service import ReconciliationWriter
from app.utils.metrics import MESSAGES_RECONCILED_TOTAL


@dataclass
class IngestResult:
    conversation_id: UUID
    decision: Decision
    written: bool
    message_id: Optional[UUID] = None


@dataclass
class BatchResult:
    results: List[IngestResult] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    conversation_ids: Set[UUID] = field(default_factory=set)

    def count(self, decision: Decision) -> int:
        return sum(1 for r in self.results if r.decision == decision)


class IngestMessageCommand:
    """Reconcile one candidate (webhook) or a batch of candidates (sync page)."""

    def __init__(
        self,
        db: Session,
        source: str = "webhook",
        settings: Optional[Settings] = None,
        writer: Optional[ReconciliationWriter] = None,
    ) -> None:
        self.db = db
        self.source = source
        self.settings = settings or get_settings()
        self._retry = RetryPolicy.from_settings(self.settings)
        self.conversations = ConversationService(db, retry_policy=self._retry)
        self.deduplicator = MessageDeduplicator(db)
        self.writer = writer or ReconciliationWriter(db, retry_policy=self._retry)
        self.logger = logging.getLogger(__name__)

    def contact_key(self, contact: str) -> str:
        return normalize_contact_id(
            contact,
            country_code=self.settings.default_country_code,
            trunk_prefix=self.settings.trunk_prefix,
            subscriber_prefix=self.settings.subscriber_prefix,
        )

    def resolve_conversation(
        self,
        instance: PlatformInstance,
        contact: str,
        contact_name: Optional[str] = None,
    ) -> Conversation:
        """Conversation for a raw platform contact id under this instance's owner."""
        return self.conversations.resolve(
            owner_id=instance.owner_id,
            platform=instance.platform,
            contact_key=self.contact_key(contact),
            contact_name=contact_name,
            instance_id=instance.id,
            contact_metadata={"remoteJid": contact, "isGroup": is_group_contact(contact)},
        )

    def execute(
        self, instance: PlatformInstance, candidate: MessageCandidate
    ) -> IngestResult:
        """
        Reconcile a single candidate.

        Raises:
            UniquenessConflict: conflicts persisted through every re-decision.
            TransientStoreError: the store stayed unavailable.
        """
        conversation = self.resolve_conversation(
            instance, candidate.contact, candidate.contact_name
        )
        return self._reconcile(conversation.id, candidate)

    def execute_batch(
        self,
        instance: PlatformInstance,
        candidates: Iterable[MessageCandidate],
        default_contact_name: Optional[str] = None,
    ) -> BatchResult:
        """
        Reconcile a batch, one survivor per external id.

        Per-item failures (store errors included) are collected in
        BatchResult.errors; they never stop the remaining items.
        """
        batch = BatchResult()
        resolved: Dict[str, Conversation] = {}
        for candidate in collapse_batch(candidates):
            try:
                key = self.contact_key(candidate.contact)
                conversation = resolved.get(key)
                if conversation is None:
                    conversation = self.resolve_conversation(
                        instance,
                        candidate.contact,
                        candidate.contact_name or default_contact_name,
                    )
                    resolved[key] = conversation
                result = self._reconcile(conversation.id, candidate)
            except (ConversyncError, SQLAlchemyError) as e:
                self.db.rollback()
                self.logger.warning(
                    "Failed to reconcile %s: %s", candidate.external_message_id, e
                )
                batch.errors.append(
                    f"{candidate.external_message_id or candidate.contact}: {e}"
                )
                continue
            batch.results.append(result)
            batch.conversation_ids.add(result.conversation_id)
        return batch

    def _reconcile(
        self,
        conversation_id: UUID,
        candidate: MessageCandidate,
    ) -> IngestResult:
        attempts = self.settings.dedup_max_conflict_retries
        for attempt in range(1, attempts + 1):
            outcome = self._retry.run(
                lambda: self.deduplicator.decide(candidate),
                on_retry=lambda _exc: self.db.rollback(),
            )
            try:
                written = self.writer.apply(conversation_id, outcome)
            except UniquenessConflict:
                self.logger.info(
                    "Conflict on %s (attempt %d/%d); re-deciding",
                    candidate.external_message_id,
                    attempt,
                    attempts,
                )
                continue
            MESSAGES_RECONCILED_TOTAL.labels(
                source=self.source, decision=written.decision.value
            ).inc()
            return IngestResult(
                conversation_id=written.conversation_id or conversation_id,
                decision=written.decision,
                written=written.written,
                message_id=written.message_id,
            )
        raise UniquenessConflict(candidate.external_message_id)
