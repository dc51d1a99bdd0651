"""Store-aware duplicate decisions for inbound message candidates."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from app.core import dedup
from app.core.dedup import Decision
from app.models.message import Message
from app.schemas.message import MessageCandidate
from app.services.message_service import MessageService


@dataclass
class DedupOutcome:
    """A decision plus the stored row it was made against (if any)."""

    decision: Decision
    candidate: MessageCandidate
    existing: Optional[Message] = None


class MessageDeduplicator:
    """
    Decides ACCEPT / SUPERSEDE / REJECT for candidates.

    Candidates without an external id are always accepted. Otherwise the
    candidate is compared with the stored row using the tie-break chain in
    app.core.dedup.
    """

    def __init__(self, db: Session, message_service: Optional[MessageService] = None) -> None:
        self.db = db
        self._messages = message_service or MessageService(db)

    def decide(self, candidate: MessageCandidate) -> DedupOutcome:
        if not candidate.external_message_id:
            return DedupOutcome(Decision.ACCEPT, candidate)
        existing = self._messages.get_by_external_id(candidate.external_message_id)
        return DedupOutcome(dedup.decide(candidate, existing), candidate, existing)

    def decide_batch(self, candidates: Iterable[MessageCandidate]) -> List[DedupOutcome]:
        """Collapse each external-id group to one survivor, then decide each survivor."""
        return [self.decide(c) for c in dedup.collapse_batch(candidates)]
