"""
Conversation lookup and resolution.

resolve() maps (owner, platform, contact key) to exactly one Conversation.
Two producers (webhooks and bulk sync) may resolve the same key at once; the
unique constraint on the tuple decides the race and the loser re-reads.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query, Session

from app.config import get_settings
from app.core.errors import ConversyncError
from app.core.retry import RetryPolicy
from app.models.conversation import Conversation

logger = logging.getLogger(__name__)

RESOLVE_MAX_ATTEMPTS = 3
_GROUP_PLACEHOLDER = re.compile(r"^group\s+[\d-]+$", re.IGNORECASE)
_PHONE_LIKE = re.compile(r"^[\d\s+()-]+$")


def is_placeholder_name(name: Optional[str], contact_key: str) -> bool:
    """
    True for names that carry no information beyond the contact key.

    Empty names, the key itself, phone-number-looking strings and the
    generated "Group <id>" / "Group Chat" labels are placeholders.
    """
    if not name or not name.strip():
        return True
    value = name.strip()
    if value == contact_key:
        return True
    if _PHONE_LIKE.match(value):
        return True
    return bool(_GROUP_PLACEHOLDER.match(value)) or value.lower() == "group chat"


class ConversationService:
    def __init__(self, db: Session, retry_policy: Optional[RetryPolicy] = None) -> None:
        self.db = db
        self._retry = retry_policy or RetryPolicy.from_settings(get_settings())

    def get_conversation(self, conversation_id: UUID) -> Optional[Conversation]:
        return (
            self.db.query(Conversation)
            .filter(Conversation.id == conversation_id)
            .first()
        )

    def get_by_key(
        self, owner_id: str, platform: str, contact_key: str
    ) -> Optional[Conversation]:
        return (
            self.db.query(Conversation)
            .filter(
                Conversation.owner_id == owner_id,
                Conversation.platform == platform,
                Conversation.contact_id == contact_key,
            )
            .first()
        )

    def get_conversations_query(
        self,
        owner_id: Optional[str] = None,
        status: Optional[str] = None,
    ) -> Query:
        """Conversations ordered by most recent activity (for pagination)."""
        query = self.db.query(Conversation)
        if owner_id is not None:
            query = query.filter(Conversation.owner_id == owner_id)
        if status is not None:
            query = query.filter(Conversation.status == status)
        return query.order_by(
            Conversation.last_message_at.desc(), Conversation.created_at.desc()
        )

    def resolve(
        self,
        owner_id: str,
        platform: str,
        contact_key: str,
        contact_name: Optional[str] = None,
        instance_id: Optional[UUID] = None,
        contact_metadata: Optional[dict[str, Any]] = None,
    ) -> Conversation:
        """
        Return the conversation for the key, creating it when absent.

        Insert-if-absent against the unique constraint: a concurrent insert
        that wins the race surfaces as IntegrityError, after which we roll
        back and read the winner's row. Transient store errors are retried
        through the shared RetryPolicy; exhausting it raises
        TransientStoreError.
        """
        return self._retry.run(
            lambda: self._resolve_once(
                owner_id, platform, contact_key, contact_name, instance_id, contact_metadata
            ),
            on_retry=lambda _exc: self.db.rollback(),
        )

    def _resolve_once(
        self,
        owner_id: str,
        platform: str,
        contact_key: str,
        contact_name: Optional[str],
        instance_id: Optional[UUID],
        contact_metadata: Optional[dict[str, Any]],
    ) -> Conversation:
        for attempt in range(1, RESOLVE_MAX_ATTEMPTS + 1):
            conversation = self.get_by_key(owner_id, platform, contact_key)
            if conversation is not None:
                self._refresh_details(
                    conversation, contact_key, contact_name, contact_metadata
                )
                return conversation

            conversation = Conversation(
                owner_id=owner_id,
                platform=platform,
                contact_id=contact_key,
                contact_name=contact_name or contact_key,
                contact_metadata=contact_metadata,
                instance_id=instance_id,
                status="active",
                message_count=0,
                sync_status="pending",
            )
            self.db.add(conversation)
            try:
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                logger.info(
                    "Conversation insert lost a race for %s/%s/%s (attempt %d)",
                    owner_id,
                    platform,
                    contact_key,
                    attempt,
                )
                continue
            self.db.refresh(conversation)
            logger.info(
                "Created conversation %s for %s/%s", conversation.id, platform, contact_key
            )
            return conversation

        conversation = self.get_by_key(owner_id, platform, contact_key)
        if conversation is None:
            raise ConversyncError(
                f"Could not resolve conversation for {platform}:{contact_key}"
            )
        return conversation

    def _refresh_details(
        self,
        conversation: Conversation,
        contact_key: str,
        contact_name: Optional[str],
        contact_metadata: Optional[dict[str, Any]],
    ) -> None:
        changed = False
        if (
            not is_placeholder_name(contact_name, contact_key)
            and contact_name != conversation.contact_name
        ):
            conversation.contact_name = contact_name
            changed = True
        if conversation.status != "active":
            conversation.status = "active"
            changed = True
        if contact_metadata and contact_metadata != conversation.contact_metadata:
            conversation.contact_metadata = {
                **(conversation.contact_metadata or {}),
                **contact_metadata,
            }
            changed = True
        if changed:
            self.db.commit()
            self.db.refresh(conversation)

    def archive(self, conversation_id: UUID) -> Optional[Conversation]:
        conversation = self.get_conversation(conversation_id)
        if conversation is None:
            return None

        def _archive() -> None:
            conversation.status = "archived"
            self.db.commit()

        self._retry.run(_archive, on_retry=lambda _exc: self.db.rollback())
        self.db.refresh(conversation)
        return conversation

    def mark_synced(self, conversation: Conversation) -> None:
        def _mark() -> None:
            conversation.sync_status = "synced"
            conversation.last_synced_at = datetime.now(timezone.utc)
            self.db.commit()

        self._retry.run(_mark, on_retry=lambda _exc: self.db.rollback())
