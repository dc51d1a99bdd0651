"""Message reads and status transitions."""

from __future__ import annotations

import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Query, Session

from app.models.message import Message

logger = logging.getLogger(__name__)

_STATUS_RANK = {"pending": 0, "sent": 1, "delivered": 2, "read": 3}
_FAILABLE = {"pending", "sent"}


def can_transition(current: str, new: str) -> bool:
    """Statuses only move forward; failed is reachable before delivery only."""
    if current == new:
        return False
    if new == "failed":
        return current in _FAILABLE
    if current == "failed" or new not in _STATUS_RANK:
        return False
    return _STATUS_RANK[new] > _STATUS_RANK.get(current, -1)


class MessageService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_message(self, message_id: UUID) -> Optional[Message]:
        return self.db.query(Message).filter(Message.id == message_id).first()

    def get_by_external_id(self, external_message_id: str) -> Optional[Message]:
        return (
            self.db.query(Message)
            .filter(Message.external_message_id == external_message_id)
            .first()
        )

    def get_messages_query(self, conversation_id: UUID) -> Query:
        return (
            self.db.query(Message)
            .filter(Message.conversation_id == conversation_id)
            .order_by(Message.created_at, Message.id)
        )

    def get_messages(
        self, conversation_id: UUID, limit: int = 100, offset: int = 0
    ) -> List[Message]:
        return self.get_messages_query(conversation_id).offset(offset).limit(limit).all()

    def get_message_count(self, conversation_id: UUID) -> int:
        return (
            self.db.query(Message)
            .filter(Message.conversation_id == conversation_id)
            .count()
        )

    def update_status(self, external_message_id: str, status: str) -> Optional[Message]:
        """
        Apply a delivery status to the message with this external id.

        Returns the message when the status changed, None when the message is
        unknown or the transition would move backwards.
        """
        message = self.get_by_external_id(external_message_id)
        if message is None:
            logger.info("Status update for unknown message %s", external_message_id)
            return None
        if not can_transition(message.status, status):
            logger.debug(
                "Ignoring status %s -> %s for %s",
                message.status,
                status,
                external_message_id,
            )
            return None
        message.status = status
        self.db.commit()
        self.db.refresh(message)
        return message
