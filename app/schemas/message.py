"""Schemas for inbound message candidates and stored messages."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

MessageType = Literal["text", "media", "status"]
Direction = Literal["inbound", "outbound"]
SenderType = Literal["contact", "agent"]
MessageStatus = Literal["pending", "sent", "delivered", "read", "failed"]


class MessageCandidate(BaseModel):
    """
    A message observed on the platform, not yet reconciled.

    contact is the raw platform identifier of the chat; it is normalized
    before the conversation is resolved. created_at defaults to the external
    timestamp so that the same message observed twice compares equal.
    """

    contact: str = Field(min_length=1)
    contact_name: Optional[str] = None
    content: str = ""
    message_type: MessageType = "text"
    direction: Direction = "inbound"
    sender_type: SenderType = "contact"
    sender_id: Optional[str] = None
    sender_name: Optional[str] = None
    status: MessageStatus = "delivered"
    external_message_id: Optional[str] = None
    external_timestamp: Optional[datetime] = None
    external_metadata: Optional[dict[str, Any]] = None
    created_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _default_created_at(self) -> "MessageCandidate":
        if not self.external_message_id:
            self.external_message_id = None
        if self.created_at is None:
            self.created_at = self.external_timestamp or datetime.now(timezone.utc)
        return self

    def to_row_values(self) -> dict[str, Any]:
        """Column values for a Message row (conversation_id excluded)."""
        return self.model_dump(exclude={"contact", "contact_name"})


class MessageRead(BaseModel):
    id: UUID
    conversation_id: UUID
    content: str
    message_type: str
    direction: str
    sender_type: str
    sender_id: Optional[str] = None
    sender_name: Optional[str] = None
    status: str
    external_message_id: Optional[str] = None
    external_timestamp: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
