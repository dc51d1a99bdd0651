"""
Gateway webhook schemas.

EvolutionWebhookPayload matches what the gateway POSTs. The adapter turns it
into one of the normalized events below; WebhookEvent is the tagged union the
core works with. Unknown event types never reach the core.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

MESSAGE_UPSERT = "messages.upsert"
MESSAGE_STATUS_UPDATE = "messages.update"


class EvolutionWebhookPayload(BaseModel):
    """Raw gateway webhook body (event, instance, data)."""

    event: str
    instance: str
    data: Any = None
    sender: Optional[str] = None
    date_time: Optional[str] = None

    model_config = ConfigDict(extra="allow")


class MessageKey(BaseModel):
    """Identifies a message on the platform."""

    remote_id: str = ""  # chat JID
    from_me: bool = False
    external_id: Optional[str] = None
    participant: Optional[str] = None  # group sender JID


class MessageUpsertEvent(BaseModel):
    """
    A new or re-delivered message.

    raw keeps the gateway record; the adapter builds the candidate from it
    the same way it does for history rows.
    """

    event_type: Literal["messages.upsert"] = MESSAGE_UPSERT
    platform_instance: str
    message_key: MessageKey
    raw: dict[str, Any] = Field(default_factory=dict)


class MessageStatusUpdateEvent(BaseModel):
    """Delivery/read receipt for a message we already know about."""

    event_type: Literal["messages.update"] = MESSAGE_STATUS_UPDATE
    platform_instance: str
    message_key: MessageKey
    status: str


WebhookEvent = Annotated[
    Union[MessageUpsertEvent, MessageStatusUpdateEvent],
    Field(discriminator="event_type"),
]
