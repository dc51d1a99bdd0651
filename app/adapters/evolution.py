"""
Evolution API (WhatsApp gateway) adapter.

Parses gateway webhooks into the normalized WebhookEvent union and reads
message history page by page for bulk sync. Webhook records and history
records share one conversion path so the same message observed both ways
produces identical candidates.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, List, Optional

import requests
from pydantic import TypeAdapter, ValidationError

from app.adapters.base import BasePlatformAdapter, BaseSyncSource
from app.core.errors import MalformedEvent, SourceUnavailable
from app.core.identity import is_group_contact
from app.schemas.evolution import (
    MESSAGE_STATUS_UPDATE,
    MESSAGE_UPSERT,
    EvolutionWebhookPayload,
    MessageUpsertEvent,
    WebhookEvent,
)
from app.schemas.message import MessageCandidate
from app.schemas.sync import SourceContact, SourcePage

logger = logging.getLogger(__name__)

PLATFORM = "whatsapp"
FIND_CHATS_PATH = "/chat/findChats/{instance}"
FIND_MESSAGES_PATH = "/chat/findMessages/{instance}"
TIMEOUT_SECONDS = 30
BROADCAST_JID = "status@broadcast"

UPSERT_EVENTS = frozenset({"messages.upsert", "send.message"})
STATUS_EVENTS = frozenset({"messages.update"})

STATUS_MAP = {
    "PENDING": "pending",
    "SERVER_ACK": "sent",
    "DELIVERY_ACK": "delivered",
    "READ": "read",
    "PLAYED": "read",
    "ERROR": "failed",
}

TEXT_TYPES = frozenset(
    {
        "conversation",
        "extendedTextMessage",
        "buttonsMessage",
        "buttonsResponseMessage",
        "interactiveMessage",
        "templateMessage",
        "pollCreationMessageV2",
        "pollCreationMessageV3",
        "groupInviteMessage",
        "productMessage",
        "editedMessage",
        "commentMessage",
    }
)
STATUS_TYPES = frozenset({"protocolMessage", "reactionMessage", "senderKeyDistributionMessage"})

_EVENT_ADAPTER: TypeAdapter = TypeAdapter(WebhookEvent)


def normalize_event_name(name: str) -> str:
    """MESSAGES_UPSERT, messages.upsert and Messages-Upsert all become messages.upsert."""
    return name.strip().lower().replace("_", ".").replace("-", ".")


def map_status(value: Any) -> str:
    if value is None:
        return "delivered"
    return STATUS_MAP.get(str(value).upper(), "delivered")


def map_message_type(evolution_type: Optional[str]) -> str:
    """Collapse gateway message types into text / media / status."""
    if not evolution_type or evolution_type in TEXT_TYPES:
        return "text"
    if evolution_type in STATUS_TYPES:
        return "status"
    return "media"


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Epoch seconds (or milliseconds), numeric strings and ISO strings."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, dict) and "low" in value:  # protobuf Long
        value = value["low"]
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    if seconds > 1e12:
        seconds /= 1000.0
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def extract_content(message: Optional[dict[str, Any]], message_type: Optional[str]) -> str:
    """Readable text for a gateway message body."""
    message = message or {}
    if message.get("conversation"):
        return message["conversation"]
    extended = message.get("extendedTextMessage") or {}
    if extended.get("text"):
        return extended["text"]
    image = message.get("imageMessage")
    if image is not None:
        caption = (image or {}).get("caption")
        return f"[Image] {caption}" if caption else "[Image]"
    if message.get("audioMessage") is not None:
        return "[Audio]"
    video = message.get("videoMessage")
    if video is not None:
        caption = (video or {}).get("caption")
        return f"[Video] {caption}" if caption else "[Video]"
    document = message.get("documentMessage")
    if document is not None:
        title = (document or {}).get("title") or (document or {}).get("fileName") or "Document"
        return f"[Document: {title}]"
    if message.get("locationMessage") is not None:
        return "[Location]"
    if message.get("contactMessage") is not None:
        return "[Contact]"
    if message.get("stickerMessage") is not None:
        return "[Sticker]"
    return f"[{message_type}]" if message_type else "[Media]"


def contact_name_from_record(record: dict[str, Any], remote_jid: str, from_me: bool) -> Optional[str]:
    """Group subject for groups; the sender's push name for direct chats they sent."""
    if is_group_contact(remote_jid):
        return (record.get("groupMetadata") or {}).get("subject")
    if from_me:
        return None  # our own push name, not the contact's
    return record.get("pushName") or record.get("verifiedName") or record.get("notifyName")


def candidate_from_record(record: dict[str, Any], instance_key: str) -> MessageCandidate:
    """Build a candidate from a gateway message record (webhook data or history row)."""
    key = record.get("key") or {}
    remote_jid = key.get("remoteJid")
    if not remote_jid:
        raise MalformedEvent("Message record has no key.remoteJid")
    from_me = bool(key.get("fromMe"))
    message_type = record.get("messageType") or "conversation"
    timestamp = parse_timestamp(record.get("messageTimestamp"))
    try:
        return MessageCandidate(
            contact=remote_jid,
            contact_name=contact_name_from_record(record, remote_jid, from_me),
            content=extract_content(record.get("message"), message_type),
            message_type=map_message_type(message_type),
            direction="outbound" if from_me else "inbound",
            sender_type="agent" if from_me else "contact",
            sender_id=instance_key if from_me else (key.get("participant") or remote_jid),
            sender_name=record.get("pushName"),
            status=map_status(record.get("status")),
            external_message_id=key.get("id") or None,
            external_timestamp=timestamp,
            external_metadata=record,
        )
    except ValidationError as e:
        raise MalformedEvent(f"Invalid message record: {e}") from e


class EvolutionAdapter(BasePlatformAdapter):
    """Webhook side of the gateway: verify, parse, convert."""

    platform = PLATFORM
    SECRET_HEADERS = ("apikey", "x-webhook-secret")

    def __init__(self, webhook_secret: Optional[str] = None) -> None:
        self._webhook_secret = webhook_secret

    def verify_webhook(
        self, secret: Optional[str], request_headers: Optional[dict[str, str]] = None
    ) -> bool:
        """Accept when no secret is configured or a known header carries it."""
        expected = secret or self._webhook_secret
        if not expected:
            return True
        for key, value in (request_headers or {}).items():
            if key.lower() in self.SECRET_HEADERS and value == expected:
                return True
        return False

    def parse_webhook(self, raw_payload: dict[str, Any]) -> WebhookEvent:
        try:
            payload = EvolutionWebhookPayload.model_validate(raw_payload)
        except ValidationError as e:
            raise MalformedEvent(f"Invalid webhook payload: {e}") from e

        event_name = normalize_event_name(payload.event)
        data = payload.data
        if isinstance(data, list) and len(data) == 1:
            data = data[0]

        if event_name in UPSERT_EVENTS:
            fields = self._upsert_fields(payload.instance, data)
        elif event_name in STATUS_EVENTS:
            fields = self._status_fields(payload.instance, data)
        else:
            raise MalformedEvent(f"Unsupported event type: {payload.event}")

        try:
            return _EVENT_ADAPTER.validate_python(fields)
        except ValidationError as e:
            raise MalformedEvent(f"Invalid {event_name} event: {e}") from e

    def to_candidate(self, event: MessageUpsertEvent) -> MessageCandidate:
        return candidate_from_record(event.raw, event.platform_instance)

    def _upsert_fields(self, instance: str, data: Any) -> dict[str, Any]:
        if not isinstance(data, dict):
            raise MalformedEvent("messages.upsert data must be an object")
        key = data.get("key") or {}
        remote_jid = key.get("remoteJid")
        if not remote_jid:
            raise MalformedEvent("messages.upsert has no key.remoteJid")
        return {
            "event_type": MESSAGE_UPSERT,
            "platform_instance": instance,
            "message_key": {
                "remote_id": remote_jid,
                "from_me": bool(key.get("fromMe")),
                "external_id": key.get("id") or None,
                "participant": key.get("participant"),
            },
            "raw": data,
        }

    def _status_fields(self, instance: str, data: Any) -> dict[str, Any]:
        if not isinstance(data, dict):
            raise MalformedEvent("messages.update data must be an object")
        key = data.get("key") or {}
        external_id = key.get("id") or data.get("keyId") or data.get("messageId")
        if not external_id:
            raise MalformedEvent("messages.update has no message id")
        status = data.get("status")
        if status is None and isinstance(data.get("update"), dict):
            status = data["update"].get("status")
        return {
            "event_type": MESSAGE_STATUS_UPDATE,
            "platform_instance": instance,
            "message_key": {
                "remote_id": key.get("remoteJid") or data.get("remoteJid") or "",
                "from_me": bool(key.get("fromMe", data.get("fromMe", False))),
                "external_id": external_id,
            },
            "status": map_status(status),
        }


class EvolutionSyncSource(BaseSyncSource):
    """History side of the gateway, read with requests."""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str],
        instance_key: str,
        page_size: int = 100,
        timeout: int = TIMEOUT_SECONDS,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._instance_key = instance_key
        self._page_size = page_size
        self._timeout = timeout

    def list_contacts(self) -> List[SourceContact]:
        data = self._post(FIND_CHATS_PATH, {})
        chats = data if isinstance(data, list) else (data or {}).get("chats", [])
        contacts: List[SourceContact] = []
        for chat in chats:
            if not isinstance(chat, dict):
                continue
            remote_id = chat.get("remoteJid") or chat.get("id")
            if not remote_id or remote_id == BROADCAST_JID:
                continue
            contacts.append(
                SourceContact(
                    remote_id=remote_id,
                    name=chat.get("pushName") or chat.get("name") or chat.get("subject"),
                )
            )
        return contacts

    def fetch_page(self, contact: str, cursor: Optional[str] = None) -> SourcePage:
        page_number = int(cursor) if cursor else 1
        body = {
            "where": {"key": {"remoteJid": contact}},
            "page": page_number,
            "offset": self._page_size,
        }
        data = self._post(FIND_MESSAGES_PATH, body)

        next_cursor: Optional[str] = None
        if isinstance(data, list):
            records = data
        else:
            block = (data or {}).get("messages") or {}
            records = block.get("records") or []
            total_pages = int(block.get("pages") or 0)
            current = int(block.get("currentPage") or page_number)
            if current < total_pages:
                next_cursor = str(current + 1)

        page = SourcePage(next_cursor=next_cursor)
        for record in records:
            try:
                page.messages.append(candidate_from_record(record, self._instance_key))
            except MalformedEvent as e:
                page.errors.append(f"{contact}: {e}")
        # Oldest first, so later observations of the same id arrive last
        page.messages.sort(key=lambda m: m.created_at)
        return page

    def _post(self, path: str, body: dict[str, Any]) -> Any:
        url = f"{self._base_url}{path.format(instance=self._instance_key)}"
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["apikey"] = self._api_key
        try:
            resp = requests.post(url, json=body, headers=headers, timeout=self._timeout)
        except requests.RequestException as e:
            raise SourceUnavailable(f"Gateway unreachable: {e}") from e

        if resp.status_code in (401, 403):
            raise SourceUnavailable(f"Gateway rejected credentials (HTTP {resp.status_code})")
        if resp.status_code != 200 and resp.status_code != 201:
            raise SourceUnavailable(
                f"HTTP {resp.status_code}: {resp.text[:500] if resp.text else 'no body'}"
            )
        try:
            return resp.json()
        except ValueError as e:
            raise SourceUnavailable(f"Invalid JSON from gateway: {e}") from e
