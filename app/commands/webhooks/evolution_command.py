"""
Command to handle gateway (Evolution API) webhook events.

Validates the shared secret, parses the event, reconciles message upserts
through the ingestion pipeline and applies status updates. Every received
event is recorded in the sync event trail, including the ones that fail.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import HTTPException, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.adapters.evolution import PLATFORM, EvolutionAdapter
from app.commands.ingest_message_command import IngestMessageCommand
from app.config import get_settings
from app.core.errors import MalformedEvent, TransientStoreError, UniquenessConflict
from app.core.identity import normalize_contact_id
from app.models.platform_instance import PlatformInstance
from app.schemas.evolution import MessageStatusUpdateEvent, MessageUpsertEvent
from app.services.message_service import MessageService
from app.services.platform_instance_service import PlatformInstanceService
from app.services.sync_event_service import SyncEventService
from app.utils.metrics import WEBHOOK_EVENTS_TOTAL


class EvolutionWebhookCommand:
    """
    Command to handle gateway webhook events.
    Responds 403 on a bad secret, 422 on events that cannot be processed,
    409 when a write kept conflicting and 503 when the store is unavailable.
    """

    def __init__(self, db: Session, adapter: Optional[EvolutionAdapter] = None) -> None:
        self.db = db
        self.settings = get_settings()
        self._adapter = adapter or EvolutionAdapter(self.settings.webhook_secret)
        self.sync_event_service = SyncEventService(db)
        self.logger = logging.getLogger(__name__)

    async def execute(self, request: Request, body: dict[str, Any]) -> dict[str, Any]:
        """
        Execute the webhook: verify, parse, reconcile, record.

        Args:
            request: The incoming webhook request (headers for secret validation).
            body: Decoded JSON body as the gateway sent it.

        Returns:
            dict: {"status": "ok", "event": ..., "decision": ...}; decision is
            None for status updates.
        """
        headers = dict(request.headers) if request.headers else {}
        if not self._adapter.verify_webhook(self.settings.webhook_secret, headers):
            WEBHOOK_EVENTS_TOTAL.labels(event_type="unknown", status="forbidden").inc()
            raise HTTPException(status_code=403, detail="Invalid webhook secret")

        raw_event = str(body.get("event") or "unknown")
        instance_key = body.get("instance")
        try:
            event = self._adapter.parse_webhook(body)
        except MalformedEvent as e:
            self.logger.warning("Webhook parse error (%s): %s", raw_event, e)
            self._record_failure(raw_event, body, instance_key, None, str(e))
            raise HTTPException(status_code=422, detail=str(e)) from e

        instance = PlatformInstanceService(self.db).get_by_key(event.platform_instance)
        if instance is None:
            detail = f"Unknown instance: {event.platform_instance}"
            self.logger.warning("Webhook for %s", detail.lower())
            self._record_failure(
                event.event_type, body, event.platform_instance, None, detail
            )
            raise HTTPException(status_code=422, detail=detail)

        contact_id = (
            normalize_contact_id(
                event.message_key.remote_id,
                country_code=self.settings.default_country_code,
                trunk_prefix=self.settings.trunk_prefix,
                subscriber_prefix=self.settings.subscriber_prefix,
            )
            if event.message_key.remote_id
            else None
        )
        try:
            if isinstance(event, MessageUpsertEvent):
                decision = self._handle_upsert(instance, event)
            else:
                decision = self._handle_status(event)
        except UniquenessConflict as e:
            self.db.rollback()
            self._record_failure(
                event.event_type, body, instance.instance_key, instance, str(e), contact_id
            )
            raise HTTPException(status_code=409, detail=str(e)) from e
        except (TransientStoreError, SQLAlchemyError) as e:
            self.db.rollback()
            self.logger.error(
                "Store unavailable while handling %s: %s", event.event_type, e
            )
            WEBHOOK_EVENTS_TOTAL.labels(
                event_type=event.event_type, status="unavailable"
            ).inc()
            raise HTTPException(status_code=503, detail="Store temporarily unavailable") from e

        self.sync_event_service.record_event(
            event.event_type,
            PLATFORM,
            body,
            owner_id=instance.owner_id,
            instance_key=instance.instance_key,
            contact_id=contact_id,
        )
        WEBHOOK_EVENTS_TOTAL.labels(event_type=event.event_type, status="processed").inc()
        return {"status": "ok", "event": event.event_type, "decision": decision}

    def _handle_upsert(
        self, instance: PlatformInstance, event: MessageUpsertEvent
    ) -> str:
        candidate = self._adapter.to_candidate(event)
        result = IngestMessageCommand(self.db, source="webhook").execute(instance, candidate)
        self.logger.info(
            "Webhook message %s -> %s",
            candidate.external_message_id,
            result.decision.value,
        )
        return result.decision.value

    def _handle_status(self, event: MessageStatusUpdateEvent) -> None:
        MessageService(self.db).update_status(event.message_key.external_id, event.status)
        return None

    def _record_failure(
        self,
        event_type: str,
        body: dict[str, Any],
        instance_key: Optional[str],
        instance: Optional[PlatformInstance],
        error: str,
        contact_id: Optional[str] = None,
    ) -> None:
        WEBHOOK_EVENTS_TOTAL.labels(event_type=event_type, status="rejected").inc()
        self.sync_event_service.record_event(
            event_type,
            PLATFORM,
            body,
            owner_id=instance.owner_id if instance is not None else None,
            instance_key=str(instance_key) if instance_key else None,
            contact_id=contact_id,
            processed=False,
            error_message=error,
        )
