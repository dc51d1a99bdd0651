"""
Platform adapter interfaces.

Adapters encapsulate platform-specific payloads and expose normalized events
and message candidates to the reconciliation core.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, List, Optional

from app.schemas.evolution import MessageUpsertEvent, WebhookEvent
from app.schemas.message import MessageCandidate
from app.schemas.sync import SourceContact, SourcePage


class BasePlatformAdapter(ABC):
    """Contract for webhook adapters. New platforms implement this interface."""

    platform: str = ""

    @abstractmethod
    def parse_webhook(self, raw_payload: dict[str, Any]) -> WebhookEvent:
        """Parse a raw webhook payload into a normalized event. Raise MalformedEvent if invalid."""
        ...

    @abstractmethod
    def to_candidate(self, event: MessageUpsertEvent) -> MessageCandidate:
        """Turn a message upsert event into a reconciliation candidate."""
        ...

    def verify_webhook(
        self, secret: Optional[str], request_headers: Optional[dict[str, str]] = None
    ) -> bool:
        """
        Verify webhook request (e.g. secret token). Override if platform supports it.
        Return True if valid or verification not required; False to reject.
        """
        return True


class BaseSyncSource(ABC):
    """Paginated read access to a platform's message history."""

    @abstractmethod
    def list_contacts(self) -> List[SourceContact]:
        """Chats known to the platform. Raise SourceUnavailable when unreachable."""
        ...

    @abstractmethod
    def fetch_page(self, contact: str, cursor: Optional[str] = None) -> SourcePage:
        """
        One page of messages for a contact, oldest first.

        next_cursor is None on the last page. Raise SourceUnavailable when the
        source cannot be reached or rejects our credentials.
        """
        ...
