"""Error taxonomy for ingestion and sync."""

from __future__ import annotations

from typing import Optional


class ConversyncError(Exception):
    """Base class for errors raised by the reconciliation core."""


class TransientStoreError(ConversyncError):
    """The store stayed unavailable after the retry policy gave up."""

    def __init__(self, message: str, attempts: int = 0) -> None:
        super().__init__(message)
        self.attempts = attempts


class UniquenessConflict(ConversyncError):
    """
    A unique constraint rejected a write.

    Not a failure by itself: the caller re-runs the dedup comparison against
    whatever is stored now.
    """

    def __init__(self, external_message_id: Optional[str] = None) -> None:
        super().__init__(
            f"Uniqueness conflict on external_message_id={external_message_id!r}"
        )
        self.external_message_id = external_message_id


class MalformedEvent(ConversyncError):
    """An inbound event or source record is missing required fields or has an unknown type."""


class SourceUnavailable(ConversyncError):
    """The bulk sync source cannot be reached or refused our credentials. Fatal for a run."""
