"""Schemas for bulk sync runs, sync source pages and duplicate cleanup."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.schemas.message import MessageCandidate


class SyncState(str, Enum):
    STARTED = "started"
    FETCHING = "fetching"
    RECONCILING = "reconciling"
    DONE = "done"
    CANCELLED = "cancelled"
    FAILED = "failed"


TERMINAL_STATES = frozenset({SyncState.DONE, SyncState.CANCELLED, SyncState.FAILED})


class SourceContact(BaseModel):
    """A chat discovered on the sync source."""

    remote_id: str
    name: Optional[str] = None


class SourcePage(BaseModel):
    """One page of historical messages for a contact."""

    messages: List[MessageCandidate] = Field(default_factory=list)
    next_cursor: Optional[str] = None
    # Records the source returned but could not turn into candidates
    errors: List[str] = Field(default_factory=list)


class SyncReport(BaseModel):
    """Outcome of one sync run. Per-item errors never abort the run."""

    state: SyncState = SyncState.STARTED
    pages_fetched: int = 0
    conversations_touched: int = 0
    messages_accepted: int = 0
    messages_superseded: int = 0
    messages_rejected: int = 0
    errors: List[str] = Field(default_factory=list)
    fatal_error: Optional[str] = None


class SyncRunCreate(BaseModel):
    instance_key: str
    contacts: Optional[List[str]] = None


class SyncRunRead(BaseModel):
    id: UUID
    instance_id: UUID
    state: SyncState
    pages_fetched: int
    conversations_touched: int
    messages_accepted: int
    messages_superseded: int
    messages_rejected: int
    errors: List[str]
    fatal_error: Optional[str] = None
    cancel_requested: bool
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class DuplicateGroup(BaseModel):
    external_message_id: str
    survivor_id: UUID
    loser_ids: List[UUID]


class CleanupReport(BaseModel):
    dry_run: bool
    groups_found: int
    messages_deleted: int
    would_delete: int
    groups: List[DuplicateGroup] = Field(default_factory=list)


class ConversationMergeGroup(BaseModel):
    owner_id: str
    contact_id: str
    survivor_id: UUID
    merged_ids: List[UUID]


class ConversationMergeReport(BaseModel):
    dry_run: bool
    groups_found: int
    conversations_merged: int
    would_merge: int
    messages_moved: int = 0
    groups: List[ConversationMergeGroup] = Field(default_factory=list)


class ContactNameFix(BaseModel):
    conversation_id: UUID
    old_name: Optional[str] = None
    new_name: str


class NameRepairReport(BaseModel):
    dry_run: bool
    fixed: int
    fixes: List[ContactNameFix] = Field(default_factory=list)
