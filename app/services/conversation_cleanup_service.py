"""
Administrative repair of legacy conversation rows.

Rows written before contact ids were normalized can hold one chat under
several spellings of the same number (081..., 6281..., +62 81...). The merge
keeps the oldest row per canonical key, moves every message into it and
deletes the rest. The name repair replaces contact names with the push name
the contact last sent, undoing rows that were named after the agent.
Both only report unless explicitly confirmed.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from app.config import get_settings
from app.core.identity import normalize_contact_id
from app.models.conversation import Conversation
from app.models.message import Message
from app.schemas.sync import (
    ContactNameFix,
    ConversationMergeGroup,
    ConversationMergeReport,
    NameRepairReport,
)
from app.services.conversation_service import is_placeholder_name
from app.services.reconciliation_service import recompute_conversation_aggregates

logger = logging.getLogger(__name__)

GroupKey = Tuple[str, str, str]


class ConversationCleanupService:
    def __init__(self, db: Session) -> None:
        self.db = db
        self.settings = get_settings()

    def canonical_key(self, contact_id: str) -> str:
        return normalize_contact_id(
            contact_id,
            country_code=self.settings.default_country_code,
            trunk_prefix=self.settings.trunk_prefix,
            subscriber_prefix=self.settings.subscriber_prefix,
        )

    def find_duplicate_groups(self) -> Dict[GroupKey, List[Conversation]]:
        """Conversations sharing (owner, platform, canonical contact key), oldest first."""
        groups: "OrderedDict[GroupKey, List[Conversation]]" = OrderedDict()
        rows = (
            self.db.query(Conversation)
            .order_by(Conversation.created_at, Conversation.id)
            .all()
        )
        for conversation in rows:
            key = (
                conversation.owner_id,
                conversation.platform,
                self.canonical_key(conversation.contact_id),
            )
            groups.setdefault(key, []).append(conversation)
        return {key: convs for key, convs in groups.items() if len(convs) > 1}

    def merge_duplicates(self, confirm: bool = False) -> ConversationMergeReport:
        """
        Report duplicate conversations and, when confirm is True, merge them.

        Each group is merged in its own transaction.
        """
        groups = self.find_duplicate_groups()
        report = ConversationMergeReport(
            dry_run=not confirm,
            groups_found=len(groups),
            conversations_merged=0,
            would_merge=0,
        )
        for (owner_id, _platform, contact_key), conversations in groups.items():
            survivor, losers = conversations[0], conversations[1:]
            report.groups.append(
                ConversationMergeGroup(
                    owner_id=owner_id,
                    contact_id=contact_key,
                    survivor_id=survivor.id,
                    merged_ids=[c.id for c in losers],
                )
            )
            report.would_merge += len(losers)
            if not confirm:
                continue
            report.messages_moved += self._merge_group(survivor, losers, contact_key)
            report.conversations_merged += len(losers)

        logger.info(
            "Conversation merge %s: %d group(s), %d %s",
            "complete" if confirm else "dry run",
            report.groups_found,
            report.conversations_merged if confirm else report.would_merge,
            "merged" if confirm else "would be merged",
        )
        return report

    def _merge_group(
        self, survivor: Conversation, losers: List[Conversation], contact_key: str
    ) -> int:
        loser_ids = [c.id for c in losers]
        moved = (
            self.db.query(Message)
            .filter(Message.conversation_id.in_(loser_ids))
            .update({Message.conversation_id: survivor.id}, synchronize_session=False)
        )
        if is_placeholder_name(survivor.contact_name, contact_key):
            for loser in losers:
                if not is_placeholder_name(loser.contact_name, contact_key):
                    survivor.contact_name = loser.contact_name
                    break
        for loser in losers:
            self.db.delete(loser)
        self.db.flush()
        survivor.contact_id = contact_key
        self.db.flush()
        recompute_conversation_aggregates(
            self.db, survivor.id, self.settings.message_preview_length
        )
        self.db.commit()
        # The bulk update bypassed the identity map
        self.db.expire_all()
        logger.info(
            "Merged %d conversation(s) into %s (%s); moved %d message(s)",
            len(losers),
            survivor.id,
            contact_key,
            moved,
        )
        return moved

    def repair_contact_names(self, confirm: bool = False) -> NameRepairReport:
        """
        Set each direct chat's name to the push name its contact last sent.

        Group chats are skipped: their inbound push names belong to members.
        """
        report = NameRepairReport(dry_run=not confirm, fixed=0)
        for conversation in self.db.query(Conversation).order_by(Conversation.created_at):
            if (conversation.contact_metadata or {}).get("isGroup"):
                continue
            name = self._latest_contact_name(conversation)
            if name is None or name == conversation.contact_name:
                continue
            report.fixes.append(
                ContactNameFix(
                    conversation_id=conversation.id,
                    old_name=conversation.contact_name,
                    new_name=name,
                )
            )
        if confirm:
            for fix in report.fixes:
                conversation = self.db.get(Conversation, fix.conversation_id)
                conversation.contact_name = fix.new_name
            self.db.commit()
            report.fixed = len(report.fixes)
        logger.info(
            "Contact name repair (confirm=%s): %d fix(es)", confirm, len(report.fixes)
        )
        return report

    def _latest_contact_name(self, conversation: Conversation) -> Optional[str]:
        rows = (
            self.db.query(Message.sender_name)
            .filter(
                Message.conversation_id == conversation.id,
                Message.direction == "inbound",
                Message.sender_name.isnot(None),
            )
            .order_by(Message.created_at.desc(), Message.id.desc())
            .all()
        )
        for (name,) in rows:
            value = name.strip()
            if value.lower() != "unknown" and not is_placeholder_name(
                value, conversation.contact_id
            ):
                return value
        return None
