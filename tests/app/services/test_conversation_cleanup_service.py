"""Tests for merging legacy conversations and repairing contact names."""

import pytest
from sqlalchemy.orm import Session

from app.models.conversation import Conversation
from app.models.message import Message
from app.services.conversation_cleanup_service import ConversationCleanupService
from tests.fixtures.message_fixtures import at


@pytest.fixture
def make_conversation(db, setup_instance):
    def _make(contact_id, contact_name=None, created_at=None, owner_id=None, **kw):
        conversation = Conversation(
            owner_id=owner_id or setup_instance.owner_id,
            platform="whatsapp",
            contact_id=contact_id,
            contact_name=contact_name,
            status="active",
            message_count=0,
            sync_status="pending",
            created_at=created_at or at(0),
            **kw,
        )
        db.add(conversation)
        db.commit()
        db.refresh(conversation)
        return conversation

    return _make


@pytest.fixture
def legacy_pair(make_conversation, store_message):
    """One chat stored under a trunk-prefixed and an international spelling."""
    legacy = make_conversation("081234567890", "081234567890", created_at=at(-100))
    current = make_conversation("6281234567890", "Budi", created_at=at(-50))
    store_message(legacy, "L1", "old", at(1))
    store_message(current, "N1", "new", at(2))
    return legacy, current


def test_merge_is_dry_run_by_default(db: Session, legacy_pair):
    legacy, current = legacy_pair
    report = ConversationCleanupService(db).merge_duplicates()

    assert report.dry_run is True
    assert report.groups_found == 1
    assert report.would_merge == 1
    assert report.conversations_merged == 0
    assert report.groups[0].contact_id == "6281234567890"
    assert report.groups[0].survivor_id == legacy.id
    assert report.groups[0].merged_ids == [current.id]
    assert db.query(Conversation).count() == 2


def test_merge_keeps_oldest_row_under_canonical_key(db: Session, legacy_pair):
    legacy, current = legacy_pair
    report = ConversationCleanupService(db).merge_duplicates(confirm=True)

    assert report.conversations_merged == 1
    assert report.messages_moved == 1
    survivor = db.query(Conversation).one()
    assert survivor.id == legacy.id
    assert survivor.contact_id == "6281234567890"
    assert survivor.contact_name == "Budi"
    assert survivor.message_count == 2
    assert survivor.last_message_preview == "new"
    assert {m.conversation_id for m in db.query(Message).all()} == {legacy.id}


def test_merge_is_scoped_by_owner(db: Session, make_conversation):
    make_conversation("081234567890", owner_id="owner-a")
    make_conversation("6281234567890", owner_id="owner-b")

    report = ConversationCleanupService(db).merge_duplicates(confirm=True)

    assert report.groups_found == 0
    assert db.query(Conversation).count() == 2


def test_repair_names_from_latest_inbound_push_name(db: Session, make_conversation, store_message):
    conversation = make_conversation("6281234567890", "Agent Desk")
    store_message(conversation, "I1", "hi", at(1), sender_name="Siti Lama")
    store_message(conversation, "I2", "hi again", at(2), sender_name="Siti")
    store_message(
        conversation, "O1", "hello", at(3),
        direction="outbound", sender_type="agent", sender_name="Agent Desk",
    )
    service = ConversationCleanupService(db)

    dry = service.repair_contact_names()
    assert dry.dry_run is True
    assert [(f.old_name, f.new_name) for f in dry.fixes] == [("Agent Desk", "Siti")]
    db.refresh(conversation)
    assert conversation.contact_name == "Agent Desk"

    applied = service.repair_contact_names(confirm=True)
    assert applied.fixed == 1
    db.refresh(conversation)
    assert conversation.contact_name == "Siti"


def test_repair_names_skips_groups_and_placeholders(db: Session, make_conversation, store_message):
    group = make_conversation("120363012345", "Family", contact_metadata={"isGroup": True})
    store_message(group, "G1", "hi", at(1), sender_name="Member")
    direct = make_conversation("6282222222222", "Rina")
    store_message(direct, "D1", "hi", at(1), sender_name="Unknown")
    store_message(direct, "D2", "hi", at(2), sender_name="+62 822 2222 2222")

    report = ConversationCleanupService(db).repair_contact_names(confirm=True)

    assert report.fixes == []
    db.refresh(group)
    assert group.contact_name == "Family"
