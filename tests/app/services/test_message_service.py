"""Tests for message reads and status transitions."""

import pytest
from sqlalchemy.orm import Session

from app.services.message_service import MessageService, can_transition
from tests.fixtures.message_fixtures import at


@pytest.mark.parametrize(
    "current, new, allowed",
    [
        ("pending", "sent", True),
        ("sent", "delivered", True),
        ("delivered", "read", True),
        ("pending", "read", True),
        ("read", "delivered", False),
        ("delivered", "sent", False),
        ("read", "read", False),
        ("pending", "failed", True),
        ("sent", "failed", True),
        ("delivered", "failed", False),
        ("failed", "sent", False),
    ],
)
def test_can_transition(current, new, allowed):
    assert can_transition(current, new) is allowed


def test_update_status_moves_forward(db: Session, setup_conversation, store_message):
    store_message(setup_conversation, "X1", "hi", at(1), status="sent")
    updated = MessageService(db).update_status("X1", "read")
    assert updated is not None
    assert updated.status == "read"


def test_update_status_ignores_backward_move(db: Session, setup_conversation, store_message):
    message = store_message(setup_conversation, "X1", "hi", at(1), status="read")
    assert MessageService(db).update_status("X1", "delivered") is None
    db.refresh(message)
    assert message.status == "read"


def test_update_status_for_unknown_message(db: Session):
    assert MessageService(db).update_status("missing", "read") is None


def test_get_messages_in_chronological_order(db: Session, setup_conversation, store_message):
    store_message(setup_conversation, None, "second", at(2))
    store_message(setup_conversation, None, "first", at(1))
    service = MessageService(db)
    assert [m.content for m in service.get_messages(setup_conversation.id)] == [
        "first",
        "second",
    ]
    assert service.get_message_count(setup_conversation.id) == 2
