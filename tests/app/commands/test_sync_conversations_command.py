"""Tests for the bulk sync orchestrator."""

from typing import Dict, List, Optional
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from app.adapters.base import BaseSyncSource
from app.commands.sync_conversations_command import SyncConversationsCommand
from app.db import Base, build_engine
from app.core.errors import SourceUnavailable
from app.models.conversation import Conversation
from app.models.message import Message
from app.models.platform_instance import PlatformInstance
from app.schemas.sync import SourceContact, SourcePage, SyncState
from app.services.conversation_service import ConversationService
from app.services.sync_run_service import SyncRunService
from tests.fixtures.message_fixtures import at, make_candidate

ALICE = "6281111111111@s.whatsapp.net"
BOB = "6282222222222@s.whatsapp.net"


class FakeSource(BaseSyncSource):
    """Pages served from memory; a page set to an exception raises it."""

    def __init__(self, pages: Dict[str, List], names: Optional[Dict[str, str]] = None):
        self.pages = pages
        self.names = names or {}
        self.calls: List[tuple] = []

    def list_contacts(self) -> List[SourceContact]:
        return [SourceContact(remote_id=c, name=self.names.get(c)) for c in self.pages]

    def fetch_page(self, contact: str, cursor: Optional[str] = None) -> SourcePage:
        self.calls.append((contact, cursor))
        index = int(cursor or 0)
        page = self.pages[contact][index]
        if isinstance(page, Exception):
            raise page
        next_cursor = str(index + 1) if index + 1 < len(self.pages[contact]) else None
        return SourcePage(messages=page, next_cursor=next_cursor)


def test_sync_reconciles_every_page(db: Session, setup_instance):
    source = FakeSource(
        {
            ALICE: [
                [make_candidate("A1", "one", at(1), contact=ALICE)],
                [make_candidate("A2", "two", at(2), contact=ALICE)],
            ],
            BOB: [[make_candidate("B1", "hey", at(3), contact=BOB)]],
        },
        names={ALICE: "Alice"},
    )
    report = SyncConversationsCommand(db, source).execute(setup_instance)

    assert report.state == SyncState.DONE
    assert report.pages_fetched == 3
    assert report.conversations_touched == 2
    assert report.messages_accepted == 3
    assert report.errors == []
    alice = db.query(Conversation).filter(Conversation.contact_id == "6281111111111").one()
    assert alice.contact_name == "Alice"
    assert alice.message_count == 2
    assert alice.sync_status == "synced"


def test_duplicate_records_in_a_page_keep_the_longest(db: Session, setup_instance):
    source = FakeSource(
        {
            ALICE: [
                [
                    make_candidate("D1", "x" * 5, at(1), contact=ALICE),
                    make_candidate("D1", "x" * 12, at(1), contact=ALICE),
                    make_candidate("D1", "x" * 8, at(1), contact=ALICE),
                ]
            ]
        }
    )
    report = SyncConversationsCommand(db, source).execute(setup_instance)

    assert report.messages_accepted == 1
    messages = db.query(Message).all()
    assert len(messages) == 1
    assert len(messages[0].content) == 12


def test_replaying_a_sync_yields_the_same_state(db: Session, setup_instance):
    pages = {
        ALICE: [
            [
                make_candidate("A1", "one", at(1), contact=ALICE),
                make_candidate(None, "no id", at(2), contact=ALICE),
            ]
        ]
    }
    SyncConversationsCommand(db, FakeSource(pages)).execute(setup_instance)
    first = sorted((m.external_message_id or "", m.content) for m in db.query(Message).all())

    pages[ALICE][0] = [make_candidate("A1", "one", at(1), contact=ALICE)]
    report = SyncConversationsCommand(db, FakeSource(pages)).execute(setup_instance)
    second = sorted((m.external_message_id or "", m.content) for m in db.query(Message).all())

    assert report.messages_rejected == 1
    assert report.messages_accepted == 0
    assert first == second


def test_source_errors_are_accumulated_without_aborting(db: Session, setup_instance):
    class PartialSource(FakeSource):
        def fetch_page(self, contact, cursor=None):
            page = super().fetch_page(contact, cursor)
            page.errors.append(f"{contact}: record without key.remoteJid")
            return page

    source = PartialSource({ALICE: [[make_candidate("A1", "one", at(1), contact=ALICE)]]})
    report = SyncConversationsCommand(db, source).execute(setup_instance)

    assert report.state == SyncState.DONE
    assert report.messages_accepted == 1
    assert len(report.errors) == 1


def test_source_unavailable_fails_run_but_keeps_earlier_pages(db: Session, setup_instance):
    source = FakeSource(
        {
            ALICE: [
                [make_candidate("A1", "one", at(1), contact=ALICE)],
                SourceUnavailable("HTTP 503"),
            ],
            BOB: [[make_candidate("B1", "hey", at(3), contact=BOB)]],
        }
    )
    report = SyncConversationsCommand(db, source).execute(setup_instance)

    assert report.state == SyncState.FAILED
    assert report.fatal_error == "HTTP 503"
    assert report.pages_fetched == 1
    assert [m.external_message_id for m in db.query(Message).all()] == ["A1"]
    assert (BOB, None) not in source.calls


def test_listing_contacts_failure_fails_run(db: Session, setup_instance):
    class DownSource(FakeSource):
        def list_contacts(self):
            raise SourceUnavailable("Gateway unreachable")

    report = SyncConversationsCommand(db, DownSource({})).execute(setup_instance)
    assert report.state == SyncState.FAILED
    assert report.fatal_error == "Gateway unreachable"


def test_cancellation_is_checked_between_pages(db: Session, setup_instance):
    source = FakeSource(
        {
            ALICE: [
                [make_candidate("A1", "one", at(1), contact=ALICE)],
                [make_candidate("A2", "two", at(2), contact=ALICE)],
            ]
        }
    )
    report = SyncConversationsCommand(db, source).execute(
        setup_instance, should_cancel=lambda: len(source.calls) >= 1
    )

    assert report.state == SyncState.CANCELLED
    assert report.pages_fetched == 1
    assert [m.external_message_id for m in db.query(Message).all()] == ["A1"]


def test_cancel_requested_on_run_row(db: Session, setup_instance):
    runs = SyncRunService(db)
    run = runs.create_run(setup_instance.id)
    source = FakeSource({ALICE: [[make_candidate("A1", "one", at(1), contact=ALICE)]]})
    runs.request_cancel(run.id)

    report = SyncConversationsCommand(db, source).execute(setup_instance, run=run)

    assert report.state == SyncState.CANCELLED
    assert source.calls == []
    db.refresh(run)
    assert run.state == "cancelled"
    assert run.finished_at is not None


def test_progress_is_mirrored_into_run_row(db: Session, setup_instance):
    run = SyncRunService(db).create_run(setup_instance.id)
    source = FakeSource({ALICE: [[make_candidate("A1", "one", at(1), contact=ALICE)]]})

    SyncConversationsCommand(db, source).execute(setup_instance, run=run)

    db.refresh(run)
    assert run.state == "done"
    assert run.pages_fetched == 1
    assert run.messages_accepted == 1
    assert run.conversations_touched == 1
    assert run.started_at is not None
    assert run.finished_at is not None


def test_explicit_contacts_restrict_the_run(db: Session, setup_instance):
    source = FakeSource(
        {
            ALICE: [[make_candidate("A1", "one", at(1), contact=ALICE)]],
            BOB: [[make_candidate("B1", "hey", at(2), contact=BOB)]],
        }
    )
    SyncConversationsCommand(db, source).execute(setup_instance, contacts=[BOB])
    assert [c for c, _ in source.calls] == [BOB]


def test_repeated_cursor_ends_pagination(db: Session, setup_instance):
    class StuckSource(FakeSource):
        def fetch_page(self, contact, cursor=None):
            self.calls.append((contact, cursor))
            return SourcePage(
                messages=[make_candidate("S1", "stuck", at(1), contact=ALICE)],
                next_cursor="same",
            )

    source = StuckSource({ALICE: []})
    report = SyncConversationsCommand(db, source).execute(setup_instance)

    assert report.state == SyncState.DONE
    assert source.calls == [(ALICE, None), (ALICE, "same")]


def test_store_error_for_one_contact_does_not_stop_the_run(db: Session, setup_instance):
    real_resolve = ConversationService.resolve

    def resolve_unless_alice(self, owner_id, platform, contact_key, *args, **kwargs):
        if contact_key == "6281111111111":
            raise OperationalError("INSERT", {}, Exception("database is locked"))
        return real_resolve(self, owner_id, platform, contact_key, *args, **kwargs)

    run = SyncRunService(db).create_run(setup_instance.id)
    source = FakeSource(
        {
            ALICE: [[make_candidate("A1", "one", at(1), contact=ALICE)]],
            BOB: [[make_candidate("B1", "hey", at(2), contact=BOB)]],
        }
    )
    with patch.object(ConversationService, "resolve", resolve_unless_alice):
        report = SyncConversationsCommand(db, source).execute(setup_instance, run=run)

    assert report.state == SyncState.DONE
    assert len(report.errors) == 1
    assert "A1" in report.errors[0]
    assert [m.external_message_id for m in db.query(Message).all()] == ["B1"]
    db.refresh(run)
    assert run.state == "done"
    assert run.finished_at is not None


def test_unexpected_error_fails_run_and_finishes_row(db: Session, setup_instance):
    run = SyncRunService(db).create_run(setup_instance.id)
    source = FakeSource(
        {
            ALICE: [[make_candidate("A1", "one", at(1), contact=ALICE)], RuntimeError("boom")],
            BOB: [[make_candidate("B1", "hey", at(2), contact=BOB)]],
        }
    )
    report = SyncConversationsCommand(db, source).execute(setup_instance, run=run)

    assert report.state == SyncState.FAILED
    assert report.fatal_error == "RuntimeError: boom"
    assert [m.external_message_id for m in db.query(Message).all()] == ["A1"]
    db.refresh(run)
    assert run.state == "failed"
    assert run.fatal_error == "RuntimeError: boom"
    assert run.finished_at is not None


@pytest.fixture
def file_store(tmp_path):
    """A file-backed SQLite store, so worker threads get their own connections."""
    engine = build_engine(f"sqlite:///{tmp_path}/sync.db")
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    session = factory()
    instance = PlatformInstance(instance_key="inst-pool", owner_id="owner-pool", platform="whatsapp")
    session.add(instance)
    session.commit()
    yield session, factory, instance
    session.close()
    engine.dispose()


def _contact_pages(count: int) -> Dict[str, List]:
    pages = {}
    for n in range(count):
        jid = f"62833333333{n:02d}@s.whatsapp.net"
        pages[jid] = [
            [make_candidate(f"P{n}-{i}", f"msg {i}", at(i), contact=jid) for i in (1, 2)],
            [make_candidate(f"P{n}-{i}", f"msg {i}", at(i), contact=jid) for i in (3, 4)],
        ]
    return pages


def test_worker_pool_syncs_contacts_in_parallel(file_store):
    session, factory, instance = file_store
    command = SyncConversationsCommand(
        session, FakeSource(_contact_pages(6)), session_factory=factory, max_workers=3
    )
    report = command.execute(instance)

    assert report.state == SyncState.DONE
    assert report.pages_fetched == 12
    assert report.conversations_touched == 6
    assert report.messages_accepted == 24
    assert session.query(Message).count() == 24
    assert session.query(Conversation).filter(Conversation.sync_status == "synced").count() == 6


def test_worker_pool_stops_on_cancel(file_store):
    session, factory, instance = file_store
    command = SyncConversationsCommand(
        session, FakeSource(_contact_pages(6)), session_factory=factory, max_workers=2
    )
    report = command.execute(instance, should_cancel=lambda: True)

    assert report.state == SyncState.CANCELLED
    assert report.pages_fetched == 0
    assert session.query(Message).count() == 0


def test_worker_pool_source_unavailable_fails_run(file_store):
    session, factory, instance = file_store
    pages = _contact_pages(4)
    broken = next(iter(pages))
    pages[broken][1] = SourceUnavailable("HTTP 502")
    command = SyncConversationsCommand(
        session, FakeSource(pages), session_factory=factory, max_workers=2
    )
    report = command.execute(instance)

    assert report.state == SyncState.FAILED
    assert report.fatal_error == "HTTP 502"
    stored = {m.external_message_id for m in session.query(Message).all()}
    assert {"P0-1", "P0-2"} <= stored
