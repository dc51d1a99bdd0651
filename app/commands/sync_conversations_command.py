"""
Command to run a bulk historical sync for one gateway instance.

STARTED -> FETCHING(page) -> RECONCILING(batch) -> FETCHING ... -> DONE

Per-item failures are accumulated in the report and never end the run. Only
SourceUnavailable ends it early (FAILED); pages reconciled before that stay
stored. Cancellation is cooperative and checked between pages (CANCELLED).
Each page is its own unit of work: nothing is held open across a page
boundary.
"""

from __future__ import annotations

import contextlib
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Iterator, List, Optional, Set
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.adapters.base import BaseSyncSource
from app.core.dedup import Decision
from app.core.errors import ConversyncError, SourceUnavailable
from app.models.platform_instance import PlatformInstance
from app.models.sync_run import SyncRun
from app.schemas.sync import SourceContact, SyncReport, SyncState
from app.commands.ingest_message_command import IngestMessageCommand
from app.services.conversation_service import ConversationService
from app.services.sync_run_service import SyncRunService
from app.utils.metrics import SYNC_RUNS_TOTAL

# Upper bound on pages per contact, in case a source keeps returning cursors
MAX_PAGES_PER_CONTACT = 10_000


@dataclass
class ContactOutcome:
    """What syncing one contact produced; merged into the run report."""

    pages: int = 0
    accepted: int = 0
    superseded: int = 0
    rejected: int = 0
    errors: List[str] = field(default_factory=list)
    conversation_ids: Set[UUID] = field(default_factory=set)
    cancelled: bool = False
    fatal_error: Optional[str] = None


class SyncConversationsCommand:
    """
    Drive a sync run: discover contacts, page through their history and
    stream each page through the ingestion pipeline.
    """

    def __init__(
        self,
        db: Session,
        source: BaseSyncSource,
        session_factory: Optional[sessionmaker] = None,
        max_workers: int = 1,
    ) -> None:
        self.db = db
        self.source = source
        self.session_factory = session_factory
        self.max_workers = max(1, max_workers)
        self.run_service = SyncRunService(db)
        self.logger = logging.getLogger(__name__)

    def execute(
        self,
        instance: PlatformInstance,
        run: Optional[SyncRun] = None,
        contacts: Optional[List[str]] = None,
        should_cancel: Optional[Callable[[], bool]] = None,
    ) -> SyncReport:
        """
        Run the sync and return its final report.

        Args:
            instance: Gateway instance whose history is synced.
            run: Optional SyncRun row mirrored with progress and checked for
                cancel requests.
            contacts: Restrict the run to these raw contact ids instead of
                every chat the source lists.
            should_cancel: Extra cancellation predicate, checked between pages.

        Returns:
            SyncReport: always ends in DONE, CANCELLED or FAILED. An error the
            run cannot recover from is reported as FAILED with fatal_error set.
        """
        report = SyncReport(state=SyncState.STARTED)
        cancel_check = self._cancel_check(run, should_cancel)
        self._save(run, report)
        self.logger.info("Sync started for instance %s", instance.instance_key)

        try:
            targets = (
                [SourceContact(remote_id=c) for c in contacts]
                if contacts
                else self.source.list_contacts()
            )
            if self.max_workers > 1 and self.session_factory is not None and len(targets) > 1:
                state = self._run_parallel(
                    instance, targets, report, cancel_check, should_cancel
                )
            else:
                state = self._run_sequential(instance, targets, report, run, cancel_check)
        except SourceUnavailable as e:
            return self._finish(run, report, SyncState.FAILED, fatal_error=str(e))
        except Exception as e:
            self.logger.exception("Sync aborted for instance %s", instance.instance_key)
            self.db.rollback()
            return self._finish(
                run, report, SyncState.FAILED, fatal_error=f"{type(e).__name__}: {e}"
            )
        return self._finish(run, report, state)

    def _run_sequential(
        self,
        instance: PlatformInstance,
        targets: List[SourceContact],
        report: SyncReport,
        run: Optional[SyncRun],
        cancel_check: Callable[[], bool],
    ) -> SyncState:
        for contact in targets:
            outcome = self._sync_contact(
                self.db, instance, contact, cancel_check, report=report, run=run
            )
            self._merge(report, outcome)
            self._save(run, report)
            if outcome.fatal_error:
                report.fatal_error = outcome.fatal_error
                return SyncState.FAILED
            if outcome.cancelled:
                return SyncState.CANCELLED
        return SyncState.DONE

    def _run_parallel(
        self,
        instance: PlatformInstance,
        targets: List[SourceContact],
        report: SyncReport,
        cancel_check: Callable[[], bool],
        should_cancel: Optional[Callable[[], bool]] = None,
    ) -> SyncState:
        """
        Sync distinct contacts concurrently, each worker on its own session.

        Workers poll the stop flag and the caller's predicate; the SyncRun
        row is only read from the calling thread, between contacts.
        """
        stop = threading.Event()
        instance_id = instance.id

        def worker_cancel() -> bool:
            if stop.is_set():
                return True
            return should_cancel is not None and should_cancel()

        def work(contact: SourceContact) -> ContactOutcome:
            if stop.is_set():
                return ContactOutcome(cancelled=True)
            with self._worker_session() as session:
                worker_instance = session.get(PlatformInstance, instance_id)
                outcome = self._sync_contact(session, worker_instance, contact, worker_cancel)
            if outcome.fatal_error:
                stop.set()
            return outcome

        report.state = SyncState.FETCHING
        state = SyncState.DONE
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures = [pool.submit(work, contact) for contact in targets]
            for future in futures:
                outcome = future.result()
                self._merge(report, outcome)
                if outcome.fatal_error and state != SyncState.FAILED:
                    report.fatal_error = outcome.fatal_error
                    state = SyncState.FAILED
                elif state == SyncState.DONE and not stop.is_set() and cancel_check():
                    stop.set()
                    state = SyncState.CANCELLED
                elif outcome.cancelled and state == SyncState.DONE:
                    state = SyncState.CANCELLED
        return state

    def _sync_contact(
        self,
        db: Session,
        instance: PlatformInstance,
        contact: SourceContact,
        cancel_check: Callable[[], bool],
        report: Optional[SyncReport] = None,
        run: Optional[SyncRun] = None,
    ) -> ContactOutcome:
        outcome = ContactOutcome()
        ingest = IngestMessageCommand(db, source="sync")
        cursor: Optional[str] = None

        while outcome.pages < MAX_PAGES_PER_CONTACT:
            if cancel_check():
                outcome.cancelled = True
                break
            self._transition(report, run, SyncState.FETCHING)
            try:
                page = self.source.fetch_page(contact.remote_id, cursor)
            except SourceUnavailable as e:
                outcome.fatal_error = str(e)
                break
            outcome.pages += 1
            outcome.errors.extend(page.errors)

            self._transition(report, run, SyncState.RECONCILING)
            batch = ingest.execute_batch(
                instance, page.messages, default_contact_name=contact.name
            )
            outcome.accepted += batch.count(Decision.ACCEPT)
            outcome.superseded += batch.count(Decision.SUPERSEDE)
            outcome.rejected += batch.count(Decision.REJECT)
            outcome.errors.extend(batch.errors)
            outcome.conversation_ids |= batch.conversation_ids
            # End of page: close the unit of work
            db.commit()

            if not page.next_cursor or page.next_cursor == cursor:
                break
            cursor = page.next_cursor

        if outcome.conversation_ids and not outcome.fatal_error:
            conversations = ConversationService(db)
            for conversation_id in outcome.conversation_ids:
                try:
                    conversation = conversations.get_conversation(conversation_id)
                    if conversation is not None:
                        conversations.mark_synced(conversation)
                except (ConversyncError, SQLAlchemyError) as e:
                    db.rollback()
                    outcome.errors.append(f"mark synced {conversation_id}: {e}")
        self.logger.info(
            "Synced %s: %d page(s), %d accepted, %d superseded, %d rejected, %d error(s)",
            contact.remote_id,
            outcome.pages,
            outcome.accepted,
            outcome.superseded,
            outcome.rejected,
            len(outcome.errors),
        )
        return outcome

    def _merge(self, report: SyncReport, outcome: ContactOutcome) -> None:
        report.pages_fetched += outcome.pages
        report.messages_accepted += outcome.accepted
        report.messages_superseded += outcome.superseded
        report.messages_rejected += outcome.rejected
        report.conversations_touched += len(outcome.conversation_ids)
        report.errors.extend(outcome.errors)

    def _transition(
        self, report: Optional[SyncReport], run: Optional[SyncRun], state: SyncState
    ) -> None:
        if report is None or report.state == state:
            return
        report.state = state
        self._save(run, report)

    def _finish(
        self,
        run: Optional[SyncRun],
        report: SyncReport,
        state: SyncState,
        fatal_error: Optional[str] = None,
    ) -> SyncReport:
        report.state = state
        if fatal_error:
            report.fatal_error = fatal_error
        self._save(run, report)
        SYNC_RUNS_TOTAL.labels(state=state.value).inc()
        if state == SyncState.FAILED:
            self.logger.error("Sync failed: %s", report.fatal_error)
        else:
            self.logger.info(
                "Sync %s: %d conversations, %d accepted, %d superseded, %d error(s)",
                state.value,
                report.conversations_touched,
                report.messages_accepted,
                report.messages_superseded,
                len(report.errors),
            )
        return report

    def _save(self, run: Optional[SyncRun], report: SyncReport) -> None:
        if run is not None:
            self.run_service.save_progress(run, report)

    def _cancel_check(
        self, run: Optional[SyncRun], should_cancel: Optional[Callable[[], bool]]
    ) -> Callable[[], bool]:
        run_id = run.id if run is not None else None

        def check() -> bool:
            if should_cancel is not None and should_cancel():
                return True
            if run_id is None:
                return False
            requested = self.run_service.is_cancel_requested(run_id)
            self.db.commit()
            return requested

        return check

    @contextlib.contextmanager
    def _worker_session(self) -> Iterator[Session]:
        session = self.session_factory()
        try:
            yield session
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
