"""Persistence for sync run progress and cancellation flags."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.models.sync_run import SyncRun
from app.schemas.sync import TERMINAL_STATES, SyncReport, SyncState


class SyncRunService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_run(self, run_id: UUID) -> Optional[SyncRun]:
        return self.db.query(SyncRun).filter(SyncRun.id == run_id).first()

    def create_run(self, instance_id: UUID) -> SyncRun:
        run = SyncRun(instance_id=instance_id, state=SyncState.STARTED.value, errors=[])
        self.db.add(run)
        self.db.commit()
        self.db.refresh(run)
        return run

    def request_cancel(self, run_id: UUID) -> Optional[SyncRun]:
        run = self.get_run(run_id)
        if run is None:
            return None
        if SyncState(run.state) not in TERMINAL_STATES:
            run.cancel_requested = True
            self.db.commit()
            self.db.refresh(run)
        return run

    def is_cancel_requested(self, run_id: UUID) -> bool:
        """Read the flag fresh from the store (another process may have set it)."""
        flag = (
            self.db.query(SyncRun.cancel_requested)
            .filter(SyncRun.id == run_id)
            .scalar()
        )
        return bool(flag)

    def save_progress(self, run: SyncRun, report: SyncReport) -> None:
        """Mirror the orchestrator's report into the run row and commit."""
        run.state = report.state.value
        run.pages_fetched = report.pages_fetched
        run.conversations_touched = report.conversations_touched
        run.messages_accepted = report.messages_accepted
        run.messages_superseded = report.messages_superseded
        run.messages_rejected = report.messages_rejected
        run.errors = list(report.errors)
        run.fatal_error = report.fatal_error
        now = datetime.now(timezone.utc)
        if run.started_at is None:
            run.started_at = now
        if report.state in TERMINAL_STATES:
            run.finished_at = now
        self.db.commit()
