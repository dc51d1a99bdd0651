"""Prometheus metrics for ingestion, sync and cleanup."""

from __future__ import annotations

from prometheus_client import Counter

MESSAGES_RECONCILED_TOTAL = Counter(
    "conversync_messages_reconciled_total",
    "Message candidates reconciled, by ingestion source and decision",
    ["source", "decision"],
)

WEBHOOK_EVENTS_TOTAL = Counter(
    "conversync_webhook_events_total",
    "Gateway webhook events received, by event type and outcome",
    ["event_type", "status"],
)

SYNC_RUNS_TOTAL = Counter(
    "conversync_sync_runs_total",
    "Bulk sync runs finished, by terminal state",
    ["state"],
)

DUPLICATES_REMOVED_TOTAL = Counter(
    "conversync_duplicates_removed_total",
    "Duplicate messages deleted by the administrative cleanup",
)
