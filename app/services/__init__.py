from app.services.conversation_cleanup_service import ConversationCleanupService
from app.services.conversation_service import ConversationService
from app.services.deduplication_service import MessageDeduplicator
from app.services.duplicate_cleanup_service import DuplicateCleanupService
from app.services.message_service import MessageService
from app.services.platform_instance_service import PlatformInstanceService
from app.services.reconciliation_service import ReconciliationWriter
from app.services.sync_event_service import SyncEventService
from app.services.sync_run_service import SyncRunService

__all__ = [
    "ConversationCleanupService",
    "ConversationService",
    "DuplicateCleanupService",
    "MessageDeduplicator",
    "MessageService",
    "PlatformInstanceService",
    "ReconciliationWriter",
    "SyncEventService",
    "SyncRunService",
]
