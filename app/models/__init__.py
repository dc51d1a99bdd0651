from app.models.conversation import Conversation
from app.models.message import Message
from app.models.platform_instance import PlatformInstance
from app.models.sync_event import SyncEvent
from app.models.sync_run import SyncRun

__all__ = [
    "Conversation",
    "Message",
    "PlatformInstance",
    "SyncEvent",
    "SyncRun",
]
