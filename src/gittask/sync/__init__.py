from .pull import pull
from .push import delete_remote, push, push_task
from .report import LINK_NOT_PERSISTED, ItemResult, SyncReport

__all__ = [
    "pull",
    "push",
    "push_task",
    "delete_remote",
    "ItemResult",
    "SyncReport",
    "LINK_NOT_PERSISTED",
]
