"""Storage layer for the kanban store."""

from kanban_store.storage.board_repository import BoardRepository
from kanban_store.storage.deleted_task_repository import DeletedTaskRepository
from kanban_store.storage.note_repository import NoteRepository
from kanban_store.storage.notification_repository import NotificationRepository
from kanban_store.storage.schema_manager import SchemaManager
from kanban_store.storage.settings_repository import SettingsRepository
from kanban_store.storage.store import Store
from kanban_store.storage.task_repository import TaskRepository

__all__ = [
    "Store",
    "SchemaManager",
    "BoardRepository",
    "TaskRepository",
    "DeletedTaskRepository",
    "NotificationRepository",
    "NoteRepository",
    "SettingsRepository",
]
