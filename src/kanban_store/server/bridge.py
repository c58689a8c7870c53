"""Boundary adapter between the UI process and the repositories.

Every request names an operation (``boards.getAll``, ``task.move``, ...)
and carries a payload. Payloads are validated before any repository is
called; malformed ones are rejected with a ValidationError.
"""
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from kanban_store.exceptions import ErrorCode, KanbanStoreError, ValidationError
from kanban_store.models.schema import (BoardsSnapshot, DeletedTaskPayload,
                                        NoteIdRequest, NoteLinkRequest,
                                        NotePayload, NoteUpdateRequest,
                                        NotificationCreateRequest,
                                        NotificationLookup, TaskCreateRequest,
                                        TaskMoveRequest, TaskUpdateRequest)
from kanban_store.observability import timed_operation
from kanban_store.services.reminder_service import ReminderService
from kanban_store.storage.board_repository import BoardRepository
from kanban_store.storage.deleted_task_repository import DeletedTaskRepository
from kanban_store.storage.note_repository import NoteRepository
from kanban_store.storage.notification_repository import NotificationRepository
from kanban_store.storage.settings_repository import SettingsRepository
from kanban_store.storage.task_repository import TaskRepository

logger = logging.getLogger(__name__)

_DELETED_TASKS = TypeAdapter(List[DeletedTaskPayload])
_NOTES = TypeAdapter(List[NotePayload])
_SETTINGS = TypeAdapter(Dict[str, Any])


def _validate(validator: Callable[[Any], Any], payload: Any, operation: str) -> Any:
    """Run a pydantic validator, converting failures to ValidationError."""
    try:
        return validator(payload)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        raise ValidationError(
            f"Invalid payload for {operation}: {first.get('msg', 'invalid value')}",
            field=field,
            value=payload,
        ) from e


def _bare_id(payload: Any, keys: Sequence[str], operation: str) -> str:
    """Accept either a bare id string or an object carrying one of ``keys``."""
    value = payload
    if isinstance(payload, dict):
        value = next((payload[k] for k in keys if k in payload), None)
    if not isinstance(value, str) or not value:
        raise ValidationError(
            f"{operation} expects a non-empty id", field=keys[0], value=payload
        )
    return value


class KanbanBridge:
    """Validates requests and forwards them to the repositories."""

    def __init__(self, store):
        self.store = store
        self.boards = BoardRepository(store)
        self.tasks = TaskRepository(store)
        self.deleted_tasks = DeletedTaskRepository(store)
        self.notifications = NotificationRepository(store)
        self.notes = NoteRepository(store)
        self.settings = SettingsRepository(store)
        self.reminders = ReminderService(store, self.notifications)

        self._handlers: Dict[str, Callable[[Any], Any]] = {
            "boards.getAll": self._boards_get_all,
            "boards.saveAll": self._boards_save_all,
            "deletedTasks.getAll": self._deleted_tasks_get_all,
            "deletedTasks.saveAll": self._deleted_tasks_save_all,
            "settings.getAll": self._settings_get_all,
            "settings.saveAll": self._settings_save_all,
            "task.create": self._task_create,
            "task.update": self._task_update,
            "task.delete": self._task_delete,
            "task.move": self._task_move,
            "notifications.getAll": self._notifications_get_all,
            "notifications.create": self._notifications_create,
            "notifications.markRead": self._notifications_mark_read,
            "notifications.hasBeenSent": self._notifications_has_been_sent,
            "notes.getAll": self._notes_get_all,
            "notes.create": self._notes_create,
            "notes.update": self._notes_update,
            "notes.delete": self._notes_delete,
            "notes.linkToTask": self._notes_link,
            "notes.unlinkFromTask": self._notes_unlink,
            "notes.getContent": self._notes_get_content,
            "notes.saveAll": self._notes_save_all,
            "reminders.check": self._reminders_check,
            "store.status": self._store_status,
        }

    @property
    def operations(self) -> List[str]:
        return sorted(self._handlers)

    def handle(self, operation: str, payload: Any = None) -> Any:
        """Run one operation and return its result.

        Raises:
            ValidationError: Unknown operation or malformed payload.
            StorageError: The write failed and was rolled back.
        """
        handler = self._handlers.get(operation)
        if handler is None:
            raise ValidationError(
                f"Unknown operation: {operation}",
                field="operation",
                value=operation,
                code=ErrorCode.UNKNOWN_OPERATION,
            )
        with timed_operation(operation) as op:
            result = handler(payload)
            if isinstance(result, (list, dict)):
                op["result_size"] = len(result)
            return result

    def dispatch(self, operation: str, payload: Any = None) -> Dict[str, Any]:
        """Run an operation and wrap the outcome in a result envelope.

        Store errors become ``{"ok": False, "error": {...}}``; anything
        else propagates.
        """
        try:
            return {"ok": True, "result": self.handle(operation, payload)}
        except KanbanStoreError as e:
            logger.warning(f"{operation} failed: {e}")
            return {"ok": False, "error": e.to_dict()}

    # Boards

    def _boards_get_all(self, payload: Any) -> Dict[str, Any]:
        return self.boards.get_all()

    def _boards_save_all(self, payload: Any) -> None:
        snapshot = _validate(BoardsSnapshot.model_validate, payload or {}, "boards.saveAll")
        data = snapshot.model_dump()
        self.boards.save_all(data["boards"], data["activeBoardId"], data["standaloneTasks"])

    # Deleted tasks

    def _deleted_tasks_get_all(self, payload: Any) -> List[Dict[str, Any]]:
        return self.deleted_tasks.get_all()

    def _deleted_tasks_save_all(self, payload: Any) -> None:
        if isinstance(payload, dict) and "deletedTasks" in payload:
            payload = payload["deletedTasks"]
        entries = _validate(_DELETED_TASKS.validate_python, payload, "deletedTasks.saveAll")
        self.deleted_tasks.save_all([entry.model_dump() for entry in entries])

    # Settings

    def _settings_get_all(self, payload: Any) -> Dict[str, Any]:
        return self.settings.get_all()

    def _settings_save_all(self, payload: Any) -> None:
        settings = _validate(_SETTINGS.validate_python, payload, "settings.saveAll")
        self.settings.save_all(settings)

    # Tasks

    def _task_create(self, payload: Any) -> Dict[str, str]:
        request = _validate(TaskCreateRequest.model_validate, payload, "task.create")
        return self.tasks.create(request.model_dump())

    def _task_update(self, payload: Any) -> None:
        request = _validate(TaskUpdateRequest.model_validate, payload, "task.update")
        self.tasks.update(request.taskId, request.updates.model_dump(exclude_unset=True))

    def _task_delete(self, payload: Any) -> None:
        self.tasks.delete(_bare_id(payload, ("taskId", "id"), "task.delete"))

    def _task_move(self, payload: Any) -> None:
        request = _validate(TaskMoveRequest.model_validate, payload, "task.move")
        self.tasks.move(
            request.taskId,
            request.newBoardId,
            request.newColumnId,
            request.newPosition,
            standalone=request.isStandalone,
        )

    # Notifications

    def _notifications_get_all(self, payload: Any) -> List[Dict[str, Any]]:
        return self.notifications.get_all()

    def _notifications_create(self, payload: Any) -> Dict[str, Any]:
        request = _validate(
            NotificationCreateRequest.model_validate, payload, "notifications.create"
        )
        return self.notifications.create(
            request.taskId, request.triggerType, title=request.title, body=request.body
        )

    def _notifications_mark_read(self, payload: Any) -> None:
        self.notifications.mark_as_read(
            _bare_id(payload, ("notificationId", "id"), "notifications.markRead")
        )

    def _notifications_has_been_sent(self, payload: Any) -> bool:
        request = _validate(
            NotificationLookup.model_validate, payload, "notifications.hasBeenSent"
        )
        return self.notifications.has_been_sent(request.taskId, request.triggerType)

    # Notes

    def _note_id(self, payload: Any, operation: str) -> str:
        if isinstance(payload, str):
            payload = {"id": payload}
        elif isinstance(payload, dict) and "id" not in payload and "noteId" in payload:
            payload = {"id": payload["noteId"]}
        return _validate(NoteIdRequest.model_validate, payload, operation).id

    def _notes_get_all(self, payload: Any) -> List[Dict[str, Any]]:
        return self.notes.get_all()

    def _notes_create(self, payload: Any) -> Dict[str, Any]:
        note = _validate(NotePayload.model_validate, payload, "notes.create")
        return self.notes.create(note.model_dump())

    def _notes_update(self, payload: Any) -> None:
        request = _validate(NoteUpdateRequest.model_validate, payload, "notes.update")
        self.notes.update(request.id, request.updates.model_dump(exclude_unset=True))

    def _notes_delete(self, payload: Any) -> None:
        self.notes.delete(self._note_id(payload, "notes.delete"))

    def _notes_link(self, payload: Any) -> None:
        request = _validate(NoteLinkRequest.model_validate, payload, "notes.linkToTask")
        self.notes.link_to_task(request.noteId, request.taskId)

    def _notes_unlink(self, payload: Any) -> None:
        request = _validate(NoteLinkRequest.model_validate, payload, "notes.unlinkFromTask")
        self.notes.unlink_from_task(request.noteId, request.taskId)

    def _notes_get_content(self, payload: Any) -> Any:
        return self.notes.get_content(self._note_id(payload, "notes.getContent"))

    def _notes_save_all(self, payload: Any) -> None:
        notes = _validate(_NOTES.validate_python, payload, "notes.saveAll")
        self.notes.save_all([note.model_dump() for note in notes])

    # Misc

    def _reminders_check(self, payload: Any) -> List[Dict[str, Any]]:
        return self.reminders.check_deadlines()

    def _store_status(self, payload: Any) -> Dict[str, Any]:
        return self.store.status()
