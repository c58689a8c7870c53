"""Repository for incremental task writes.

Positions are dense 0-based indices within a column, or within the
standalone list (tasks whose board_id is NULL). Creating, deleting and
moving a task renumber its neighbours so the indices stay dense.
"""
import json
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import delete, func, insert, select, update

from kanban_store.models.db_models import (DBAttachment, DBBoard, DBChecklist,
                                           DBColumn, DBComment, DBTask,
                                           DBTimelineEntry)
from kanban_store.utils import generate_id, utc_now_iso

logger = logging.getLogger(__name__)

CHECKLIST_TITLE = "Checklist"
DEFAULT_PRIORITY = "medium"
DEFAULT_STATUS = "To Do"

# task.update keys that map onto task columns; everything else is ignored
_UPDATABLE_FIELDS = {
    "heading": "heading",
    "tldr": "tldr",
    "description": "description",
    "priority": "priority",
    "tags": "tags",
    "dueDate": "due_date",
    "due_date": "due_date",
    "status": "status",
    "completed": "completed",
}

_NO_SYNC = {"synchronize_session": False}


def normalize_placement(
    board_id: Optional[str], column_id: Optional[str], standalone: bool = False
) -> Tuple[Optional[str], Optional[str]]:
    """Return (board_id, column_id) with both set or both None."""
    if standalone or not board_id or not column_id:
        return None, None
    return board_id, column_id


def _same_list(column_id: Optional[str]):
    """WHERE clause selecting the ordered list a task lives in."""
    if column_id is None:
        return DBTask.board_id.is_(None)
    return DBTask.column_id == column_id


def _encode_column_value(column: str, value: Any) -> Any:
    if column == "tags":
        return json.dumps(list(value or []))
    if column == "due_date":
        return value or ""
    if column == "completed":
        return bool(value)
    return value


def checklist_rows(task_id: str, items: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Group checklist items under the task's single checklist row."""
    normalized = [
        {
            "id": str(item.get("id") or generate_id()),
            "text": str(item.get("text") or ""),
            "completed": bool(item.get("completed")),
        }
        for item in items
        if isinstance(item, dict)
    ]
    if not normalized:
        return []
    return [{
        "id": generate_id(),
        "task_id": task_id,
        "title": CHECKLIST_TITLE,
        "items": json.dumps(normalized),
    }]


def insert_extended_data(session, task_id: str, extended: Optional[Dict[str, Any]]) -> None:
    """Insert checklist, attachment and comment rows for a task."""
    if not extended:
        return

    rows = checklist_rows(task_id, extended.get("checklists") or [])
    if rows:
        session.execute(insert(DBChecklist), rows)

    attachments = [
        {
            "id": str(a.get("id") or generate_id()),
            "task_id": task_id,
            "url": a.get("url") or "",
            "title": a.get("title") or a.get("url") or "",
            "cover_image": bool(a.get("coverImage")),
            "created_at": a.get("createdAt") or utc_now_iso(),
        }
        for a in extended.get("attachments") or []
        if isinstance(a, dict)
    ]
    if attachments:
        session.execute(insert(DBAttachment), attachments)

    comments = [
        {
            "id": str(c.get("id") or generate_id()),
            "task_id": task_id,
            "text": c.get("text") or "",
            "created_at": c.get("createdAt") or utc_now_iso(),
        }
        for c in extended.get("comments") or []
        if isinstance(c, dict)
    ]
    if comments:
        session.execute(insert(DBComment), comments)


def insert_timeline(session, task_id: str, entries: Iterable[Dict[str, Any]]) -> int:
    """Append timeline entries for a task, returning how many were written."""
    rows = [
        {
            "task_id": task_id,
            "timestamp": entry.get("timestamp") or utc_now_iso(),
            "action": entry.get("action") or "",
        }
        for entry in entries
        if isinstance(entry, dict)
    ]
    if rows:
        session.execute(insert(DBTimelineEntry), rows)
    return len(rows)


class TaskRepository:
    """Create, update, delete and move single tasks."""

    def __init__(self, store):
        """Initialize the task repository.

        Args:
            store: The opened (or lazily opened) Store.
        """
        self.store = store

    def create(self, task: Dict[str, Any]) -> Dict[str, str]:
        """Insert a task with its timeline and extended data.

        Tasks already at or after the target position shift down by one.

        Returns:
            ``{"id": task_id}``
        """
        task_id = task["id"]
        board_id, column_id = normalize_placement(
            task.get("board_id"), task.get("column_id"), bool(task.get("isStandalone"))
        )
        position = int(task.get("position") or 0)

        with self.store.transaction("task.create") as session:
            session.execute(
                update(DBTask)
                .where(_same_list(column_id), DBTask.position >= position)
                .values(position=DBTask.position + 1)
                .execution_options(**_NO_SYNC)
            )
            session.execute(insert(DBTask), [{
                "id": task_id,
                "board_id": board_id,
                "column_id": column_id,
                "heading": task.get("heading") or "",
                "tldr": task.get("tldr") or "",
                "description": task.get("description") or "",
                "priority": task.get("priority") or DEFAULT_PRIORITY,
                "tags": json.dumps(list(task.get("tags") or [])),
                "due_date": task.get("due_date") or "",
                "status": task.get("status") or DEFAULT_STATUS,
                "completed": bool(task.get("completed")),
                "position": position,
                "created_at": task.get("created_at") or utc_now_iso(),
            }])
            insert_timeline(session, task_id, task.get("timeline") or [])
            insert_extended_data(session, task_id, task.get("extendedData"))

        logger.debug(f"Created task {task_id} at position {position}")
        return {"id": task_id}

    @staticmethod
    def _field_patch(updates: Dict[str, Any]) -> Dict[str, Any]:
        """Column values for the recognised keys of an update.

        Nested ``settings`` values win over the same keys given flat.
        """
        patch = {}
        sources = [updates]
        if isinstance(updates.get("settings"), dict):
            sources.append(updates["settings"])
        for source in sources:
            for key, value in source.items():
                column = _UPDATABLE_FIELDS.get(key)
                if column is None:
                    continue
                if value is None and column in ("heading", "status", "priority"):
                    continue
                patch[column] = _encode_column_value(column, value)
        return patch

    def update(self, task_id: str, updates: Dict[str, Any]) -> bool:
        """Apply a partial update to a task.

        Only recognised fields are written. The timeline is appended by
        diff: entries past the number already stored are inserted, nothing
        else. Extended data, when present, replaces the task's checklist,
        attachments and comments.

        Returns:
            False if the task does not exist (nothing written).
        """
        patch = self._field_patch(updates)

        with self.store.transaction("task.update") as session:
            exists = session.scalar(select(DBTask.id).where(DBTask.id == task_id))
            if exists is None:
                logger.debug(f"task.update: task {task_id} not found, ignoring")
                return False

            if patch:
                session.execute(
                    update(DBTask)
                    .where(DBTask.id == task_id)
                    .values(**patch)
                    .execution_options(**_NO_SYNC)
                )

            timeline = updates.get("timeline")
            if isinstance(timeline, list):
                stored = session.scalar(
                    select(func.count())
                    .select_from(DBTimelineEntry)
                    .where(DBTimelineEntry.task_id == task_id)
                )
                if len(timeline) > stored:
                    insert_timeline(session, task_id, timeline[stored:])
                elif len(timeline) < stored:
                    logger.warning(
                        f"task.update: timeline for {task_id} shrank "
                        f"({stored} stored, {len(timeline)} sent); keeping stored history"
                    )

            extended = updates.get("extendedData")
            if isinstance(extended, dict):
                for model in (DBChecklist, DBAttachment, DBComment):
                    session.execute(delete(model).where(model.task_id == task_id))
                insert_extended_data(session, task_id, extended)

        return True

    def delete(self, task_id: str) -> bool:
        """Delete a task; children go with it by cascade.

        Returns:
            False if the task did not exist.
        """
        with self.store.transaction("task.delete") as session:
            row = session.execute(
                select(DBTask.column_id, DBTask.position).where(DBTask.id == task_id)
            ).first()
            if row is None:
                return False

            session.execute(delete(DBTask).where(DBTask.id == task_id))
            session.execute(
                update(DBTask)
                .where(_same_list(row.column_id), DBTask.position > row.position)
                .values(position=DBTask.position - 1)
                .execution_options(**_NO_SYNC)
            )

        logger.debug(f"Deleted task {task_id}")
        return True

    def move(
        self,
        task_id: str,
        board_id: Optional[str],
        column_id: Optional[str],
        position: int,
        standalone: bool = False,
    ) -> bool:
        """Move a task to a column (or the standalone list) at a position.

        Neighbours in the source and target lists are renumbered and a
        timeline entry records the move.

        Returns:
            False if the task does not exist.
        """
        board_id, column_id = normalize_placement(board_id, column_id, standalone)
        position = int(position)

        with self.store.transaction("task.move") as session:
            row = session.execute(
                select(DBTask.column_id, DBTask.position).where(DBTask.id == task_id)
            ).first()
            if row is None:
                return False

            old_column, old_position = row.column_id, row.position

            if old_column == column_id:
                if old_position < position:
                    session.execute(
                        update(DBTask)
                        .where(
                            _same_list(column_id),
                            DBTask.position > old_position,
                            DBTask.position <= position,
                        )
                        .values(position=DBTask.position - 1)
                        .execution_options(**_NO_SYNC)
                    )
                elif position < old_position:
                    session.execute(
                        update(DBTask)
                        .where(
                            _same_list(column_id),
                            DBTask.position >= position,
                            DBTask.position < old_position,
                        )
                        .values(position=DBTask.position + 1)
                        .execution_options(**_NO_SYNC)
                    )
            else:
                session.execute(
                    update(DBTask)
                    .where(_same_list(old_column), DBTask.position > old_position)
                    .values(position=DBTask.position - 1)
                    .execution_options(**_NO_SYNC)
                )
                session.execute(
                    update(DBTask)
                    .where(_same_list(column_id), DBTask.position >= position)
                    .values(position=DBTask.position + 1)
                    .execution_options(**_NO_SYNC)
                )

            session.execute(
                update(DBTask)
                .where(DBTask.id == task_id)
                .values(board_id=board_id, column_id=column_id, position=position)
                .execution_options(**_NO_SYNC)
            )
            insert_timeline(session, task_id, [{
                "timestamp": utc_now_iso(),
                "action": self._describe_destination(session, board_id, column_id),
            }])

        logger.debug(f"Moved task {task_id} to {column_id or 'standalone'}@{position}")
        return True

    @staticmethod
    def _describe_destination(session, board_id: Optional[str], column_id: Optional[str]) -> str:
        if column_id is None:
            return "Moved to standalone"
        board_name = session.scalar(select(DBBoard.name).where(DBBoard.id == board_id))
        column_title = session.scalar(select(DBColumn.title).where(DBColumn.id == column_id))
        return f"Moved to {board_name or board_id} / {column_title or column_id}"
