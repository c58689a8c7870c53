"""Repository for the deleted-task archive."""
import json
import logging
from typing import Any, Dict, List

from sqlalchemy import delete, insert, select

from kanban_store.models.db_models import DBDeletedTask
from kanban_store.storage.json_codec import decode_json_object
from kanban_store.utils import utc_now_iso

logger = logging.getLogger(__name__)


class DeletedTaskRepository:
    """Archival snapshots of deleted tasks.

    Rows are denormalized: the board and column they point at may be gone.
    """

    def __init__(self, store):
        self.store = store

    def get_all(self) -> List[Dict[str, Any]]:
        """Snapshots, most recently deleted first."""
        with self.store.session_factory() as session:
            rows = session.scalars(
                select(DBDeletedTask).order_by(
                    DBDeletedTask.deleted_at.desc(), DBDeletedTask.id.desc()
                )
            ).all()
            return [
                {
                    "boardId": row.board_id,
                    "boardName": row.board_name,
                    "columnId": row.column_id,
                    "columnTitle": row.column_title,
                    "task": decode_json_object(row.task_data, "task_data", f"deleted task {row.task_id}"),
                    "deletedAt": row.deleted_at,
                }
                for row in rows
            ]

    def save_all(self, deleted_tasks: List[Dict[str, Any]]) -> None:
        """Replace the archive with the given snapshots in one transaction."""
        rows = []
        for entry in deleted_tasks:
            task = entry.get("task") or {}
            if not task.get("id"):
                logger.warning("deletedTasks.saveAll: skipping snapshot without task id")
                continue
            rows.append({
                "board_id": entry.get("boardId"),
                "board_name": entry.get("boardName") or "",
                "column_id": entry.get("columnId"),
                "column_title": entry.get("columnTitle") or "",
                "task_id": task["id"],
                "task_data": json.dumps(task),
                "deleted_at": entry.get("deletedAt") or utc_now_iso(),
            })

        with self.store.transaction("deletedTasks.saveAll") as session:
            session.execute(delete(DBDeletedTask))
            if rows:
                session.execute(insert(DBDeletedTask), rows)

        logger.debug(f"Saved {len(rows)} deleted task snapshot(s)")
