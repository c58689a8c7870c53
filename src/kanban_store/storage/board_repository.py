"""Repository for the board tree: boards, columns and their tasks."""
import logging
from collections import defaultdict
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, insert, literal_column, select, text

from kanban_store.models.db_models import (DBAttachment, DBBoard, DBChecklist,
                                           DBColumn, DBComment, DBSetting,
                                           DBTask, DBTimelineEntry, note_tasks)
from kanban_store.storage.json_codec import JsonList, decode_checklist_row
from kanban_store.storage.task_repository import (DEFAULT_PRIORITY,
                                                  DEFAULT_STATUS,
                                                  insert_extended_data,
                                                  insert_timeline)
from kanban_store.utils import decode_setting_value, utc_now_iso

logger = logging.getLogger(__name__)

ACTIVE_BOARD_KEY = "activeBoardId"


def _rowid(table: str):
    return literal_column(f"{table}.rowid")


class BoardRepository:
    """Reads and reconciles the complete board tree.

    getAll hydrates everything with one query per table and groups rows
    in memory. saveAll replaces the whole tree in a single transaction.
    """

    def __init__(self, store):
        self.store = store

    def get_all(self) -> Dict[str, Any]:
        """Return ``{boards, standaloneTasks, activeBoardId}``."""
        with self.store.session_factory() as session:
            boards = session.execute(
                select(DBBoard.id, DBBoard.name, DBBoard.created_at)
                .order_by(DBBoard.created_at, _rowid("boards"))
            ).all()
            columns = session.execute(
                select(DBColumn.id, DBColumn.board_id, DBColumn.title)
                .order_by(DBColumn.board_id, DBColumn.position)
            ).all()
            tasks = session.execute(
                select(DBTask).order_by(DBTask.column_id, DBTask.position)
            ).scalars().all()
            timeline = session.execute(
                select(DBTimelineEntry.task_id, DBTimelineEntry.timestamp, DBTimelineEntry.action)
                .order_by(DBTimelineEntry.task_id, DBTimelineEntry.id)
            ).all()
            checklists = session.execute(
                select(DBChecklist.id, DBChecklist.task_id, DBChecklist.title, DBChecklist.items)
                .order_by(_rowid("checklists"))
            ).all()
            attachments = session.execute(
                select(DBAttachment).order_by(_rowid("attachments"))
            ).scalars().all()
            comments = session.execute(
                select(DBComment).order_by(DBComment.created_at, _rowid("task_comments"))
            ).scalars().all()
            active_raw = session.scalar(
                select(DBSetting.value).where(DBSetting.key == ACTIVE_BOARD_KEY)
            )

            timeline_by_task = defaultdict(list)
            for entry in timeline:
                timeline_by_task[entry.task_id].append(
                    {"timestamp": entry.timestamp, "action": entry.action}
                )

            checklists_by_task = defaultdict(list)
            for row in checklists:
                checklists_by_task[row.task_id].extend(
                    decode_checklist_row(row.id, row.title, row.items, row.task_id)
                )

            attachments_by_task = defaultdict(list)
            for a in attachments:
                attachments_by_task[a.task_id].append({
                    "id": a.id,
                    "url": a.url,
                    "title": a.title,
                    "coverImage": bool(a.cover_image),
                    "createdAt": a.created_at,
                })

            comments_by_task = defaultdict(list)
            for c in comments:
                comments_by_task[c.task_id].append(
                    {"id": c.id, "text": c.text, "createdAt": c.created_at}
                )

            board_map = {
                b.id: {"id": b.id, "name": b.name, "createdAt": b.created_at, "columns": []}
                for b in boards
            }
            column_map = {}
            for col in columns:
                column = {"id": col.id, "title": col.title, "tasks": []}
                column_map[col.id] = column
                board = board_map.get(col.board_id)
                if board is not None:
                    board["columns"].append(column)

            standalone = []
            for task in tasks:
                data = {
                    "id": task.id,
                    "heading": task.heading,
                    "tldr": task.tldr or "",
                    "description": task.description or "",
                    "createdAt": task.created_at,
                    "position": task.position,
                    "settings": {
                        "priority": task.priority or DEFAULT_PRIORITY,
                        "tags": JsonList.decode(task.tags, "tags", task.id).strings(),
                        "dueDate": task.due_date or "",
                        "status": task.status,
                        "completed": bool(task.completed),
                    },
                    "extendedData": {
                        "checklists": checklists_by_task.get(task.id, []),
                        "attachments": attachments_by_task.get(task.id, []),
                        "comments": comments_by_task.get(task.id, []),
                    },
                    "timeline": timeline_by_task.get(task.id, []),
                }
                if not task.board_id or not task.column_id:
                    standalone.append(data)
                elif task.column_id in column_map:
                    column_map[task.column_id]["tasks"].append(data)

        standalone.sort(key=lambda t: t["position"])

        active_board_id = None
        if active_raw is not None:
            decoded = decode_setting_value(active_raw)
            active_board_id = str(decoded) if decoded not in (None, "") else None

        return {
            "boards": list(board_map.values()),
            "standaloneTasks": standalone,
            "activeBoardId": active_board_id,
        }

    @staticmethod
    def _task_row(
        task: Dict[str, Any],
        board_id: Optional[str],
        column_id: Optional[str],
        position: int,
        default_status: str,
    ) -> Dict[str, Any]:
        settings = task.get("settings") or {}
        return {
            "id": task["id"],
            "board_id": board_id,
            "column_id": column_id,
            "heading": task.get("heading") or "",
            "tldr": task.get("tldr") or "",
            "description": task.get("description") or "",
            "priority": settings.get("priority") or DEFAULT_PRIORITY,
            "tags": JsonList(settings.get("tags") or []).encode(),
            "due_date": settings.get("dueDate") or "",
            "status": settings.get("status") or default_status,
            "completed": bool(settings.get("completed")),
            "position": position,
            "created_at": task.get("createdAt") or utc_now_iso(),
        }

    def save_all(
        self,
        boards: List[Dict[str, Any]],
        active_board_id: Optional[str] = None,
        standalone_tasks: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        """Replace every board, column and task with the given snapshot.

        Column and task positions are their indices in the given arrays.
        Note links to tasks that still exist afterwards are kept. The
        whole replacement is one transaction.

        Raises:
            StorageError: If any write fails; the previous tree is intact.
        """
        standalone_tasks = standalone_tasks or []
        logger.debug(
            f"boards.saveAll: {len(boards)} board(s), "
            f"{len(standalone_tasks)} standalone task(s)"
        )

        with self.store.transaction("boards.saveAll") as session:
            links = session.execute(select(note_tasks.c.note_id, note_tasks.c.task_id)).all()

            for model in (DBAttachment, DBChecklist, DBComment, DBTimelineEntry):
                session.execute(delete(model))
            session.execute(delete(DBTask))
            session.execute(delete(DBColumn))
            session.execute(delete(DBBoard))

            board_rows, column_rows, task_rows = [], [], []
            task_children = []

            for board in boards:
                if not board.get("id") or not board.get("name"):
                    logger.warning(f"boards.saveAll: skipping invalid board {board!r:.80}")
                    continue
                board_rows.append({
                    "id": board["id"],
                    "name": board["name"],
                    "created_at": board.get("createdAt") or utc_now_iso(),
                })
                for column_index, column in enumerate(board.get("columns") or []):
                    if not column.get("id") or not column.get("title"):
                        logger.warning(f"boards.saveAll: skipping invalid column {column!r:.80}")
                        continue
                    column_rows.append({
                        "id": column["id"],
                        "board_id": board["id"],
                        "title": column["title"],
                        "position": column_index,
                    })
                    for task_index, task in enumerate(column.get("tasks") or []):
                        if not task.get("id"):
                            logger.warning("boards.saveAll: skipping task without id")
                            continue
                        task_rows.append(self._task_row(
                            task, board["id"], column["id"], task_index, column["title"]
                        ))
                        task_children.append(task)

            for task_index, task in enumerate(standalone_tasks):
                if not task.get("id"):
                    logger.warning("boards.saveAll: skipping standalone task without id")
                    continue
                task_rows.append(self._task_row(task, None, None, task_index, DEFAULT_STATUS))
                task_children.append(task)

            if board_rows:
                session.execute(insert(DBBoard), board_rows)
            if column_rows:
                session.execute(insert(DBColumn), column_rows)
            if task_rows:
                session.execute(insert(DBTask), task_rows)

            for task in task_children:
                insert_extended_data(session, task["id"], task.get("extendedData"))
                insert_timeline(session, task["id"], task.get("timeline") or [])

            surviving = {row["id"] for row in task_rows}
            restored = [
                {"note_id": link.note_id, "task_id": link.task_id}
                for link in links
                if link.task_id in surviving
            ]
            if restored:
                session.execute(
                    text(
                        "INSERT OR IGNORE INTO note_tasks (note_id, task_id) "
                        "VALUES (:note_id, :task_id)"
                    ),
                    restored,
                )

            if active_board_id:
                session.execute(
                    text("INSERT OR REPLACE INTO settings (key, value) VALUES (:key, :value)"),
                    {"key": ACTIVE_BOARD_KEY, "value": active_board_id},
                )

        logger.info(
            f"Saved {len(board_rows)} board(s), {len(column_rows)} column(s), "
            f"{len(task_rows)} task(s)"
        )
