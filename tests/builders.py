"""Payload builders shared by the test modules.

Produces dicts in the client's wire shape so tests read like real
requests.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import select

from kanban_store.models.db_models import DBTask


def task(task_id: str, heading: Optional[str] = None, **settings) -> Dict[str, Any]:
    """A nested task as used by boards.saveAll."""
    return {
        "id": task_id,
        "heading": heading or f"Task {task_id}",
        "tldr": "",
        "description": "",
        "createdAt": "2024-01-01T00:00:00.000Z",
        "settings": {
            "priority": settings.get("priority", "medium"),
            "tags": settings.get("tags", []),
            "dueDate": settings.get("dueDate", ""),
            "status": settings.get("status", "To Do"),
            "completed": settings.get("completed", False),
        },
        "extendedData": settings.get(
            "extendedData", {"checklists": [], "attachments": [], "comments": []}
        ),
        "timeline": settings.get("timeline", []),
    }


def column(column_id: str, title: str, tasks: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    return {"id": column_id, "title": title, "tasks": tasks or []}


def board(
    board_id: str,
    name: str,
    columns: Optional[List[Dict[str, Any]]] = None,
    created_at: str = "2024-01-01T00:00:00.000Z",
) -> Dict[str, Any]:
    return {"id": board_id, "name": name, "createdAt": created_at, "columns": columns or []}


def create_request(
    task_id: str,
    heading: str,
    board_id: Optional[str] = "b1",
    column_id: Optional[str] = "c1",
    position: int = 0,
    **extra,
) -> Dict[str, Any]:
    """A flat task.create payload."""
    payload = {
        "id": task_id,
        "board_id": board_id,
        "column_id": column_id,
        "heading": heading,
        "status": extra.pop("status", "To Do"),
        "position": position,
        "created_at": "2024-01-01T00:00:00.000Z",
    }
    payload.update(extra)
    return payload


def placements(store, column_id: Optional[str]) -> List[str]:
    """Task ids of one list in position order (None means standalone)."""
    with store.session_factory() as session:
        query = select(DBTask.id)
        if column_id is None:
            query = query.where(DBTask.board_id.is_(None))
        else:
            query = query.where(DBTask.column_id == column_id)
        return list(session.scalars(query.order_by(DBTask.position)).all())


def positions(store, column_id: Optional[str]) -> List[int]:
    """Stored positions of one list, ascending."""
    with store.session_factory() as session:
        query = select(DBTask.position)
        if column_id is None:
            query = query.where(DBTask.board_id.is_(None))
        else:
            query = query.where(DBTask.column_id == column_id)
        return list(session.scalars(query.order_by(DBTask.position)).all())
