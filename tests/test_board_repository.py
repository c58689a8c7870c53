"""Tests for the board tree repository (boards.getAll / boards.saveAll)."""

import json
import logging

import pytest
from sqlalchemy import delete, func, select, text, update
from sqlalchemy.exc import OperationalError

from kanban_store.exceptions import StorageError
from kanban_store.models.db_models import (DBBoard, DBChecklist, DBColumn,
                                           DBComment, DBTask, DBTimelineEntry,
                                           note_tasks)
from kanban_store.storage import board_repository
from kanban_store.storage.note_repository import NoteRepository
from kanban_store.storage.notification_repository import NotificationRepository
from tests.builders import board, column, task

RICH_EXTENDED = {
    "checklists": [
        {"id": "i1", "text": "Draft", "completed": True},
        {"id": "i2", "text": "Review", "completed": False},
    ],
    "attachments": [
        {"id": "a1", "url": "https://example.com/a.png", "title": "Mockup",
         "coverImage": True, "createdAt": "2024-01-03T00:00:00.000Z"},
    ],
    "comments": [
        {"id": "m1", "text": "Looks good", "createdAt": "2024-01-04T00:00:00.000Z"},
    ],
}


def _count(store, table) -> int:
    with store.session_factory() as session:
        return session.scalar(select(func.count()).select_from(table))


class TestGetAll:
    """Tests for reading the board tree."""

    def test_empty_store(self, board_repo):
        """A fresh store has no boards and no active board."""
        assert board_repo.get_all() == {
            "boards": [],
            "standaloneTasks": [],
            "activeBoardId": None,
        }

    def test_ordering(self, board_repo):
        """Boards by creation, columns and tasks by array position."""
        board_repo.save_all([
            board("b2", "Later", [column("c3", "Only")], created_at="2024-02-01T00:00:00.000Z"),
            board("b1", "Earlier", [
                column("c1", "To Do", [task("t2"), task("t1"), task("t3")]),
                column("c2", "Done"),
            ], created_at="2024-01-01T00:00:00.000Z"),
        ])

        result = board_repo.get_all()

        assert [b["id"] for b in result["boards"]] == ["b1", "b2"]
        first = result["boards"][0]
        assert [c["id"] for c in first["columns"]] == ["c1", "c2"]
        assert [t["id"] for t in first["columns"][0]["tasks"]] == ["t2", "t1", "t3"]
        assert [t["position"] for t in first["columns"][0]["tasks"]] == [0, 1, 2]

    def test_task_fully_hydrated(self, board_repo):
        """Settings, extended data and timeline survive a save/load."""
        timeline = [
            {"timestamp": "2024-01-01T00:00:00.000Z", "action": "Created"},
            {"timestamp": "2024-01-02T00:00:00.000Z", "action": "Edited"},
        ]
        board_repo.save_all([board("b1", "Sprint 1", [column("c1", "To Do", [
            task("t1", "Write docs", priority="high", tags=["docs", "q1"],
                 dueDate="2024-03-01T10:00:00Z", status="To Do", completed=True,
                 extendedData=RICH_EXTENDED, timeline=timeline),
        ])])])

        loaded = board_repo.get_all()["boards"][0]["columns"][0]["tasks"][0]

        assert loaded["heading"] == "Write docs"
        assert loaded["createdAt"] == "2024-01-01T00:00:00.000Z"
        assert loaded["settings"] == {
            "priority": "high",
            "tags": ["docs", "q1"],
            "dueDate": "2024-03-01T10:00:00Z",
            "status": "To Do",
            "completed": True,
        }
        assert loaded["extendedData"]["checklists"] == RICH_EXTENDED["checklists"]
        assert loaded["extendedData"]["attachments"] == RICH_EXTENDED["attachments"]
        assert loaded["extendedData"]["comments"] == RICH_EXTENDED["comments"]
        assert loaded["timeline"] == timeline

    def test_status_defaults(self, board_repo):
        """Missing status falls back to the column title, or To Do when standalone."""
        nested = task("t1")
        nested["settings"]["status"] = None
        loose = task("s1")
        loose["settings"]["status"] = ""
        board_repo.save_all(
            [board("b1", "Sprint 1", [column("c1", "Doing", [nested])])],
            standalone_tasks=[loose],
        )

        result = board_repo.get_all()

        assert result["boards"][0]["columns"][0]["tasks"][0]["settings"]["status"] == "Doing"
        assert result["standaloneTasks"][0]["settings"]["status"] == "To Do"

    def test_standalone_tasks(self, board_repo, store):
        """Standalone tasks keep their order and have no board or column."""
        board_repo.save_all([], standalone_tasks=[task("s2"), task("s1")])

        result = board_repo.get_all()

        assert [t["id"] for t in result["standaloneTasks"]] == ["s2", "s1"]
        with store.session_factory() as session:
            rows = session.execute(select(DBTask.board_id, DBTask.column_id)).all()
        assert all(r.board_id is None and r.column_id is None for r in rows)

    def test_malformed_tags_read_as_empty(self, board_repo, store, caplog):
        """Unparseable tag JSON degrades to [] without failing the read."""
        board_repo.save_all([board("b1", "B", [column("c1", "C", [task("t1"), task("t2", tags=["ok"])])])])
        with store.transaction("test") as session:
            session.execute(update(DBTask).where(DBTask.id == "t1").values(tags="not json"))

        caplog.set_level(logging.WARNING, logger="kanban_store")
        tasks = board_repo.get_all()["boards"][0]["columns"][0]["tasks"]

        assert tasks[0]["settings"]["tags"] == []
        assert tasks[1]["settings"]["tags"] == ["ok"]
        assert "t1" in caplog.text

    def test_malformed_checklist_read_as_empty(self, board_repo, store):
        """A broken checklist row yields no items; the task still loads."""
        board_repo.save_all([board("b1", "B", [column("c1", "C", [
            task("t1", extendedData=RICH_EXTENDED),
        ])])])
        with store.transaction("test") as session:
            session.execute(update(DBChecklist).values(items="[broken"))

        loaded = board_repo.get_all()["boards"][0]["columns"][0]["tasks"][0]

        assert loaded["extendedData"]["checklists"] == []
        assert len(loaded["extendedData"]["comments"]) == 1

    def test_legacy_per_item_checklist_rows(self, board_repo, store):
        """Old one-row-per-item checklists read back as items."""
        board_repo.save_all([board("b1", "B", [column("c1", "C", [task("t1")])])])
        with store.transaction("test") as session:
            session.execute(text(
                "INSERT INTO checklists (id, task_id, title, items) VALUES "
                "('x1', 't1', 'Buy milk', '{\"completed\": true}'), "
                "('x2', 't1', 'Buy eggs', '{\"completed\": false}')"
            ))

        loaded = board_repo.get_all()["boards"][0]["columns"][0]["tasks"][0]

        assert loaded["extendedData"]["checklists"] == [
            {"id": "x1", "text": "Buy milk", "completed": True},
            {"id": "x2", "text": "Buy eggs", "completed": False},
        ]


class TestSaveAll:
    """Tests for the bulk reconciliation."""

    def test_replaces_previous_tree(self, board_repo):
        """Boards missing from the snapshot are removed."""
        board_repo.save_all([board("b1", "One"), board("b2", "Two")])
        board_repo.save_all([board("b2", "Two renamed")])

        boards = board_repo.get_all()["boards"]

        assert [(b["id"], b["name"]) for b in boards] == [("b2", "Two renamed")]

    def test_checklist_stored_as_single_row(self, board_repo, store):
        """All checklist items of a task share one row."""
        board_repo.save_all([board("b1", "B", [column("c1", "C", [
            task("t1", extendedData=RICH_EXTENDED),
        ])])])

        with store.session_factory() as session:
            rows = session.execute(select(DBChecklist.title, DBChecklist.items)).all()
        assert len(rows) == 1
        assert rows[0].title == "Checklist"
        assert [i["text"] for i in json.loads(rows[0].items)] == ["Draft", "Review"]

    def test_active_board_id(self, board_repo):
        """The active board is stored, and a missing value keeps the old one."""
        board_repo.save_all([board("b1", "One"), board("b2", "Two")], active_board_id="b2")
        assert board_repo.get_all()["activeBoardId"] == "b2"

        board_repo.save_all([board("b1", "One"), board("b2", "Two")], active_board_id=None)
        assert board_repo.get_all()["activeBoardId"] == "b2"

    def test_invalid_entries_skipped(self, board_repo):
        """Boards or columns without ids are dropped, the rest saved."""
        board_repo.save_all([
            {"id": "", "name": "No id"},
            board("b1", "Kept", [{"id": "c0", "title": ""}, column("c1", "Col")]),
        ])

        boards = board_repo.get_all()["boards"]

        assert [b["id"] for b in boards] == ["b1"]
        assert [c["id"] for c in boards[0]["columns"]] == ["c1"]

    def test_duplicate_task_ids_roll_back(self, board_repo):
        """A failing save leaves the previous tree untouched."""
        board_repo.save_all(
            [board("b1", "Stable", [column("c1", "To Do", [task("t1")])])],
            active_board_id="b1",
        )
        before = board_repo.get_all()

        with pytest.raises(StorageError):
            board_repo.save_all(
                [board("b9", "Broken", [
                    column("c1", "A", [task("dup")]),
                    column("c2", "B", [task("dup")]),
                ])],
                active_board_id="b9",
            )

        assert board_repo.get_all() == before

    def test_write_failure_mid_save_rolls_back(self, board_repo, monkeypatch):
        """An error after the deletes leaves every table as it was."""
        board_repo.save_all([board("b1", "Stable", [column("c1", "To Do", [
            task("t1", timeline=[{"timestamp": "2024-01-01T00:00:00.000Z", "action": "Created"}]),
        ])])])
        before = board_repo.get_all()

        def failing_timeline(session, task_id, entries):
            raise OperationalError("INSERT INTO task_timeline", {}, Exception("disk I/O error"))

        monkeypatch.setattr(board_repository, "insert_timeline", failing_timeline)
        with pytest.raises(StorageError) as exc_info:
            board_repo.save_all([board("b2", "New", [column("c9", "X", [task("t9")])])])

        assert exc_info.value.operation == "boards.saveAll"
        assert board_repo.get_all() == before

    def test_note_links_survive_for_kept_tasks(self, board_repo, store):
        """Links to tasks still present after a save are kept; others go."""
        board_repo.save_all([board("b1", "B", [column("c1", "C", [task("t1"), task("t2")])])])
        notes = NoteRepository(store)
        notes.create({"id": "n1", "title": "Notes", "taskIds": ["t1", "t2"]})

        board_repo.save_all([board("b1", "B", [column("c1", "C", [task("t1")])])])

        assert notes.get_all()[0]["taskIds"] == ["t1"]

    def test_notifications_survive(self, board_repo, store):
        """Notification history is not tied to task rows."""
        board_repo.save_all([board("b1", "B", [column("c1", "C", [task("t1")])])])
        notifications = NotificationRepository(store)
        notifications.create("t1", "1h")

        board_repo.save_all([])

        assert [n["task_id"] for n in notifications.get_all()] == ["t1"]


class TestCascade:
    """Tests for foreign key cascades."""

    def test_deleting_board_removes_descendants(self, board_repo, store):
        """Columns, tasks, task children and note links go with their board."""
        board_repo.save_all([
            board("b1", "Doomed", [column("c1", "C", [
                task("t1", extendedData=RICH_EXTENDED,
                     timeline=[{"timestamp": "2024-01-01T00:00:00.000Z", "action": "Created"}]),
            ])]),
            board("b2", "Kept", [column("c2", "C", [task("t2")])]),
        ])
        NoteRepository(store).create({"id": "n1", "title": "N", "taskIds": ["t1", "t2"]})

        with store.transaction("test") as session:
            session.execute(delete(DBBoard).where(DBBoard.id == "b1"))

        with store.session_factory() as session:
            assert session.scalars(select(DBColumn.id)).all() == ["c2"]
            assert session.scalars(select(DBTask.id)).all() == ["t2"]
            assert session.scalars(select(DBChecklist.id)).all() == []
            assert session.scalars(select(DBComment.id)).all() == []
            assert session.scalars(select(DBTimelineEntry.id)).all() == []
            links = session.execute(select(note_tasks.c.task_id)).scalars().all()
        assert links == ["t2"]
        assert _count(store, DBBoard) == 1
