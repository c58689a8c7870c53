"""Common test fixtures for the kanban store."""

from pathlib import Path

import pytest

from kanban_store.config import StoreConfig
from kanban_store.observability import metrics
from kanban_store.server.bridge import KanbanBridge
from kanban_store.storage.board_repository import BoardRepository
from kanban_store.storage.deleted_task_repository import DeletedTaskRepository
from kanban_store.storage.note_repository import NoteRepository
from kanban_store.storage.notification_repository import NotificationRepository
from kanban_store.storage.settings_repository import SettingsRepository
from kanban_store.storage.store import Store
from kanban_store.storage.task_repository import TaskRepository
from tests.builders import board, column


@pytest.fixture(autouse=True)
def _reset_metrics():
    """Keep the global metrics collector clean between tests."""
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def store_config(tmp_path):
    """A config rooted in a per-test data directory."""
    return StoreConfig(
        data_dir=tmp_path / "data",
        database_path=Path("kanban.db"),
        notes_dir=Path("notes"),
        note_file_extension="json",
        in_memory_db=False,
        default_due_time="10:00:00Z",
        log_dir=None,
    )


@pytest.fixture
def store(store_config):
    """An opened, file-backed store."""
    s = Store(store_config).open()
    yield s
    s.close()


@pytest.fixture
def memory_store(tmp_path, store_config):
    """An opened in-memory store with a real notes directory."""
    s = Store.in_memory(notes_dir=tmp_path / "mem-notes", store_config=store_config).open()
    yield s
    s.close()


@pytest.fixture
def board_repo(store):
    return BoardRepository(store)


@pytest.fixture
def task_repo(store):
    return TaskRepository(store)


@pytest.fixture
def deleted_repo(store):
    return DeletedTaskRepository(store)


@pytest.fixture
def notification_repo(store):
    return NotificationRepository(store)


@pytest.fixture
def note_repo(store):
    return NoteRepository(store)


@pytest.fixture
def settings_repo(store):
    return SettingsRepository(store)


@pytest.fixture
def bridge(store):
    return KanbanBridge(store)


@pytest.fixture
def sprint_board(board_repo):
    """Board "Sprint 1" with an empty "To Do" and "Done" column."""
    board_repo.save_all(
        [board("b1", "Sprint 1", [column("c1", "To Do"), column("c2", "Done")])],
        active_board_id="b1",
    )
    return board_repo.get_all()["boards"][0]
