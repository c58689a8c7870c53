"""Tests for the Store lifecycle and its in-memory fallback."""

import logging
from pathlib import Path

import pytest
from sqlalchemy import text

from kanban_store.config import StoreConfig
from kanban_store.exceptions import StorageError, StoreNotOpenError
from kanban_store.storage.board_repository import BoardRepository
from kanban_store.storage.note_repository import NoteRepository
from kanban_store.storage.store import Store


@pytest.fixture
def blocked_config(tmp_path):
    """A config whose data directory cannot be created."""
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    return StoreConfig(
        data_dir=blocker / "data",
        database_path=Path("kanban.db"),
        notes_dir=Path("notes"),
        in_memory_db=False,
    )


class TestStoreOpen:
    """Tests for opening a durable store."""

    def test_open_creates_database_and_notes_dir(self, store_config):
        """A durable open creates the database file and notes directory."""
        store = Store(store_config).open()
        try:
            assert store.is_open
            assert store.is_durable
            assert store_config.get_database_path().exists()
            assert store.get_notes_dir() == store_config.get_notes_dir()
            assert store.get_notes_dir().is_dir()
        finally:
            store.close()

    def test_open_is_idempotent(self, store):
        """A second open keeps the same engine."""
        engine = store.engine
        assert store.open() is store
        assert store.engine is engine

    def test_first_use_opens_lazily(self, store_config):
        """Repositories work without an explicit open."""
        store = Store(store_config)
        try:
            assert not store.is_open
            assert BoardRepository(store).get_all()["boards"] == []
            assert store.is_open
        finally:
            store.close()

    def test_status_reports_durable_paths(self, store, store_config):
        """status() names the database file and notes directory."""
        status = store.status()
        assert status["durable"] is True
        assert status["databasePath"] == str(store_config.get_database_path())
        assert status["notesDir"] == str(store_config.get_notes_dir())


class TestStoreFallback:
    """Tests for the ephemeral fallback."""

    def test_unopenable_database_falls_back(self, blocked_config, caplog):
        """An unusable database path gives a working in-memory store."""
        caplog.set_level(logging.ERROR, logger="kanban_store")
        store = Store(blocked_config).open()
        try:
            assert store.is_open
            assert not store.is_durable
            assert "falling back" in caplog.text

            repo = BoardRepository(store)
            repo.save_all([{"id": "b1", "name": "Scratch", "columns": []}])
            assert [b["id"] for b in repo.get_all()["boards"]] == ["b1"]

            status = store.status()
            assert status["durable"] is False
            assert status["databasePath"] is None
        finally:
            store.close()

    def test_fallback_notes_use_temp_dir(self, blocked_config):
        """Note bodies still work in fallback mode and vanish on close."""
        store = Store(blocked_config).open()
        notes_dir = store.get_notes_dir()
        repo = NoteRepository(store)
        repo.create({"id": "n1", "title": "Scratch", "content": {"text": "hi"}})
        assert repo.get_content("n1") == {"text": "hi"}
        assert notes_dir.is_dir()

        store.close()
        assert not notes_dir.exists()

    def test_in_memory_config(self, tmp_path):
        """in_memory_db forces the ephemeral store."""
        cfg = StoreConfig(data_dir=tmp_path, in_memory_db=True)
        store = Store(cfg).open()
        try:
            assert not store.is_durable
            assert not (tmp_path / "kanban.db").exists()
        finally:
            store.close()

    def test_in_memory_factory_with_notes_dir(self, memory_store, tmp_path):
        """Store.in_memory keeps notes in the given directory."""
        assert memory_store.get_notes_dir() == tmp_path / "mem-notes"
        assert memory_store.status()["databasePath"] is None
        assert not memory_store.is_durable


class TestStoreClose:
    """Tests for closing the store."""

    def test_use_after_close_raises(self, store_config):
        """Repositories fail with StoreNotOpenError after close."""
        store = Store(store_config).open()
        store.close()
        assert not store.is_open
        with pytest.raises(StoreNotOpenError):
            BoardRepository(store).get_all()
        with pytest.raises(StoreNotOpenError):
            store.open()

    def test_close_twice(self, store_config):
        """Closing an already closed store is harmless."""
        store = Store(store_config).open()
        store.close()
        store.close()

    def test_transaction_wraps_database_errors(self, store):
        """A failing statement rolls back and surfaces as StorageError."""
        with pytest.raises(StorageError) as exc_info:
            with store.transaction("settings.saveAll") as session:
                session.execute(text("INSERT INTO settings (key, value) VALUES ('a', '1')"))
                session.execute(text("INSERT INTO no_such_table VALUES (1)"))
        assert exc_info.value.operation == "settings.saveAll"

        with store.session_factory() as session:
            count = session.execute(text("SELECT count(*) FROM settings")).scalar()
        assert count == 0
