"""Store lifecycle: the database engine and the note blob directory.

One Store is constructed per process and handed to every repository.
Opening is idempotent, and if the durable database cannot be opened the
store falls back to an in-memory database for the session.
"""
import logging
import shutil
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from kanban_store.config import StoreConfig, config as default_config
from kanban_store.exceptions import MigrationError, StorageError, StoreNotOpenError
from kanban_store.models.db_models import create_store_engine, get_session_factory
from kanban_store.storage.schema_manager import SchemaManager

logger = logging.getLogger(__name__)

IN_MEMORY_URL = "sqlite://"


class Store:
    """Process-wide handle on the relational store and note directory."""

    def __init__(
        self,
        store_config: Optional[StoreConfig] = None,
        engine=None,
        notes_dir: Optional[Union[str, Path]] = None,
    ):
        """Create an unopened store.

        Args:
            store_config: Configuration; the module default when None.
            engine: Pre-built engine to use instead of the configured
                database file (see in_memory()).
            notes_dir: Overrides the configured note directory.
        """
        self.config = store_config or default_config
        self.engine = None
        self.notes_dir: Optional[Path] = None
        self._session_factory = None
        self._injected_engine = engine
        self._notes_dir_override = Path(notes_dir) if notes_dir else None
        self._temp_notes_dir: Optional[Path] = None
        self._db_durable = False
        self._notes_durable = False
        self._opened = False
        self._closed = False
        self._lock = threading.RLock()

    @classmethod
    def in_memory(
        cls,
        notes_dir: Optional[Union[str, Path]] = None,
        store_config: Optional[StoreConfig] = None,
    ) -> "Store":
        """Build a store backed by a private in-memory database."""
        engine = create_store_engine(IN_MEMORY_URL, in_memory=True)
        return cls(store_config, engine=engine, notes_dir=notes_dir)

    @property
    def is_open(self) -> bool:
        return self._opened and not self._closed

    @property
    def is_durable(self) -> bool:
        """False when data will not survive the process (in-memory mode)."""
        return self.is_open and self._db_durable and self._notes_durable

    def open(self) -> "Store":
        """Open the store, creating the schema and running migrations.

        Repeated calls are no-ops. Failures to open the durable database
        are logged and replaced by an ephemeral in-memory store.
        """
        with self._lock:
            if self._closed:
                raise StoreNotOpenError("Store has been closed")
            if self._opened:
                return self

            if self._injected_engine is not None:
                self._initialize(self._injected_engine)
                url = self._injected_engine.url
                self._db_durable = url.database not in (None, "", ":memory:")
            elif self.config.in_memory_db:
                logger.info("In-memory store requested; nothing will be persisted")
                self._open_ephemeral()
            else:
                try:
                    self._open_durable()
                except (OSError, SQLAlchemyError, MigrationError) as e:
                    logger.error(
                        f"Durable store unavailable, falling back to in-memory store: {e}"
                    )
                    self._dispose_engine()
                    self._open_ephemeral()

            self._prepare_notes_dir()
            self._opened = True
            logger.info(
                f"Store opened ({'durable' if self.is_durable else 'ephemeral'}), "
                f"notes in {self.notes_dir}"
            )
        return self

    def _open_durable(self) -> None:
        db_url = self.config.get_db_url()
        logger.info(f"Using SQLite database: {db_url}")
        self._initialize(create_store_engine(db_url))
        self._db_durable = True

    def _open_ephemeral(self) -> None:
        self._initialize(create_store_engine(IN_MEMORY_URL, in_memory=True))
        self._db_durable = False

    def _initialize(self, engine) -> None:
        self.engine = engine
        manager = SchemaManager(engine, default_due_time=self.config.default_due_time)
        manager.ensure_schema()
        manager.run_migrations()
        self._session_factory = get_session_factory(engine)

    def _prepare_notes_dir(self) -> None:
        target = self._notes_dir_override or self.config.get_notes_dir()
        if self._db_durable or self._notes_dir_override is not None:
            try:
                target.mkdir(parents=True, exist_ok=True)
                self.notes_dir = target
                self._notes_durable = True
                return
            except OSError as e:
                logger.error(f"Cannot create notes directory {target}: {e}")
        self._temp_notes_dir = Path(tempfile.mkdtemp(prefix="kanban-store-notes-"))
        self.notes_dir = self._temp_notes_dir
        self._notes_durable = False

    def _dispose_engine(self) -> None:
        if self.engine is not None:
            self.engine.dispose()
        self.engine = None
        self._session_factory = None

    def close(self) -> None:
        """Release the engine. The store cannot be reopened afterwards."""
        with self._lock:
            if self._closed:
                return
            self._dispose_engine()
            if self._temp_notes_dir is not None:
                shutil.rmtree(self._temp_notes_dir, ignore_errors=True)
                self._temp_notes_dir = None
            self._closed = True
            logger.info("Store closed")

    @property
    def session_factory(self):
        """Session factory for the open store, opening it on first use."""
        if self._closed:
            raise StoreNotOpenError("Store has been closed")
        if not self._opened:
            self.open()
        return self._session_factory

    def get_notes_dir(self) -> Path:
        if self._closed:
            raise StoreNotOpenError("Store has been closed")
        if not self._opened:
            self.open()
        return self.notes_dir

    @contextmanager
    def transaction(self, operation: str) -> Iterator[Session]:
        """Session wrapped in one transaction.

        Commits on success. Any database error rolls everything back and
        is re-raised as StorageError.
        """
        session = self.session_factory()
        try:
            with session.begin():
                yield session
        except SQLAlchemyError as e:
            raise StorageError(
                f"{operation} failed and was rolled back",
                operation=operation,
                original_error=e,
            ) from e
        finally:
            session.close()

    def status(self) -> Dict[str, Any]:
        """Persistence mode as reported by store.status."""
        database_path = None
        if self.is_open and self._db_durable and self.engine is not None:
            database_path = self.engine.url.database
        return {
            "durable": self.is_durable,
            "databasePath": database_path,
            "notesDir": str(self.notes_dir) if self.notes_dir else None,
        }
