"""Schema creation and forward-only data migrations.

Everything here is safe to run on every startup: tables are created only
when absent, and each migration detects whether it still has work to do.
"""
import json
import logging
import re
from typing import Callable, List, Tuple

from sqlalchemy import inspect, text
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from kanban_store.exceptions import MigrationError
from kanban_store.models.db_models import Base
from kanban_store.utils import generate_id, utc_now_iso

logger = logging.getLogger(__name__)

DATE_ONLY_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

# Column that held checklist/attachment JSON before the child tables existed
LEGACY_EXTENDED_DATA_COLUMN = "extended_data"


class SchemaManager:
    """Owns table definitions, indices and data migrations for one engine."""

    def __init__(self, engine, default_due_time: str = "10:00:00Z"):
        self.engine = engine
        self.default_due_time = default_due_time

    @property
    def migrations(self) -> List[Tuple[str, Callable[[], int]]]:
        """The ordered migration sequence."""
        return [
            ("add_completed_column", self.migrate_add_completed_column),
            ("normalize_deadlines", self.migrate_normalize_deadlines),
            ("extract_extended_data", self.migrate_extended_data),
        ]

    def ensure_schema(self) -> None:
        """Create all tables and indices that do not exist yet."""
        try:
            Base.metadata.create_all(self.engine, checkfirst=True)
        except SQLAlchemyError as e:
            raise MigrationError(
                "Failed to create schema", migration="ensure_schema", original_error=e
            ) from e

    def run_migrations(self) -> dict:
        """Run every migration in order.

        Returns:
            Mapping of migration name to the number of rows it changed.

        Raises:
            MigrationError: If a migration step fails as a whole.
        """
        results = {}
        for name, migration in self.migrations:
            try:
                changed = migration()
            except MigrationError:
                raise
            except SQLAlchemyError as e:
                raise MigrationError(
                    f"Migration {name} failed", migration=name, original_error=e
                ) from e
            results[name] = changed
            if changed:
                logger.info(f"Migration {name}: {changed} row(s) updated")
        return results

    def _column_names(self, table: str) -> List[str]:
        return [col["name"] for col in inspect(self.engine).get_columns(table)]

    def migrate_add_completed_column(self) -> int:
        """Add tasks.completed to stores created before completion was tracked.

        SQLite doesn't support IF NOT EXISTS for ADD COLUMN, so we check
        the schema first.
        """
        if "completed" in self._column_names("tasks"):
            return 0
        with self.engine.connect() as conn:
            conn.execute(text(
                "ALTER TABLE tasks ADD COLUMN completed BOOLEAN NOT NULL DEFAULT 0"
            ))
            conn.commit()
        logger.info("Added tasks.completed column")
        return 1

    def migrate_normalize_deadlines(self) -> int:
        """Rewrite date-only deadlines to full timestamps.

        ``2024-03-01`` becomes ``2024-03-01T10:00:00Z`` (with the configured
        default time). Values with a time component or empty values are left
        alone. All rewrites share one transaction.
        """
        with self.engine.connect() as conn:
            rows = conn.execute(text(
                "SELECT id, due_date FROM tasks WHERE length(due_date) = 10"
            )).fetchall()
            updates = [
                {"id": row.id, "due_date": f"{row.due_date}T{self.default_due_time}"}
                for row in rows
                if DATE_ONLY_PATTERN.match(row.due_date)
            ]
            if updates:
                conn.execute(
                    text("UPDATE tasks SET due_date = :due_date WHERE id = :id"),
                    updates,
                )
            conn.commit()
        return len(updates)

    def migrate_extended_data(self) -> int:
        """Move legacy ``tasks.extended_data`` JSON into the child tables.

        Skipped entirely when the column is absent. A task whose blob is
        malformed keeps no extended data and is logged; the rest migrate.
        The source column is dropped afterwards, or blanked when the SQLite
        build cannot drop columns.
        """
        if LEGACY_EXTENDED_DATA_COLUMN not in self._column_names("tasks"):
            return 0

        migrated = 0
        with self.engine.connect() as conn:
            rows = conn.execute(text(
                "SELECT id, extended_data FROM tasks WHERE extended_data IS NOT NULL"
            )).fetchall()

            for row in rows:
                try:
                    data = json.loads(row.extended_data)
                    if not isinstance(data, dict):
                        raise ValueError("extended_data is not an object")
                except (TypeError, ValueError) as e:
                    logger.warning(
                        f"Skipping extended data for task {row.id}: {e}"
                    )
                    continue

                checklist = data.get("checklist")
                if isinstance(checklist, list) and checklist:
                    ordered = sorted(
                        (
                            (item.get("position", index), index, item)
                            for index, item in enumerate(checklist)
                            if isinstance(item, dict)
                        ),
                        key=lambda entry: (entry[0], entry[1]),
                    )
                    items = [
                        {
                            "id": str(item.get("id") or generate_id()),
                            "text": str(item.get("text") or ""),
                            "completed": bool(item.get("completed")),
                        }
                        for _, _, item in ordered
                    ]
                    conn.execute(
                        text(
                            "INSERT OR IGNORE INTO checklists (id, task_id, title, items) "
                            "VALUES (:id, :task_id, 'Checklist', :items)"
                        ),
                        {"id": generate_id(), "task_id": row.id, "items": json.dumps(items)},
                    )

                attachments = data.get("attachments")
                if isinstance(attachments, list):
                    for item in attachments:
                        if not isinstance(item, dict):
                            continue
                        url = str(item.get("url") or "")
                        conn.execute(
                            text(
                                "INSERT OR IGNORE INTO attachments "
                                "(id, task_id, url, title, cover_image, created_at) "
                                "VALUES (:id, :task_id, :url, :title, 0, :created_at)"
                            ),
                            {
                                "id": str(item.get("id") or generate_id()),
                                "task_id": row.id,
                                "url": url,
                                "title": str(item.get("name") or url),
                                "created_at": item.get("created_at") or utc_now_iso(),
                            },
                        )
                migrated += 1
            conn.commit()

        self._retire_extended_data_column()
        return migrated

    def _retire_extended_data_column(self) -> None:
        try:
            with self.engine.connect() as conn:
                conn.execute(text(
                    f"ALTER TABLE tasks DROP COLUMN {LEGACY_EXTENDED_DATA_COLUMN}"
                ))
                conn.commit()
            logger.info(f"Dropped legacy tasks.{LEGACY_EXTENDED_DATA_COLUMN} column")
        except OperationalError as e:
            logger.warning(
                f"Could not drop tasks.{LEGACY_EXTENDED_DATA_COLUMN} ({e}); clearing it instead"
            )
            with self.engine.connect() as conn:
                conn.execute(text(
                    f"UPDATE tasks SET {LEGACY_EXTENDED_DATA_COLUMN} = NULL"
                ))
                conn.commit()
