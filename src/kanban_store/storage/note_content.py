"""Note body storage.

A note body lives in exactly one place: the legacy inline ``notes.content``
column, or a JSON file ``<notes_dir>/<note_id>.<ext>``. The inline column
is only ever read to migrate bodies into files.
"""
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from sqlalchemy import select, update

from kanban_store.exceptions import ErrorCode, StorageError, ValidationError
from kanban_store.models.db_models import DBNote
from kanban_store.utils import looks_like_json, validate_safe_path_component

logger = logging.getLogger(__name__)


class NoteContentProvider(ABC):
    """Where note bodies are read from and written to."""

    @abstractmethod
    def has_content(self, note_id: str) -> bool:
        """Whether a body is stored for the note."""

    @abstractmethod
    def read(self, note_id: str) -> Any:
        """The stored body, or None if there is none."""

    @abstractmethod
    def write(self, note_id: str, content: Any) -> None:
        """Store a body, replacing any previous one."""

    @abstractmethod
    def remove(self, note_id: str) -> None:
        """Drop the stored body. Missing bodies are ignored."""


class InlineContentProvider(NoteContentProvider):
    """Legacy bodies held in the notes.content column.

    Bound to a session so reads and clears join the caller's transaction.
    """

    def __init__(self, session):
        self.session = session

    def has_content(self, note_id: str) -> bool:
        return bool(self.read(note_id))

    def read(self, note_id: str) -> Any:
        content = self.session.scalar(select(DBNote.content).where(DBNote.id == note_id))
        return content or None

    def write(self, note_id: str, content: Any) -> None:
        value = content if isinstance(content, str) else json.dumps(content)
        self.session.execute(
            update(DBNote)
            .where(DBNote.id == note_id)
            .values(content=value)
            .execution_options(synchronize_session=False)
        )

    def remove(self, note_id: str) -> None:
        self.session.execute(
            update(DBNote)
            .where(DBNote.id == note_id)
            .values(content="")
            .execution_options(synchronize_session=False)
        )


class FileContentProvider(NoteContentProvider):
    """Bodies stored as JSON documents, one file per note."""

    def __init__(self, notes_dir: Path, extension: str = "json"):
        self.notes_dir = Path(notes_dir)
        self.extension = extension

    def path_for(self, note_id: str) -> Path:
        """File path for a note body.

        Raises:
            ValidationError: If the id is not a safe file name.
        """
        try:
            validate_safe_path_component(note_id, "note id")
        except ValueError as e:
            raise ValidationError(
                str(e), field="id", value=note_id, code=ErrorCode.PATH_TRAVERSAL_DETECTED
            ) from e
        return self.notes_dir / f"{note_id}.{self.extension}"

    def has_content(self, note_id: str) -> bool:
        return self.path_for(note_id).exists()

    def read(self, note_id: str) -> Any:
        """Decoded body, or None when the file is absent or unreadable."""
        path = self.path_for(note_id)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Unreadable note body {path.name}: {e}")
            return None

    def write(self, note_id: str, content: Any) -> None:
        path = self.path_for(note_id)
        try:
            self.notes_dir.mkdir(parents=True, exist_ok=True)
            # Atomic write via temp file
            temp_path = path.with_suffix(path.suffix + ".tmp")
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(content, f)
            temp_path.replace(path)
        except (OSError, TypeError) as e:
            raise StorageError(
                f"Failed to write note body for {note_id}",
                operation="write_note_content",
                path=str(path),
                original_error=e,
            ) from e

    def remove(self, note_id: str) -> None:
        path = self.path_for(note_id)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(
                f"Failed to delete note body for {note_id}",
                operation="delete_note_content",
                path=str(path),
                code=ErrorCode.STORAGE_DELETE_FAILED,
                original_error=e,
            ) from e


def parse_legacy_content(raw: str) -> Any:
    """Decode an inline body: JSON documents are parsed, text is kept as is."""
    if looks_like_json(raw):
        try:
            return json.loads(raw)
        except ValueError:
            logger.debug("Inline note body looked like JSON but did not parse; keeping text")
    return raw


def migrate_inline_content(
    note_id: str,
    inline: NoteContentProvider,
    files: NoteContentProvider,
) -> bool:
    """Move one legacy inline body into its file.

    Does nothing when there is no inline body. When the file already
    exists the file wins and the inline copy is cleared. Afterwards the
    body is present in exactly one place.

    Returns:
        True if a body was migrated.
    """
    raw = inline.read(note_id)
    if not raw:
        return False
    if files.has_content(note_id):
        inline.remove(note_id)
        logger.warning(f"Note {note_id} had a body both inline and in a file; kept the file")
        return False

    files.write(note_id, parse_legacy_content(raw))
    inline.remove(note_id)

    if inline.has_content(note_id) or not files.has_content(note_id):
        raise StorageError(
            f"Note {note_id} body migration left it stored in both or neither place",
            operation="migrate_note_content",
        )
    logger.info(f"Migrated inline body of note {note_id} to file storage")
    return True
