"""Repository for notes: metadata rows plus file-backed bodies."""
import logging
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import delete, insert, select, text, update

from kanban_store.exceptions import StorageError, ValidationError
from kanban_store.models.db_models import DBNote, DBTask, note_tasks
from kanban_store.storage.note_content import (FileContentProvider,
                                               InlineContentProvider,
                                               migrate_inline_content,
                                               parse_legacy_content)
from kanban_store.utils import utc_now_iso

logger = logging.getLogger(__name__)

_LINK_INSERT = text(
    "INSERT OR IGNORE INTO note_tasks (note_id, task_id) VALUES (:note_id, :task_id)"
)


class NoteRepository:
    """Notes with their task links.

    The relational row holds only metadata; bodies go through a
    FileContentProvider. List reads never include bodies.
    """

    def __init__(self, store, extension: Optional[str] = None):
        """Initialize the note repository.

        Args:
            store: The Store providing sessions and the notes directory.
            extension: Body file suffix; the store config's when None.
        """
        self.store = store
        self.extension = extension or store.config.note_file_extension

    @property
    def files(self) -> FileContentProvider:
        return FileContentProvider(self.store.get_notes_dir(), self.extension)

    @staticmethod
    def _existing_task_ids(session, task_ids: Iterable[str]) -> set:
        wanted = set(task_ids)
        if not wanted:
            return set()
        return set(session.scalars(select(DBTask.id).where(DBTask.id.in_(wanted))).all())

    def _insert_links(self, session, note_id: str, task_ids: Iterable[str]) -> None:
        task_ids = list(dict.fromkeys(task_ids))
        existing = self._existing_task_ids(session, task_ids)
        missing = [t for t in task_ids if t not in existing]
        if missing:
            logger.debug(f"Note {note_id}: ignoring links to unknown tasks {missing}")
        rows = [{"note_id": note_id, "task_id": t} for t in task_ids if t in existing]
        if rows:
            session.execute(_LINK_INSERT, rows)

    def _legacy_note_ids(self, operation: str) -> List[str]:
        with self.store.transaction(operation) as session:
            return list(session.scalars(select(DBNote.id).where(DBNote.content != "")).all())

    def _migrate_legacy_bodies(self, files: FileContentProvider, note_ids: Iterable[str]) -> set:
        """Move inline bodies to files, one note per transaction.

        Returns:
            Ids of notes whose body could not be moved and is still inline.
        """
        stranded = set()
        for note_id in note_ids:
            try:
                with self.store.transaction("notes.migrateContent") as session:
                    migrate_inline_content(note_id, InlineContentProvider(session), files)
            except (StorageError, ValidationError) as e:
                logger.warning(f"Note {note_id}: body left inline, migration failed: {e}")
                stranded.add(note_id)
        return stranded

    def get_all(self) -> List[Dict[str, Any]]:
        """All notes, newest first, with ``content`` always None.

        Legacy notes whose body is still inline get it moved to a file
        on the way. A note that cannot be migrated is listed anyway.
        """
        self._migrate_legacy_bodies(self.files, self._legacy_note_ids("notes.getAll"))
        with self.store.transaction("notes.getAll") as session:
            notes = session.execute(
                select(DBNote.id, DBNote.title, DBNote.created_at, DBNote.updated_at)
                .order_by(DBNote.created_at.desc())
            ).all()
            links = session.execute(select(note_tasks.c.note_id, note_tasks.c.task_id)).all()

        task_ids = defaultdict(list)
        for link in links:
            task_ids[link.note_id].append(link.task_id)

        return [
            {
                "id": note.id,
                "title": note.title,
                "content": None,
                "createdAt": note.created_at,
                "updatedAt": note.updated_at,
                "taskIds": task_ids.get(note.id, []),
            }
            for note in notes
        ]

    def get_content(self, note_id: str) -> Any:
        """A note's body, or None if it has none or it cannot be read."""
        files = self.files
        if not files.has_content(note_id):
            if self._migrate_legacy_bodies(files, [note_id]):
                with self.store.transaction("notes.getContent") as session:
                    raw = InlineContentProvider(session).read(note_id)
                return parse_legacy_content(raw) if raw else None
        return files.read(note_id)

    def create(self, note: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a note, its links and (if given) its body."""
        note_id = note["id"]
        files = self.files
        now = utc_now_iso()
        created_at = note.get("createdAt") or now
        row = {
            "id": note_id,
            "title": note.get("title") or "",
            "content": "",
            "created_at": created_at,
            "updated_at": note.get("updatedAt") or created_at,
        }
        with self.store.transaction("notes.create") as session:
            session.execute(insert(DBNote), [row])
            self._insert_links(session, note_id, note.get("taskIds") or [])
            if note.get("content") is not None:
                files.write(note_id, note["content"])

        return {
            "id": note_id,
            "title": row["title"],
            "content": None,
            "createdAt": row["created_at"],
            "updatedAt": row["updated_at"],
            "taskIds": list(note.get("taskIds") or []),
        }

    def update(self, note_id: str, updates: Dict[str, Any]) -> bool:
        """Patch a note's title, links and body.

        Returns:
            False if the note does not exist.
        """
        files = self.files
        with self.store.transaction("notes.update") as session:
            exists = session.scalar(select(DBNote.id).where(DBNote.id == note_id))
            if exists is None:
                return False

            values = {"updated_at": updates.get("updatedAt") or utc_now_iso()}
            if updates.get("title") is not None:
                values["title"] = updates["title"]
            if updates.get("content") is not None:
                values["content"] = ""
            session.execute(
                update(DBNote)
                .where(DBNote.id == note_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )

            if updates.get("taskIds") is not None:
                session.execute(delete(note_tasks).where(note_tasks.c.note_id == note_id))
                self._insert_links(session, note_id, updates["taskIds"])

        # Files are touched only once the row change is committed
        if updates.get("content") is not None:
            files.write(note_id, updates["content"])
        return True

    def delete(self, note_id: str) -> bool:
        """Delete the note row (and its links) and its body file.

        Returns:
            True if a row was deleted.
        """
        files = self.files
        with self.store.transaction("notes.delete") as session:
            result = session.execute(delete(DBNote).where(DBNote.id == note_id))
        files.remove(note_id)
        return result.rowcount > 0

    def link_to_task(self, note_id: str, task_id: str) -> bool:
        """Link a note to a task; linking twice is harmless.

        Returns:
            False if either side does not exist.
        """
        with self.store.transaction("notes.linkToTask") as session:
            note = session.scalar(select(DBNote.id).where(DBNote.id == note_id))
            task = session.scalar(select(DBTask.id).where(DBTask.id == task_id))
            if note is None or task is None:
                return False
            session.execute(_LINK_INSERT, {"note_id": note_id, "task_id": task_id})
        return True

    def unlink_from_task(self, note_id: str, task_id: str) -> None:
        with self.store.transaction("notes.unlinkFromTask") as session:
            session.execute(
                delete(note_tasks).where(
                    note_tasks.c.note_id == note_id, note_tasks.c.task_id == task_id
                )
            )

    def save_all(self, notes: List[Dict[str, Any]]) -> None:
        """Replace every note row and link with the given notes.

        Bodies are written only for notes whose ``content`` is not None;
        the files of notes the client never loaded stay as they are.
        """
        files = self.files
        now = utc_now_iso()
        rows, links, bodies = [], [], []
        for note in notes:
            created_at = note.get("createdAt") or now
            rows.append({
                "id": note["id"],
                "title": note.get("title") or "",
                "content": "",
                "created_at": created_at,
                "updated_at": note.get("updatedAt") or created_at,
            })
            links.extend((note["id"], t) for t in note.get("taskIds") or [])
            if note.get("content") is not None:
                bodies.append((note["id"], note["content"]))

        # Inline bodies would vanish with their rows
        stranded = self._migrate_legacy_bodies(files, self._legacy_note_ids("notes.saveAll"))

        with self.store.transaction("notes.saveAll") as session:
            if stranded:
                # Bodies that could not be moved stay inline on the rows that survive
                body_ids = {note_id for note_id, _ in bodies}
                kept = dict(session.execute(
                    select(DBNote.id, DBNote.content).where(DBNote.id.in_(stranded))
                ).all())
                for row in rows:
                    if row["id"] in kept and row["id"] not in body_ids:
                        row["content"] = kept[row["id"]]

            session.execute(delete(note_tasks))
            session.execute(delete(DBNote))
            if rows:
                session.execute(insert(DBNote), rows)
            existing = self._existing_task_ids(session, (t for _, t in links))
            link_rows = [
                {"note_id": n, "task_id": t}
                for n, t in dict.fromkeys(links)
                if t in existing
            ]
            if link_rows:
                session.execute(_LINK_INSERT, link_rows)

        for note_id, content in bodies:
            files.write(note_id, content)
        logger.debug(f"Saved {len(rows)} note(s), {len(bodies)} body file(s)")
