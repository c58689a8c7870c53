"""Repository for reminder notifications."""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import insert, select, update

from kanban_store.models.db_models import DBNotification, DBTask
from kanban_store.utils import generate_id, utc_now_iso

logger = logging.getLogger(__name__)

TRIGGER_LABELS = {
    "15m": "15 minutes",
    "1h": "1 hour",
    "24h": "24 hours",
}


def _row_to_dict(row: DBNotification) -> Dict[str, Any]:
    return {
        "id": row.id,
        "task_id": row.task_id,
        "title": row.title,
        "body": row.body,
        "trigger_type": row.trigger_type,
        "sent_at": row.sent_at,
        "read_at": row.read_at,
    }


class NotificationRepository:
    """Insert-only reminder log with read tracking."""

    def __init__(self, store):
        self.store = store

    def get_all(self) -> List[Dict[str, Any]]:
        """All notifications, newest first."""
        with self.store.session_factory() as session:
            rows = session.scalars(
                select(DBNotification).order_by(DBNotification.sent_at.desc())
            ).all()
            return [_row_to_dict(row) for row in rows]

    def create(
        self,
        task_id: str,
        trigger_type: str,
        title: Optional[str] = None,
        body: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Record a sent notification (unread, sent now).

        Title and body default to text built from the task heading and
        the trigger.
        """
        with self.store.transaction("notifications.create") as session:
            if title is None or body is None:
                heading = session.scalar(select(DBTask.heading).where(DBTask.id == task_id))
                label = TRIGGER_LABELS.get(trigger_type, trigger_type)
                if title is None:
                    title = f"Reminder: {heading or task_id}"
                if body is None:
                    body = f"Due in {label}"

            row = {
                "id": generate_id(),
                "task_id": task_id,
                "title": title,
                "body": body,
                "trigger_type": trigger_type,
                "sent_at": utc_now_iso(),
                "read_at": None,
            }
            session.execute(insert(DBNotification), [row])

        logger.debug(f"Notification {row['id']} created for task {task_id} ({trigger_type})")
        return row

    def mark_as_read(self, notification_id: str) -> bool:
        """Set read_at to now. Unknown ids are ignored.

        Returns:
            True if a notification was updated.
        """
        with self.store.transaction("notifications.markRead") as session:
            result = session.execute(
                update(DBNotification)
                .where(DBNotification.id == notification_id)
                .values(read_at=utc_now_iso())
                .execution_options(synchronize_session=False)
            )
            return result.rowcount > 0

    def has_been_sent(self, task_id: str, trigger_type: str) -> bool:
        """Whether a notification already exists for this task and trigger."""
        with self.store.session_factory() as session:
            found = session.scalar(
                select(DBNotification.id)
                .where(
                    DBNotification.task_id == task_id,
                    DBNotification.trigger_type == trigger_type,
                )
                .limit(1)
            )
            return found is not None
