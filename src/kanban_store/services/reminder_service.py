"""Deadline reminder scan."""
import datetime
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select

from kanban_store.models.db_models import DBTask
from kanban_store.observability import traced
from kanban_store.storage.notification_repository import NotificationRepository
from kanban_store.utils import parse_iso, utc_now

logger = logging.getLogger(__name__)

# Smallest window first: a task 10 minutes out gets the 15m reminder only
TRIGGER_WINDOWS = [
    ("15m", datetime.timedelta(minutes=15)),
    ("1h", datetime.timedelta(hours=1)),
    ("24h", datetime.timedelta(hours=24)),
]


def select_trigger(remaining: datetime.timedelta) -> Optional[str]:
    """The trigger whose window the remaining time falls into, if any."""
    if remaining <= datetime.timedelta(0):
        return None
    for trigger, window in TRIGGER_WINDOWS:
        if remaining <= window:
            return trigger
    return None


class ReminderService:
    """Creates at most one notification per task and trigger."""

    def __init__(self, store, notifications: Optional[NotificationRepository] = None):
        self.store = store
        self.notifications = notifications or NotificationRepository(store)

    def _open_tasks_with_deadlines(self):
        with self.store.session_factory() as session:
            return session.execute(
                select(DBTask.id, DBTask.heading, DBTask.due_date).where(
                    DBTask.completed == False, DBTask.due_date != ""  # noqa: E712
                )
            ).all()

    @traced("reminders.checkDeadlines")
    def check_deadlines(self, now: Optional[datetime.datetime] = None) -> List[Dict[str, Any]]:
        """Create reminders for open tasks whose deadline is near.

        Args:
            now: Reference time (aware or naive UTC); defaults to the clock.

        Returns:
            The notifications created by this scan.
        """
        now = now or utc_now()
        if now.tzinfo is None:
            now = now.replace(tzinfo=datetime.timezone.utc)

        created = []
        for task in self._open_tasks_with_deadlines():
            try:
                due = parse_iso(task.due_date)
            except ValueError:
                logger.debug(f"Task {task.id} has unparsable due date {task.due_date!r}")
                continue

            trigger = select_trigger(due - now)
            if trigger is None:
                continue
            if self.notifications.has_been_sent(task.id, trigger):
                continue
            created.append(self.notifications.create(task.id, trigger))

        if created:
            logger.info(f"Created {len(created)} deadline reminder(s)")
        return created
