"""Repository for application settings."""
import logging
from typing import Any, Dict

from sqlalchemy import select, text

from kanban_store.models.db_models import DBSetting
from kanban_store.utils import decode_setting_value, encode_setting_value

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS: Dict[str, Any] = {
    "startView": "boards",
    "tasksPageSize": 6,
    "defaultTaskPriority": "medium",
    "confirmBeforeDelete": True,
    "activeBoardId": None,
}


class SettingsRepository:
    """Key/value settings; strings are stored verbatim, everything else as JSON."""

    def __init__(self, store):
        self.store = store

    def get_all(self) -> Dict[str, Any]:
        """The known settings with defaults filled in for missing values."""
        with self.store.session_factory() as session:
            rows = session.execute(select(DBSetting.key, DBSetting.value)).all()

        stored = {row.key: decode_setting_value(row.value) for row in rows}
        settings = {}
        for key, default in DEFAULT_SETTINGS.items():
            value = stored.get(key)
            if key == "confirmBeforeDelete":
                # False is a real choice here, not a missing value
                settings[key] = default if value is None else bool(value)
            elif value is None or value == "":
                settings[key] = default
            else:
                settings[key] = value
        if settings["activeBoardId"] is not None:
            settings["activeBoardId"] = str(settings["activeBoardId"])
        return settings

    def save_all(self, settings: Dict[str, Any]) -> None:
        """Upsert every key in one transaction."""
        rows = [
            {"key": str(key), "value": encode_setting_value(value)}
            for key, value in settings.items()
        ]
        if not rows:
            return
        with self.store.transaction("settings.saveAll") as session:
            session.execute(
                text("INSERT OR REPLACE INTO settings (key, value) VALUES (:key, :value)"),
                rows,
            )
        logger.debug(f"Saved {len(rows)} setting(s)")
