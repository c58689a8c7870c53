"""Configuration module for the kanban store."""

import logging
import os
import re
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from kanban_store import __version__

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config lives alongside the data it describes
_USER_ENV = Path.home() / ".kanban-store" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)

_DUE_TIME_PATTERN = re.compile(r"^\d{2}:\d{2}:\d{2}Z?$")
_EXTENSION_PATTERN = re.compile(r"^[A-Za-z0-9]+$")


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


class StoreConfig(BaseModel):
    """Configuration for the kanban store."""

    # Application-owned data directory; relative paths below resolve against it
    data_dir: Path = Field(
        default_factory=lambda: Path(
            os.getenv("KANBAN_STORE_DATA_DIR", str(Path.home() / ".kanban-store"))
        )
    )
    database_path: Path = Field(
        default_factory=lambda: Path(
            os.getenv("KANBAN_STORE_DATABASE_PATH", "kanban.db")
        )
    )
    # Per-note body files, named <note_id>.<note_file_extension>
    notes_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("KANBAN_STORE_NOTES_DIR", "notes"))
    )
    note_file_extension: str = Field(
        default_factory=lambda: os.getenv("KANBAN_STORE_NOTE_EXTENSION", "json")
    )
    # Forces the ephemeral in-memory store (the same mode used as a fallback
    # when the database file cannot be opened)
    in_memory_db: bool = Field(
        default_factory=lambda: _env_flag("KANBAN_STORE_IN_MEMORY_DB", "false")
    )
    # Time of day appended to legacy date-only deadlines
    default_due_time: str = Field(
        default_factory=lambda: os.getenv("KANBAN_STORE_DEFAULT_DUE_TIME", "10:00:00Z")
    )
    log_dir: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("KANBAN_STORE_LOG_DIR"))
            if os.getenv("KANBAN_STORE_LOG_DIR")
            else None
        )
    )
    server_name: str = Field(
        default=os.getenv("KANBAN_STORE_SERVER_NAME", "kanban-store")
    )
    server_version: str = Field(default=__version__)

    @field_validator("default_due_time")
    @classmethod
    def validate_due_time(cls, v: str) -> str:
        """Validate the HH:MM:SS[Z] default deadline time."""
        if not _DUE_TIME_PATTERN.match(v):
            raise ValueError(
                f"default_due_time must look like HH:MM:SS or HH:MM:SSZ, got {v!r}"
            )
        return v

    @field_validator("note_file_extension")
    @classmethod
    def validate_extension(cls, v: str) -> str:
        """Strip a leading dot and require a bare alphanumeric suffix."""
        v = v.lstrip(".")
        if not _EXTENSION_PATTERN.match(v):
            raise ValueError(f"note_file_extension must be alphanumeric, got {v!r}")
        return v

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on data_dir."""
        path = Path(path).expanduser()
        if path.is_absolute():
            return path
        return Path(self.data_dir).expanduser() / path

    def get_database_path(self) -> Path:
        """Get the absolute path of the SQLite database file."""
        return self.get_absolute_path(self.database_path)

    def get_db_url(self) -> str:
        """Get the database URL for SQLite, creating the parent directory."""
        db_path = self.get_database_path()
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{db_path}"

    def get_notes_dir(self) -> Path:
        """Get the absolute path of the note body directory (not created here)."""
        return self.get_absolute_path(self.notes_dir)

    def get_log_dir(self) -> Path:
        """Get the log directory, defaulting to <data_dir>/logs."""
        if self.log_dir is not None:
            return self.get_absolute_path(self.log_dir)
        return self.get_absolute_path(Path("logs"))


# Create a global config instance
config = StoreConfig()
