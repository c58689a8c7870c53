"""Utility functions for the kanban store."""

import datetime
import json
import re
import uuid
from datetime import timezone
from typing import Any

# Opaque ids double as note file names, so they must be a single safe
# path component (uuids, slugs, "task-1", ...)
SAFE_ID_PATTERN = re.compile(r"^[A-Za-z0-9_\-]+$")


def utc_now() -> datetime.datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.datetime.now(timezone.utc)


def to_iso(dt_value: datetime.datetime) -> str:
    """Format a datetime the way the client does (``2024-03-01T08:00:00.000Z``).

    Naive datetimes are treated as UTC.
    """
    if dt_value.tzinfo is None:
        dt_value = dt_value.replace(tzinfo=timezone.utc)
    dt_value = dt_value.astimezone(timezone.utc)
    return dt_value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision."""
    return to_iso(utc_now())


def parse_iso(value: str) -> datetime.datetime:
    """Parse an ISO-8601 timestamp, accepting a trailing ``Z``.

    Raises:
        ValueError: If the value is not a timestamp.
    """
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def generate_id() -> str:
    """Generate an opaque unique id for rows the store creates itself."""
    return str(uuid.uuid4())


def validate_safe_path_component(value: str, field_name: str = "value") -> str:
    """Validate that a value is safe to use as a filesystem path component.

    Prevents path traversal by rejecting separators, ``..`` and any
    characters outside alphanumerics, underscores and hyphens.

    Raises:
        ValueError: If the value contains unsafe characters
    """
    if not value:
        raise ValueError(f"{field_name} cannot be empty")

    if ".." in value:
        raise ValueError(f"{field_name} cannot contain '..' (path traversal)")

    if "/" in value or "\\" in value:
        raise ValueError(f"{field_name} cannot contain path separators")

    if not SAFE_ID_PATTERN.match(value):
        raise ValueError(
            f"{field_name} contains invalid characters. "
            "Only alphanumeric characters, underscores and hyphens are allowed."
        )

    return value


def looks_like_json(text: str) -> bool:
    """Cheap check for serialized objects/arrays before attempting a parse."""
    stripped = text.strip()
    return (stripped.startswith("{") and stripped.endswith("}")) or (
        stripped.startswith("[") and stripped.endswith("]")
    )


def decode_setting_value(raw: str) -> Any:
    """Decode a stored setting: JSON when possible, else the raw string."""
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return raw


def encode_setting_value(value: Any) -> str:
    """Encode a setting for storage: strings verbatim, everything else as JSON."""
    if isinstance(value, str):
        return value
    return json.dumps(value)
