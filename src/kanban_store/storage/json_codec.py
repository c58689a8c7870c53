"""Lenient codecs for JSON-serialized columns.

Decoding never raises: a malformed stored value degrades to an empty
collection and a warning, so one bad row cannot abort a list read.
"""
import json
import logging
from typing import Any, Dict, Iterable, Iterator, List, Optional

logger = logging.getLogger(__name__)


class JsonList:
    """An ordered list persisted as a JSON array in a text column."""

    __slots__ = ("items",)

    def __init__(self, items: Optional[Iterable[Any]] = None):
        self.items: List[Any] = list(items) if items is not None else []

    @classmethod
    def decode(cls, raw: Any, field: str = "value", owner: Optional[str] = None) -> "JsonList":
        """Parse a stored value, yielding an empty list on any failure."""
        if raw is None or raw == "":
            return cls()
        if isinstance(raw, list):
            return cls(raw)
        try:
            parsed = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning(f"Malformed {field} on {owner or 'row'}, using []: {e}")
            return cls()
        if not isinstance(parsed, list):
            logger.warning(
                f"Expected a JSON array for {field} on {owner or 'row'}, "
                f"got {type(parsed).__name__}; using []"
            )
            return cls()
        return cls(parsed)

    def encode(self) -> str:
        return json.dumps(self.items)

    def strings(self) -> List[str]:
        """The items as strings, dropping anything that is not a scalar."""
        return [str(i) for i in self.items if isinstance(i, (str, int, float))]

    def __iter__(self) -> Iterator[Any]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, JsonList):
            return self.items == other.items
        if isinstance(other, list):
            return self.items == other
        return NotImplemented

    def __repr__(self) -> str:
        return f"JsonList({self.items!r})"


def decode_json_object(raw: Any, field: str = "value", owner: Optional[str] = None) -> Dict[str, Any]:
    """Parse a stored JSON object, yielding {} on any failure."""
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError) as e:
        logger.warning(f"Malformed {field} on {owner or 'row'}, using {{}}: {e}")
        return {}
    if not isinstance(parsed, dict):
        logger.warning(f"Expected a JSON object for {field} on {owner or 'row'}; using {{}}")
        return {}
    return parsed


def decode_checklist_row(row_id: str, title: str, raw_items: Any, task_id: str) -> List[Dict[str, Any]]:
    """Turn one stored checklist row into client checklist items.

    Two layouts exist on disk: the grouped form (``items`` is a list of
    {id, text, completed}) and the older per-item form (``items`` is
    ``{"completed": bool}`` and the item text lives in ``title``).
    """
    if raw_items is None or raw_items == "":
        return []
    try:
        parsed = json.loads(raw_items)
    except (TypeError, ValueError) as e:
        logger.warning(f"Malformed checklist {row_id} on task {task_id}, skipping: {e}")
        return []

    if isinstance(parsed, dict):
        return [{
            "id": row_id,
            "text": title or "",
            "completed": bool(parsed.get("completed")),
        }]

    if not isinstance(parsed, list):
        logger.warning(f"Unexpected checklist layout {row_id} on task {task_id}, skipping")
        return []

    items = []
    for index, item in enumerate(parsed):
        if not isinstance(item, dict):
            continue
        items.append({
            "id": str(item.get("id") or f"{row_id}-{index}"),
            "text": str(item.get("text") or ""),
            "completed": bool(item.get("completed")),
        })
    return items
