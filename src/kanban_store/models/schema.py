"""Pydantic models for the payloads crossing the store boundary.

Field names follow the client's wire format exactly, which is why most of
them are camelCase and ``task.create`` is snake_case.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from kanban_store.utils import generate_id, utc_now_iso, validate_safe_path_component


class Priority(str, Enum):
    """Task priority levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TriggerType(str, Enum):
    """Reminder triggers, measured as time remaining before the deadline."""

    DAY = "24h"
    HOUR = "1h"
    QUARTER_HOUR = "15m"


# Shared by every wire model: tolerate extra client-side keys, drop them
_WIRE_CONFIG = {"extra": "ignore", "use_enum_values": True}


class ChecklistItem(BaseModel):
    """One checklist entry."""

    id: str = Field(default_factory=generate_id)
    text: str = ""
    completed: bool = False

    model_config = _WIRE_CONFIG


class Attachment(BaseModel):
    """A link or file attached to a task."""

    id: str = Field(default_factory=generate_id)
    url: str = ""
    title: str = ""
    coverImage: bool = False
    createdAt: str = Field(default_factory=utc_now_iso)

    model_config = _WIRE_CONFIG

    @field_validator("coverImage", mode="before")
    @classmethod
    def coerce_cover_image(cls, v: Any) -> bool:
        """Older clients stored cover flags as strings or null."""
        if v is None:
            return False
        if isinstance(v, str):
            return v.lower() in ("true", "1", "yes")
        return bool(v)


class Comment(BaseModel):
    """A comment on a task."""

    id: str = Field(default_factory=generate_id)
    text: str = ""
    createdAt: str = Field(default_factory=utc_now_iso)

    model_config = _WIRE_CONFIG


class TimelineEntry(BaseModel):
    """An append-only history entry."""

    timestamp: str = Field(default_factory=utc_now_iso)
    action: str

    model_config = _WIRE_CONFIG


class ExtendedData(BaseModel):
    """Task sub-collections owned by the client."""

    checklists: List[ChecklistItem] = Field(default_factory=list)
    attachments: List[Attachment] = Field(default_factory=list)
    comments: List[Comment] = Field(default_factory=list)

    model_config = _WIRE_CONFIG


class TaskSettings(BaseModel):
    """The nested ``settings`` block of a task."""

    priority: Priority = Priority.MEDIUM
    tags: List[str] = Field(default_factory=list)
    dueDate: str = ""
    status: Optional[str] = None
    completed: bool = False

    model_config = _WIRE_CONFIG

    @field_validator("dueDate", mode="before")
    @classmethod
    def none_due_date(cls, v: Any) -> Any:
        return "" if v is None else v


class TaskPayload(BaseModel):
    """A task in the nested shape used by boards.getAll / boards.saveAll."""

    id: str = Field(..., min_length=1)
    heading: str = ""
    tldr: str = ""
    description: str = ""
    createdAt: Optional[str] = None
    settings: TaskSettings = Field(default_factory=TaskSettings)
    extendedData: ExtendedData = Field(default_factory=ExtendedData)
    timeline: List[TimelineEntry] = Field(default_factory=list)

    model_config = _WIRE_CONFIG


class ColumnPayload(BaseModel):
    """A board column with its ordered tasks."""

    id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    tasks: List[TaskPayload] = Field(default_factory=list)

    model_config = _WIRE_CONFIG


class BoardPayload(BaseModel):
    """A board with its ordered columns."""

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    createdAt: Optional[str] = None
    columns: List[ColumnPayload] = Field(default_factory=list)

    model_config = _WIRE_CONFIG


class BoardsSnapshot(BaseModel):
    """Full client state handed to boards.saveAll."""

    boards: List[BoardPayload] = Field(default_factory=list)
    activeBoardId: Optional[str] = None
    standaloneTasks: List[TaskPayload] = Field(default_factory=list)

    model_config = _WIRE_CONFIG

    @model_validator(mode="before")
    @classmethod
    def accept_board_array(cls, data: Any) -> Any:
        """A bare list is shorthand for ``{"boards": [...]}``."""
        if isinstance(data, list):
            return {"boards": data}
        return data


class TaskCreateRequest(BaseModel):
    """Payload for task.create."""

    id: str = Field(..., min_length=1)
    board_id: Optional[str] = None
    column_id: Optional[str] = None
    isStandalone: bool = False
    heading: str = Field(..., min_length=1)
    tldr: str = ""
    description: str = ""
    priority: Priority = Priority.MEDIUM
    tags: List[str] = Field(default_factory=list)
    due_date: str = ""
    status: str = Field(..., min_length=1)
    completed: bool = False
    position: int = Field(..., ge=0)
    created_at: str = Field(..., min_length=1)
    extendedData: Optional[ExtendedData] = None
    timeline: List[TimelineEntry] = Field(default_factory=list)

    model_config = _WIRE_CONFIG

    @field_validator("due_date", mode="before")
    @classmethod
    def none_due_date(cls, v: Any) -> Any:
        return "" if v is None else v


class TaskSettingsPatch(BaseModel):
    """Partial ``settings`` block inside task.update."""

    priority: Optional[Priority] = None
    tags: Optional[List[str]] = None
    dueDate: Optional[str] = None
    status: Optional[str] = None
    completed: Optional[bool] = None

    model_config = _WIRE_CONFIG


class TaskUpdate(BaseModel):
    """Free-form partial task update.

    Fields may arrive flat or nested under ``settings``; anything not
    declared here is discarded.
    """

    heading: Optional[str] = None
    tldr: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[Priority] = None
    tags: Optional[List[str]] = None
    dueDate: Optional[str] = None
    due_date: Optional[str] = None
    status: Optional[str] = None
    completed: Optional[bool] = None
    settings: Optional[TaskSettingsPatch] = None
    timeline: Optional[List[TimelineEntry]] = None
    extendedData: Optional[ExtendedData] = None

    model_config = _WIRE_CONFIG


class TaskUpdateRequest(BaseModel):
    """Payload for task.update."""

    taskId: str = Field(..., min_length=1)
    updates: TaskUpdate = Field(default_factory=TaskUpdate)

    model_config = _WIRE_CONFIG


class TaskMoveRequest(BaseModel):
    """Payload for task.move."""

    taskId: str = Field(..., min_length=1)
    newBoardId: Optional[str] = None
    newColumnId: Optional[str] = None
    newPosition: int = Field(..., ge=0)
    isStandalone: bool = False

    model_config = _WIRE_CONFIG


class DeletedTaskPayload(BaseModel):
    """An archived task snapshot."""

    boardId: Optional[str] = None
    boardName: str = ""
    columnId: Optional[str] = None
    columnTitle: str = ""
    task: Dict[str, Any]
    deletedAt: str = Field(default_factory=utc_now_iso)

    model_config = _WIRE_CONFIG

    @field_validator("task")
    @classmethod
    def task_has_id(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        if not v.get("id"):
            raise ValueError("archived task must carry an id")
        return v


class NotificationCreateRequest(BaseModel):
    """Payload for notifications.create."""

    taskId: str = Field(..., min_length=1)
    triggerType: TriggerType
    title: Optional[str] = None
    body: Optional[str] = None

    model_config = _WIRE_CONFIG


class NotificationLookup(BaseModel):
    """Payload for notifications.hasBeenSent."""

    taskId: str = Field(..., min_length=1)
    triggerType: str = Field(..., min_length=1)

    model_config = _WIRE_CONFIG


def _validate_note_id(v: str) -> str:
    # Note ids name blob files on disk
    return validate_safe_path_component(v, "note id")


class NotePayload(BaseModel):
    """A note as sent by notes.create / notes.saveAll.

    ``content`` is None when the client never loaded the body.
    """

    id: str
    title: str = ""
    content: Any = None
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None
    taskIds: List[str] = Field(default_factory=list)

    model_config = _WIRE_CONFIG

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        return _validate_note_id(v)


class NoteUpdate(BaseModel):
    """Partial note update."""

    title: Optional[str] = None
    content: Any = None
    updatedAt: Optional[str] = None
    taskIds: Optional[List[str]] = None

    model_config = _WIRE_CONFIG


class NoteUpdateRequest(BaseModel):
    """Payload for notes.update."""

    id: str
    updates: NoteUpdate = Field(default_factory=NoteUpdate)

    model_config = _WIRE_CONFIG

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        return _validate_note_id(v)


class NoteLinkRequest(BaseModel):
    """Payload for notes.linkToTask / notes.unlinkFromTask."""

    noteId: str
    taskId: str = Field(..., min_length=1)

    model_config = _WIRE_CONFIG

    @field_validator("noteId")
    @classmethod
    def validate_note_id(cls, v: str) -> str:
        return _validate_note_id(v)


class NoteIdRequest(BaseModel):
    """A bare note id (notes.delete / notes.getContent)."""

    id: str

    model_config = _WIRE_CONFIG

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        return _validate_note_id(v)
