"""MCP server exposing the kanban store bridge over stdio."""

import json
import logging
import uuid
from typing import Any, Optional

from mcp.server.fastmcp import FastMCP

from kanban_store.config import config
from kanban_store.exceptions import KanbanStoreError, ValidationError
from kanban_store.observability import metrics
from kanban_store.server.bridge import KanbanBridge
from kanban_store.utils import utc_now_iso

logger = logging.getLogger(__name__)


def _parse_payload(payload: Optional[str]) -> Any:
    """Decode a JSON payload argument; empty means no payload."""
    if payload is None or not payload.strip():
        return None
    try:
        return json.loads(payload)
    except ValueError as e:
        raise ValidationError(
            f"Payload is not valid JSON: {e}", field="payload", value=payload
        ) from e


class KanbanMcpServer:
    """MCP server for the kanban store."""

    def __init__(self, store):
        """Initialize the MCP server.

        Args:
            store: The Store every tool reads and writes through.
        """
        self.store = store
        self.bridge = KanbanBridge(store)
        self.mcp = FastMCP(config.server_name)
        self._register_tools()
        logger.info("Kanban store MCP server initialized")

    def format_error_response(self, error: Exception) -> str:
        """Format an error response in a consistent way.

        Store errors are returned as their JSON envelope; anything else is
        logged with a reference id and reported generically.
        """
        error_id = str(uuid.uuid4())[:8]

        if isinstance(error, KanbanStoreError):
            logger.error(
                f"[{error.code.name}] [{error_id}]: {error.message}",
                extra={"error_details": error.details},
            )
            return json.dumps({"ok": False, "error": error.to_dict()})
        elif isinstance(error, (IOError, OSError)):
            logger.error(f"File system error [{error_id}]: {str(error)}", exc_info=True)
            return f"Error: A file system error occurred (ref: {error_id})"
        else:
            logger.error(f"Unexpected error [{error_id}]: {str(error)}", exc_info=True)
            return f"Error: An unexpected error occurred (ref: {error_id})"

    def _call(self, operation: str, payload: Any = None) -> str:
        try:
            result = self.bridge.handle(operation, payload)
            return json.dumps({"ok": True, "result": result})
        except Exception as e:
            return self.format_error_response(e)

    def _register_tools(self) -> None:
        """Register MCP tools."""

        @self.mcp.tool(name="kanban_request")
        def kanban_request(operation: str, payload: Optional[str] = None) -> str:
            """Run any store operation.

            Args:
                operation: Operation name, e.g. "boards.saveAll" or "notes.getContent"
                payload: JSON-encoded request payload (omit for reads)
            """
            try:
                parsed = _parse_payload(payload)
            except ValidationError as e:
                return self.format_error_response(e)
            return self._call(operation, parsed)

        @self.mcp.tool(name="kanban_list_operations")
        def kanban_list_operations() -> str:
            """List the operation names accepted by kanban_request."""
            return json.dumps(self.bridge.operations)

        @self.mcp.tool(name="kanban_get_boards")
        def kanban_get_boards() -> str:
            """Get all boards with their columns and tasks, plus standalone tasks."""
            return self._call("boards.getAll")

        @self.mcp.tool(name="kanban_create_task")
        def kanban_create_task(
            heading: str,
            board_id: Optional[str] = None,
            column_id: Optional[str] = None,
            status: str = "To Do",
            position: int = 0,
            priority: str = "medium",
            due_date: str = "",
            tags: Optional[str] = None,
            description: str = "",
        ) -> str:
            """Create a task in a column, or a standalone task.

            Args:
                heading: Task heading
                board_id: Owning board (omit with column_id for a standalone task)
                column_id: Owning column
                status: Status text, usually the column title
                position: 0-based position within the column
                priority: low, medium or high
                due_date: ISO-8601 deadline (optional)
                tags: Comma-separated tags (optional)
                description: Longer description (optional)
            """
            tag_list = [t.strip() for t in tags.split(",") if t.strip()] if tags else []
            return self._call("task.create", {
                "id": str(uuid.uuid4()),
                "board_id": board_id,
                "column_id": column_id,
                "heading": heading,
                "status": status,
                "position": position,
                "priority": priority,
                "due_date": due_date,
                "tags": tag_list,
                "description": description,
                "created_at": utc_now_iso(),
            })

        @self.mcp.tool(name="kanban_move_task")
        def kanban_move_task(
            task_id: str,
            position: int,
            board_id: Optional[str] = None,
            column_id: Optional[str] = None,
        ) -> str:
            """Move a task to another column or position.

            Args:
                task_id: The task to move
                position: Target 0-based position
                board_id: Target board (omit both ids to make the task standalone)
                column_id: Target column
            """
            return self._call("task.move", {
                "taskId": task_id,
                "newBoardId": board_id,
                "newColumnId": column_id,
                "newPosition": position,
                "isStandalone": not (board_id and column_id),
            })

        @self.mcp.tool(name="kanban_get_note")
        def kanban_get_note(note_id: str) -> str:
            """Get the body of a note.

            Args:
                note_id: The note id
            """
            return self._call("notes.getContent", note_id)

        @self.mcp.tool(name="kanban_status")
        def kanban_status() -> str:
            """Report persistence mode and operation metrics."""
            try:
                status = self.bridge.handle("store.status")
                status["metrics"] = metrics.get_summary()
                return json.dumps({"ok": True, "result": status})
            except Exception as e:
                return self.format_error_response(e)

    def run(self) -> None:
        """Run the MCP server."""
        self.mcp.run()
