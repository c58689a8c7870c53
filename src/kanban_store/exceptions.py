"""Custom exceptions for the kanban store.

Provides a structured exception hierarchy with error codes and
machine-readable error information for the boundary adapter.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Board / task errors (1xxx)
    TASK_INVALID = 1001
    BOARD_INVALID = 1002

    # Note errors (2xxx)
    NOTE_INVALID = 2001
    NOTE_CONTENT_UNREADABLE = 2002

    # Notification / settings errors (3xxx)
    NOTIFICATION_INVALID = 3001
    SETTINGS_INVALID = 3002

    # Storage errors (4xxx)
    STORAGE_READ_FAILED = 4001
    STORAGE_WRITE_FAILED = 4002
    STORAGE_DELETE_FAILED = 4003
    STORAGE_CONNECTION_FAILED = 4004
    STORE_NOT_OPEN = 4005

    # Migration errors (5xxx)
    MIGRATION_FAILED = 5001

    # Configuration errors (6xxx)
    CONFIG_INVALID = 6001

    # Validation errors (7xxx)
    VALIDATION_FAILED = 7001
    UNKNOWN_OPERATION = 7002
    PATH_TRAVERSAL_DETECTED = 7003


class KanbanStoreError(Exception):
    """Base exception for all kanban store errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for serialization."""
        return {
            "error": self.__class__.__name__,
            "code": self.code.value,
            "code_name": self.code.name,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code.name}] {self.message} ({detail_str})"
        return f"[{self.code.name}] {self.message}"


class ValidationError(KanbanStoreError):
    """Raised when a request payload fails validation at the boundary."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED,
    ):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)[:100]  # Truncate for safety

        super().__init__(message, code=code, details=details)
        self.field = field
        self.value = value


class StorageError(KanbanStoreError):
    """Raised when a read or write against the store fails."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        path: Optional[str] = None,
        code: ErrorCode = ErrorCode.STORAGE_WRITE_FAILED,
        original_error: Optional[Exception] = None,
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if path:
            # Don't expose full paths in error messages
            details["path_hint"] = path.split("/")[-1] if "/" in path else path
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.path = path
        self.original_error = original_error


class StoreNotOpenError(StorageError):
    """Raised when a repository is used before the store was opened."""

    def __init__(self, message: str = "Store has not been opened"):
        super().__init__(message, operation="open", code=ErrorCode.STORE_NOT_OPEN)


class MigrationError(KanbanStoreError):
    """Raised when a migration step fails as a whole.

    Individual malformed rows never raise; they are skipped and logged.
    """

    def __init__(
        self,
        message: str,
        migration: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        details = {}
        if migration:
            details["migration"] = migration
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=ErrorCode.MIGRATION_FAILED, details=details)
        self.migration = migration
        self.original_error = original_error


class ConfigurationError(KanbanStoreError):
    """Raised for configuration-related errors."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        code: ErrorCode = ErrorCode.CONFIG_INVALID,
    ):
        details = {}
        if config_key:
            details["config_key"] = config_key

        super().__init__(message, code=code, details=details)
        self.config_key = config_key
