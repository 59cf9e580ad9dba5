"""Domain Ports - Abstract Contracts for Batch Updates.

This module defines the Port interfaces (abstract contracts) that Adapters and
records must implement, plus the error hierarchy raised by the domain core.
Following Hexagonal Architecture, the Domain Core defines what it needs, not how
it's provided.

Architecture:
    - Pure abstract interfaces with zero infrastructure dependencies
    - Storage adapters (PostgreSQL, SQLite) implement StatementExecutorPort and SchemaPort
    - Records handed to the orchestrator implement ChangeTrackingRecord
    - The statement builder never touches a port; only the orchestrator does
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Generic, List, Mapping, Optional, TypeVar, Union

# Type variable for Result generic
T = TypeVar('T')


# ============================================================================
# Result Type for Success/Failure Communication
# ============================================================================

@dataclass(frozen=True)
class Result(Generic[T]):
    """Result type for communicating success or failure without exceptions.

    Used by adapter operations that report rather than raise (audit log
    flushing). The statement builder and orchestrator raise instead.

    Attributes:
        success: True if the operation succeeded, False otherwise
        value: The successful result value (only present if success=True)
        error: Error information (only present if success=False)
        error_type: Type of error (StorageError, etc.)
        error_details: Additional error context

    Example:
        ```python
        result = adapter.flush_change_logs(change_logger.get_logs())
        if not result.success:
            log_error(result.error, result.error_details)
        ```
    """

    success: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    error_details: Optional[dict] = None

    @classmethod
    def success_result(cls, value: T) -> 'Result[T]':
        """Create a successful result.

        Parameters:
            value: The successful result value

        Returns:
            Result: Success result with the value
        """
        return cls(
            success=True,
            value=value,
            error=None,
            error_type=None,
            error_details=None
        )

    @classmethod
    def failure_result(
        cls,
        error: Union[str, Exception],
        error_type: Optional[str] = None,
        error_details: Optional[dict] = None
    ) -> 'Result[T]':
        """Create a failure result.

        Parameters:
            error: Error message or exception
            error_type: Type of error (e.g., "StorageError")
            error_details: Additional context

        Returns:
            Result: Failure result with error information
        """
        error_message = str(error) if isinstance(error, Exception) else error
        error_type_name = error_type or (type(error).__name__ if isinstance(error, Exception) else "UnknownError")

        return cls(
            success=False,
            value=None,
            error=error_message,
            error_type=error_type_name,
            error_details=error_details or {}
        )

    def is_success(self) -> bool:
        """Check if result is successful."""
        return self.success

    def is_failure(self) -> bool:
        """Check if result is a failure."""
        return not self.success


# ============================================================================
# Custom Exception Hierarchy
# ============================================================================

class BatchUpdateError(Exception):
    """Base exception for all batch-update errors."""
    pass


class InvalidArgumentError(BatchUpdateError, ValueError):
    """Raised when the builder or orchestrator is called with bad arguments.

    Covers a non-positive batch size, an empty key spec, a patch missing one of
    the key columns, duplicate column names and values of unsupported types.
    """
    pass


class SchemaMismatchError(BatchUpdateError):
    """Raised when a patch references a column with no known SQL type.

    Attributes:
        table_name: Target table being updated
        column: Column name without a type in the column-type lookup
    """

    def __init__(self, message: str, table_name: Optional[str] = None, column: Optional[str] = None):
        super().__init__(message)
        self.table_name = table_name
        self.column = column


class InternalInvariantViolation(BatchUpdateError):
    """Raised when a batch without any non-key column reaches the renderer.

    Such batches are dropped during planning, so seeing one means a caller
    bypassed ``plan()``.
    """
    pass


class RecordValidationError(BatchUpdateError):
    """Raised when a record fails validation before statements are built.

    Attributes:
        record: The record that failed validation
        details: Validation messages keyed by column name
    """

    def __init__(self, message: str, record: Any = None, details: Optional[dict] = None):
        super().__init__(message)
        self.record = record
        self.details = details or {}


class StorageError(BatchUpdateError):
    """Raised when a storage adapter operation fails.

    Attributes:
        operation: The adapter operation that failed (execute_update, connect, ...)
        details: Additional error context (never contains credentials)
    """

    def __init__(self, message: str, operation: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message)
        self.operation = operation
        self.details = details or {}


# ============================================================================
# Record Port
# ============================================================================

class ChangeTrackingRecord(ABC):
    """Abstract contract for records handed to the batch updater.

    A record knows its current column values, which columns changed since it
    was loaded, and how to validate itself. The orchestrator only reads through
    this interface, except for stamping the update-timestamp column.

    Example Usage:
        ```python
        cat = TrackedRecord({"id": 1, "name": "Felix"})
        cat["name"] = "Garfield"
        cat.changed_columns()   # ['name']
        ```
    """

    @abstractmethod
    def changed_columns(self) -> List[str]:
        """Return the names of columns whose value differs from the loaded snapshot."""
        pass

    @abstractmethod
    def read(self, column: str) -> Any:
        """Return the current value of ``column``."""
        pass

    @abstractmethod
    def write(self, column: str, value: Any) -> None:
        """Assign ``value`` to ``column``, marking it changed if it differs."""
        pass

    @abstractmethod
    def original(self, column: str) -> Any:
        """Return the value ``column`` had when the record was loaded."""
        pass

    def has_column(self, column: str) -> bool:
        """Check whether the record carries ``column`` at all.

        Note:
            Default implementation returns True; records that know their
            attribute set should override it.
        """
        return True

    def validate(self) -> None:
        """Validate the record, raising RecordValidationError on failure.

        Note:
            Default implementation accepts everything.
        """
        return None


# ============================================================================
# Storage Ports
# ============================================================================

class StatementExecutorPort(ABC):
    """Abstract contract for executing rendered UPDATE statements.

    Key Principles:
        - One call per statement, in the order the builder returned them
        - Returns the number of affected rows reported by the database
        - The executor may keep a statement-level query cache; the orchestrator
          clears it after a batch update so later reads see the new values
    """

    @abstractmethod
    def execute_update(self, sql: str) -> int:
        """Execute one UPDATE statement and return the affected-row count.

        Raises:
            StorageError: If the statement cannot be executed
        """
        pass

    @property
    def query_cache_enabled(self) -> bool:
        """Whether the executor currently caches query results."""
        return False

    def clear_query_cache(self) -> None:
        """Drop every cached query result.

        Note:
            Default implementation does nothing.
        """
        return None


class SchemaPort(ABC):
    """Abstract contract for looking up table metadata from the live schema."""

    @abstractmethod
    def column_names(self, table_name: str) -> List[str]:
        """Return every column of ``table_name`` in table order."""
        pass

    @abstractmethod
    def column_types(self, table_name: str) -> Mapping[str, str]:
        """Return a column name to SQL type mapping used for CAST rendering."""
        pass

    @abstractmethod
    def primary_key(self, table_name: str) -> List[str]:
        """Return the primary-key column names of ``table_name`` in key order."""
        pass

    def has_column(self, table_name: str, column: str) -> bool:
        """Check whether ``table_name`` has ``column``."""
        return column in self.column_names(table_name)
