"""Change Audit Logger.

This module provides an in-memory buffer of field-level change events written
by batch updates. Each change is logged with field name, old/new values,
timestamp, and run metadata, and flushed to the ``change_audit_log`` table by a
storage adapter.

Architecture:
    - Infrastructure layer component
    - Called by the batch updater after statements are executed
    - Storage adapters persist the buffered entries in bulk
"""

import logging
import threading
import uuid
from datetime import datetime
from typing import Any, List, Optional

from batch_update.domain.cdc_models import ChangeEvent, serialize_value

logger = logging.getLogger(__name__)


class ChangeAuditLogger:
    """Logger for tracking field-level change events.

    Example Usage:
        ```python
        audit = ChangeAuditLogger()
        audit.log_change(
            table_name="cats",
            record_id="1",
            field_name="name",
            old_value="Felix",
            new_value="Garfield",
        )
        storage_adapter.flush_change_logs(audit.get_logs())
        ```
    """

    def __init__(self):
        """Initialize change audit logger."""
        self._logs: List[dict] = []
        self._lock = threading.Lock()
        self._ingestion_id: Optional[str] = None
        self._source_adapter: Optional[str] = None

    def set_ingestion_context(
        self,
        ingestion_id: Optional[str] = None,
        source_adapter: Optional[str] = None
    ) -> None:
        """Set run context for grouping change events.

        Parameters:
            ingestion_id: Unique identifier for this run
            source_adapter: Component producing the changes
        """
        self._ingestion_id = ingestion_id
        self._source_adapter = source_adapter

    def log_change(
        self,
        table_name: str,
        record_id: str,
        field_name: str,
        old_value: Any = None,
        new_value: Any = None,
        change_type: str = "UPDATE",
        ingestion_id: Optional[str] = None,
        source_adapter: Optional[str] = None,
        changed_by: Optional[str] = None
    ) -> None:
        """Log a single change event.

        Parameters:
            table_name: Name of the updated table
            record_id: Key of the record that changed
            field_name: Name of the field that changed
            old_value: Previous value (serialized to text)
            new_value: New value (serialized to text)
            change_type: Type of change ('INSERT', 'UPDATE', 'DELETE')
            ingestion_id: ID of the run (uses context if not provided)
            source_adapter: Source identifier (uses context if not provided)
            changed_by: System/user identifier (optional)
        """
        log_entry = {
            "change_id": str(uuid.uuid4()),
            "table_name": table_name,
            "record_id": str(record_id),
            "field_name": field_name,
            "old_value": serialize_value(old_value),
            "new_value": serialize_value(new_value),
            "change_type": change_type,
            "changed_at": datetime.now(),
            "ingestion_id": ingestion_id or self._ingestion_id,
            "source_adapter": source_adapter or self._source_adapter,
            "changed_by": changed_by or "system"
        }

        with self._lock:
            self._logs.append(log_entry)
        logger.debug(f"Logged change: {table_name}.{record_id}.{field_name} ({change_type})")

    def log_change_event(self, change_event: ChangeEvent) -> None:
        """Log a ChangeEvent object, applying the current run context."""
        audit_dict = change_event.to_audit_dict()
        if self._ingestion_id:
            audit_dict['ingestion_id'] = self._ingestion_id
        if self._source_adapter:
            audit_dict['source_adapter'] = self._source_adapter
        if not audit_dict.get('changed_by'):
            audit_dict['changed_by'] = "system"

        with self._lock:
            self._logs.append(audit_dict)
        logger.debug(
            f"Logged change event: {change_event.table_name}."
            f"{change_event.record_id}.{change_event.field_name} "
            f"({change_event.change_type})"
        )

    def log_changes_batch(self, change_events: List[ChangeEvent]) -> None:
        """Log multiple change events in batch."""
        for event in change_events:
            self.log_change_event(event)

    def get_logs(self) -> List[dict]:
        """Get all logged change events.

        Returns:
            List of change log entries (dictionaries ready for database insertion)
        """
        with self._lock:
            return self._logs.copy()

    def clear_logs(self) -> None:
        """Clear all logged events (after flushing to storage)."""
        with self._lock:
            self._logs.clear()
        logger.debug("Cleared change audit logs")

    def get_log_count(self) -> int:
        """Get count of logged change events."""
        return len(self._logs)

    def has_logs(self) -> bool:
        """Check if there are any logged change events."""
        return len(self._logs) > 0
