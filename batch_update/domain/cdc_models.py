"""Change Data Capture (CDC) Models.

This module defines models for tracking field-level changes written by a batch
update, and the summary returned to the caller.

Architecture:
    - Pure domain models with zero infrastructure dependencies
    - Models are validated with Pydantic before use
"""

import json
import math
import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class ChangeEvent(BaseModel):
    """Represents a single field-level change in a record.

    Parameters:
        table_name: Name of the updated table
        record_id: Key of the record (composite keys joined with ':')
        field_name: Name of the field that changed
        old_value: Previous value (before change)
        new_value: New value (after change)
        change_type: Type of change ('UPDATE' for batch updates)
        changed_at: Timestamp when change occurred
        ingestion_id: ID of the run that caused this change
        source_adapter: Component that produced the change
        changed_by: System/user identifier (optional)
    """

    table_name: str = Field(..., description="Name of the table")
    record_id: str = Field(..., description="Key of the record")
    field_name: str = Field(..., description="Name of the field that changed")
    old_value: Optional[Any] = Field(None, description="Previous value (before change)")
    new_value: Optional[Any] = Field(None, description="New value (after change)")
    change_type: str = Field("UPDATE", description="Type of change: INSERT, UPDATE, or DELETE")
    changed_at: datetime = Field(default_factory=datetime.now, description="Timestamp when change occurred")
    ingestion_id: Optional[str] = Field(None, description="ID of the run")
    source_adapter: Optional[str] = Field(None, description="Source component identifier")
    changed_by: Optional[str] = Field(None, description="System/user identifier")

    def to_audit_dict(self) -> dict:
        """Convert to dictionary for audit log insertion.

        Returns:
            Dictionary with serialized values suitable for database insertion
        """
        return {
            'change_id': str(uuid.uuid4()),
            'table_name': self.table_name,
            'record_id': self.record_id,
            'field_name': self.field_name,
            'old_value': serialize_value(self.old_value),
            'new_value': serialize_value(self.new_value),
            'change_type': self.change_type,
            'changed_at': self.changed_at,
            'ingestion_id': self.ingestion_id,
            'source_adapter': self.source_adapter,
            'changed_by': self.changed_by
        }

    model_config = {
        'frozen': False,
        'validate_assignment': True,
    }


def serialize_value(value: Any) -> Optional[str]:
    """Serialize a field value to text for the audit log.

    Parameters:
        value: Value to serialize (can be None, str, list, dict, etc.)

    Returns:
        Serialized string representation or None
    """
    if value is None:
        return None

    if isinstance(value, (list, dict)):
        try:
            return json.dumps(value)
        except (TypeError, ValueError):
            return str(value)

    if isinstance(value, float) and math.isnan(value):
        return None

    return str(value)


class UpdateResult(BaseModel):
    """Summary of a batch update.

    Parameters:
        records_considered: Records handed to the updater
        records_updated: Records that produced a patch (changed within the allow-list)
        statements_executed: UPDATE statements sent to the database
        rows_affected: Sum of affected-row counts reported by the database
        fields_changed: Non-key fields written across all records
        changes_logged: Change events recorded in the audit logger
    """

    records_considered: int = Field(0, description="Records handed to the updater")
    records_updated: int = Field(0, description="Records that produced a patch")
    statements_executed: int = Field(0, description="UPDATE statements executed")
    rows_affected: int = Field(0, description="Affected rows reported by the database")
    fields_changed: int = Field(0, description="Non-key fields written")
    changes_logged: int = Field(0, description="Change events logged")

    model_config = {
        'frozen': True,
    }
