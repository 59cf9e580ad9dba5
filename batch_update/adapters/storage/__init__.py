"""Storage adapters for batch-update.

This module contains storage adapters that implement the StatementExecutorPort
and SchemaPort interfaces for executing batch updates.
"""

from batch_update.adapters.storage.postgresql_adapter import PostgreSQLAdapter
from batch_update.adapters.storage.sqlite_adapter import SQLiteAdapter

__all__ = ["PostgreSQLAdapter", "SQLiteAdapter"]
