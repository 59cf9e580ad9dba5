"""SQLite Storage Adapter.

This adapter implements the StatementExecutorPort and SchemaPort contracts for
SQLite, an in-process database well suited to local runs and tests. SQLite
accepts the same WITH ... UPDATE ... FROM statement shape as PostgreSQL
(UPDATE ... FROM needs SQLite 3.33+).

Architecture:
    - Implements StatementExecutorPort and SchemaPort (Hexagonal Architecture)
    - Isolated from domain core - only depends on ports and models
    - Single connection guarded by a lock
    - Column cast types follow SQLite type affinity so a CAST never rewrites a value
"""

import logging
import sqlite3
import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

from batch_update.domain.ports import (
    Result,
    SchemaPort,
    StatementExecutorPort,
    StorageError,
)
from batch_update.infrastructure.config_manager import DatabaseConfig
from batch_update.infrastructure.query_cache import QueryCache

logger = logging.getLogger(__name__)

CHANGE_LOG_COLUMNS = [
    'change_id', 'table_name', 'record_id', 'field_name',
    'old_value', 'new_value', 'change_type', 'changed_at',
    'ingestion_id', 'source_adapter', 'changed_by'
]

# Declared types whose NUMERIC affinity would turn '2010-01-01' into 2010 under CAST.
_TEMPORAL_MARKERS = ("DATE", "TIME")


def sqlite_cast_type(declared_type: str) -> str:
    """Map a declared column type to a CAST target following SQLite affinity rules."""
    declared = (declared_type or "").upper()
    if "INT" in declared:
        return "INTEGER"
    if any(marker in declared for marker in ("CHAR", "CLOB", "TEXT")):
        return "TEXT"
    if not declared or any(marker in declared for marker in _TEMPORAL_MARKERS):
        return "TEXT"
    if "BLOB" in declared:
        return "BLOB"
    if any(marker in declared for marker in ("REAL", "FLOA", "DOUB")):
        return "REAL"
    return "NUMERIC"


class SQLiteAdapter(StatementExecutorPort, SchemaPort):
    """SQLite implementation of the executor and schema ports.

    Parameters:
        db_config: DatabaseConfig with db_type 'sqlite' (preferred)
        db_path: Path to the database file, or ':memory:'
        query_cache_enabled: Cache SELECT results until the next write

    Example Usage:
        ```python
        adapter = SQLiteAdapter(db_path=":memory:")
        adapter.execute_script("CREATE TABLE cats (id INTEGER PRIMARY KEY, name TEXT)")
        updater = BatchUpdater(executor=adapter, schema=adapter)
        ```
    """

    dialect = "sqlite"

    def __init__(
        self,
        db_config: Optional[DatabaseConfig] = None,
        db_path: Optional[str] = None,
        query_cache_enabled: bool = False
    ):
        if db_config:
            if db_config.db_type != "sqlite":
                raise StorageError(
                    f"DatabaseConfig type '{db_config.db_type}' does not match SQLite adapter",
                    operation="__init__"
                )
            db_path = db_config.db_path

        self.db_path = db_path or ":memory:"
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()
        self._schema_cache: Dict[str, Dict[str, Any]] = {}
        self._audit_schema_initialized = False
        self.query_cache = QueryCache(enabled=query_cache_enabled)

    def _get_connection(self) -> sqlite3.Connection:
        if self._conn is None:
            if self.db_path != ":memory:" and not Path(self.db_path).parent.exists():
                raise StorageError(
                    f"Database directory does not exist: {Path(self.db_path).parent}",
                    operation="connect"
                )
            try:
                self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
                logger.info(f"Opened SQLite database: {self.db_path}")
            except sqlite3.Error as e:
                raise StorageError(f"Failed to open SQLite database: {str(e)}", operation="connect") from e
        return self._conn

    def execute_script(self, script: str) -> None:
        """Run DDL or other multi-statement SQL and commit."""
        with self._lock:
            conn = self._get_connection()
            try:
                conn.executescript(script)
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise StorageError(f"Failed to execute script: {str(e)}", operation="execute_script") from e
            self._schema_cache.clear()
            self.query_cache.clear()

    # ------------------------------------------------------------------
    # StatementExecutorPort
    # ------------------------------------------------------------------

    def execute_update(self, sql: str) -> int:
        """Execute one UPDATE statement in its own transaction.

        Returns:
            Number of rows the statement updated

        Raises:
            StorageError: If the statement fails (the transaction is rolled back)
        """
        with self._lock:
            conn = self._get_connection()
            # cursor.rowcount stays -1 for statements starting with WITH
            changes_before = conn.total_changes
            try:
                conn.execute(sql)
                affected = conn.total_changes - changes_before
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise StorageError(
                    f"Failed to execute batch update: {str(e)}",
                    operation="execute_update"
                ) from e
        logger.debug(f"Executed UPDATE ({len(sql)} chars), {affected} rows affected")
        return affected

    @property
    def query_cache_enabled(self) -> bool:
        return self.query_cache.enabled

    def clear_query_cache(self) -> None:
        self.query_cache.clear()

    def select_all(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[tuple]:
        """Run a SELECT and return every row, through the query cache."""
        return self.query_cache.fetch(sql, params, self._run_select)

    def _run_select(self, sql: str, params: tuple) -> List[tuple]:
        with self._lock:
            try:
                return self._get_connection().execute(sql, params).fetchall()
            except sqlite3.Error as e:
                raise StorageError(f"Failed to run query: {str(e)}", operation="select_all") from e

    # ------------------------------------------------------------------
    # SchemaPort
    # ------------------------------------------------------------------

    def _table_schema(self, table_name: str) -> Dict[str, Any]:
        with self._lock:
            if table_name in self._schema_cache:
                return self._schema_cache[table_name]

            quoted = '"' + table_name.replace('"', '""') + '"'
            try:
                rows = self._get_connection().execute(f"PRAGMA table_info({quoted})").fetchall()
            except sqlite3.Error as e:
                raise StorageError(f"Failed to inspect table {table_name}: {str(e)}", operation="inspect") from e
            if not rows:
                raise StorageError(f"Table {table_name} not found", operation="inspect")

            # PRAGMA table_info rows: (cid, name, type, notnull, dflt_value, pk)
            schema = {
                "columns": [row[1] for row in rows],
                "types": {row[1]: sqlite_cast_type(row[2]) for row in rows},
                "primary_key": [row[1] for row in sorted((r for r in rows if r[5]), key=lambda r: r[5])],
            }
            self._schema_cache[table_name] = schema
            return schema

    def column_names(self, table_name: str) -> List[str]:
        return list(self._table_schema(table_name)["columns"])

    def column_types(self, table_name: str) -> Mapping[str, str]:
        return dict(self._table_schema(table_name)["types"])

    def primary_key(self, table_name: str) -> List[str]:
        primary_key = self._table_schema(table_name)["primary_key"]
        if not primary_key:
            raise StorageError(f"Table {table_name} has no primary key; pass key_spec explicitly",
                               operation="primary_key")
        return list(primary_key)

    # ------------------------------------------------------------------
    # Change audit log
    # ------------------------------------------------------------------

    def initialize_audit_schema(self) -> Result[None]:
        """Create the change_audit_log table if it doesn't exist."""
        if self._audit_schema_initialized:
            return Result.success_result(None)
        try:
            self.execute_script("""
                CREATE TABLE IF NOT EXISTS change_audit_log (
                    change_id TEXT PRIMARY KEY,
                    table_name TEXT NOT NULL,
                    record_id TEXT NOT NULL,
                    field_name TEXT NOT NULL,
                    old_value TEXT,
                    new_value TEXT,
                    change_type TEXT NOT NULL,
                    changed_at TEXT NOT NULL,
                    ingestion_id TEXT,
                    source_adapter TEXT,
                    changed_by TEXT
                );
            """)
        except StorageError as e:
            logger.error(f"Failed to initialize change audit schema: {str(e)}")
            return Result.failure_result(e, error_type="StorageError")
        self._audit_schema_initialized = True
        return Result.success_result(None)

    def flush_change_logs(self, change_logs: List[dict]) -> Result[int]:
        """Flush change audit logs in a single transaction.

        Returns:
            Result[int]: Number of logs persisted or error
        """
        if not change_logs:
            return Result.success_result(0)

        init_result = self.initialize_audit_schema()
        if not init_result.is_success():
            return Result.failure_result(init_result.error, error_type=init_result.error_type)

        values = [
            (
                log_entry.get('change_id', str(uuid.uuid4())),
                log_entry.get('table_name'),
                log_entry.get('record_id'),
                log_entry.get('field_name'),
                log_entry.get('old_value'),
                log_entry.get('new_value'),
                log_entry.get('change_type'),
                str(log_entry.get('changed_at', datetime.now())),
                log_entry.get('ingestion_id'),
                log_entry.get('source_adapter'),
                log_entry.get('changed_by', 'system')
            )
            for log_entry in change_logs
        ]
        placeholders = ", ".join("?" for _ in CHANGE_LOG_COLUMNS)

        with self._lock:
            conn = self._get_connection()
            try:
                conn.executemany(
                    f"INSERT INTO change_audit_log ({', '.join(CHANGE_LOG_COLUMNS)}) VALUES ({placeholders})",
                    values
                )
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                error_msg = f"Failed to flush change logs: {str(e)}"
                logger.error(error_msg, exc_info=True)
                return Result.failure_result(
                    StorageError(error_msg, operation="flush_change_logs"),
                    error_type="StorageError"
                )

        logger.info(f"Flushed {len(change_logs)} change audit logs to database")
        return Result.success_result(len(change_logs))

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
                logger.info("Closed SQLite database")
