"""PostgreSQL Storage Adapter.

This adapter implements the StatementExecutorPort and SchemaPort contracts for
PostgreSQL, the primary target of the batch updater.

Security Impact:
    - Connection credentials are managed via configuration and never logged
    - Statements are logged by size only, never by content (they carry field values)
    - SSL connections supported for secure network communication

Architecture:
    - Implements StatementExecutorPort and SchemaPort (Hexagonal Architecture)
    - Isolated from domain core - only depends on ports and models
    - psycopg2 connection pool for statement execution
    - SQLAlchemy inspector for schema introspection (column types, primary keys)
    - Change audit trail is append-only
"""

import logging
import threading
import uuid
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence

from psycopg2 import pool
from psycopg2.extras import execute_values
from sqlalchemy import create_engine, inspect

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


class PostgreSQLAdapter(StatementExecutorPort, SchemaPort):
    """PostgreSQL implementation of the executor and schema ports.

    Parameters:
        db_config: DatabaseConfig from configuration manager (preferred)
        connection_string: Full PostgreSQL connection string
        host: Database host (if not using connection_string)
        port: Database port (default: 5432)
        database: Database name
        username: Database username
        password: Database password
        ssl_mode: SSL mode (require, prefer, disable)
        pool_size: Connection pool size (default: 5)
        max_overflow: Maximum connection pool overflow (default: 10)
        query_cache_enabled: Cache SELECT results until the next write

    Example Usage:
        ```python
        from batch_update.infrastructure.config_manager import get_database_config

        adapter = PostgreSQLAdapter(db_config=get_database_config())
        updater = BatchUpdater(executor=adapter, schema=adapter)
        ```
    """

    dialect = "postgresql"

    def __init__(
        self,
        db_config: Optional[DatabaseConfig] = None,
        connection_string: Optional[str] = None,
        host: Optional[str] = None,
        port: int = 5432,
        database: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        ssl_mode: Optional[str] = None,
        pool_size: int = 5,
        max_overflow: int = 10,
        query_cache_enabled: bool = False
    ):
        self._connection_pool: Optional[pool.ThreadedConnectionPool] = None
        self._engine = None
        self._schema_cache: Dict[str, Dict[str, Any]] = {}
        self._schema_lock = threading.Lock()
        self._audit_schema_initialized = False
        self.query_cache = QueryCache(enabled=query_cache_enabled)

        if db_config:
            if db_config.db_type != "postgresql":
                raise StorageError(
                    f"DatabaseConfig type '{db_config.db_type}' does not match PostgreSQL adapter",
                    operation="__init__"
                )

            if db_config.connection_string:
                self.connection_params = {"dsn": db_config.connection_string.get_secret_value()}
            else:
                if not all([db_config.host, db_config.database]):
                    raise StorageError(
                        "PostgreSQL DatabaseConfig requires host and database",
                        operation="__init__"
                    )

                self.connection_params = {
                    "host": db_config.host,
                    "port": db_config.port or 5432,
                    "database": db_config.database,
                    "user": db_config.username,
                    "sslmode": db_config.ssl_mode or "prefer",
                }
                if db_config.password:
                    self.connection_params["password"] = db_config.password.get_secret_value()

            self.pool_size = db_config.pool_size
            self.max_overflow = db_config.max_overflow

        elif connection_string:
            self.connection_params = {"dsn": connection_string}
            self.pool_size = pool_size
            self.max_overflow = max_overflow
        else:
            if not all([host, database]):
                raise StorageError(
                    "PostgreSQL adapter requires either db_config, connection_string, or (host and database)",
                    operation="__init__"
                )

            self.connection_params = {
                "host": host,
                "port": port,
                "database": database,
                "user": username,
                "password": password,
                "sslmode": ssl_mode or "prefer",
            }
            self.pool_size = pool_size
            self.max_overflow = max_overflow

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    def _get_connection_pool(self) -> pool.ThreadedConnectionPool:
        """Get or create PostgreSQL connection pool."""
        if self._connection_pool is None:
            try:
                self._connection_pool = pool.ThreadedConnectionPool(
                    minconn=1,
                    maxconn=self.pool_size + self.max_overflow,
                    **self.connection_params
                )
                logger.info("Created PostgreSQL connection pool")
            except Exception as e:
                raise StorageError(
                    f"Failed to create PostgreSQL connection pool: {type(e).__name__}",
                    operation="connect",
                    details={"host": self.connection_params.get("host", "N/A")}
                ) from e
        return self._connection_pool

    def _get_connection(self):
        """Get a connection from the pool.

        Raises:
            StorageError: If connection cannot be obtained
        """
        try:
            return self._get_connection_pool().getconn()
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(
                f"Failed to get connection from pool: {str(e)}",
                operation="get_connection"
            ) from e

    def _return_connection(self, conn) -> None:
        """Return a connection to the pool."""
        try:
            self._get_connection_pool().putconn(conn)
        except Exception as e:
            logger.warning(f"Error returning connection to pool: {str(e)}")

    def _get_engine(self):
        """SQLAlchemy engine used only for schema introspection."""
        if self._engine is None:
            dsn = self.connection_params.get("dsn")
            if dsn:
                url = dsn.replace("postgres://", "postgresql://", 1)
                url = url.replace("postgresql://", "postgresql+psycopg2://", 1)
                self._engine = create_engine(url)
            else:
                connect_args = {k: v for k, v in self.connection_params.items() if v is not None}
                self._engine = create_engine(
                    "postgresql+psycopg2://",
                    connect_args=connect_args
                )
        return self._engine

    # ------------------------------------------------------------------
    # StatementExecutorPort
    # ------------------------------------------------------------------

    def execute_update(self, sql: str) -> int:
        """Execute one UPDATE statement in its own transaction.

        Parameters:
            sql: Rendered statement

        Returns:
            Number of rows the statement updated

        Raises:
            StorageError: If the statement fails (the transaction is rolled back)
        """
        conn = self._get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute(sql)
            affected = cursor.rowcount
            conn.commit()
            cursor.close()
            logger.debug(f"Executed UPDATE ({len(sql)} chars), {affected} rows affected")
            return affected
        except Exception as e:
            conn.rollback()
            raise StorageError(
                f"Failed to execute batch update: {str(e)}",
                operation="execute_update"
            ) from e
        finally:
            self._return_connection(conn)

    @property
    def query_cache_enabled(self) -> bool:
        return self.query_cache.enabled

    def clear_query_cache(self) -> None:
        self.query_cache.clear()

    def select_all(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[tuple]:
        """Run a SELECT and return every row, through the query cache."""
        return self.query_cache.fetch(sql, params, self._run_select)

    def _run_select(self, sql: str, params: tuple) -> List[tuple]:
        conn = self._get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute(sql, params or None)
            rows = cursor.fetchall()
            cursor.close()
            return rows
        except Exception as e:
            conn.rollback()
            raise StorageError(f"Failed to run query: {str(e)}", operation="select_all") from e
        finally:
            self._return_connection(conn)

    # ------------------------------------------------------------------
    # SchemaPort
    # ------------------------------------------------------------------

    def _table_schema(self, table_name: str) -> Dict[str, Any]:
        """Reflect and cache column names, cast types and primary key of a table."""
        with self._schema_lock:
            if table_name in self._schema_cache:
                return self._schema_cache[table_name]

            try:
                engine = self._get_engine()
                inspector = inspect(engine)
                columns = inspector.get_columns(table_name)
                pk = inspector.get_pk_constraint(table_name)
            except Exception as e:
                raise StorageError(
                    f"Failed to inspect table {table_name}: {str(e)}",
                    operation="inspect"
                ) from e

            if not columns:
                raise StorageError(f"Table {table_name} not found", operation="inspect")

            schema = {
                "columns": [col["name"] for col in columns],
                "types": {col["name"]: col["type"].compile(dialect=engine.dialect) for col in columns},
                "primary_key": list(pk.get("constrained_columns") or []),
            }
            self._schema_cache[table_name] = schema
            logger.debug(f"Reflected {len(schema['columns'])} columns of {table_name}")
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

    def reset_schema_cache(self) -> None:
        """Forget reflected table metadata (after migrations)."""
        with self._schema_lock:
            self._schema_cache.clear()

    # ------------------------------------------------------------------
    # Change audit log
    # ------------------------------------------------------------------

    def initialize_audit_schema(self) -> Result[None]:
        """Create the change_audit_log table if it doesn't exist."""
        if self._audit_schema_initialized:
            return Result.success_result(None)

        conn = None
        try:
            conn = self._get_connection()
            cursor = conn.cursor()
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS change_audit_log (
                    change_id VARCHAR(36) PRIMARY KEY,
                    table_name VARCHAR(255) NOT NULL,
                    record_id VARCHAR(255) NOT NULL,
                    field_name VARCHAR(255) NOT NULL,
                    old_value TEXT,
                    new_value TEXT,
                    change_type VARCHAR(16) NOT NULL,
                    changed_at TIMESTAMP NOT NULL,
                    ingestion_id VARCHAR(64),
                    source_adapter VARCHAR(255),
                    changed_by VARCHAR(255)
                )
            """)
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_change_audit_log_record "
                "ON change_audit_log (table_name, record_id)"
            )
            conn.commit()
            cursor.close()
            self._audit_schema_initialized = True
            return Result.success_result(None)
        except Exception as e:
            if conn:
                conn.rollback()
            error_msg = f"Failed to initialize change audit schema: {str(e)}"
            logger.error(error_msg, exc_info=True)
            return Result.failure_result(
                StorageError(error_msg, operation="initialize_audit_schema"),
                error_type="StorageError"
            )
        finally:
            if conn:
                self._return_connection(conn)

    def flush_change_logs(self, change_logs: List[dict]) -> Result[int]:
        """Flush change audit logs to the database in a single transaction.

        Parameters:
            change_logs: List of change log dictionaries (from ChangeAuditLogger.get_logs())

        Returns:
            Result[int]: Number of logs persisted or error
        """
        if not change_logs:
            return Result.success_result(0)

        init_result = self.initialize_audit_schema()
        if not init_result.is_success():
            return Result.failure_result(init_result.error, error_type=init_result.error_type)

        conn = None
        try:
            conn = self._get_connection()
            cursor = conn.cursor()

            values = [
                (
                    log_entry.get('change_id', str(uuid.uuid4())),
                    log_entry.get('table_name'),
                    log_entry.get('record_id'),
                    log_entry.get('field_name'),
                    log_entry.get('old_value'),
                    log_entry.get('new_value'),
                    log_entry.get('change_type'),
                    log_entry.get('changed_at', datetime.now()),
                    log_entry.get('ingestion_id'),
                    log_entry.get('source_adapter'),
                    log_entry.get('changed_by', 'system')
                )
                for log_entry in change_logs
            ]

            execute_values(
                cursor,
                f"INSERT INTO change_audit_log ({', '.join(CHANGE_LOG_COLUMNS)}) VALUES %s",
                values,
                page_size=10000
            )

            conn.commit()
            cursor.close()

            logger.info(f"Flushed {len(change_logs)} change audit logs to database")
            return Result.success_result(len(change_logs))

        except Exception as e:
            if conn:
                conn.rollback()
            error_msg = f"Failed to flush change logs: {str(e)}"
            logger.error(error_msg, exc_info=True)
            return Result.failure_result(
                StorageError(error_msg, operation="flush_change_logs"),
                error_type="StorageError"
            )
        finally:
            if conn:
                self._return_connection(conn)

    def close(self) -> None:
        """Close connection pool and engine, releasing resources."""
        if self._connection_pool is not None:
            try:
                self._connection_pool.closeall()
                logger.info("Closed PostgreSQL connection pool")
            except Exception as e:
                logger.warning(f"Error closing connection pool: {str(e)}")
            self._connection_pool = None
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
