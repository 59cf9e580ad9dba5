"""Batch Update Orchestrator.

Persists the changed fields of many records with as few UPDATE statements as
possible. The updater selects records with relevant changes, stamps the update
timestamp, validates, turns each record into a PatchTuple, asks the
BatchStatementBuilder for statements and executes them in order.

Rows deleted by a concurrent actor are never re-inserted: the statements are
UPDATE ... FROM joins, so a missing row simply matches nothing.

Architecture:
    - Depends only on ports (StatementExecutorPort, SchemaPort, ChangeTrackingRecord)
    - Statement synthesis stays in the pure builder; execution goes through the executor
    - A validation or schema error aborts before any statement is executed
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, List, Optional, Sequence, Union

from batch_update.domain.cdc_models import UpdateResult
from batch_update.domain.patch_models import KeySpec, PatchTuple
from batch_update.domain.ports import ChangeTrackingRecord, SchemaPort, StatementExecutorPort
from batch_update.domain.services.sql_literals import DEFAULT_DIALECT
from batch_update.domain.services.statement_builder import (
    DEFAULT_BATCH_SIZE,
    BatchStatementBuilder,
)

logger = logging.getLogger(__name__)


class _AllColumns:
    def __repr__(self) -> str:
        return "ALL_COLUMNS"


# Sentinel resolved against the live schema's column list.
ALL_COLUMNS = _AllColumns()

ColumnsInput = Union[_AllColumns, str, Iterable[str]]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BatchUpdater:
    """Update orchestrator for change-tracking records.

    Parameters:
        executor: Executes statements and owns the query cache
        schema: Column names, SQL types and primary keys of the live schema
        builder: Statement builder (default: the executor's dialect, batch_updates CTE)
        timestamp_column: Column stamped on every updated record; None disables stamping
        clock: Returns the timestamp to stamp
        batch_size: Default rows per statement
        validate: Default for validating records before building statements
        change_logger: Optional ChangeAuditLogger receiving one event per written field

    Example Usage:
        ```python
        adapter = SQLiteAdapter(db_path=":memory:")
        updater = BatchUpdater(executor=adapter, schema=adapter)
        result = updater.batch_update("cats", [cat1, cat2], columns=["name"])
        result.rows_affected
        ```
    """

    def __init__(
        self,
        executor: StatementExecutorPort,
        schema: SchemaPort,
        builder: Optional[BatchStatementBuilder] = None,
        timestamp_column: Optional[str] = "updated_at",
        clock: Callable[[], datetime] = _utc_now,
        batch_size: int = DEFAULT_BATCH_SIZE,
        validate: bool = True,
        change_logger: Optional[Any] = None
    ):
        self.executor = executor
        self.schema = schema
        self.builder = builder or BatchStatementBuilder(dialect=getattr(executor, "dialect", DEFAULT_DIALECT))
        self.timestamp_column = timestamp_column
        self.clock = clock
        self.batch_size = batch_size
        self.validate = validate
        self.change_logger = change_logger

    def resolve_columns(self, table_name: str, columns: ColumnsInput) -> List[str]:
        """Resolve the column allow-list, appending the timestamp column."""
        if columns is ALL_COLUMNS:
            resolved = list(self.schema.column_names(table_name))
        elif isinstance(columns, str):
            resolved = [columns]
        else:
            resolved = [str(col) for col in columns]
        if self.timestamp_column:
            resolved.append(self.timestamp_column)
        return list(dict.fromkeys(resolved))

    def build_patches(
        self,
        records: Sequence[ChangeTrackingRecord],
        columns: Sequence[str],
        key_spec: KeySpec
    ) -> List[PatchTuple]:
        """Key columns plus changed allow-listed columns, read from each record."""
        allowed = set(columns)
        patches = []
        for record in records:
            names = list(key_spec.columns) + [col for col in record.changed_columns() if col in allowed]
            patches.append(PatchTuple((name, record.read(name)) for name in dict.fromkeys(names)))
        return patches

    def batch_update(
        self,
        table_name: str,
        records: Iterable[ChangeTrackingRecord],
        columns: ColumnsInput = ALL_COLUMNS,
        batch_size: Optional[int] = None,
        validate: Optional[bool] = None,
        key_spec: Union[KeySpec, str, Iterable[str], None] = None
    ) -> UpdateResult:
        """Write the changed fields of ``records`` to ``table_name``.

        Parameters:
            table_name: Target table
            records: Records to persist; unchanged ones are skipped
            columns: Allow-list of columns to write, or ALL_COLUMNS
            batch_size: Rows per statement (default: updater default)
            validate: Validate records first (default: updater default)
            key_spec: Row-matching columns (default: the table's primary key)

        Returns:
            UpdateResult with the summed affected-row count

        Raises:
            RecordValidationError: If a record fails validation (nothing executed)
            SchemaMismatchError: If a written column has no known SQL type (nothing executed)
            InvalidArgumentError: If batch_size or key_spec is invalid (nothing executed)
            StorageError: If the database rejects a statement
        """
        records = list(records)
        batch_size = self.batch_size if batch_size is None else batch_size
        validate = self.validate if validate is None else validate

        columns = self.resolve_columns(table_name, columns)
        allowed = set(columns)

        entries = [record for record in records if allowed.intersection(record.changed_columns())]
        if not entries:
            logger.debug(f"No changed records for {table_name}, nothing to update")
            return UpdateResult(records_considered=len(records))

        if self.timestamp_column and self.schema.has_column(table_name, self.timestamp_column):
            now = self.clock()
            for record in entries:
                record.write(self.timestamp_column, now)

        if validate:
            for record in entries:
                record.validate()

        if key_spec is None:
            key_spec = KeySpec(tuple(self.schema.primary_key(table_name)))
        else:
            key_spec = KeySpec.coerce(key_spec)

        patches = self.build_patches(entries, columns, key_spec)
        statements = self.builder.build_statements(
            patches,
            table_name,
            self.schema.column_types(table_name),
            key_spec=key_spec,
            batch_size=batch_size,
        )

        rows_affected = 0
        for sql in statements:
            rows_affected += self.executor.execute_update(sql)

        if self.executor.query_cache_enabled:
            self.executor.clear_query_cache()

        fields_changed = sum(len(patch) - len(key_spec) for patch in patches)
        changes_logged = self._log_changes(table_name, entries, patches, key_spec)

        logger.info(
            f"Batch updated {table_name}: {len(entries)} records, "
            f"{len(statements)} statements, {rows_affected} rows affected"
        )

        return UpdateResult(
            records_considered=len(records),
            records_updated=len(entries),
            statements_executed=len(statements),
            rows_affected=rows_affected,
            fields_changed=fields_changed,
            changes_logged=changes_logged,
        )

    def _log_changes(
        self,
        table_name: str,
        records: Sequence[ChangeTrackingRecord],
        patches: Sequence[PatchTuple],
        key_spec: KeySpec
    ) -> int:
        if self.change_logger is None:
            return 0

        count = 0
        for record, patch in zip(records, patches):
            record_id = ':'.join(str(patch[col]) for col in key_spec)
            for column in patch.signature.without(key_spec.columns):
                self.change_logger.log_change(
                    table_name=table_name,
                    record_id=record_id,
                    field_name=column,
                    old_value=record.original(column),
                    new_value=patch[column],
                    change_type="UPDATE",
                )
                count += 1

        flush = getattr(self.executor, "flush_change_logs", None)
        if flush is not None and count:
            result = flush(self.change_logger.get_logs())
            if result.is_success():
                self.change_logger.clear_logs()
            else:
                logger.warning(f"Failed to flush change logs for {table_name}: {result.error}")
        return count
