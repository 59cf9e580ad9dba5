"""Batch Statement Builder.

Turns per-record patches into the minimal set of UPDATE statements: patches
are grouped by their column signature, each group is sliced into batches, and
every batch renders into one statement that joins a VALUES-based CTE against
the target table:

    WITH "batch_updates" (id, name) AS ( VALUES (CAST(1 AS INTEGER), CAST('foo' AS varchar)), (2, 'bar') )
    UPDATE "cats" SET "name" = "batch_updates"."name"
    FROM "batch_updates"
    WHERE "cats"."id" = "batch_updates"."id"

Only the first VALUES row is cast; the database infers the remaining rows'
types from it. An UPDATE ... FROM never inserts, so rows deleted by another
actor stay deleted.

Architecture:
    - Pure domain service: no I/O, no shared state, safe to call concurrently
    - All-or-nothing: either the full ordered statement list is returned or an
      error is raised
"""

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Union

from batch_update.domain.patch_models import (
    Batch,
    ColumnSignature,
    KeySpec,
    PatchTuple,
    RenderedStatement,
)
from batch_update.domain.ports import (
    InternalInvariantViolation,
    InvalidArgumentError,
    SchemaMismatchError,
)
from batch_update.domain.services.sql_literals import (
    DEFAULT_DIALECT,
    cast_value,
    normalize_dialect,
    quote_identifier,
    quote_value,
)

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 100
DEFAULT_PATCH_TABLE = "batch_updates"

PatchInput = Union[PatchTuple, Mapping]
KeySpecInput = Union[KeySpec, str, Iterable[str], None]


class BatchStatementBuilder:
    """Synthesizes UPDATE ... FROM statements for batches of patches.

    Parameters:
        patch_table: Name of the CTE holding the batch values
        dialect: SQL dialect used for literal escaping

    Example Usage:
        ```python
        builder = BatchStatementBuilder()
        statements = builder.build_statements(
            [{"id": 1, "name": "foo"}, {"id": 2, "name": "bar"}],
            table_name="cats",
            column_types={"id": "INTEGER", "name": "varchar"},
        )
        ```
    """

    def __init__(self, patch_table: str = DEFAULT_PATCH_TABLE, dialect: str = DEFAULT_DIALECT):
        if not patch_table:
            raise InvalidArgumentError("Patch table name must not be empty")
        self.patch_table = patch_table
        self.dialect = normalize_dialect(dialect)

    def plan(
        self,
        patches: Iterable[PatchInput],
        key_spec: KeySpecInput = None,
        batch_size: int = DEFAULT_BATCH_SIZE
    ) -> List[Batch]:
        """Group patches by column signature and slice each group into batches.

        Parameters:
            patches: One patch per record (PatchTuple or plain mapping)
            key_spec: Columns identifying a row (default ``id``)
            batch_size: Maximum patches per batch

        Returns:
            Batches ordered by signature, then by slice position

        Raises:
            InvalidArgumentError: If batch_size is not positive, the key spec is
                                  empty, or a patch lacks a key column
        """
        if isinstance(batch_size, bool) or not isinstance(batch_size, int) or batch_size <= 0:
            raise InvalidArgumentError(f"Batch size must be a positive integer, got {batch_size!r}")
        key_spec = KeySpec.coerce(key_spec)

        groups: Dict[ColumnSignature, List[PatchTuple]] = {}
        for patch in patches:
            if not isinstance(patch, PatchTuple):
                patch = PatchTuple(patch)
            groups.setdefault(patch.signature, []).append(patch)

        batches: List[Batch] = []
        for signature in sorted(groups):
            if not signature.without(key_spec.columns):
                # nothing to SET
                continue
            missing = [col for col in key_spec if col not in signature]
            if missing:
                raise InvalidArgumentError(
                    f"Patches with columns {list(signature)} are missing key columns {missing}"
                )
            items = groups[signature]
            for start in range(0, len(items), batch_size):
                batches.append(Batch(signature, tuple(items[start:start + batch_size])))

        logger.debug(f"Planned {len(batches)} batches from {len(groups)} column signatures")
        return batches

    def render(
        self,
        batch: Batch,
        key_spec: KeySpecInput,
        table_name: str,
        column_types: Mapping[str, str]
    ) -> RenderedStatement:
        """Render one batch as a single UPDATE statement.

        Parameters:
            batch: Patches sharing one column signature
            key_spec: Columns matched in the WHERE clause
            table_name: Target table
            column_types: Column name to SQL type, used for the first-row casts

        Returns:
            The SQL statement text

        Raises:
            SchemaMismatchError: If a batch column has no entry in column_types
            InternalInvariantViolation: If the batch has no non-key columns
        """
        key_spec = KeySpec.coerce(key_spec)
        columns = batch.signature.columns

        unknown = [col for col in columns if col not in column_types]
        if unknown:
            raise SchemaMismatchError(
                f"No SQL type known for column '{unknown[0]}' of table '{table_name}'",
                table_name=table_name,
                column=unknown[0],
            )

        update_columns = batch.update_columns(key_spec)
        if not update_columns:
            raise InternalInvariantViolation(
                f"Batch with columns {list(columns)} has nothing to update besides key columns {list(key_spec)}"
            )
        if not batch.patches:
            raise InternalInvariantViolation("Cannot render an empty batch")

        patch_table = quote_identifier(self.patch_table)
        target_table = quote_identifier(table_name)

        # Header column names are emitted bare, so mixed-case or reserved-word
        # columns (e.g. "order") do not render valid SQL.
        return " ".join([
            f"WITH {patch_table} ({', '.join(columns)})",
            f"AS ( {self._values_clause(batch, column_types)} )",
            self._update_clause(target_table, patch_table, update_columns),
            f"FROM {patch_table}",
            f"WHERE {self._where_clause(target_table, patch_table, key_spec)}",
        ])

    def build_statements(
        self,
        patches: Iterable[PatchInput],
        table_name: str,
        column_types: Mapping[str, str],
        key_spec: KeySpecInput = None,
        batch_size: int = DEFAULT_BATCH_SIZE
    ) -> List[RenderedStatement]:
        """Plan and render every batch, returning the ordered statement list."""
        key_spec = KeySpec.coerce(key_spec)
        batches = self.plan(patches, key_spec, batch_size)
        statements = [self.render(batch, key_spec, table_name, column_types) for batch in batches]
        logger.debug(f"Rendered {len(statements)} UPDATE statements for {table_name}")
        return statements

    def _values_clause(self, batch: Batch, column_types: Mapping[str, str]) -> str:
        first, *rest = batch.patches
        columns = batch.signature.columns
        rows = [[cast_value(first[col], column_types[col], self.dialect) for col in columns]]
        rows.extend([quote_value(patch[col], self.dialect) for col in columns] for patch in rest)
        return "VALUES " + ", ".join(f"({', '.join(row)})" for row in rows)

    @staticmethod
    def _update_clause(target_table: str, patch_table: str, update_columns) -> str:
        assignments = ", ".join(
            f"{quote_identifier(col)} = {patch_table}.{quote_identifier(col)}" for col in update_columns
        )
        return f"UPDATE {target_table} SET {assignments}"

    @staticmethod
    def _where_clause(target_table: str, patch_table: str, key_spec: KeySpec) -> str:
        return " AND ".join(
            f"{target_table}.{quote_identifier(col)} = {patch_table}.{quote_identifier(col)}" for col in key_spec
        )


def build_statements(
    patches: Iterable[PatchInput],
    table_name: str,
    column_types: Mapping[str, str],
    key_spec: KeySpecInput = None,
    batch_size: int = DEFAULT_BATCH_SIZE,
    patch_table: str = DEFAULT_PATCH_TABLE,
    dialect: str = DEFAULT_DIALECT,
    builder: Optional[BatchStatementBuilder] = None
) -> List[RenderedStatement]:
    """Convenience wrapper around BatchStatementBuilder.build_statements()."""
    builder = builder or BatchStatementBuilder(patch_table=patch_table, dialect=dialect)
    return builder.build_statements(patches, table_name, column_types, key_spec=key_spec, batch_size=batch_size)
