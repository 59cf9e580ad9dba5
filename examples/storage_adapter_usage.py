"""Example usage of the batch updater with storage adapters.

This example demonstrates updating change-tracked records through the SQLite
adapter, rendering statements without a database, and turning DataFrame
differences into patches.
"""

from datetime import date

import pandas as pd

from batch_update import BatchStatementBuilder, TrackedRecord
from batch_update.adapters.storage.sqlite_adapter import SQLiteAdapter
from batch_update.domain.services.change_detector import ChangeDetector
from batch_update.infrastructure.audit.change_audit_logger import ChangeAuditLogger
from batch_update.main import create_batch_updater


def example_sqlite_batch_update():
    """Example: Updating tracked records through the SQLite adapter."""
    print("=== SQLite Batch Update ===")

    adapter = SQLiteAdapter(db_path=":memory:")
    adapter.execute_script("""
        CREATE TABLE cats (id INTEGER PRIMARY KEY, name TEXT, birthday DATE, updated_at DATETIME);
        INSERT INTO cats (id, name, birthday) VALUES (1, 'Felix', '2010-01-01'), (2, 'Tom', '2012-06-15');
    """)

    columns = adapter.column_names("cats")
    cats = [TrackedRecord(dict(zip(columns, row))) for row in adapter.select_all("SELECT * FROM cats ORDER BY id")]
    cats[0]["name"] = "Garfield"
    cats[1]["birthday"] = date(2013, 1, 1)

    updater = create_batch_updater(adapter=adapter, audit_changes=True)
    result = updater.batch_update("cats", cats)
    print(f"SUCCESS: {result.statements_executed} statements, {result.rows_affected} rows affected")

    for row in adapter.select_all("SELECT id, name, birthday FROM cats ORDER BY id"):
        print(f"  {row}")

    adapter.close()


def example_render_only():
    """Example: Rendering statements without touching a database."""
    print("\n=== Render Statements ===")

    builder = BatchStatementBuilder()
    statements = builder.build_statements(
        [{"id": 1, "name": "foo"}, {"id": 2, "name": "bar"}],
        table_name="cats",
        column_types={"id": "INTEGER", "name": "varchar"},
    )
    for sql in statements:
        print(sql)


def example_dataframe_patches():
    """Example: Building patches from DataFrame differences."""
    print("\n=== DataFrame Patches ===")

    existing = pd.DataFrame({"id": [1, 2], "name": ["Felix", "Tom"], "age": [3, 4]})
    incoming = pd.DataFrame({"id": [1, 2], "name": ["Felix", "Thomas"], "age": [4, 4]})

    patches = ChangeDetector().build_patches(existing, incoming, "id")
    for sql in BatchStatementBuilder().build_statements(
        patches, "cats", {"id": "INTEGER", "name": "text", "age": "integer"}
    ):
        print(sql)


def example_change_audit():
    """Example: Inspecting buffered change events."""
    print("\n=== Change Audit ===")

    audit = ChangeAuditLogger()
    audit.set_ingestion_context(ingestion_id="example-run", source_adapter="example")
    audit.log_change(table_name="cats", record_id="1", field_name="name",
                     old_value="Felix", new_value="Garfield")
    print(f"Buffered {audit.get_log_count()} change events")


if __name__ == "__main__":
    example_sqlite_batch_update()
    example_render_only()
    example_dataframe_patches()
    example_change_audit()
