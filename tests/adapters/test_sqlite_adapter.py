"""Integration tests for SQLiteAdapter.

These tests run real statements against an in-memory SQLite database:
- Schema introspection (columns, cast types, primary keys)
- Round trip of values through rendered batch statements
- Missing rows are never inserted
- Query cache invalidation and change audit persistence
"""

import sqlite3
from datetime import date, datetime, timezone

import pytest

from batch_update.adapters.storage.sqlite_adapter import SQLiteAdapter, sqlite_cast_type
from batch_update.domain.ports import StorageError
from batch_update.domain.records import TrackedRecord
from batch_update.domain.services.batch_updater import BatchUpdater
from batch_update.domain.services.statement_builder import BatchStatementBuilder
from batch_update.infrastructure.audit.change_audit_logger import ChangeAuditLogger
from batch_update.infrastructure.config_manager import DatabaseConfig

requires_update_from = pytest.mark.skipif(
    sqlite3.sqlite_version_info < (3, 33, 0),
    reason="UPDATE ... FROM needs SQLite 3.33+"
)

NOW = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

CATS_DDL = """
    CREATE TABLE cats (
        id INTEGER PRIMARY KEY,
        name TEXT,
        color VARCHAR(20),
        birthday DATE,
        weight REAL,
        indoor BOOLEAN,
        updated_at DATETIME
    );
    INSERT INTO cats (id, name, color, birthday, weight, indoor) VALUES
        (1, 'Felix', 'black', '2010-01-01', 4.5, 1),
        (2, 'Tom', 'grey', '2012-06-15', 5.0, 0),
        (3, 'Garfield', 'orange', '1978-06-19', 9.0, 1);
"""


@pytest.fixture
def adapter():
    """In-memory SQLite adapter with the cats table loaded."""
    adapter = SQLiteAdapter(db_path=":memory:")
    adapter.execute_script(CATS_DDL)
    yield adapter
    adapter.close()


@pytest.fixture
def updater(adapter):
    return BatchUpdater(
        executor=adapter,
        schema=adapter,
        builder=BatchStatementBuilder(dialect="sqlite"),
        clock=lambda: NOW,
    )


def load_cats(adapter, *ids):
    """Load cats as tracked records, ordered by id."""
    columns = adapter.column_names("cats")
    placeholders = ", ".join("?" for _ in ids)
    rows = adapter.select_all(f"SELECT * FROM cats WHERE id IN ({placeholders}) ORDER BY id", ids)
    return [TrackedRecord(dict(zip(columns, row))) for row in rows]


def fetch(adapter, sql, params=()):
    return adapter._get_connection().execute(sql, params).fetchall()


class TestSqliteCastType:
    """Declared type to CAST target mapping."""

    @pytest.mark.parametrize("declared,expected", [
        ("INTEGER", "INTEGER"),
        ("BIGINT", "INTEGER"),
        ("TEXT", "TEXT"),
        ("VARCHAR(20)", "TEXT"),
        ("DATE", "TEXT"),
        ("DATETIME", "TEXT"),
        ("TIMESTAMP", "TEXT"),
        ("", "TEXT"),
        ("BLOB", "BLOB"),
        ("REAL", "REAL"),
        ("DOUBLE PRECISION", "REAL"),
        ("BOOLEAN", "NUMERIC"),
        ("DECIMAL(10,2)", "NUMERIC"),
    ])
    def test_mapping(self, declared, expected):
        assert sqlite_cast_type(declared) == expected


class TestSchema:
    """SchemaPort implementation."""

    def test_column_names(self, adapter):
        assert adapter.column_names("cats") == [
            "id", "name", "color", "birthday", "weight", "indoor", "updated_at"
        ]

    def test_column_types(self, adapter):
        types = adapter.column_types("cats")
        assert types["id"] == "INTEGER"
        assert types["color"] == "TEXT"
        assert types["birthday"] == "TEXT"
        assert types["weight"] == "REAL"

    def test_primary_key(self, adapter):
        assert adapter.primary_key("cats") == ["id"]

    def test_composite_primary_key_order(self, adapter):
        """Primary key columns come back in key order, not table order."""
        adapter.execute_script(
            "CREATE TABLE owners_cats (nick TEXT, cat_id INTEGER, owner TEXT, PRIMARY KEY (owner, cat_id))"
        )
        assert adapter.primary_key("owners_cats") == ["owner", "cat_id"]

    def test_table_without_primary_key(self, adapter):
        adapter.execute_script("CREATE TABLE notes (body TEXT)")
        with pytest.raises(StorageError, match="no primary key"):
            adapter.primary_key("notes")

    def test_unknown_table(self, adapter):
        with pytest.raises(StorageError, match="not found"):
            adapter.column_names("dogs")

    def test_has_column(self, adapter):
        assert adapter.has_column("cats", "updated_at")
        assert not adapter.has_column("cats", "owner")


class TestExecuteUpdate:
    """Statement execution."""

    @requires_update_from
    def test_returns_affected_rows(self, adapter):
        statements = BatchStatementBuilder(dialect="sqlite").build_statements(
            [{"id": 1, "name": "Felix II"}, {"id": 2, "name": "Tom II"}, {"id": 42, "name": "Nobody"}],
            "cats",
            adapter.column_types("cats"),
        )

        assert adapter.execute_update(statements[0]) == 2

    def test_invalid_statement_raises(self, adapter):
        with pytest.raises(StorageError) as exc_info:
            adapter.execute_update("UPDATE dogs SET name = 'x'")
        assert exc_info.value.operation == "execute_update"

    def test_config_type_mismatch(self):
        config = DatabaseConfig(db_type="postgresql", host="localhost", database="cats")
        with pytest.raises(StorageError, match="does not match"):
            SQLiteAdapter(db_config=config)

    def test_config_path(self, tmp_path):
        config = DatabaseConfig(db_type="sqlite", db_path=str(tmp_path / "cats.db"))
        adapter = SQLiteAdapter(db_config=config)
        adapter.execute_script("CREATE TABLE t (id INTEGER PRIMARY KEY)")
        adapter.close()
        assert (tmp_path / "cats.db").exists()


@requires_update_from
class TestBatchUpdateRoundTrip:
    """Values written through batch statements read back unchanged."""

    @pytest.mark.parametrize("text", [
        "O'Brien",
        "back\\slash",
        "  leading and trailing  ",
        "line one\nline two\ttabbed",
        "",
        "üñïcødé ✓",
        "'; DROP TABLE cats; --",
    ])
    def test_text_round_trip(self, adapter, updater, text):
        """Quotes, backslashes and whitespace survive verbatim."""
        cats = load_cats(adapter, 1, 2)
        cats[0]["name"] = text
        cats[1]["name"] = text + "!"

        updater.batch_update("cats", cats)

        assert fetch(adapter, "SELECT name FROM cats ORDER BY id") == [
            (text,), (text + "!",), ("Garfield",)
        ]

    def test_default_builder_follows_adapter_dialect(self, adapter):
        """An updater built without a builder escapes text for SQLite."""
        updater = BatchUpdater(executor=adapter, schema=adapter, clock=lambda: NOW)
        felix, = load_cats(adapter, 1)
        felix["name"] = "a\\b"

        result = updater.batch_update("cats", [felix])

        assert updater.builder.dialect == "sqlite"
        assert result.rows_affected == 1
        assert fetch(adapter, "SELECT name FROM cats WHERE id = 1") == [("a\\b",)]

    def test_mixed_columns_and_types(self, adapter, updater):
        """Records changing different columns each get exactly their changes."""
        felix, tom, garfield = load_cats(adapter, 1, 2, 3)
        felix["birthday"] = date(2011, 2, 3)
        tom["weight"] = 5.25
        tom["indoor"] = True
        garfield["color"] = None

        result = updater.batch_update("cats", [felix, tom, garfield])

        assert result.statements_executed == 3
        assert result.rows_affected == 3
        assert fetch(adapter, "SELECT id, name, color, birthday, weight, indoor FROM cats ORDER BY id") == [
            (1, "Felix", "black", "2011-02-03", 4.5, 1),
            (2, "Tom", "grey", "2012-06-15", 5.25, 1),
            (3, "Garfield", None, "1978-06-19", 9.0, 1),
        ]

    def test_timestamp_stamped(self, adapter, updater):
        felix, tom = load_cats(adapter, 1, 2)
        felix["name"] = "Garfield"

        updater.batch_update("cats", [felix, tom])

        assert fetch(adapter, "SELECT id, updated_at FROM cats ORDER BY id") == [
            (1, "2024-03-01 12:00:00+00:00"),
            (2, None),
            (3, None),
        ]

    def test_unchanged_columns_not_overwritten(self, adapter, updater):
        """A concurrent write to a column the record did not change is preserved."""
        felix, = load_cats(adapter, 1)
        adapter.execute_script("UPDATE cats SET color = 'white' WHERE id = 1")
        felix["name"] = "Felix II"

        updater.batch_update("cats", [felix])

        assert fetch(adapter, "SELECT name, color FROM cats WHERE id = 1") == [("Felix II", "white")]

    def test_deleted_row_not_reinserted(self, adapter, updater):
        """Updating a row deleted by someone else leaves it deleted."""
        felix, tom = load_cats(adapter, 1, 2)
        adapter.execute_script("DELETE FROM cats WHERE id = 1")
        felix["name"] = "Ghost"
        tom["name"] = "Tom II"

        result = updater.batch_update("cats", [felix, tom])

        assert result.rows_affected == 1
        assert fetch(adapter, "SELECT id, name FROM cats ORDER BY id") == [(2, "Tom II"), (3, "Garfield")]

    def test_many_batches(self, adapter, updater):
        felix, tom, garfield = load_cats(adapter, 1, 2, 3)
        for cat in (felix, tom, garfield):
            cat["name"] = cat["name"].upper()

        result = updater.batch_update("cats", [felix, tom, garfield], batch_size=2)

        assert result.statements_executed == 2
        assert result.rows_affected == 3
        assert fetch(adapter, "SELECT name FROM cats ORDER BY id") == [("FELIX",), ("TOM",), ("GARFIELD",)]

    def test_composite_key(self, adapter, updater):
        adapter.execute_script("""
            CREATE TABLE owners_cats (owner TEXT, cat_id INTEGER, nick TEXT, PRIMARY KEY (owner, cat_id));
            INSERT INTO owners_cats VALUES ('alice', 1, 'fluff'), ('bob', 1, 'fluff');
        """)
        columns = adapter.column_names("owners_cats")
        rows = fetch(adapter, "SELECT * FROM owners_cats ORDER BY owner")
        alice, bob = [TrackedRecord(dict(zip(columns, row))) for row in rows]
        alice["nick"] = "Sir Fluff"

        updater.batch_update("owners_cats", [alice, bob])

        assert fetch(adapter, "SELECT owner, nick FROM owners_cats ORDER BY owner") == [
            ("alice", "Sir Fluff"), ("bob", "fluff")
        ]


@requires_update_from
class TestQueryCacheAndAudit:
    """Cache invalidation and audit persistence through a real database."""

    def test_cached_reads_refreshed_after_update(self):
        adapter = SQLiteAdapter(db_path=":memory:", query_cache_enabled=True)
        adapter.execute_script(CATS_DDL)
        updater = BatchUpdater(executor=adapter, schema=adapter,
                               builder=BatchStatementBuilder(dialect="sqlite"), clock=lambda: NOW)
        query = "SELECT name FROM cats WHERE id = ?"

        assert adapter.select_all(query, (1,)) == [("Felix",)]
        assert len(adapter.query_cache) == 1

        felix, = load_cats(adapter, 1)
        felix["name"] = "Garfield"
        updater.batch_update("cats", [felix])

        assert adapter.select_all(query, (1,)) == [("Garfield",)]
        adapter.close()

    def test_change_logs_persisted(self, adapter):
        audit = ChangeAuditLogger()
        updater = BatchUpdater(executor=adapter, schema=adapter,
                               builder=BatchStatementBuilder(dialect="sqlite"),
                               clock=lambda: NOW, change_logger=audit)
        felix, = load_cats(adapter, 1)
        felix["name"] = "Garfield"

        result = updater.batch_update("cats", [felix])

        assert result.changes_logged == 2
        assert audit.get_log_count() == 0
        assert fetch(
            adapter,
            "SELECT table_name, record_id, field_name, old_value, new_value FROM change_audit_log "
            "WHERE field_name = 'name'"
        ) == [("cats", "1", "name", "Felix", "Garfield")]

    def test_flush_empty(self, adapter):
        result = adapter.flush_change_logs([])
        assert result.is_success()
        assert result.value == 0
