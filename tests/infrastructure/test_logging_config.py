"""Tests for logging setup and the application wiring helpers."""

import json
import logging
import sys
from unittest.mock import patch

import pytest

from batch_update.adapters.storage.sqlite_adapter import SQLiteAdapter
from batch_update.infrastructure.config_manager import DatabaseConfig
from batch_update.infrastructure.logging_config import StructuredFormatter, setup_logging
from batch_update.main import create_batch_updater, create_storage_adapter


@pytest.fixture
def restore_root_logger():
    """Put the root logger back the way pytest configured it."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


class TestStructuredFormatter:
    """JSON log formatting."""

    def test_format_fields(self):
        record = logging.LogRecord(
            name="batch_update.test", level=logging.INFO, pathname=__file__, lineno=10,
            msg="Batch updated %s", args=("cats",), exc_info=None,
        )
        record.table_name = "cats"

        data = json.loads(StructuredFormatter().format(record))

        assert data["level"] == "INFO"
        assert data["logger"] == "batch_update.test"
        assert data["message"] == "Batch updated cats"
        assert data["table_name"] == "cats"
        assert data["timestamp"].endswith("Z")

    def test_format_exception(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = logging.LogRecord(
                name="x", level=logging.ERROR, pathname=__file__, lineno=1,
                msg="failed", args=(), exc_info=sys.exc_info(),
            )

        data = json.loads(StructuredFormatter().format(record))

        assert "ValueError: boom" in data["exception"]


class TestSetupLogging:
    """Root logger configuration."""

    def test_json_handler(self, restore_root_logger):
        setup_logging(use_json=True, log_level="debug")

        root = restore_root_logger
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, StructuredFormatter)
        assert logging.getLogger("sqlalchemy").level == logging.WARNING

    def test_unknown_level_defaults_to_info(self, restore_root_logger):
        setup_logging(log_level="chatty")
        assert restore_root_logger.level == logging.INFO


class TestWiring:
    """Adapter and updater factories."""

    def test_create_sqlite_adapter(self):
        adapter = create_storage_adapter(DatabaseConfig(db_type="sqlite"))
        assert isinstance(adapter, SQLiteAdapter)
        assert adapter.db_path == ":memory:"

    def test_create_postgresql_adapter(self):
        config = DatabaseConfig(db_type="postgresql", host="localhost", database="cats")
        with patch("batch_update.main.PostgreSQLAdapter") as mock_adapter:
            create_storage_adapter(config)
        mock_adapter.assert_called_once()
        assert mock_adapter.call_args.kwargs["db_config"] is config

    def test_unsupported_adapter(self):
        config = DatabaseConfig.model_construct(db_type="oracle", host="localhost", database="cats")
        with pytest.raises(ValueError, match="Unsupported database type"):
            create_storage_adapter(config)

    def test_create_batch_updater_uses_adapter_dialect(self):
        adapter = SQLiteAdapter(db_path=":memory:")

        updater = create_batch_updater(adapter=adapter, audit_changes=True)

        assert updater.builder.dialect == "sqlite"
        assert updater.executor is adapter
        assert updater.schema is adapter
        assert updater.change_logger is not None
