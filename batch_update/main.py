"""Application wiring for the batch updater.

Builds storage adapters and the BatchUpdater from configuration, so callers
(and the CLI) get a ready-to-use updater with one call.

Architecture:
    - Follows Hexagonal Architecture principles
    - Storage adapter is selected via the configuration manager
    - The updater only sees ports; adapters are chosen here
"""

import logging
from typing import Optional, Union

from batch_update.adapters.storage import PostgreSQLAdapter, SQLiteAdapter
from batch_update.domain.services.batch_updater import BatchUpdater
from batch_update.domain.services.statement_builder import BatchStatementBuilder
from batch_update.infrastructure.audit.change_audit_logger import ChangeAuditLogger
from batch_update.infrastructure.config_manager import DatabaseConfig, get_database_config
from batch_update.infrastructure.logging_config import setup_logging
from batch_update.infrastructure.settings import settings

logger = logging.getLogger(__name__)

StorageAdapter = Union[PostgreSQLAdapter, SQLiteAdapter]


def configure_logging(verbose: bool = False) -> None:
    """Configure root logging from settings (DEBUG when verbose)."""
    setup_logging(
        use_json=settings.log_format == "json",
        log_level="DEBUG" if verbose else settings.log_level
    )


def create_storage_adapter(db_config: Optional[DatabaseConfig] = None) -> StorageAdapter:
    """Create storage adapter based on configuration.

    Returns:
        Configured storage adapter instance

    Raises:
        ValueError: If database type is unsupported
    """
    db_config = db_config or get_database_config()

    if db_config.db_type == "sqlite":
        logger.info(f"Initializing SQLite adapter with path: {db_config.db_path or ':memory:'}")
        return SQLiteAdapter(db_config=db_config, query_cache_enabled=settings.query_cache_enabled)
    elif db_config.db_type == "postgresql":
        logger.info(f"Initializing PostgreSQL adapter with host: {db_config.host}")
        return PostgreSQLAdapter(db_config=db_config, query_cache_enabled=settings.query_cache_enabled)
    else:
        raise ValueError(f"Unsupported database type: {db_config.db_type}")


def create_batch_updater(
    adapter: Optional[StorageAdapter] = None,
    audit_changes: bool = False
) -> BatchUpdater:
    """Create a BatchUpdater wired to a storage adapter and settings.

    Parameters:
        adapter: Storage adapter (default: created from configuration)
        audit_changes: Record one change event per written field

    Returns:
        BatchUpdater instance
    """
    adapter = adapter or create_storage_adapter()
    builder = BatchStatementBuilder(patch_table=settings.patch_table, dialect=adapter.dialect)
    return BatchUpdater(
        executor=adapter,
        schema=adapter,
        builder=builder,
        timestamp_column=settings.timestamp_column,
        batch_size=settings.batch_size,
        validate=settings.validate,
        change_logger=ChangeAuditLogger() if audit_changes else None,
    )
