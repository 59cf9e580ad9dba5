"""Application Settings and Configuration.

This module provides application-wide settings for the batch updater, read
from the environment with batch-update defaults. Database settings live in the
configuration manager.
"""

import os

from batch_update.domain.ports import InvalidArgumentError

# Default rows per UPDATE statement (can be overridden via environment)
DEFAULT_BATCH_SIZE = 100

# Name of the VALUES-backed CTE joined against the target table
DEFAULT_PATCH_TABLE = "batch_updates"

# Column stamped with the current time on every updated record
DEFAULT_TIMESTAMP_COLUMN = "updated_at"


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Application settings loaded from environment.

    Environment Variables:
        - BU_BATCH_SIZE: Rows per UPDATE statement (default 100)
        - BU_PATCH_TABLE: CTE name (default batch_updates)
        - BU_TIMESTAMP_COLUMN: Stamped column, empty to disable (default updated_at)
        - BU_VALIDATE: Validate records before updating (default true)
        - BU_QUERY_CACHE_ENABLED: Cache SELECT results in adapters (default false)
        - BU_LOG_LEVEL: Logging level (default INFO)
        - BU_LOG_FORMAT: 'text' or 'json' (default text)
    """

    def __init__(self):
        """Initialize settings from environment."""
        self._batch_size_raw = os.getenv("BU_BATCH_SIZE", str(DEFAULT_BATCH_SIZE))
        self.patch_table = os.getenv("BU_PATCH_TABLE", DEFAULT_PATCH_TABLE)
        self.timestamp_column = os.getenv("BU_TIMESTAMP_COLUMN", DEFAULT_TIMESTAMP_COLUMN) or None
        self.validate = _env_flag("BU_VALIDATE", "true")
        self.query_cache_enabled = _env_flag("BU_QUERY_CACHE_ENABLED", "false")

        self.log_level = os.getenv("BU_LOG_LEVEL", "INFO")
        self.log_format = os.getenv("BU_LOG_FORMAT", "text").lower()

    @property
    def batch_size(self) -> int:
        """Rows per statement from BU_BATCH_SIZE, parsed on access."""
        try:
            value = int(self._batch_size_raw)
        except ValueError:
            raise InvalidArgumentError(
                f"BU_BATCH_SIZE must be a positive integer, got {self._batch_size_raw!r}"
            ) from None
        if value <= 0:
            raise InvalidArgumentError(f"BU_BATCH_SIZE must be a positive integer, got {value}")
        return value


# Global settings instance
settings = Settings()
