"""Structured logging configuration.

This module provides structured logging with JSON formatting for production
environments and human-readable formatting for development. Log messages carry
table names, column names and counts only, never field values.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

logger = logging.getLogger(__name__)


class StructuredFormatter(logging.Formatter):
    """Structured JSON formatter for logs."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON.

        Parameters:
            record: Log record to format

        Returns:
            JSON string representation of log record
        """
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        if hasattr(record, "table_name"):
            log_data["table_name"] = record.table_name

        return json.dumps(log_data, default=str)


def setup_logging(use_json: bool = False, log_level: str = "INFO") -> None:
    """Setup application logging.

    Parameters:
        use_json: Use JSON formatting (for production)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    # stderr keeps stdout free for rendered SQL
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)

    if use_json:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
