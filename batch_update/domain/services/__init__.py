"""Domain Services.

This package contains domain services that implement business logic
without infrastructure dependencies.
"""

from batch_update.domain.services.statement_builder import BatchStatementBuilder, build_statements
from batch_update.domain.services.change_detector import ChangeDetector
from batch_update.domain.services.batch_updater import ALL_COLUMNS, BatchUpdater

__all__ = ['BatchStatementBuilder', 'build_statements', 'ChangeDetector', 'ALL_COLUMNS', 'BatchUpdater']
