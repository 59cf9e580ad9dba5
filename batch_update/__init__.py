"""batch-update: minimal batch UPDATE statements for change-tracked records.

Records that changed are grouped by the set of columns they changed; each group
is written with one UPDATE ... FROM statement per batch, joining a VALUES-based
CTE against the target table. Only changed fields are written and rows deleted
by someone else are never re-inserted.
"""

from batch_update.domain.patch_models import Batch, ColumnSignature, KeySpec, PatchTuple
from batch_update.domain.records import TrackedRecord
from batch_update.domain.services.batch_updater import ALL_COLUMNS, BatchUpdater
from batch_update.domain.services.statement_builder import BatchStatementBuilder, build_statements

__version__ = "1.0.0"

__all__ = [
    "ALL_COLUMNS",
    "Batch",
    "BatchStatementBuilder",
    "BatchUpdater",
    "ColumnSignature",
    "KeySpec",
    "PatchTuple",
    "TrackedRecord",
    "build_statements",
]
