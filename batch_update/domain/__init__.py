"""Domain layer for batch-update.

This package contains the statement-synthesis core, the patch value types and
the ports adapters implement. It has no database dependencies.
"""

from .patch_models import Batch, ColumnSignature, KeySpec, PatchTuple, RenderedStatement
from .ports import (
    BatchUpdateError,
    InternalInvariantViolation,
    InvalidArgumentError,
    RecordValidationError,
    SchemaMismatchError,
    StorageError,
)

__all__ = [
    "Batch",
    "ColumnSignature",
    "KeySpec",
    "PatchTuple",
    "RenderedStatement",
    "BatchUpdateError",
    "InternalInvariantViolation",
    "InvalidArgumentError",
    "RecordValidationError",
    "SchemaMismatchError",
    "StorageError",
]
