"""Tracked Records.

Dict-backed implementation of the ChangeTrackingRecord port. A TrackedRecord
keeps the snapshot it was loaded with and reports every column whose current
value no longer equals the snapshot, which is what the batch updater needs to
decide what to write.

Example Usage:
    ```python
    cat = TrackedRecord({"id": 1, "name": "Felix", "birthday": date(2010, 1, 1)})
    cat["name"] = "Garfield"
    cat.changed_columns()   # ['name']
    cat.changes()           # {'name': ('Felix', 'Garfield')}
    ```
"""

from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from batch_update.domain.ports import ChangeTrackingRecord, RecordValidationError
from batch_update.domain.services.change_detector import ChangeDetector

# A validator returns error messages keyed by column; an empty dict means valid.
Validator = Callable[['TrackedRecord'], Mapping[str, str]]


class TrackedRecord(ChangeTrackingRecord):
    """Record with snapshot-based dirty tracking.

    Parameters:
        values: Column values as loaded from the database
        validators: Callables run by ``validate()``
    """

    def __init__(self, values: Mapping[str, Any], validators: Optional[Iterable[Validator]] = None):
        self._original: Dict[str, Any] = {str(k): v for k, v in values.items()}
        self._current: Dict[str, Any] = dict(self._original)
        self._validators: List[Validator] = list(validators or [])

    def __getitem__(self, column: str) -> Any:
        return self._current[column]

    def __setitem__(self, column: str, value: Any) -> None:
        self.write(column, value)

    def __contains__(self, column: object) -> bool:
        return column in self._current

    def __repr__(self) -> str:
        return f"TrackedRecord({self._current!r})"

    def read(self, column: str) -> Any:
        return self._current.get(column)

    def write(self, column: str, value: Any) -> None:
        self._current[str(column)] = value

    def original(self, column: str) -> Any:
        return self._original.get(column)

    def has_column(self, column: str) -> bool:
        return column in self._current

    def changed_columns(self) -> List[str]:
        """Columns whose value differs from the snapshot, in assignment order."""
        return [
            column for column, value in self._current.items()
            if column not in self._original or not ChangeDetector.values_equal(self._original[column], value)
        ]

    def changes(self) -> Dict[str, Tuple[Any, Any]]:
        """Changed columns mapped to ``(old, new)`` pairs."""
        return {column: (self._original.get(column), self._current[column]) for column in self.changed_columns()}

    def is_changed(self) -> bool:
        return bool(self.changed_columns())

    def add_validator(self, validator: Validator) -> None:
        self._validators.append(validator)

    def validate(self) -> None:
        """Run every validator, raising RecordValidationError with all messages."""
        errors: Dict[str, str] = {}
        for validator in self._validators:
            errors.update(validator(self) or {})
        if errors:
            summary = "; ".join(f"{column}: {message}" for column, message in errors.items())
            raise RecordValidationError(f"Validation failed: {summary}", record=self, details=errors)

    def to_dict(self) -> Dict[str, Any]:
        return dict(self._current)


def require_present(*columns: str) -> Validator:
    """Validator rejecting None or blank-string values for ``columns``."""
    def _validate(record: TrackedRecord) -> Dict[str, str]:
        errors = {}
        for column in columns:
            value = record.read(column)
            if value is None or (isinstance(value, str) and not value.strip()):
                errors[column] = "can't be blank"
        return errors
    return _validate
