"""Patch Models - Value Types for Batch Statement Synthesis.

This module defines the immutable value types the statement builder works on:
one PatchTuple per record, its ColumnSignature, the KeySpec identifying rows,
and the Batch that renders into a single UPDATE statement.

Architecture:
    - Pure domain models with zero infrastructure dependencies
    - Column ordering is a property of the types themselves: a PatchTuple
      iterates in sorted column order and a ColumnSignature is the sorted
      tuple of names, so statement text never depends on dict insertion order
"""

from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Mapping, Tuple, Union

from batch_update.domain.ports import InvalidArgumentError

# A rendered statement is a ready-to-execute SQL string.
RenderedStatement = str

DEFAULT_KEY_COLUMNS = ("id",)


@dataclass(frozen=True, order=True)
class ColumnSignature:
    """Sorted set of column names present in a PatchTuple.

    Signatures order lexicographically over the sorted name list, which is the
    order batches (and therefore statements) are emitted in.

    Attributes:
        columns: Column names, sorted and unique
    """

    columns: Tuple[str, ...] = ()

    @classmethod
    def of(cls, names: Iterable[str]) -> 'ColumnSignature':
        """Build a signature from column names in any order."""
        return cls(tuple(sorted(set(names))))

    def without(self, excluded: Iterable[str]) -> Tuple[str, ...]:
        """Return the signature columns not in ``excluded``, keeping sorted order."""
        excluded = set(excluded)
        return tuple(col for col in self.columns if col not in excluded)

    def __iter__(self) -> Iterator[str]:
        return iter(self.columns)

    def __len__(self) -> int:
        return len(self.columns)

    def __contains__(self, column: object) -> bool:
        return column in self.columns


class PatchTuple(Mapping[str, Any]):
    """One record's column -> value snapshot to be written.

    Keys are stringified on construction and iterate in sorted order. The
    mapping is read-only once built.

    Example:
        ```python
        patch = PatchTuple({"name": "foo", "id": 1})
        list(patch)          # ['id', 'name']
        patch.signature      # ColumnSignature(columns=('id', 'name'))
        ```
    """

    __slots__ = ("_values", "_signature")

    def __init__(self, values: Union[Mapping[Any, Any], Iterable[Tuple[Any, Any]]] = ()):
        items = values.items() if isinstance(values, Mapping) else values
        normalized = {}
        for key, value in items:
            name = str(key)
            if name in normalized:
                raise InvalidArgumentError(f"Duplicate column '{name}' in patch")
            normalized[name] = value
        self._values = {name: normalized[name] for name in sorted(normalized)}
        self._signature = ColumnSignature(tuple(self._values))

    @property
    def signature(self) -> ColumnSignature:
        """Sorted column names of this patch."""
        return self._signature

    def __getitem__(self, column: str) -> Any:
        return self._values[column]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __hash__(self) -> int:
        return hash(self._signature)

    def __repr__(self) -> str:
        return f"PatchTuple({self._values!r})"


@dataclass(frozen=True)
class KeySpec:
    """Ordered column names that identify a row for matching.

    Duplicates are dropped keeping the first occurrence; an empty spec is an
    error. Declaration order is kept because it is the WHERE clause order.
    """

    columns: Tuple[str, ...] = DEFAULT_KEY_COLUMNS

    def __post_init__(self):
        if isinstance(self.columns, str):
            columns = (self.columns,)
        else:
            columns = tuple(str(col) for col in self.columns)
        columns = tuple(dict.fromkeys(columns))
        if not columns:
            raise InvalidArgumentError("Key spec must name at least one column")
        object.__setattr__(self, "columns", columns)

    @classmethod
    def coerce(cls, value: Union['KeySpec', str, Iterable[str], None]) -> 'KeySpec':
        """Accept a KeySpec, a single column name, or an iterable of names."""
        if value is None:
            return cls()
        if isinstance(value, KeySpec):
            return value
        if isinstance(value, str):
            return cls((value,))
        return cls(tuple(value))

    def __iter__(self) -> Iterator[str]:
        return iter(self.columns)

    def __len__(self) -> int:
        return len(self.columns)

    def __contains__(self, column: object) -> bool:
        return column in self.columns


@dataclass(frozen=True)
class Batch:
    """Same-signature slice of PatchTuples rendered into one statement.

    Attributes:
        signature: Column signature shared by every patch in the batch
        patches: Patches in input order, at most ``batch_size`` of them
    """

    signature: ColumnSignature
    patches: Tuple[PatchTuple, ...] = field(default_factory=tuple)

    def __post_init__(self):
        for patch in self.patches:
            if patch.signature != self.signature:
                raise InvalidArgumentError(
                    f"Patch columns {list(patch.signature)} do not match batch signature "
                    f"{list(self.signature)}"
                )

    def update_columns(self, key_spec: KeySpec) -> Tuple[str, ...]:
        """Signature columns assigned by the SET clause (non-key, sorted)."""
        return self.signature.without(key_spec.columns)

    def __len__(self) -> int:
        return len(self.patches)
