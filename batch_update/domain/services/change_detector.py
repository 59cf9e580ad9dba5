"""Change Detection Service.

This service detects field-level changes between existing and incoming rows
using vectorized pandas operations, and turns them into PatchTuples so that
DataFrame sources go through the same batch statement builder as records.

Architecture:
    - Pure domain service with no infrastructure dependencies
    - Uses pandas for vectorized operations (performance-critical)
    - Returns domain models (PatchTuple, ChangeEvent)
"""

import json
import logging
from typing import Any, Iterable, List, Optional, Union

import pandas as pd

from batch_update.domain.cdc_models import ChangeEvent
from batch_update.domain.patch_models import KeySpec, PatchTuple
from batch_update.domain.ports import InvalidArgumentError

logger = logging.getLogger(__name__)

CHANGE_COLUMNS = ['table_name', 'record_id', 'field_name', 'old_value', 'new_value', 'change_type']

_NULL = '__NULL__'


class ChangeDetector:
    """Service for detecting field-level changes between rows.

    Parameters:
        ingestion_id: ID of the current run, copied onto change events
        source_adapter: Source identifier, copied onto change events
    """

    def __init__(self, ingestion_id: Optional[str] = None, source_adapter: Optional[str] = None):
        self.ingestion_id = ingestion_id
        self.source_adapter = source_adapter

    def detect_changes_vectorized(
        self,
        merged_df: pd.DataFrame,
        table_name: str,
        key_columns: Union[str, Iterable[str]]
    ) -> pd.DataFrame:
        """Detect field-level changes using vectorized pandas operations.

        Parameters:
            merged_df: DataFrame with merged old and new rows (from pandas merge)
                      Should have columns with '_old' and '_new' suffixes
            table_name: Name of the table
            key_columns: Key column(s) the frames were merged on

        Returns:
            DataFrame with columns: table_name, record_id, field_name, old_value, new_value, change_type
        """
        key_spec = KeySpec.coerce(key_columns)
        if merged_df.empty:
            return pd.DataFrame(columns=CHANGE_COLUMNS)

        changes_list = []

        data_columns = self._compared_columns(merged_df, key_spec)
        record_ids = self._record_ids(merged_df, key_spec)

        for col in data_columns:
            old_col = f"{col}_old"
            new_col = f"{col}_new"

            old_normalized = self._normalize_for_comparison(merged_df[old_col])
            new_normalized = self._normalize_for_comparison(merged_df[new_col])

            changed_mask = old_normalized != new_normalized

            if changed_mask.any():
                for idx in merged_df.index[changed_mask.to_numpy()]:
                    changes_list.append({
                        'table_name': table_name,
                        'record_id': record_ids[idx],
                        'field_name': col,
                        'old_value': merged_df.at[idx, old_col],
                        'new_value': merged_df.at[idx, new_col],
                        'change_type': 'UPDATE'
                    })

        return pd.DataFrame(changes_list, columns=CHANGE_COLUMNS)

    def build_patches(
        self,
        existing_df: pd.DataFrame,
        incoming_df: pd.DataFrame,
        key_columns: Union[str, Iterable[str]]
    ) -> List[PatchTuple]:
        """Build one patch per existing row whose incoming values differ.

        Each patch holds the key columns plus only the changed columns, with
        the incoming values. Incoming rows with no existing counterpart are
        skipped: a batch update never inserts.

        Parameters:
            existing_df: Rows as currently stored
            incoming_df: Rows as they should be
            key_columns: Column(s) identifying a row in both frames

        Returns:
            Patches in incoming row order

        Raises:
            InvalidArgumentError: If a key column is missing from either frame
        """
        key_spec = KeySpec.coerce(key_columns)
        if existing_df.empty or incoming_df.empty:
            return []

        for frame_name, frame in (("existing", existing_df), ("incoming", incoming_df)):
            missing = [col for col in key_spec if col not in frame.columns]
            if missing:
                raise InvalidArgumentError(f"Key columns {missing} not found in {frame_name} DataFrame")

        merged = incoming_df.merge(
            existing_df,
            on=list(key_spec.columns),
            suffixes=('_new', '_old'),
            how='inner'
        )
        if merged.empty:
            return []

        # columns present only on one side keep their bare name after merge
        for col in incoming_df.columns:
            if col not in key_spec and col not in existing_df.columns:
                merged[f"{col}_new"] = merged[col]
                merged[f"{col}_old"] = None

        changes_df = self.detect_changes_vectorized(merged, "", key_spec)
        if changes_df.empty:
            return []

        record_ids = self._record_ids(merged, key_spec)
        changed_by_record = changes_df.groupby('record_id', sort=False)['field_name'].apply(list).to_dict()

        patches = []
        for idx in merged.index:
            fields = changed_by_record.get(record_ids[idx])
            if not fields:
                continue
            values = {col: self._to_python(merged.at[idx, col]) for col in key_spec}
            for field_name in fields:
                values[field_name] = self._to_python(merged.at[idx, f"{field_name}_new"])
            patches.append(PatchTuple(values))

        logger.debug(f"Built {len(patches)} patches from {len(merged)} matched rows")
        return patches

    @staticmethod
    def _compared_columns(merged_df: pd.DataFrame, key_spec: KeySpec) -> List[str]:
        all_columns = set(merged_df.columns)
        old_columns = {col[:-len('_old')] for col in all_columns if col.endswith('_old')}
        new_columns = {col[:-len('_new')] for col in all_columns if col.endswith('_new')}
        return sorted((old_columns & new_columns) - set(key_spec.columns))

    @staticmethod
    def _record_ids(merged_df: pd.DataFrame, key_spec: KeySpec) -> pd.Series:
        keys = merged_df[list(key_spec.columns)].astype(str)
        return keys.apply(lambda row: ':'.join(row), axis=1)

    @staticmethod
    def _to_python(value: Any) -> Any:
        """Convert numpy/pandas scalars to plain Python values for SQL rendering."""
        if isinstance(value, (list, dict)):
            return value
        try:
            if pd.isna(value):
                return None
        except (TypeError, ValueError):
            return value
        if isinstance(value, pd.Timestamp):
            return value.to_pydatetime()
        if hasattr(value, 'item'):
            return value.item()
        return value

    def _normalize_for_comparison(self, series: pd.Series) -> pd.Series:
        """Normalize a pandas Series for comparison.

        Handles NaN, None, arrays, and other complex types by converting
        them to comparable string representations.

        Parameters:
            series: pandas Series to normalize

        Returns:
            Normalized Series with string values
        """
        def normalize_value(x):
            if isinstance(x, (list, dict)):
                try:
                    return json.dumps(x, sort_keys=True)
                except (TypeError, ValueError):
                    return str(x)
            try:
                if pd.isna(x):
                    return _NULL
            except (TypeError, ValueError):
                pass
            return str(x)

        return series.astype(object).apply(normalize_value)

    def changes_df_to_events(self, changes_df: pd.DataFrame) -> List[ChangeEvent]:
        """Convert changes DataFrame to list of ChangeEvent objects.

        Parameters:
            changes_df: DataFrame with change information

        Returns:
            List of ChangeEvent objects
        """
        if changes_df.empty:
            return []

        events = []
        for _, row in changes_df.iterrows():
            events.append(ChangeEvent(
                table_name=row['table_name'],
                record_id=str(row['record_id']),
                field_name=row['field_name'],
                old_value=self._to_python(row.get('old_value')),
                new_value=self._to_python(row.get('new_value')),
                change_type=row.get('change_type', 'UPDATE'),
                ingestion_id=self.ingestion_id,
                source_adapter=self.source_adapter
            ))

        return events

    @staticmethod
    def values_equal(old: Any, new: Any) -> bool:
        """Compare two values accounting for NaN, None, arrays, etc.

        Parameters:
            old: Old value
            new: New value

        Returns:
            True if values are equal, False otherwise
        """
        # Handle arrays/lists first (before NaN check, as pd.isna() doesn't work on lists)
        if isinstance(old, (list, tuple)) and isinstance(new, (list, tuple)):
            return list(old) == list(new)
        if isinstance(old, (list, tuple)) or isinstance(new, (list, tuple)):
            return False

        if isinstance(old, dict) and isinstance(new, dict):
            return old == new
        if isinstance(old, dict) or isinstance(new, dict):
            return False

        try:
            if pd.isna(old) and pd.isna(new):
                return True
            if pd.isna(old) or pd.isna(new):
                return False
        except (ValueError, TypeError):
            pass

        if type(old) is not type(new) and isinstance(old, bool) != isinstance(new, bool):
            return False

        return old == new
