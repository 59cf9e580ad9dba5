"""Statement-level query cache.

Storage adapters cache SELECT results keyed by statement text and parameters
while the cache is enabled. Any write through the adapter must be followed by
``clear()`` so later reads see the new values; the batch updater does this
after executing its statements.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Callable, Dict, Hashable, Iterator, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, Tuple[Hashable, ...]]


class QueryCache:
    """Thread-safe cache of query results.

    Example Usage:
        ```python
        cache = QueryCache()
        with cache.enabled_scope():
            rows = cache.fetch("SELECT * FROM cats", (), run_query)
        ```
    """

    def __init__(self, enabled: bool = False):
        self._enabled = enabled
        self._entries: Dict[CacheKey, List[tuple]] = {}
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self._enabled

    def disable(self) -> None:
        self._enabled = False
        self.clear()

    @contextmanager
    def enabled_scope(self) -> Iterator['QueryCache']:
        """Enable caching for the duration of a ``with`` block."""
        previous = self._enabled
        self._enabled = True
        try:
            yield self
        finally:
            self._enabled = previous
            if not previous:
                self.clear()

    def fetch(
        self,
        sql: str,
        params: Optional[Sequence[Any]],
        loader: Callable[[str, Tuple[Any, ...]], List[tuple]]
    ) -> List[tuple]:
        """Return cached rows for ``sql``/``params`` or load and cache them."""
        key = (sql, tuple(params or ()))
        if not self._enabled:
            return loader(sql, key[1])

        with self._lock:
            if key in self._entries:
                return list(self._entries[key])

        rows = loader(sql, key[1])
        with self._lock:
            self._entries[key] = list(rows)
        return rows

    def clear(self) -> None:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        if count:
            logger.debug(f"Cleared {count} cached query results")

    def __len__(self) -> int:
        return len(self._entries)
