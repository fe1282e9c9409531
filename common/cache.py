"""Time-expiring query result cache."""

import json
import logging
import time
from collections import OrderedDict
from typing import Any, Callable, Optional, Tuple

logger = logging.getLogger(__name__)


class QueryCache:
    """
    Read-through cache for explicitly cacheable queries.

    Entries expire ``ttl_seconds`` after insertion. At capacity the oldest
    inserted entry is evicted (insertion order, not LRU). Cached values are
    shared snapshots and must not be mutated by callers.
    """

    def __init__(
        self,
        ttl_seconds: float = 900,
        max_entries: int = 20000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._store: "OrderedDict[str, Tuple[Any, float]]" = OrderedDict()

    @staticmethod
    def make_key(sql: str, params: Any = None) -> str:
        """Statement text followed by its serialized parameters."""
        return sql + json.dumps(params if params is not None else [], sort_keys=True, default=str)

    def _expired(self, stored_at: float) -> bool:
        return self._clock() - stored_at >= self.ttl_seconds

    def get(self, key: str) -> Optional[Any]:
        entry = self._store.get(key)
        if entry is None:
            return None
        value, stored_at = entry
        if self._expired(stored_at):
            self._store.pop(key, None)
            return None
        return value

    def set(self, key: str, value: Any) -> None:
        # Re-inserting a key counts as a new insertion (last write wins)
        self._store.pop(key, None)
        while len(self._store) >= self.max_entries:
            self._store.popitem(last=False)
        self._store[key] = (value, self._clock())

    def invalidate(self, pattern: Optional[str] = None) -> int:
        """Drop every entry, or only those whose key contains ``pattern``."""
        if pattern is None:
            removed = len(self._store)
            self._store.clear()
            logger.info("Query cache cleared")
            return removed

        keys = [key for key in self._store if pattern in key]
        for key in keys:
            del self._store[key]
        logger.debug(f"Query cache: {len(keys)} entries matching '{pattern}' removed")
        return len(keys)

    def sweep(self) -> int:
        """Remove every expired entry."""
        expired = [key for key, (_, stored_at) in self._store.items() if self._expired(stored_at)]
        for key in expired:
            del self._store[key]
        if expired:
            logger.debug(f"Query cache sweep removed {len(expired)} expired entries")
        return len(expired)

    @property
    def size(self) -> int:
        return len(self._store)
