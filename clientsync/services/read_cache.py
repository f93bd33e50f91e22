"""
Process-local read cache for relational queries.

Entries expire after a fixed TTL (5 minutes by default). Writes invalidate by
key pattern ("clients", "reports"), never per row.
CRITICAL: invalidate only after the write has committed, otherwise a concurrent
read can re-cache the pre-write value.
"""
import logging
import time
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300


class ReadCache:
    def __init__(
        self,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}

    @staticmethod
    def make_key(*parts: Any) -> str:
        return ":".join("" if p is None else str(p) for p in parts)

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self._clock() - stored_at >= self.ttl_seconds:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = (self._clock(), value)

    def invalidate(self, pattern: str) -> int:
        """Drop every key containing pattern. Returns the number dropped."""
        doomed = [key for key in self._entries if pattern in key]
        for key in doomed:
            del self._entries[key]
        if doomed:
            logger.debug("Cache invalidated %d entries for '%s'", len(doomed), pattern)
        return len(doomed)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
