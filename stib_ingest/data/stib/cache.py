import time
from typing import Any, Callable, Dict, Optional, Tuple


class TtlCache:
    """
    Keyed store whose entries expire a fixed number of seconds after being set.

    Expired entries are evicted when they are read.
    """

    def __init__(self, ttl: float = 60, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, Tuple[Any, float]] = {}

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None

        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: Any):
        self._entries[key] = (value, self._clock() + self.ttl)

    def __len__(self):
        return len(self._entries)
