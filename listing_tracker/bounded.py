"""Ordered, size-capped timestamp maps.

Keys are kept in first-observed order so the oldest entries sit at the
front of the underlying OrderedDict. When the map grows past its cap the
oldest fifth is dropped in one pass.
"""

import time
from collections import OrderedDict
from typing import Callable, Hashable, Iterator, Optional

EVICT_FRACTION = 0.2


class BoundedTimestampMap:
    """key -> first-observed timestamp, capped at ``max_size`` entries."""

    def __init__(self, max_size: int, clock: Callable[[], float] = time.time):
        self.max_size = max_size
        self._clock = clock
        self._entries: "OrderedDict[Hashable, float]" = OrderedDict()

    def add(self, key: Hashable) -> list:
        """Record ``key`` if new. Returns the keys evicted to stay under the cap."""
        if key in self._entries:
            return []
        self._entries[key] = self._clock()
        if len(self._entries) > self.max_size:
            return self.evict_oldest()
        return []

    def evict_oldest(self, fraction: float = EVICT_FRACTION) -> list:
        count = int(len(self._entries) * fraction)
        evicted = []
        for _ in range(count):
            key, _ts = self._entries.popitem(last=False)
            evicted.append(key)
        return evicted

    def discard(self, key: Hashable) -> None:
        self._entries.pop(key, None)

    def get(self, key: Hashable) -> Optional[float]:
        return self._entries.get(key)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Hashable]:
        return iter(self._entries)
