"""Read-through floor price cache keyed by group (edition) id."""

import asyncio
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from decimal import Decimal
from typing import Awaitable, Callable, Iterable, Optional

from listing_tracker.bounded import EVICT_FRACTION

logger = logging.getLogger(__name__)

FloorSource = Callable[[str], Awaitable[Optional[Decimal]]]


@dataclass(frozen=True)
class FloorEntry:
    price: Decimal
    updated_at: float


@dataclass(frozen=True)
class WarmupResult:
    groups_found: int
    floors_cached: int
    cache_size: int


class FloorPriceCache:
    """groupId -> (price, updated_at) with a TTL and an entry cap.

    Entries are kept in write order, so the front of the map is always the
    least recently refreshed group.
    """

    def __init__(
        self,
        source: FloorSource,
        ttl_seconds: float = 300.0,
        max_size: int = 300,
        update_guard_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._source = source
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self.update_guard_seconds = update_guard_seconds
        self._clock = clock
        self._entries: "OrderedDict[str, FloorEntry]" = OrderedDict()

    def _is_fresh(self, entry: FloorEntry) -> bool:
        return self._clock() - entry.updated_at < self.ttl_seconds

    async def get(self, group_id: str) -> Optional[Decimal]:
        """Return a fresh cached floor, or fetch, store and return it. Never raises."""
        entry = self._entries.get(group_id)
        if entry and self._is_fresh(entry):
            return entry.price

        try:
            price = await self._source(group_id)
        except Exception as e:
            logger.warning(f"Floor lookup failed for group {group_id}: {e}")
            return None

        if price is None:
            return None
        self._store(group_id, price)
        return price

    async def warm(self, group_ids: Iterable[str], batch_size: int = 10) -> WarmupResult:
        """Fetch floors for ``group_ids`` ahead of their first listing, ``batch_size`` at a time."""
        groups = list(dict.fromkeys(g for g in group_ids if g))
        logger.info(f"Warming floor cache for {len(groups)} groups")

        cached = 0
        for start in range(0, len(groups), batch_size):
            batch = groups[start:start + batch_size]
            prices = await asyncio.gather(*(self.get(group_id) for group_id in batch))
            cached += sum(1 for price in prices if price is not None)

        logger.info(f"Cached {cached} floor prices (cache size {len(self._entries)})")
        return WarmupResult(groups_found=len(groups), floors_cached=cached, cache_size=len(self._entries))

    def peek(self, group_id: str) -> Optional[Decimal]:
        """Last observed floor regardless of age; no fetch."""
        entry = self._entries.get(group_id)
        return entry.price if entry else None

    def put(self, group_id: str, price: Decimal) -> bool:
        """Record an undercutting listing price as the new floor.

        Only applied when there is no entry or the existing one is older than
        the guard window, so one outlier listing cannot keep rewriting a fresh
        floor. Returns True when the entry was written.
        """
        entry = self._entries.get(group_id)
        if entry and self._clock() - entry.updated_at <= self.update_guard_seconds:
            return False
        self._store(group_id, price)
        return True

    def _store(self, group_id: str, price: Decimal) -> None:
        self._entries.pop(group_id, None)
        self._entries[group_id] = FloorEntry(price=price, updated_at=self._clock())
        if len(self._entries) > self.max_size:
            count = int(len(self._entries) * EVICT_FRACTION)
            for _ in range(count):
                self._entries.popitem(last=False)
            logger.debug(f"Evicted {count} floor entries (size={len(self._entries)})")

    def __contains__(self, group_id: object) -> bool:
        return group_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)
