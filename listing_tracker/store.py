"""In-memory listing store with a durable SQL mirror.

The store owns four bounded collections:

- the listing map (newest first, capped at ``max_listings``; overflow is
  dropped from the tail together with its seen entry),
- the seen set (dedup of item ids, oldest fifth evicted past its cap),
- the sold and unlisted sets (same eviction policy).

Memory is authoritative for reads. Every mutation updates memory first and
then queues a durable write that the caller never waits on; a failed write
is logged and naturally retried by the next save of the same record. Writes
go through a single worker thread so they land in mutation order.
"""

import asyncio
import logging
import time
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Optional

from listing_tracker.bounded import BoundedTimestampMap
from listing_tracker.config import settings
from listing_tracker.floor_cache import FloorPriceCache
from listing_tracker.metadata import MetadataLookup
from listing_tracker.repository import ListingRepository
from listing_tracker.schemas import (
    ItemAttributes,
    Listing,
    ListingFilters,
    ListingStatus,
    ResetResult,
)
from listing_tracker.scoring import score_listing

logger = logging.getLogger(__name__)

ListingPredicate = Callable[[Listing], bool]


def detect_parallel_variant(set_name: Optional[str], max_mint: Optional[int]) -> str:
    if not set_name or "parallel" not in set_name.lower():
        return "standard"
    if max_mint == 25:
        return "sapphire"
    if max_mint == 50:
        return "emerald"
    if max_mint == 299 or not max_mint:
        return "ruby"
    return "parallel"


def _percent_below(reference: Optional[Decimal], price: Decimal) -> Optional[Decimal]:
    if not reference or reference <= 0 or not price:
        return None
    return ((reference - price) / reference * Decimal("100")).quantize(Decimal("0.01"))


def _merge_attributes(
    current: Optional[ItemAttributes],
    looked_up: Optional[ItemAttributes],
) -> Optional[ItemAttributes]:
    """Fill gaps in ``current`` from ``looked_up`` without overwriting known values."""
    if looked_up is None:
        return current
    if current is None:
        return looked_up
    merged = current.model_dump()
    for key, value in looked_up.model_dump().items():
        if merged.get(key) is None and value is not None:
            merged[key] = value
    return ItemAttributes(**merged)


class ListingStore:
    """Bounded in-memory view of tracked listings plus its durable mirror."""

    def __init__(
        self,
        repository: ListingRepository,
        metadata: Optional[MetadataLookup] = None,
        floor_cache: Optional[FloorPriceCache] = None,
        max_listings: int | None = None,
        max_seen: int | None = None,
        max_sold: int | None = None,
        retention_days: int | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self._repository = repository
        self._metadata = metadata
        self._floor_cache = floor_cache
        self.max_listings = max_listings or settings.max_active_listings
        self.retention_days = retention_days or settings.listing_retention_days

        self._listings: "OrderedDict[str, Listing]" = OrderedDict()
        self._by_ref: dict[str, str] = {}
        self.seen = BoundedTimestampMap(max_seen or settings.max_seen_items, clock)
        self.sold = BoundedTimestampMap(max_sold or settings.max_sold_items, clock)
        self.unlisted = BoundedTimestampMap(max_sold or settings.max_sold_items, clock)

        self._lock = asyncio.Lock()
        self._writer = ThreadPoolExecutor(max_workers=1, thread_name_prefix="listing-writer")
        self._pending: set[asyncio.Future] = set()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def init(self) -> int:
        """Warm the listing map from durable records of the retention window."""
        since = datetime.utcnow() - timedelta(days=self.retention_days)
        try:
            recent = await self._run_db(self._repository.load_recent, since, self.max_listings)
        except Exception as e:
            logger.error(f"Error loading recent listings from DB: {e}")
            return 0

        loaded = 0
        async with self._lock:
            for listing in recent:
                if listing.item_id in self._listings:
                    continue
                self._listings[listing.item_id] = listing
                self._index_ref(listing)
                loaded += 1
        logger.info(f"Loaded {loaded} listings from the last {self.retention_days} days")
        return loaded

    async def shutdown(self) -> None:
        """Let already-queued durable writes finish, then stop the writer thread."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
        self._writer.shutdown(wait=False)

    # ------------------------------------------------------------------
    # Durable writes
    # ------------------------------------------------------------------

    async def _run_db(self, func: Callable[..., Any], *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._writer, func, *args)

    def _spawn_write(self, description: str, func: Callable[..., Any], *args: Any) -> None:
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(self._writer, func, *args)
        self._pending.add(future)

        def _done(f: asyncio.Future) -> None:
            self._pending.discard(f)
            if f.cancelled():
                return
            exc = f.exception()
            if exc is not None:
                logger.error(f"Error persisting {description}: {exc}")

        future.add_done_callback(_done)

    def _persist(self, listing: Listing) -> None:
        snapshot = listing.model_copy(deep=True)
        self._spawn_write(f"listing {listing.item_id}", self._repository.save, snapshot)

    async def flush(self) -> None:
        """Wait for every durable write queued so far."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ------------------------------------------------------------------
    # Mutators
    # ------------------------------------------------------------------

    def _index_ref(self, listing: Listing) -> None:
        if listing.listing_ref:
            self._by_ref[listing.listing_ref] = listing.item_id

    def _unindex_ref(self, listing: Listing) -> None:
        if listing.listing_ref and self._by_ref.get(listing.listing_ref) == listing.item_id:
            del self._by_ref[listing.listing_ref]

    async def upsert(self, listing: Listing) -> bool:
        """Insert a new Active listing or replace the record held for its item id.

        Returns False when the call was ignored: a repeat of the listing that
        already reached Sold/Unlisted under the same listing_ref.
        """
        item_id = listing.item_id
        async with self._lock:
            existing = self._listings.get(item_id)

            if existing is not None:
                if (
                    not existing.is_active
                    and listing.listing_ref
                    and existing.listing_ref == listing.listing_ref
                ):
                    logger.debug(f"Ignoring replayed listing {listing.listing_ref} for item {item_id}")
                    return False
                self._unindex_ref(existing)
                # Full replacement, keeping the item's position in the list
                self._listings[item_id] = listing
                self._index_ref(listing)
                self.seen.add(item_id)
                self.sold.discard(item_id)
                self.unlisted.discard(item_id)
                self._persist(listing)
                return True

            self.seen.add(item_id)
            self.sold.discard(item_id)
            self.unlisted.discard(item_id)

            self._listings[item_id] = listing
            self._listings.move_to_end(item_id, last=False)
            self._index_ref(listing)

            while len(self._listings) > self.max_listings:
                removed_id, removed = self._listings.popitem(last=True)
                self._unindex_ref(removed)
                self.seen.discard(removed_id)

            self._persist(listing)

        if listing.is_active and listing.deal_percent > 0:
            attrs = listing.attributes or ItemAttributes()
            logger.info(
                f"DEAL: {attrs.player_name or item_id} #{attrs.serial_number or '?'} - "
                f"${listing.price} (floor ${listing.floor_at_listing}) - "
                f"{listing.deal_percent:.1f}% off!"
            )
        return True

    async def lookup_seller_and_ref(self, item_id: str) -> tuple[Optional[str], Optional[str]]:
        """Seller address and listing_ref from memory, falling back to the durable row."""
        listing = self._listings.get(item_id)
        if listing is not None and listing.seller_address and listing.listing_ref:
            return listing.seller_address, listing.listing_ref

        seller = listing.seller_address if listing else None
        ref = listing.listing_ref if listing else None
        try:
            stored = await self._run_db(self._repository.find_seller_and_ref, item_id)
        except Exception as e:
            logger.warning(f"Durable lookup failed for item {item_id}: {e}")
            stored = None
        if stored:
            seller = seller or stored[0]
            ref = ref or stored[1]
        return seller, ref

    async def mark_sold(self, item_id: str, buyer_address: Optional[str] = None) -> bool:
        """Flip an Active listing to Sold and queue the holdings transfer."""
        seller, _ref = await self.lookup_seller_and_ref(item_id)

        async with self._lock:
            listing = self._listings.get(item_id)
            if listing is not None:
                if not listing.is_active:
                    logger.debug(f"Item {item_id} already {listing.status.value}; not marking sold")
                    return False
                listing.status = ListingStatus.SOLD
                if buyer_address:
                    listing.buyer_address = buyer_address
                self._persist(listing)
            else:
                self._spawn_write(
                    f"sold flag for {item_id}", self._repository.mark_sold, item_id, buyer_address
                )

            self.sold.add(item_id)
            self.unlisted.discard(item_id)

            if seller and buyer_address:
                logger.info(f"Updating wallet holdings: {seller} -> {buyer_address} (item {item_id})")
                self._spawn_write(
                    f"holdings transfer for {item_id}",
                    self._repository.transfer_holding,
                    item_id,
                    seller,
                    buyer_address,
                )
        return True

    async def mark_unlisted(self, item_id: str, listing_ref: Optional[str] = None) -> bool:
        """Flip an Active listing to Unlisted.

        With ``listing_ref`` the flip only happens when it matches the stored
        record, so a late removal of an old listing cannot touch a re-listing.
        """
        async with self._lock:
            listing = self._listings.get(item_id)
            if listing is not None:
                if listing_ref and listing.listing_ref and listing.listing_ref != listing_ref:
                    logger.debug(
                        f"Stale removal for item {item_id}: {listing_ref} != {listing.listing_ref}"
                    )
                    return False
                if not listing.is_active:
                    return False
                listing.status = ListingStatus.UNLISTED
                self._persist(listing)
            else:
                self._spawn_write(
                    f"unlisted flag for {item_id}",
                    self._repository.mark_unlisted,
                    item_id,
                    listing_ref,
                )

            self.unlisted.add(item_id)
            self.sold.discard(item_id)
        return True

    async def reset_all_to_active(self, predicate: Optional[ListingPredicate] = None) -> ResetResult:
        """Undo Sold markings for every listing matching ``predicate`` (all when None)."""
        match = predicate or (lambda listing: True)

        reset_ids: set[str] = set()
        async with self._lock:
            for listing in self._listings.values():
                if listing.is_sold and match(listing):
                    listing.status = ListingStatus.ACTIVE
                    listing.buyer_address = None
                    self.sold.discard(listing.item_id)
                    reset_ids.add(listing.item_id)
            if predicate is None:
                self.sold.clear()

        try:
            durable_ids = await self._run_db(self._repository.reset_sold, match)
        except Exception as e:
            durable_ids = []
            logger.error(f"Error resetting sold listings in DB: {e}")

        # Rows reset only durably (evicted or never loaded) leave the sold set too
        async with self._lock:
            for item_id in durable_ids:
                listing = self._listings.get(item_id)
                if listing is None or not listing.is_sold:
                    self.sold.discard(item_id)
            reset_ids.update(durable_ids)

        logger.info(f"Reset {len(reset_ids)} sold listings to active")
        return ResetResult(count=len(reset_ids))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, item_id: str) -> Optional[Listing]:
        return self._listings.get(item_id)

    def find_by_listing_ref(self, listing_ref: str) -> Optional[str]:
        return self._by_ref.get(listing_ref)

    def snapshot(self) -> list[Listing]:
        """Current listings, newest first."""
        return list(self._listings.values())

    @staticmethod
    def _status_matches(listing: Listing, status: str) -> bool:
        if status == "all":
            return True
        if status == "sold":
            return listing.is_sold
        if status == "unlisted":
            return listing.is_unlisted
        if status == "sold-unlisted":
            return listing.is_sold or listing.is_unlisted
        return listing.is_active

    @staticmethod
    def _filters_match(listing: Listing, filters: ListingFilters) -> bool:
        attrs = listing.attributes or ItemAttributes()
        if filters.team:
            if not attrs.team_name or filters.team.lower() not in attrs.team_name.lower():
                return False
        if filters.player:
            if not attrs.player_name or filters.player.lower() not in attrs.player_name.lower():
                return False
        if filters.tier and (attrs.tier or "").upper() != filters.tier.upper():
            return False
        if filters.max_serial is not None:
            if not attrs.serial_number or attrs.serial_number > filters.max_serial:
                return False
        return True

    async def list_active(self, filters: Optional[ListingFilters] = None) -> list[Listing]:
        """Filtered, enriched and re-scored copies of the current listings."""
        filters = filters or ListingFilters()

        candidates = [
            listing
            for listing in self.snapshot()
            if self._status_matches(listing, filters.status)
            and (not filters.group_id or listing.group_id == filters.group_id)
            and (filters.max_price is None or listing.price <= filters.max_price)
        ]

        attributes = {}
        prices = {}
        if self._metadata is not None and candidates:
            attributes = await self._metadata.attributes_for(l.item_id for l in candidates)
            prices = await self._metadata.sale_prices_for(l.group_id for l in candidates)

        results: list[Listing] = []
        for listing in candidates:
            enriched = listing.model_copy(deep=True)
            enriched.attributes = _merge_attributes(enriched.attributes, attributes.get(enriched.item_id))

            sale = prices.get(enriched.group_id) if enriched.group_id else None
            if sale is not None:
                enriched.average_sale_price = sale.average
                enriched.top_sale_price = sale.top

            if self._floor_cache is not None and enriched.group_id:
                current_floor = self._floor_cache.peek(enriched.group_id)
                if current_floor is not None:
                    enriched.floor_at_listing = current_floor

            if not self._filters_match(enriched, filters):
                continue

            attrs = enriched.attributes or ItemAttributes()
            enriched.parallel_variant = detect_parallel_variant(attrs.set_name, attrs.max_mint)
            enriched.floor_delta = _percent_below(enriched.floor_at_listing, enriched.price)
            enriched.asp_delta = _percent_below(enriched.average_sale_price, enriched.price)
            enriched.deal_percent = score_listing(enriched)

            if filters.deals_only and enriched.deal_percent <= 0:
                continue
            if filters.min_discount is not None and enriched.deal_percent < filters.min_discount:
                continue
            results.append(enriched)
            if filters.limit and len(results) >= filters.limit:
                break

        return results

    def stats(self) -> dict[str, int]:
        return {
            "listings": len(self._listings),
            "active": sum(1 for l in self._listings.values() if l.is_active),
            "seen": len(self.seen),
            "sold": len(self.sold),
            "unlisted": len(self.unlisted),
        }

    def __len__(self) -> int:
        return len(self._listings)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._listings
