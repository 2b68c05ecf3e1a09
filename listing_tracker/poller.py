"""Block-height cursor poller for storefront listing events."""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from listing_tracker.api.flow_events import (
    EVENT_KINDS,
    EventDecodeError,
    ListingAvailable,
    ListingCompleted,
    ListingRemoved,
    RawEvent,
    decode_event,
)
from listing_tracker.api.flow_rest import FlowRestClient
from listing_tracker.config import settings
from listing_tracker.floor_cache import FloorPriceCache
from listing_tracker.metadata import MetadataLookup
from listing_tracker.schemas import Listing
from listing_tracker.scoring import score_listing
from listing_tracker.store import ListingStore

logger = logging.getLogger(__name__)


class EventPoller:
    """Advances a sealed-height cursor and applies listing events to the store.

    One tick fetches the three event kinds for the window
    ``(cursor, min(height, cursor + window_blocks)]`` concurrently, applies
    them in block-then-event order, then moves the cursor to the window end.
    If any fetch fails the cursor stays put and the window is retried on the
    next tick. Re-applying a window is harmless because every store mutation
    is idempotent per item id.
    """

    def __init__(
        self,
        gateway: FlowRestClient,
        store: ListingStore,
        floor_cache: FloorPriceCache,
        metadata: MetadataLookup,
        storefront_contract: str | None = None,
        tracked_nft_type: str | None = None,
        interval_seconds: float | None = None,
        lookback_blocks: int | None = None,
        window_blocks: int | None = None,
    ):
        self.gateway = gateway
        self.store = store
        self.floor_cache = floor_cache
        self.metadata = metadata
        self.storefront_contract = storefront_contract or settings.storefront_contract
        self.tracked_nft_type = tracked_nft_type or settings.tracked_nft_type
        self.interval_seconds = (
            interval_seconds if interval_seconds is not None else settings.poll_interval_seconds
        )
        self.lookback_blocks = (
            lookback_blocks if lookback_blocks is not None else settings.poll_lookback_blocks
        )
        self.window_blocks = window_blocks or settings.poll_window_blocks

        self.cursor: Optional[int] = None
        self._tick_lock = asyncio.Lock()

    def event_type(self, kind: str) -> str:
        return f"{self.storefront_contract}.{kind}"

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Tick forever on a fixed interval until cancelled."""
        logger.info(f"Starting listing watcher (every {self.interval_seconds}s)")
        try:
            while True:
                try:
                    await self.tick()
                except Exception as e:
                    logger.error(f"Error checking for listings: {e}", exc_info=True)
                await asyncio.sleep(self.interval_seconds)
        finally:
            logger.info(f"Listing watcher stopped at block {self.cursor}")

    async def tick(self) -> int:
        """Process at most one window. Returns the number of events applied."""
        if self._tick_lock.locked():
            logger.debug("Previous poll still running; skipping tick")
            return 0
        async with self._tick_lock:
            return await self._poll_once()

    async def _poll_once(self) -> int:
        height = await self.gateway.get_sealed_height()
        if not height:
            return 0

        if self.cursor is None:
            self.cursor = max(0, height - self.lookback_blocks)
            logger.info(f"Starting watcher from block {self.cursor}")
        if height <= self.cursor:
            return 0

        start = self.cursor + 1
        end = min(height, self.cursor + self.window_blocks)

        results = await asyncio.gather(
            *(self.gateway.get_events(self.event_type(kind), start, end) for kind in EVENT_KINDS)
        )
        if any(batch is None for batch in results):
            logger.warning(f"Event fetch incomplete for [{start}, {end}]; retrying next tick")
            return 0

        events: list[RawEvent] = sorted(
            (event for batch in results for event in batch),
            key=lambda e: e.sort_key,
        )

        applied = 0
        for raw in events:
            try:
                decoded = decode_event(raw)
            except EventDecodeError as e:
                logger.warning(f"Skipping malformed {raw.kind} event at block {raw.block_height}: {e}")
                continue
            try:
                if await self.apply(decoded):
                    applied += 1
            except Exception as e:
                logger.error(f"Error processing {raw.kind} event at block {raw.block_height}: {e}")

        self.cursor = end
        if events:
            logger.debug(f"Processed blocks [{start}, {end}]: {applied}/{len(events)} events applied")
        return applied

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def apply(self, event) -> bool:
        if isinstance(event, ListingAvailable):
            return await self.handle_listing_available(event)
        if isinstance(event, ListingCompleted):
            item_id = self._resolve_item(event.item_id, event.listing_ref)
            if item_id is None:
                return False
            if event.purchased:
                return await self.store.mark_sold(item_id)
            return await self.store.mark_unlisted(item_id, event.listing_ref)
        if isinstance(event, ListingRemoved):
            item_id = self._resolve_item(event.item_id, event.listing_ref)
            if item_id is None:
                return False
            return await self.store.mark_unlisted(item_id, event.listing_ref)
        return False

    def _resolve_item(self, item_id: Optional[str], listing_ref: Optional[str]) -> Optional[str]:
        # Older storefront events carry only the listing resource id
        if item_id:
            return item_id
        if listing_ref:
            return self.store.find_by_listing_ref(listing_ref)
        return None

    async def handle_listing_available(self, event: ListingAvailable) -> bool:
        if not event.item_id or event.price is None or event.price <= 0:
            return False
        if self.tracked_nft_type not in event.nft_type:
            return False

        attributes = await self.metadata.attributes(event.item_id)
        group_id = event.group_id or (attributes.group_id if attributes else None)
        if not group_id:
            logger.debug(f"No group for item {event.item_id}; skipping")
            return False

        floor = await self.floor_cache.get(group_id)
        if not floor:
            logger.debug(f"No floor for group {group_id}; skipping item {event.item_id}")
            return False

        average_sale = await self.metadata.average_sale(group_id)

        listing = Listing(
            item_id=event.item_id,
            listing_ref=event.listing_ref,
            group_id=group_id,
            price=event.price,
            floor_at_listing=floor,
            average_sale_price=average_sale,
            seller_address=event.seller_address,
            listed_at=event.listed_at or datetime.utcnow(),
            attributes=attributes,
        )
        listing.deal_percent = score_listing(listing)

        stored = await self.store.upsert(listing)
        if stored and event.price < floor:
            self.floor_cache.put(group_id, event.price)
        return stored
