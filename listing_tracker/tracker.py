"""Builds the tracker's collaborators and runs the poller for the process lifetime."""

import asyncio
import logging
from typing import Optional

from listing_tracker.api.findlabs import FindLabsClient
from listing_tracker.api.floor_scraper import FloorPriceScraper
from listing_tracker.api.flow_rest import FlowRestClient
from listing_tracker.config import settings
from listing_tracker.floor_cache import FloorPriceCache, WarmupResult
from listing_tracker.metadata import MetadataLookup
from listing_tracker.poller import EventPoller
from listing_tracker.repository import ListingRepository
from listing_tracker.schemas import Listing, ListingFilters, ResetResult, VerificationResult
from listing_tracker.store import ListingPredicate, ListingStore
from listing_tracker.verification import ListingVerifier

logger = logging.getLogger(__name__)


class ListingTracker:
    """Owns the store, floor cache, poller and verifier of one process."""

    def __init__(
        self,
        gateway: Optional[FlowRestClient] = None,
        inventory: Optional[FindLabsClient] = None,
        floor_source: Optional[FloorPriceScraper] = None,
        repository: Optional[ListingRepository] = None,
        metadata: Optional[MetadataLookup] = None,
    ):
        self.gateway = gateway or FlowRestClient()
        self.inventory = inventory or FindLabsClient()
        self.metadata = metadata or MetadataLookup()
        scraper = floor_source or FloorPriceScraper()

        self.floor_cache = FloorPriceCache(
            scraper.fetch_floor,
            ttl_seconds=settings.floor_cache_ttl_seconds,
            max_size=settings.floor_cache_max_size,
            update_guard_seconds=settings.floor_update_guard_seconds,
        )
        self.store = ListingStore(
            repository or ListingRepository(),
            metadata=self.metadata,
            floor_cache=self.floor_cache,
        )
        self.poller = EventPoller(self.gateway, self.store, self.floor_cache, self.metadata)
        self.verifier = ListingVerifier(self.store, self.gateway, self.inventory)
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self, run_poller: bool = True) -> None:
        await self.store.init()
        if run_poller and not self.running:
            self._task = asyncio.create_task(self._run(), name="listing-poller")

    async def _run(self) -> None:
        await self.warm_floor_cache()
        await self.poller.run()

    async def warm_floor_cache(self) -> WarmupResult:
        """Prefetch floors for the groups of the active listings loaded at startup."""
        groups = [
            listing.group_id
            for listing in self.store.snapshot()
            if listing.is_active and listing.group_id
        ]
        groups = list(dict.fromkeys(groups))[: settings.floor_warmup_limit]
        return await self.floor_cache.warm(groups, batch_size=settings.floor_warmup_batch_size)

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        await self.store.shutdown()

    # Downstream operations

    async def get_active_listings(self, filters: Optional[ListingFilters] = None) -> list[Listing]:
        return await self.store.list_active(filters)

    async def verify_listing(self, item_id: str, listing_ref: Optional[str] = None) -> VerificationResult:
        return await self.verifier.verify(item_id, listing_ref)

    async def reset_all_to_active(self, predicate: Optional[ListingPredicate] = None) -> ResetResult:
        return await self.store.reset_all_to_active(predicate)

    def stats(self) -> dict:
        return {
            "running": self.running,
            "cursor": self.poller.cursor,
            "floor_cache": len(self.floor_cache),
            **self.store.stats(),
        }
