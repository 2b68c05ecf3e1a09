"""Tests for the block-height event poller."""

import base64
import json
from decimal import Decimal

import pytest
import pytest_asyncio

from listing_tracker.api.flow_events import RawEvent
from listing_tracker.floor_cache import FloorPriceCache
from listing_tracker.poller import EventPoller
from listing_tracker.schemas import ItemAttributes

from conftest import (
    STOREFRONT,
    FakeGateway,
    FakeMetadata,
    ManualClock,
    available_fields,
    raw_event,
)

GROUP = "77"


def listed(item_id, height, price="10.00000000", ref=None, event_index=0, **overrides):
    fields = available_fields(item_id, price=price, ref=ref)
    fields["editionID"] = GROUP
    fields.update(overrides)
    return raw_event("ListingAvailable", height, fields, event_index=event_index)


def completed(item_id, height, purchased=True, ref=None, event_index=0):
    fields = {"listingResourceID": ref or f"ref-{item_id}", "nftID": item_id, "purchased": purchased}
    return raw_event("ListingCompleted", height, fields, event_index=event_index)


class Harness:
    def __init__(self, store):
        self.gateway = FakeGateway(height=1000)
        self.floors = {GROUP: Decimal("20")}
        self.clock = ManualClock()
        self.floor_cache = FloorPriceCache(self._floor, clock=self.clock)
        self.metadata = FakeMetadata()
        self.store = store
        self.poller = EventPoller(
            self.gateway,
            store,
            self.floor_cache,
            self.metadata,
            storefront_contract=STOREFRONT,
            tracked_nft_type="A.e4cf4bdc1751c65d.AllDay",
            interval_seconds=0,
            lookback_blocks=100,
            window_blocks=50,
        )

    async def _floor(self, group_id):
        return self.floors.get(group_id)


@pytest_asyncio.fixture
async def harness(store):
    return Harness(store)


@pytest.mark.asyncio
async def test_first_tick_seeds_cursor_and_processes_one_window(harness):
    await harness.poller.tick()

    assert harness.poller.cursor == 950
    windows = {(start, end) for _type, start, end in harness.gateway.calls}
    assert windows == {(901, 950)}
    kinds = sorted(t.rsplit(".", 1)[-1] for t, _s, _e in harness.gateway.calls)
    assert kinds == ["ListingAvailable", "ListingCompleted", "ListingRemoved"]

    await harness.poller.tick()
    assert harness.poller.cursor == 1000


@pytest.mark.asyncio
async def test_no_new_blocks_is_a_noop(harness):
    harness.poller.cursor = 1000
    assert await harness.poller.tick() == 0
    assert harness.gateway.calls == []
    assert harness.poller.cursor == 1000


@pytest.mark.asyncio
async def test_unknown_height_is_a_noop(harness):
    harness.gateway.height = None
    assert await harness.poller.tick() == 0
    assert harness.poller.cursor is None


@pytest.mark.asyncio
async def test_failed_fetch_keeps_cursor(harness):
    harness.gateway.events = [listed("1", 905)]
    harness.gateway.fail_kinds = {"ListingRemoved"}

    assert await harness.poller.tick() == 0
    assert harness.poller.cursor == 900
    assert "1" not in harness.store

    harness.gateway.fail_kinds = set()
    assert await harness.poller.tick() == 1
    assert harness.poller.cursor == 950
    assert "1" in harness.store


@pytest.mark.asyncio
async def test_listing_available_creates_scored_listing(harness):
    harness.gateway.events = [listed("1", 905)]
    await harness.poller.tick()

    listing = harness.store.get("1")
    assert listing.is_active
    assert listing.group_id == GROUP
    assert listing.price == Decimal("10")
    assert listing.floor_at_listing == Decimal("20")
    assert listing.seller_address == "0xabc123"
    assert listing.deal_percent == Decimal("50.0")
    assert harness.store.find_by_listing_ref("ref-1") == "1"


@pytest.mark.asyncio
async def test_group_falls_back_to_item_metadata(harness):
    harness.metadata.items["1"] = ItemAttributes(group_id=GROUP, serial_number=1)
    harness.metadata.averages[GROUP] = Decimal("30")
    harness.gateway.events = [raw_event("ListingAvailable", 905, available_fields("1"))]
    await harness.poller.tick()

    listing = harness.store.get("1")
    assert listing.group_id == GROUP
    assert listing.average_sale_price == Decimal("30")
    # serial #1 lifts the estimate to 10x min(20, 30)
    assert listing.deal_percent == Decimal("95.0")


@pytest.mark.asyncio
async def test_sale_in_same_window_ends_sold(harness):
    harness.gateway.events = [
        completed("1", 905, event_index=1),
        listed("1", 905, event_index=0),
    ]
    await harness.poller.tick()

    assert harness.store.get("1").is_sold
    assert "1" in harness.store.sold


@pytest.mark.asyncio
async def test_completed_without_purchase_is_unlisted(harness):
    harness.gateway.events = [listed("1", 905), completed("1", 906, purchased=False)]
    await harness.poller.tick()

    assert harness.store.get("1").is_unlisted


@pytest.mark.asyncio
async def test_removal_resolved_by_listing_ref(harness):
    harness.gateway.events = [
        listed("1", 905),
        raw_event("ListingRemoved", 907, {"listingResourceID": "ref-1"}),
    ]
    await harness.poller.tick()

    assert harness.store.get("1").is_unlisted


@pytest.mark.asyncio
async def test_malformed_event_is_skipped(harness):
    broken = RawEvent(
        event_type=f"{STOREFRONT}.ListingAvailable",
        block_height=903,
        transaction_index=0,
        event_index=0,
        payload=base64.b64encode(json.dumps({"type": "Event"}).encode()).decode(),
    )
    harness.gateway.events = [broken, listed("1", 905)]

    assert await harness.poller.tick() == 1
    assert harness.poller.cursor == 950
    assert "1" in harness.store


@pytest.mark.asyncio
async def test_listings_outside_scope_are_discarded(harness):
    harness.gateway.events = [
        listed("1", 905, nftType="A.0b2a3299cc857e29.TopShot.NFT"),
        listed("2", 906, price="0.00000000"),
        listed("3", 907, editionID="99"),
    ]
    assert await harness.poller.tick() == 0
    assert len(harness.store) == 0


@pytest.mark.asyncio
async def test_undercut_updates_floor_after_guard(harness):
    harness.gateway.events = [listed("1", 905, price="10.00000000")]
    await harness.poller.tick()
    # the floor was fetched moments ago, so the undercut is refused
    assert harness.floor_cache.peek(GROUP) == Decimal("20")

    harness.clock.advance(61)
    harness.gateway.events = [listed("2", 955, price="12.00000000")]
    await harness.poller.tick()
    assert harness.floor_cache.peek(GROUP) == Decimal("12")


@pytest.mark.asyncio
async def test_replayed_window_is_idempotent(harness):
    harness.gateway.events = [
        listed("1", 905),
        listed("2", 906),
        completed("2", 908),
    ]
    await harness.poller.tick()
    before = [(l.item_id, l.status) for l in harness.store.snapshot()]

    harness.poller.cursor = 900
    await harness.poller.tick()

    assert [(l.item_id, l.status) for l in harness.store.snapshot()] == before
    assert harness.store.get("2").is_sold


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "bad_value",
    [
        {"type": "Struct", "value": "x"},
        {"type": "Array", "value": 5},
        {"type": "Dictionary", "value": [1]},
    ],
)
async def test_malformed_nested_value_does_not_stall_cursor(harness, bad_value):
    doc = {"type": "Event", "value": {"id": "A.x.Event", "fields": [{"name": "nftID", "value": bad_value}]}}
    broken = RawEvent(
        event_type=f"{STOREFRONT}.ListingAvailable",
        block_height=903,
        transaction_index=0,
        event_index=0,
        payload=base64.b64encode(json.dumps(doc).encode()).decode(),
    )
    harness.gateway.events = [broken, listed("1", 905)]

    assert await harness.poller.tick() == 1
    assert harness.poller.cursor == 950
    assert "1" in harness.store
