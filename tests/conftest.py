"""Shared fixtures: in-memory SQLite mirror, fakes for the outbound APIs."""

import base64
import json
import os
from datetime import datetime
from decimal import Decimal
from typing import Optional

# Must be set before listing_tracker.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "test")

import pytest
import pytest_asyncio
from sqlalchemy.orm import sessionmaker

from listing_tracker import models  # noqa: F401  (registers tables)
from listing_tracker.api.flow_events import RawEvent
from listing_tracker.database import Base, make_engine
from listing_tracker.metadata import MetadataLookup
from listing_tracker.repository import ListingRepository
from listing_tracker.schemas import ItemAttributes, Listing
from listing_tracker.store import ListingStore

STOREFRONT = "A.4eb8a10cb9f87357.NFTStorefront"
ALLDAY_TYPE = "A.e4cf4bdc1751c65d.AllDay.NFT"
SELLER = "0xabc123"
BUYER = "0xdef456"


class ManualClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_listing(
    item_id: str,
    price: str = "10",
    listing_ref: Optional[str] = None,
    group_id: str = "ed-1",
    floor: str = "20",
    seller: str = SELLER,
    serial: Optional[int] = 500,
    **attrs,
) -> Listing:
    return Listing(
        item_id=item_id,
        listing_ref=listing_ref or f"ref-{item_id}",
        group_id=group_id,
        price=Decimal(price),
        floor_at_listing=Decimal(floor),
        seller_address=seller,
        listed_at=datetime.utcnow(),
        attributes=ItemAttributes(group_id=group_id, serial_number=serial, **attrs),
    )


def cadence_event(fields: dict) -> str:
    """Encode a field map as a base64 JSON-Cadence event payload."""
    encoded = []
    for name, value in fields.items():
        if name == "nftType":
            node = {"type": "Type", "value": {"staticType": {"kind": "Resource", "typeID": value}}}
        elif name == "price":
            node = {"type": "UFix64", "value": str(value)}
        elif name == "purchased":
            node = {"type": "Bool", "value": value}
        elif name == "storefrontAddress":
            node = {"type": "Address", "value": value}
        else:
            node = {"type": "UInt64", "value": str(value)}
        encoded.append({"name": name, "value": node})
    doc = {"type": "Event", "value": {"id": "A.x.Event", "fields": encoded}}
    return base64.b64encode(json.dumps(doc).encode()).decode()


def raw_event(kind: str, height: int, fields: dict, event_index: int = 0) -> RawEvent:
    return RawEvent(
        event_type=f"{STOREFRONT}.{kind}",
        block_height=height,
        transaction_index=0,
        event_index=event_index,
        payload=cadence_event(fields),
        block_timestamp=datetime(2026, 10, 1, 12, 0, 0),
    )


def available_fields(item_id: str, price: str = "10.00000000", ref: Optional[str] = None, nft_type: str = ALLDAY_TYPE) -> dict:
    return {
        "storefrontAddress": SELLER,
        "listingResourceID": ref or f"ref-{item_id}",
        "nftType": nft_type,
        "nftID": item_id,
        "price": price,
    }


class FakeGateway:
    """In-process stand-in for FlowRestClient."""

    def __init__(self, height: Optional[int] = None):
        self.height = height
        self.events: list[RawEvent] = []
        self.fail_kinds: set[str] = set()
        self.calls: list[tuple[str, int, int]] = []
        self.resources: dict[tuple[str, str], Optional[bool]] = {}

    async def get_sealed_height(self) -> Optional[int]:
        return self.height

    async def get_events(self, event_type: str, start_height: int, end_height: int):
        self.calls.append((event_type, start_height, end_height))
        kind = event_type.rsplit(".", 1)[-1]
        if kind in self.fail_kinds:
            return None
        return [
            e for e in self.events
            if e.event_type == event_type and start_height <= e.block_height <= end_height
        ]

    async def resource_exists(self, address: str, resource_id: str) -> Optional[bool]:
        return self.resources.get((address, resource_id), False)


class FakeInventory:
    def __init__(self, holdings: Optional[dict[str, set[str]]] = None):
        self.holdings = holdings or {}
        self.unavailable = False

    async def get_holdings(self, address: str):
        if self.unavailable:
            return None
        return set(self.holdings.get(address, set()))


class FakeMetadata:
    def __init__(self):
        self.items: dict[str, ItemAttributes] = {}
        self.averages: dict[str, Decimal] = {}

    async def attributes(self, item_id: str):
        return self.items.get(item_id)

    async def average_sale(self, group_id: str):
        return self.averages.get(group_id)


@pytest.fixture
def session_factory():
    engine = make_engine("sqlite://")
    Base.metadata.create_all(engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def repository(session_factory):
    return ListingRepository(session_factory)


@pytest.fixture
def metadata(session_factory):
    return MetadataLookup(session_factory)


@pytest_asyncio.fixture
async def store(repository, metadata):
    s = ListingStore(repository, metadata=metadata, max_listings=10, max_seen=20, max_sold=10)
    yield s
    await s.shutdown()
