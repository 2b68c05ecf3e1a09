"""Listing record and the request/result shapes around it."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ListingStatus(str, Enum):
    ACTIVE = "active"
    SOLD = "sold"
    UNLISTED = "unlisted"


class ItemAttributes(BaseModel):
    """Display attributes for an item. Enrichment only, never authoritative."""

    group_id: Optional[str] = None
    serial_number: Optional[int] = None
    max_mint: Optional[int] = None
    jersey_number: Optional[int] = None
    player_name: Optional[str] = None
    team_name: Optional[str] = None
    position: Optional[str] = None
    tier: Optional[str] = None
    set_name: Optional[str] = None
    series_name: Optional[str] = None


class Listing(BaseModel):
    """A tracked marketplace listing, keyed by item id."""

    item_id: str
    listing_ref: Optional[str] = None
    group_id: Optional[str] = None

    # Prices are snapshots taken when the listing was created
    price: Decimal
    floor_at_listing: Optional[Decimal] = None
    average_sale_price: Optional[Decimal] = None
    deal_percent: Decimal = Decimal("0")

    status: ListingStatus = ListingStatus.ACTIVE
    seller_address: Optional[str] = None
    buyer_address: Optional[str] = None
    listed_at: datetime = Field(default_factory=datetime.utcnow)

    attributes: Optional[ItemAttributes] = None

    # Filled in at read time by ListingStore.list_active
    top_sale_price: Optional[Decimal] = None
    floor_delta: Optional[Decimal] = None
    asp_delta: Optional[Decimal] = None
    parallel_variant: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status == ListingStatus.ACTIVE

    @property
    def is_sold(self) -> bool:
        return self.status == ListingStatus.SOLD

    @property
    def is_unlisted(self) -> bool:
        return self.status == ListingStatus.UNLISTED

    @property
    def serial_number(self) -> Optional[int]:
        return self.attributes.serial_number if self.attributes else None

    def __repr__(self) -> str:
        return f"<Listing(item_id={self.item_id}, price={self.price}, status={self.status.value})>"


class ListingFilters(BaseModel):
    """Query filters for ListingStore.list_active."""

    status: str = "active"  # active | sold | unlisted | sold-unlisted | all
    group_id: Optional[str] = None
    team: Optional[str] = None
    player: Optional[str] = None
    tier: Optional[str] = None
    max_price: Optional[Decimal] = None
    max_serial: Optional[int] = None
    min_discount: Optional[Decimal] = None
    deals_only: bool = False
    limit: Optional[int] = Field(default=None, ge=1)


class VerificationStatus(str, Enum):
    ACTIVE = "active"
    SOLD = "sold"
    UNLISTED = "unlisted"
    UNVERIFIED = "unverified"


class VerificationResult(BaseModel):
    """Outcome of reconciling one listing against the ledger."""

    item_id: str
    status: VerificationStatus
    reason: str

    @property
    def ok(self) -> bool:
        return self.status != VerificationStatus.UNVERIFIED


class ResetResult(BaseModel):
    count: int
