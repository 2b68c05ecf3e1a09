"""Database models."""

from listing_tracker.models.tracked_listing import TrackedListing
from listing_tracker.models.wallet_holding import WalletHolding
from listing_tracker.models.item_metadata import ItemMetadata
from listing_tracker.models.group_price import GroupPrice

__all__ = [
    "TrackedListing",
    "WalletHolding",
    "ItemMetadata",
    "GroupPrice",
]
