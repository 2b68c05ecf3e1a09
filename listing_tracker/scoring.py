"""Deal score: how far a listing sits below an estimated fair value."""

from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from listing_tracker.schemas import Listing

OUTLIER_RATIO = Decimal("3")
OUTLIER_FALLBACK = Decimal("1.5")


def effective_floor(floor: Optional[Decimal], average_sale: Optional[Decimal]) -> Decimal:
    """Pick the fair-value reference from the floor and the average sale.

    A floor more than three times the average sale is treated as an outlier
    and replaced by 1.5x the average.
    """
    if floor and average_sale and average_sale > 0:
        if floor > average_sale * OUTLIER_RATIO:
            return average_sale * OUTLIER_FALLBACK
        return min(floor, average_sale)
    return floor or average_sale or Decimal("0")


def rarity_multiplier(
    serial: Optional[int],
    jersey_number: Optional[int] = None,
    max_mint: Optional[int] = None,
) -> Decimal:
    """First match wins: #1, jersey match, last mint, top 10, top 100."""
    if serial is None:
        return Decimal("1")
    if serial == 1:
        return Decimal("10")
    if jersey_number and serial == jersey_number:
        return Decimal("5")
    if max_mint and serial == max_mint:
        return Decimal("2.5")
    if serial <= 10:
        return Decimal("3")
    if serial <= 100:
        return Decimal("1.5")
    return Decimal("1")


def calculate_deal_score(
    price: Optional[Decimal],
    floor: Optional[Decimal],
    average_sale: Optional[Decimal] = None,
    serial: Optional[int] = None,
    jersey_number: Optional[int] = None,
    max_mint: Optional[int] = None,
) -> Decimal:
    """Percent below estimated value, rounded to one decimal. Negative means overpriced."""
    if not price or price <= 0:
        return Decimal("0")

    reference = effective_floor(floor, average_sale)
    if reference <= 0:
        return Decimal("0")

    estimated = reference * rarity_multiplier(serial, jersey_number, max_mint)
    score = (estimated - price) / estimated * Decimal("100")
    return score.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)


def score_listing(listing: Listing) -> Decimal:
    attrs = listing.attributes
    return calculate_deal_score(
        listing.price,
        listing.floor_at_listing,
        listing.average_sale_price,
        serial=attrs.serial_number if attrs else None,
        jersey_number=attrs.jersey_number if attrs else None,
        max_mint=attrs.max_mint if attrs else None,
    )
