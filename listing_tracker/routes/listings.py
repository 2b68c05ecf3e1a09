"""Listing routes: query, verify and reset tracked listings."""

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from listing_tracker.schemas import Listing, ListingFilters, ResetResult, VerificationResult
from listing_tracker.tracker import ListingTracker

router = APIRouter()


def get_tracker(request: Request) -> ListingTracker:
    tracker = getattr(request.app.state, "tracker", None)
    if tracker is None:
        raise HTTPException(status_code=503, detail="Listing tracker is not running")
    return tracker


@router.get("/api/listings", response_model=list[Listing])
async def get_listings(
    status: str = "active",
    group_id: Optional[str] = None,
    team: Optional[str] = None,
    player: Optional[str] = None,
    tier: Optional[str] = None,
    max_price: Optional[Decimal] = None,
    max_serial: Optional[int] = None,
    min_discount: Optional[Decimal] = None,
    deals_only: bool = False,
    limit: int = 50,
    tracker: ListingTracker = Depends(get_tracker),
):
    """
    Get tracked listings, enriched and re-scored at read time.

    Args:
        status: 'active', 'sold', 'unlisted', 'sold-unlisted' or 'all'
        deals_only: Only listings with a positive deal score
        min_discount: Minimum deal score (percent)
    """
    filters = ListingFilters(
        status=status,
        group_id=group_id,
        team=team,
        player=player,
        tier=tier,
        max_price=max_price,
        max_serial=max_serial,
        min_discount=min_discount,
        deals_only=deals_only,
        limit=max(1, min(limit, 500)),
    )
    return await tracker.get_active_listings(filters)


class VerifyRequest(BaseModel):
    listing_ref: Optional[str] = None


@router.post("/api/listings/{item_id}/verify", response_model=VerificationResult)
async def verify_listing(
    item_id: str,
    payload: VerifyRequest | None = None,
    tracker: ListingTracker = Depends(get_tracker),
):
    """Check one listing against the ledger and the seller's holdings."""
    return await tracker.verify_listing(item_id, payload.listing_ref if payload else None)


class ResetSoldRequest(BaseModel):
    # Restrict the reset to these item ids; empty means every sold listing
    item_ids: list[str] = Field(default_factory=list)


@router.post("/api/listings/reset-sold", response_model=ResetResult)
async def reset_sold(
    payload: ResetSoldRequest | None = None,
    tracker: ListingTracker = Depends(get_tracker),
):
    """Undo erroneous sold markings."""
    predicate = None
    if payload and payload.item_ids:
        wanted = set(payload.item_ids)
        predicate = lambda listing: listing.item_id in wanted
    return await tracker.reset_all_to_active(predicate)
