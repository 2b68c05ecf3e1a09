"""On-demand reconciliation of a single listing against the ledger.

A listing resource that disappears from the seller's account is ambiguous:
the item was either bought or the seller withdrew the offer. The seller's
current holdings settle it. Anything short of a definite answer is returned
as UNVERIFIED and leaves the store untouched.
"""

import logging
from typing import Optional

from listing_tracker.api.findlabs import FindLabsClient
from listing_tracker.api.flow_rest import FlowRestClient
from listing_tracker.schemas import VerificationResult, VerificationStatus
from listing_tracker.store import ListingStore

logger = logging.getLogger(__name__)


class ListingVerifier:
    def __init__(self, store: ListingStore, gateway: FlowRestClient, inventory: FindLabsClient):
        self.store = store
        self.gateway = gateway
        self.inventory = inventory

    async def verify(self, item_id: str, listing_ref: Optional[str] = None) -> VerificationResult:
        def unverified(reason: str) -> VerificationResult:
            return VerificationResult(item_id=item_id, status=VerificationStatus.UNVERIFIED, reason=reason)

        if not item_id:
            return unverified("item id is required")

        seller, stored_ref = await self.store.lookup_seller_and_ref(item_id)
        ref = listing_ref or stored_ref
        if not ref:
            return unverified("Listing or listing ref not found")
        if not seller:
            return unverified("Seller address not found")

        exists = await self.gateway.resource_exists(seller, ref)
        if exists is None:
            return unverified("Could not verify listing status")
        if exists:
            return VerificationResult(
                item_id=item_id,
                status=VerificationStatus.ACTIVE,
                reason="Listing still active on-chain",
            )

        if stored_ref and ref != stored_ref:
            return unverified(f"Listing ref {ref} is not the current listing ({stored_ref})")

        holdings = await self.inventory.get_holdings(seller)
        if holdings is None:
            return unverified("Listing resource removed; seller holdings unavailable")

        if item_id in holdings:
            if not await self.store.mark_unlisted(item_id, ref):
                return self._rejected(item_id, VerificationStatus.UNLISTED)
            logger.info(f"[Verify] Item {item_id} unlisted: resource gone, still held by {seller}")
            return VerificationResult(
                item_id=item_id,
                status=VerificationStatus.UNLISTED,
                reason="Listing resource removed, item still in seller wallet",
            )

        if not await self.store.mark_sold(item_id):
            return self._rejected(item_id, VerificationStatus.SOLD)
        logger.info(f"[Verify] Item {item_id} sold: no longer held by {seller}")
        return VerificationResult(
            item_id=item_id,
            status=VerificationStatus.SOLD,
            reason="Item moved from seller wallet",
        )

    def _rejected(self, item_id: str, verdict: VerificationStatus) -> VerificationResult:
        """Result for a verdict the store refused to apply."""
        current = self.store.get(item_id)
        if current is not None and current.status.value == verdict.value:
            return VerificationResult(
                item_id=item_id,
                status=verdict,
                reason=f"Listing already marked {verdict.value}",
            )
        state = current.status.value if current is not None else "unknown"
        logger.warning(f"[Verify] Item {item_id} looks {verdict.value} but the store kept it {state}")
        return VerificationResult(
            item_id=item_id,
            status=VerificationStatus.UNVERIFIED,
            reason=f"Listing is {state} in the store; {verdict.value} not applied",
        )
