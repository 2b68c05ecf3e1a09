"""Durable mirror of the listing store (one sniper_listings row per item id).

All methods are synchronous SQLAlchemy work; the store runs them off the
event loop and never waits on them for its own state.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from pydantic import ValidationError
from sqlalchemy.orm import Session, sessionmaker

from listing_tracker.database import SessionLocal
from listing_tracker.models import TrackedListing, WalletHolding
from listing_tracker.schemas import Listing, ListingStatus

logger = logging.getLogger(__name__)


def _status_from_row(row: TrackedListing) -> ListingStatus:
    if row.is_sold:
        return ListingStatus.SOLD
    if row.is_unlisted:
        return ListingStatus.UNLISTED
    return ListingStatus.ACTIVE


def _listing_from_row(row: TrackedListing) -> Optional[Listing]:
    try:
        listing = Listing.model_validate(row.listing_data)
    except ValidationError as e:
        logger.warning(f"Skipping unreadable stored listing {row.item_id}: {e}")
        return None
    listing.status = _status_from_row(row)
    listing.buyer_address = row.buyer_address or listing.buyer_address
    listing.seller_address = listing.seller_address or row.seller_address
    listing.listing_ref = listing.listing_ref or row.listing_ref
    return listing


class ListingRepository:
    """CRUD for the tracked-listing table plus the holdings side effect."""

    def __init__(self, session_factory: sessionmaker = SessionLocal):
        self._session_factory = session_factory

    def _session(self) -> Session:
        return self._session_factory()

    def save(self, listing: Listing) -> None:
        """Insert or replace the row for ``listing.item_id``.

        A null listing_ref or seller never overwrites a stored one.
        """
        db = self._session()
        try:
            now = datetime.utcnow()
            data = listing.model_dump(mode="json")
            row = db.get(TrackedListing, listing.item_id)
            if row is None:
                row = TrackedListing(item_id=listing.item_id, listed_at=listing.listed_at)
                db.add(row)
            row.listing_ref = listing.listing_ref or row.listing_ref
            row.group_id = listing.group_id or row.group_id
            row.listing_data = data
            row.listed_at = listing.listed_at
            row.is_sold = listing.is_sold
            row.is_unlisted = listing.is_unlisted
            row.buyer_address = listing.buyer_address
            row.seller_address = listing.seller_address or row.seller_address
            row.updated_at = now
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def get(self, item_id: str) -> Optional[Listing]:
        db = self._session()
        try:
            row = db.get(TrackedListing, item_id)
            return _listing_from_row(row) if row else None
        finally:
            db.close()

    def find_seller_and_ref(self, item_id: str) -> Optional[tuple[Optional[str], Optional[str]]]:
        db = self._session()
        try:
            row = (
                db.query(TrackedListing.seller_address, TrackedListing.listing_ref)
                .filter(TrackedListing.item_id == item_id)
                .first()
            )
            return (row[0], row[1]) if row else None
        finally:
            db.close()

    def load_recent(self, since: datetime, limit: int) -> list[Listing]:
        """Listings listed at or after ``since``, newest first."""
        db = self._session()
        try:
            rows = (
                db.query(TrackedListing)
                .filter(TrackedListing.listed_at >= since)
                .order_by(TrackedListing.listed_at.desc())
                .limit(limit)
                .all()
            )
            out = []
            for row in rows:
                listing = _listing_from_row(row)
                if listing:
                    out.append(listing)
            return out
        finally:
            db.close()

    def _set_terminal(
        self,
        item_id: str,
        status: ListingStatus,
        buyer_address: Optional[str] = None,
        listing_ref: Optional[str] = None,
    ) -> bool:
        db = self._session()
        try:
            row = db.get(TrackedListing, item_id)
            if row is None or row.is_sold or row.is_unlisted:
                return False
            if listing_ref and row.listing_ref and row.listing_ref != listing_ref:
                return False

            data = dict(row.listing_data or {})
            data["status"] = status.value
            row.is_sold = status == ListingStatus.SOLD
            row.is_unlisted = status == ListingStatus.UNLISTED
            if buyer_address:
                row.buyer_address = buyer_address
                data["buyer_address"] = buyer_address
            row.listing_data = data
            row.updated_at = datetime.utcnow()
            db.commit()
            return True
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def mark_sold(self, item_id: str, buyer_address: Optional[str] = None) -> bool:
        """Flip a stored Active row to sold. Returns False if nothing changed."""
        return self._set_terminal(item_id, ListingStatus.SOLD, buyer_address=buyer_address)

    def mark_unlisted(self, item_id: str, listing_ref: Optional[str] = None) -> bool:
        """Flip a stored Active row to unlisted, guarded by listing_ref when given."""
        return self._set_terminal(item_id, ListingStatus.UNLISTED, listing_ref=listing_ref)

    def reset_sold(self, predicate: Callable[[Listing], bool]) -> list[str]:
        """Return sold rows matching ``predicate`` to Active. Returns the item ids reset."""
        db = self._session()
        try:
            reset: list[str] = []
            rows = db.query(TrackedListing).filter(TrackedListing.is_sold == True).all()
            now = datetime.utcnow()
            for row in rows:
                listing = _listing_from_row(row)
                if listing is None or not predicate(listing):
                    continue
                data = dict(row.listing_data or {})
                data["status"] = ListingStatus.ACTIVE.value
                data["buyer_address"] = None
                row.listing_data = data
                row.is_sold = False
                row.buyer_address = None
                row.updated_at = now
                reset.append(row.item_id)
            db.commit()
            return reset
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def transfer_holding(self, item_id: str, seller_address: str, buyer_address: str) -> None:
        """Move ``item_id`` from the seller's holdings to the buyer's."""
        seller = seller_address.lower()
        buyer = buyer_address.lower()
        db = self._session()
        try:
            now = datetime.utcnow()
            db.query(WalletHolding).filter(
                WalletHolding.wallet_address == seller,
                WalletHolding.item_id == item_id,
            ).delete(synchronize_session=False)

            holding = db.get(WalletHolding, (buyer, item_id))
            if holding is None:
                db.add(
                    WalletHolding(
                        wallet_address=buyer,
                        item_id=item_id,
                        is_locked=False,
                        last_event_at=now,
                        last_synced_at=now,
                    )
                )
            else:
                holding.last_event_at = now
                holding.last_synced_at = now
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def delete_older_than(self, cutoff: datetime) -> int:
        """Retention sweep: drop rows listed before ``cutoff``."""
        db = self._session()
        try:
            deleted = (
                db.query(TrackedListing)
                .filter(TrackedListing.listed_at < cutoff)
                .delete(synchronize_session=False)
            )
            db.commit()
            return deleted
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
