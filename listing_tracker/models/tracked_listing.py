"""Durable mirror of tracked marketplace listings."""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from listing_tracker.database import Base


class TrackedListing(Base):
    """One row per item id holding the latest Listing record as a JSON blob."""

    __tablename__ = "sniper_listings"
    __table_args__ = (
        Index("idx_sniper_listings_listed_at", "listed_at"),
        Index("idx_sniper_listings_updated_at", "updated_at"),
        Index("idx_sniper_listings_status", "is_sold", "is_unlisted"),
        Index("idx_sniper_listings_seller_address", "seller_address"),
    )

    item_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    listing_ref: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    group_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # Full serialized Listing
    listing_data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    # Status
    is_sold: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_unlisted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Parties
    buyer_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    seller_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # Timestamps
    listed_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    def __repr__(self) -> str:
        return (
            f"<TrackedListing(item_id={self.item_id}, listing_ref={self.listing_ref}, "
            f"sold={self.is_sold}, unlisted={self.is_unlisted})>"
        )
