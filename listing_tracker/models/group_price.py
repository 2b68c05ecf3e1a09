"""Scraped per-edition sale prices (read-only here)."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import DateTime, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from listing_tracker.database import Base


class GroupPrice(Base):
    """Average and top sale prices (USD) for an edition."""

    __tablename__ = "edition_price_scrape"

    edition_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    avg_sale_usd: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    top_sale_usd: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    scraped_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<GroupPrice(edition_id={self.edition_id}, avg={self.avg_sale_usd})>"
