"""Item display metadata (populated by the metadata ETL, read-only here)."""

from typing import Optional

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from listing_tracker.database import Base


class ItemMetadata(Base):
    """Per-item attributes: edition, serial, player and set details."""

    __tablename__ = "nft_core_metadata_v2"

    nft_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    edition_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    serial_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    max_mint_size: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    jersey_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    first_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    team_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    position: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    tier: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    set_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    series_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<ItemMetadata(nft_id={self.nft_id}, edition={self.edition_id}, serial={self.serial_number})>"
