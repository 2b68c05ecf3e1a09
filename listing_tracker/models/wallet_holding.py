"""Wallet holdings ledger row."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from listing_tracker.database import Base


class WalletHolding(Base):
    """An item currently held by a wallet. Rewritten when a tracked listing sells."""

    __tablename__ = "wallet_holdings"

    wallet_address: Mapped[str] = mapped_column(String(64), primary_key=True)
    item_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    is_locked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_event_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    last_synced_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<WalletHolding(wallet={self.wallet_address}, item_id={self.item_id})>"
