"""Item attribute and sale-price lookups backed by the metadata tables."""

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from listing_tracker.database import SessionLocal
from listing_tracker.models import GroupPrice, ItemMetadata
from listing_tracker.schemas import ItemAttributes

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SalePrices:
    average: Optional[Decimal]
    top: Optional[Decimal]


def _attributes_from_row(row: ItemMetadata) -> ItemAttributes:
    player = None
    if row.first_name and row.last_name:
        player = f"{row.first_name} {row.last_name}"
    return ItemAttributes(
        group_id=row.edition_id,
        serial_number=row.serial_number,
        max_mint=row.max_mint_size,
        jersey_number=row.jersey_number,
        player_name=player,
        team_name=row.team_name,
        position=row.position,
        tier=row.tier,
        set_name=row.set_name,
        series_name=row.series_name,
    )


class MetadataLookup:
    """Reads item attributes and per-group sale prices.

    Failures are logged and reported as missing data; enrichment is never
    allowed to fail a caller.
    """

    def __init__(self, session_factory: sessionmaker = SessionLocal):
        self._session_factory = session_factory

    # Sync queries (run off the event loop)

    def _load_attributes(self, item_ids: list[str]) -> dict[str, ItemAttributes]:
        db: Session = self._session_factory()
        try:
            rows = db.query(ItemMetadata).filter(ItemMetadata.nft_id.in_(item_ids)).all()
            return {row.nft_id: _attributes_from_row(row) for row in rows}
        finally:
            db.close()

    def _load_prices(self, group_ids: list[str]) -> dict[str, SalePrices]:
        db: Session = self._session_factory()
        try:
            rows = db.query(GroupPrice).filter(GroupPrice.edition_id.in_(group_ids)).all()
            return {
                row.edition_id: SalePrices(
                    average=Decimal(row.avg_sale_usd) if row.avg_sale_usd else None,
                    top=Decimal(row.top_sale_usd) if row.top_sale_usd else None,
                )
                for row in rows
            }
        finally:
            db.close()

    # Async API

    async def attributes_for(self, item_ids: Iterable[str]) -> dict[str, ItemAttributes]:
        ids = sorted({i for i in item_ids if i})
        if not ids:
            return {}
        try:
            return await asyncio.to_thread(self._load_attributes, ids)
        except SQLAlchemyError as e:
            logger.warning(f"Attribute lookup failed for {len(ids)} items: {e}")
            return {}

    async def attributes(self, item_id: str) -> Optional[ItemAttributes]:
        found = await self.attributes_for([item_id])
        return found.get(item_id)

    async def sale_prices_for(self, group_ids: Iterable[str]) -> dict[str, SalePrices]:
        ids = sorted({g for g in group_ids if g})
        if not ids:
            return {}
        try:
            return await asyncio.to_thread(self._load_prices, ids)
        except SQLAlchemyError as e:
            logger.warning(f"Sale price lookup failed for {len(ids)} groups: {e}")
            return {}

    async def average_sale(self, group_id: str) -> Optional[Decimal]:
        prices = (await self.sale_prices_for([group_id])).get(group_id)
        return prices.average if prices else None
