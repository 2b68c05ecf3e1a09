"""Floor price source: scrapes the "Lowest Ask" from an edition's market page."""

import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Optional

import httpx

from listing_tracker.config import settings

logger = logging.getLogger(__name__)

_LOWEST_ASK_RE = re.compile(r"Lowest\s+Ask[^$]*\$\s*([0-9][0-9,]*(?:\.\d{1,2})?)", re.IGNORECASE)

_HEADERS = {
    "user-agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "accept": "text/html,application/xhtml+xml",
}


def parse_lowest_ask(html: str) -> Optional[Decimal]:
    match = _LOWEST_ASK_RE.search(html or "")
    if not match:
        return None
    try:
        return Decimal(match.group(1).replace(",", ""))
    except InvalidOperation:
        return None


class FloorPriceScraper:
    """Fetches the current floor for a group id. Returns None when unavailable."""

    def __init__(
        self,
        url_template: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url_template = url_template or settings.floor_price_url
        self.timeout = timeout if timeout is not None else settings.floor_timeout_seconds
        self._transport = transport

    async def fetch_floor(self, group_id: str) -> Optional[Decimal]:
        url = self.url_template.format(group_id=group_id)
        try:
            async with httpx.AsyncClient(transport=self._transport, follow_redirects=True) as client:
                response = await client.get(url, headers=_HEADERS, timeout=self.timeout)
        except httpx.HTTPError as e:
            logger.warning(f"Floor scrape error for group {group_id}: {e}")
            return None

        if response.status_code != 200:
            logger.debug(f"Floor scrape for group {group_id} returned {response.status_code}")
            return None

        floor = parse_lowest_ask(response.text)
        if floor is None:
            logger.debug(f"No lowest ask found for group {group_id}")
        return floor
