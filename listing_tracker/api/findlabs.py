"""FindLabs inventory client: which items a wallet currently holds."""

import logging
from typing import Optional

import httpx

from listing_tracker.config import settings

logger = logging.getLogger(__name__)


class FindLabsClient:
    """Reads a wallet's current holdings for the tracked collection."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        collection: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.findlabs_api_base).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.findlabs_api_key
        self.collection = collection or settings.holdings_collection
        self.timeout = timeout if timeout is not None else settings.inventory_timeout_seconds
        self._transport = transport

    @property
    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            key = self.api_key
            headers["Authorization"] = key if key.lower().startswith("bearer ") else f"Bearer {key}"
        return headers

    async def get_holdings(self, address: str, limit: int = 1000) -> Optional[set[str]]:
        """Item ids held by ``address``; None when the lookup failed."""
        url = f"{self.base_url}/flow/v1/account/{address}/nft/{self.collection}"
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.get(
                    url,
                    headers=self._headers,
                    params={"limit": limit},
                    timeout=self.timeout,
                )
            if response.status_code != 200:
                logger.warning(f"Holdings lookup for {address} failed: {response.status_code}")
                return None
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Holdings lookup for {address} error: {e}")
            return None

        items = (data or {}).get("data") if isinstance(data, dict) else None
        if not isinstance(items, list):
            logger.warning(f"Holdings lookup for {address} returned no data list")
            return None

        held: set[str] = set()
        for item in items:
            if isinstance(item, dict):
                item_id = item.get("id") or item.get("nft_id")
            else:
                item_id = item
            if item_id is not None and item_id != "":
                held.add(str(item_id))
        return held
