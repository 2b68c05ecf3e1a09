"""Flow REST gateway client: sealed height, event windows and account resources."""

import logging
from typing import Optional

import httpx

from listing_tracker.api.flow_events import RawEvent, parse_timestamp
from listing_tracker.config import settings

logger = logging.getLogger(__name__)


class FlowRestClient:
    """Thin async client for the ledger's REST access API.

    Every call is time-bounded. Timeouts and non-2xx responses are logged and
    reported as ``None`` ("no data") instead of raising.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        events_timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.flow_rest_api).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.ledger_timeout_seconds
        self.events_timeout = (
            events_timeout if events_timeout is not None else settings.events_timeout_seconds
        )
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, transport=self._transport)

    async def get_sealed_height(self) -> Optional[int]:
        """Highest sealed block height, or None if the gateway is unavailable."""
        try:
            async with self._client() as client:
                response = await client.get(
                    "/v1/blocks", params={"height": "sealed"}, timeout=self.timeout
                )
            if response.status_code != 200:
                logger.warning(f"Sealed height request failed: {response.status_code}")
                return None
            data = response.json()
            block = data[0] if isinstance(data, list) and data else data
            height = int(((block or {}).get("header") or {}).get("height") or 0)
            return height or None
        except (httpx.HTTPError, ValueError, TypeError) as e:
            logger.warning(f"Sealed height request error: {e}")
            return None

    async def get_events(
        self,
        event_type: str,
        start_height: int,
        end_height: int,
    ) -> Optional[list[RawEvent]]:
        """Fetch all events of one type in the inclusive height range.

        Returns None when the window could not be fetched, so callers can tell
        "no events" apart from "unknown".
        """
        params = {
            "type": event_type,
            "start_height": start_height,
            "end_height": end_height,
        }
        try:
            async with self._client() as client:
                response = await client.get("/v1/events", params=params, timeout=self.events_timeout)
            if response.status_code != 200:
                logger.warning(
                    f"Event fetch failed for {event_type} [{start_height}, {end_height}]: "
                    f"{response.status_code}"
                )
                return None
            return self.parse_event_blocks(response.json(), event_type)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Event fetch error for {event_type} [{start_height}, {end_height}]: {e}")
            return None

    def parse_event_blocks(self, blocks: list, event_type: str) -> list[RawEvent]:
        """Flatten the gateway's per-block event lists, in block-then-event order."""
        events: list[RawEvent] = []
        for block in blocks or []:
            if not isinstance(block, dict):
                continue
            try:
                height = int(block.get("block_height") or 0)
            except (TypeError, ValueError):
                logger.warning(f"Skipping block with bad height: {block.get('block_height')!r}")
                continue
            timestamp = parse_timestamp(block.get("block_timestamp"))

            for event in block.get("events") or []:
                try:
                    events.append(
                        RawEvent(
                            event_type=event_type,
                            block_height=height,
                            transaction_index=int(event.get("transaction_index") or 0),
                            event_index=int(event.get("event_index") or 0),
                            payload=event.get("payload"),
                            block_timestamp=timestamp,
                        )
                    )
                except (AttributeError, TypeError, ValueError) as e:
                    logger.warning(f"Skipping malformed {event_type} event at {height}: {e}")
                    continue
        return events

    async def resource_exists(self, address: str, resource_id: str) -> Optional[bool]:
        """True if the account still stores the resource, False on 404, None otherwise."""
        url = f"/v1/accounts/{address}/resources/{resource_id}"
        try:
            async with self._client() as client:
                response = await client.get(url, timeout=self.timeout)
        except httpx.HTTPError as e:
            logger.warning(f"Resource lookup error for {address}/{resource_id}: {e}")
            return None

        if response.status_code == 404:
            return False
        if 200 <= response.status_code < 300:
            return True
        logger.warning(
            f"Resource lookup for {address}/{resource_id} returned {response.status_code}"
        )
        return None
