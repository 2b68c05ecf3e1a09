"""Tests for the outbound HTTP clients, using httpx.MockTransport."""

from decimal import Decimal

import httpx
import pytest

from listing_tracker.api.findlabs import FindLabsClient
from listing_tracker.api.floor_scraper import FloorPriceScraper, parse_lowest_ask
from listing_tracker.api.flow_rest import FlowRestClient

from conftest import STOREFRONT, available_fields, cadence_event


def flow_client(handler) -> FlowRestClient:
    return FlowRestClient(base_url="https://flow.test", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_sealed_height():
    def handler(request):
        assert request.url.path == "/v1/blocks"
        assert request.url.params["height"] == "sealed"
        return httpx.Response(200, json=[{"header": {"id": "abc", "height": "9001"}}])

    assert await flow_client(handler).get_sealed_height() == 9001


@pytest.mark.asyncio
async def test_sealed_height_unavailable():
    def handler(request):
        return httpx.Response(503, text="busy")

    assert await flow_client(handler).get_sealed_height() is None


@pytest.mark.asyncio
async def test_events_are_flattened_in_block_order():
    event_type = f"{STOREFRONT}.ListingAvailable"

    def handler(request):
        assert request.url.params["start_height"] == "10"
        assert request.url.params["end_height"] == "12"
        return httpx.Response(200, json=[
            {
                "block_height": "11",
                "block_timestamp": "2026-10-01T12:00:00.5Z",
                "events": [
                    {"type": event_type, "transaction_index": "0", "event_index": "1",
                     "payload": cadence_event(available_fields("2"))},
                    {"type": event_type, "transaction_index": "0", "event_index": "0",
                     "payload": cadence_event(available_fields("1"))},
                ],
            },
            {"block_height": "12", "block_timestamp": None, "events": []},
        ])

    events = await flow_client(handler).get_events(event_type, 10, 12)
    assert [e.event_index for e in events] == [1, 0]
    assert all(e.block_height == 11 for e in events)
    assert events[0].kind == "ListingAvailable"


@pytest.mark.asyncio
async def test_events_are_tagged_with_the_requested_type():
    event_type = f"{STOREFRONT}.ListingRemoved"

    def handler(request):
        return httpx.Response(200, json=[
            {
                "block_height": "11",
                "events": [
                    {"type": "flow.AccountCreated", "transaction_index": "0", "event_index": "0",
                     "payload": cadence_event({"listingResourceID": "9"})},
                ],
            },
        ])

    events = await flow_client(handler).get_events(event_type, 10, 12)
    assert [e.event_type for e in events] == [event_type]
    assert events[0].kind == "ListingRemoved"


@pytest.mark.asyncio
async def test_event_fetch_failure_is_none():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    assert await flow_client(handler).get_events(f"{STOREFRONT}.ListingRemoved", 1, 2) is None


@pytest.mark.asyncio
async def test_event_fetch_server_error_is_none():
    def handler(request):
        return httpx.Response(500)

    assert await flow_client(handler).get_events(f"{STOREFRONT}.ListingRemoved", 1, 2) is None


@pytest.mark.asyncio
@pytest.mark.parametrize("status,expected", [(200, True), (404, False), (500, None)])
async def test_resource_exists(status, expected):
    def handler(request):
        assert request.url.path == "/v1/accounts/0xabc/resources/77"
        return httpx.Response(status, json={})

    assert await flow_client(handler).resource_exists("0xabc", "77") is expected


@pytest.mark.asyncio
async def test_holdings_lookup():
    def handler(request):
        assert request.url.path == "/flow/v1/account/0xabc/nft/A.e4cf4bdc1751c65d.AllDay"
        assert request.headers["Authorization"] == "Bearer secret"
        return httpx.Response(200, json={"data": [{"id": 1}, {"nft_id": "2"}, "3"]})

    client = FindLabsClient(
        base_url="https://find.test",
        api_key="secret",
        transport=httpx.MockTransport(handler),
    )
    assert await client.get_holdings("0xabc") == {"1", "2", "3"}


@pytest.mark.asyncio
async def test_holdings_timeout_is_none():
    def handler(request):
        raise httpx.ConnectTimeout("slow", request=request)

    client = FindLabsClient(base_url="https://find.test", transport=httpx.MockTransport(handler))
    assert await client.get_holdings("0xabc") is None


def test_parse_lowest_ask():
    html = "<div>Lowest Ask</div><span>$1,234.50</span>"
    assert parse_lowest_ask(html) == Decimal("1234.50")
    assert parse_lowest_ask("<div>Sold out</div>") is None


@pytest.mark.asyncio
async def test_floor_scraper():
    def handler(request):
        assert request.url.path == "/listing/moment/ed-9"
        return httpx.Response(200, text="<p>Lowest Ask: $ 12</p>")

    scraper = FloorPriceScraper(
        url_template="https://market.test/listing/moment/{group_id}",
        transport=httpx.MockTransport(handler),
    )
    assert await scraper.fetch_floor("ed-9") == Decimal("12")
