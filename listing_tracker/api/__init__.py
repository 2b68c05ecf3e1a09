"""Outbound API clients."""

from listing_tracker.api.flow_rest import FlowRestClient
from listing_tracker.api.findlabs import FindLabsClient
from listing_tracker.api.floor_scraper import FloorPriceScraper

__all__ = [
    "FlowRestClient",
    "FindLabsClient",
    "FloorPriceScraper",
]
