"""Application configuration settings."""

from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str = "postgresql://localhost:5432/listingtracker"

    # Redis (Celery broker for the retention sweep)
    redis_url: str = "redis://localhost:6379/0"

    # Environment
    environment: str = "development"

    # Flow ledger REST gateway
    flow_rest_api: str = "https://rest-mainnet.onflow.org"
    storefront_contract: str = "A.4eb8a10cb9f87357.NFTStorefront"
    tracked_nft_type: str = "A.e4cf4bdc1751c65d.AllDay.NFT"

    # FindLabs inventory API (used when verifying a vanished listing)
    findlabs_api_base: str = "https://api.find.xyz"
    findlabs_api_key: str = ""
    holdings_collection: str = "A.e4cf4bdc1751c65d.AllDay"

    # Floor price source; {group_id} is substituted
    floor_price_url: str = "https://nflallday.com/listing/moment/{group_id}"

    # Poller
    tracker_enabled: bool = True
    poll_interval_seconds: float = 3.0
    poll_lookback_blocks: int = 100
    poll_window_blocks: int = 50

    # Outbound timeouts (seconds)
    ledger_timeout_seconds: float = 5.0
    events_timeout_seconds: float = 10.0
    inventory_timeout_seconds: float = 10.0
    floor_timeout_seconds: float = 8.0

    # In-memory caps
    max_active_listings: int = 1500
    max_seen_items: int = 500
    max_sold_items: int = 500

    # Floor price cache
    floor_cache_ttl_seconds: float = 300.0
    floor_cache_max_size: int = 300
    floor_update_guard_seconds: float = 60.0
    floor_warmup_limit: int = 50
    floor_warmup_batch_size: int = 10

    # Durable retention (warm start window and sweep)
    listing_retention_days: int = 3
    retention_sweep_seconds: int = 3600

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
