"""External data sources -- block explorer events and price series."""

from indexer.config import AppSettings
from indexer.sources.client import EventSource, PriceFeed
from indexer.sources.exchange_feed import ExchangePriceFeed
from indexer.sources.explorer import ExplorerEventSource
from indexer.sources.retry import fetch_with_retry
from indexer.sources.twelve_data import TwelveDataPriceFeed


def create_price_feed(settings: AppSettings) -> PriceFeed:
    """Build the configured price feed provider."""
    retry = {
        "max_retries": settings.pipeline.max_retries,
        "retry_base_delay": settings.pipeline.retry_base_delay,
    }
    if settings.price_feed.provider == "exchange":
        return ExchangePriceFeed(settings.price_feed, **retry)
    return TwelveDataPriceFeed(settings.price_feed, **retry)


__all__ = [
    "EventSource",
    "ExchangePriceFeed",
    "ExplorerEventSource",
    "PriceFeed",
    "TwelveDataPriceFeed",
    "create_price_feed",
    "fetch_with_retry",
]
