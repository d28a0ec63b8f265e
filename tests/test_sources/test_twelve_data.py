"""Tests for TwelveDataPriceFeed.

All tests use httpx.MockTransport to avoid real API calls.
"""

from datetime import datetime, timezone

import httpx
import pytest

from indexer.config import PriceFeedSettings
from indexer.exceptions import FetchError, NoPriceDataError
from indexer.sources.twelve_data import TwelveDataPriceFeed, parse_sample

# Twelve Data default order is newest first
VALUES = [
    {"datetime": "2023-06-28 19:00:00", "open": "1870", "high": "1880", "low": "1860", "close": "1874"},
    {"datetime": "2023-06-28 18:00:00", "open": "1850", "high": "1860", "low": "1840", "close": "1850"},
]


def _epoch(text: str) -> int:
    return int(datetime.fromisoformat(text).replace(tzinfo=timezone.utc).timestamp())


def _feed(handler, max_retries: int = 1) -> TwelveDataPriceFeed:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return TwelveDataPriceFeed(
        PriceFeedSettings(api_key="test-key"),  # type: ignore[arg-type]
        client=client,
        max_retries=max_retries,
        retry_base_delay=0,
    )


def test_parse_sample() -> None:
    sample = parse_sample(VALUES[1])
    assert sample.timestamp == _epoch("2023-06-28 18:00:00")
    assert sample.estimate() == 1850.0


@pytest.mark.asyncio
async def test_series_sorted_ascending_and_params() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"meta": {}, "values": VALUES, "status": "ok"})

    samples = await _feed(handler).fetch_series("ETH")

    assert [s.timestamp for s in samples] == [
        _epoch("2023-06-28 18:00:00"),
        _epoch("2023-06-28 19:00:00"),
    ]
    assert seen[0].url.path == "/time_series"
    assert seen[0].url.params["symbol"] == "ETH/USD"
    assert seen[0].url.params["timezone"] == "UTC"
    assert seen[0].url.params["apikey"] == "test-key"


@pytest.mark.asyncio
async def test_malformed_entries_are_skipped() -> None:
    values = [*VALUES, {"datetime": "yesterday", "open": "1"}]

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"values": values, "status": "ok"})

    assert len(await _feed(handler).fetch_series("ETH")) == 2


@pytest.mark.asyncio
async def test_empty_series_raises_no_price_data() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"values": [], "status": "ok"})

    with pytest.raises(NoPriceDataError):
        await _feed(handler).fetch_series("ETH")


@pytest.mark.asyncio
async def test_api_error_is_fatal() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200, json={"code": 401, "message": "apikey is invalid", "status": "error"}
        )

    with pytest.raises(FetchError, match="apikey is invalid") as exc_info:
        await _feed(handler, max_retries=3).fetch_series("ETH")
    assert not exc_info.value.retryable


@pytest.mark.asyncio
async def test_credit_limit_is_retried() -> None:
    responses = [
        httpx.Response(200, json={"code": 429, "message": "run out of credits", "status": "error"}),
        httpx.Response(200, json={"values": VALUES, "status": "ok"}),
    ]

    def handler(request: httpx.Request) -> httpx.Response:
        return responses.pop(0)

    assert len(await _feed(handler, max_retries=2).fetch_series("ETH")) == 2
