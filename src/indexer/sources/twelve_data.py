"""Twelve Data time-series price feed adapter.

Twelve Data returns newest-first by default and encodes sample times as
naive "YYYY-MM-DD HH:MM:SS" strings in the requested timezone (always UTC
here). Samples are returned ascending with epoch-second timestamps.
"""

from datetime import datetime, timezone

import httpx

from indexer.config import PriceFeedSettings
from indexer.exceptions import FetchError, NoPriceDataError, ParseError
from indexer.logging import get_logger
from indexer.models import PriceSample
from indexer.sources.client import PriceFeed
from indexer.sources.retry import fetch_with_retry

logger = get_logger(__name__)

_SOURCE = "twelve_data"


def parse_sample(raw: dict) -> PriceSample:
    """Convert one Twelve Data ``values`` entry into a PriceSample.

    Raises:
        ParseError: If the datetime or any OHLC field is malformed.
    """
    try:
        dt = datetime.fromisoformat(str(raw["datetime"]))
        return PriceSample(
            timestamp=int(dt.replace(tzinfo=timezone.utc).timestamp()),
            open=float(raw["open"]),
            high=float(raw["high"]),
            low=float(raw["low"]),
            close=float(raw["close"]),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ParseError(f"malformed time series entry {raw!r}: {e}") from e


class TwelveDataPriceFeed(PriceFeed):
    """Fetches an OHLC series for ``<asset>/<quote>`` from Twelve Data."""

    def __init__(
        self,
        settings: PriceFeedSettings,
        client: httpx.AsyncClient | None = None,
        max_retries: int = 3,
        retry_base_delay: float = 1.0,
    ) -> None:
        self._settings = settings
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=settings.timeout_seconds)
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def fetch_series(self, asset: str) -> list[PriceSample]:
        values = await fetch_with_retry(
            self._request,
            asset,
            max_retries=self._max_retries,
            base_delay=self._retry_base_delay,
        )

        samples: list[PriceSample] = []
        for raw in values:
            try:
                samples.append(parse_sample(raw))
            except ParseError as e:
                logger.warning("price_sample_skipped", asset=asset, error=str(e))

        if not samples:
            raise NoPriceDataError(f"no price samples for {asset}")

        samples.sort(key=lambda s: s.timestamp)
        logger.info(
            "price_series_fetched",
            source=_SOURCE,
            asset=asset,
            samples=len(samples),
            first_ts=samples[0].timestamp,
            last_ts=samples[-1].timestamp,
        )
        return samples

    async def _request(self, asset: str) -> list[dict]:
        params = {
            "symbol": f"{asset}/{self._settings.quote}",
            "interval": self._settings.interval,
            "outputsize": self._settings.output_size,
            "timezone": "UTC",
            "order": "ASC",
            "apikey": self._settings.api_key.get_secret_value(),
        }
        url = f"{self._settings.base_url.rstrip('/')}/time_series"

        try:
            response = await self._client.get(url, params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            code = e.response.status_code
            raise FetchError(
                _SOURCE, f"HTTP {code}", retryable=code == 429 or code >= 500
            ) from e
        except httpx.TransportError as e:
            raise FetchError(_SOURCE, f"{type(e).__name__}: {e}", retryable=True) from e
        except ValueError as e:
            raise FetchError(_SOURCE, f"malformed JSON body: {e}") from e

        if not isinstance(payload, dict):
            raise FetchError(_SOURCE, "unexpected response shape")

        # Twelve Data reports API errors with HTTP 200 and status "error"
        if payload.get("status") == "error":
            code = payload.get("code")
            raise FetchError(
                _SOURCE,
                f"{code}: {payload.get('message', '')}",
                retryable=code == 429,
            )

        values = payload.get("values")
        if not isinstance(values, list):
            raise FetchError(_SOURCE, "response has no values list")
        return values
