"""Exchange-backed price feed via ccxt async.

Alternative to Twelve Data: uses any ccxt exchange's public OHLCV endpoint.
ccxt candles are ``[timestamp_ms, open, high, low, close, volume]``.
"""

import ccxt.async_support as ccxt_async

from indexer.config import PriceFeedSettings
from indexer.exceptions import FetchError, NoPriceDataError
from indexer.logging import get_logger
from indexer.models import PriceSample
from indexer.sources.client import PriceFeed
from indexer.sources.retry import fetch_with_retry

logger = get_logger(__name__)

_SOURCE = "exchange"
_MAX_OHLCV_LIMIT = 1000  # common per-call cap across major exchanges


def candle_to_sample(candle: list) -> PriceSample:
    """Convert a ccxt OHLCV candle into a PriceSample (ms -> s)."""
    return PriceSample(
        timestamp=int(candle[0]) // 1000,
        open=float(candle[1]),
        high=float(candle[2]),
        low=float(candle[3]),
        close=float(candle[4]),
    )


class ExchangePriceFeed(PriceFeed):
    """Fetches recent OHLCV candles for ``<asset>/<quote>`` from a ccxt exchange."""

    def __init__(
        self,
        settings: PriceFeedSettings,
        exchange: ccxt_async.Exchange | None = None,
        max_retries: int = 3,
        retry_base_delay: float = 1.0,
    ) -> None:
        self._settings = settings
        if exchange is None:
            exchange_cls = getattr(ccxt_async, settings.exchange_id)
            exchange = exchange_cls({"enableRateLimit": True})
        self._exchange = exchange
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay

    async def close(self) -> None:
        """Clean up ccxt async resources. CRITICAL: must be called to avoid resource leaks."""
        await self._exchange.close()

    async def fetch_series(self, asset: str) -> list[PriceSample]:
        symbol = f"{asset}/{self._settings.quote}"
        candles = await fetch_with_retry(
            self._request,
            symbol,
            max_retries=self._max_retries,
            base_delay=self._retry_base_delay,
        )
        if not candles:
            raise NoPriceDataError(f"no candles for {symbol}")

        samples = sorted(
            (candle_to_sample(c) for c in candles), key=lambda s: s.timestamp
        )
        logger.info(
            "price_series_fetched",
            source=_SOURCE,
            exchange=self._settings.exchange_id,
            symbol=symbol,
            samples=len(samples),
            first_ts=samples[0].timestamp,
            last_ts=samples[-1].timestamp,
        )
        return samples

    async def _request(self, symbol: str) -> list[list]:
        try:
            return await self._exchange.fetch_ohlcv(
                symbol,
                timeframe=self._settings.interval,
                limit=min(self._settings.output_size, _MAX_OHLCV_LIMIT),
            )
        except ccxt_async.NetworkError as e:
            # Includes RateLimitExceeded and RequestTimeout
            raise FetchError(_SOURCE, f"{type(e).__name__}: {e}", retryable=True) from e
        except ccxt_async.BaseError as e:
            raise FetchError(_SOURCE, f"{type(e).__name__}: {e}") from e
