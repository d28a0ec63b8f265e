"""USD normalization of raw on-chain token amounts.

Raw amounts can be far larger than a float mantissa holds, so they are first
collapsed with integer division to at most 6 decimal places and only then
converted to float. Precision beyond the 6th decimal is truncated.
"""

from collections.abc import Sequence

from indexer.logging import get_logger
from indexer.models import Token
from indexer.pricing.matcher import PriceSeriesMatcher

logger = get_logger(__name__)

_USD_SCALE_DECIMALS = 6


def to_usd(rate: float, raw_amount: int, decimals: int) -> float:
    """Convert a raw integer token amount into USD at ``rate``.

    Args:
        rate: USD per whole token.
        raw_amount: Amount in the token's smallest unit.
        decimals: The token's decimal precision.

    Returns:
        The USD value, truncated (not rounded) at the 6th decimal of the
        token amount when ``decimals >= 6``, at whole tokens otherwise.
    """
    if decimals >= _USD_SCALE_DECIMALS:
        six_places = raw_amount // 10 ** (decimals - _USD_SCALE_DECIMALS)
        return rate * float(six_places) / 10**_USD_SCALE_DECIMALS
    return rate * float(raw_amount // 10**decimals)


def _symbol_matches(symbol: str, tickers: Sequence[str]) -> bool:
    return any(ticker in symbol for ticker in tickers)


def is_usd_stablecoin(
    symbol: str, tickers: Sequence[str] = ("USDT", "USDC", "DAI")
) -> bool:
    """True when ``symbol`` contains a known USD stablecoin ticker."""
    return _symbol_matches(symbol, tickers)


def is_btc_token(symbol: str, tickers: Sequence[str] = ("BTC",)) -> bool:
    """True when ``symbol`` contains a bitcoin ticker."""
    return _symbol_matches(symbol, tickers)


class UsdValuer:
    """Prices transfers against one base-asset series with per-token policies.

    - Stablecoins use a fixed rate of 1.0 and never touch the matcher.
    - BTC-denominated tokens are left at 0.0 USD while ``skip_btc`` is set,
      since only one base asset series is fetched per run.
    - Everything else is priced at the nearest base-asset sample.

    Transfers must be valued in ascending timestamp order (matcher cursor).
    """

    def __init__(
        self,
        matcher: PriceSeriesMatcher,
        stablecoin_tickers: Sequence[str] = ("USDT", "USDC", "DAI"),
        btc_tickers: Sequence[str] = ("BTC",),
        skip_btc: bool = True,
    ) -> None:
        self._matcher = matcher
        self._stablecoin_tickers = tuple(stablecoin_tickers)
        self._btc_tickers = tuple(btc_tickers)
        self._skip_btc = skip_btc
        self.stablecoin_count = 0
        self.skipped_btc_count = 0

    def value(self, token: Token, raw_amount: int, timestamp: int) -> float:
        """Return the USD value of ``raw_amount`` of ``token`` at ``timestamp``."""
        if is_usd_stablecoin(token.token_sym, self._stablecoin_tickers):
            self.stablecoin_count += 1
            return to_usd(1.0, raw_amount, token.decimals)

        if self._skip_btc and is_btc_token(token.token_sym, self._btc_tickers):
            self.skipped_btc_count += 1
            logger.debug(
                "btc_transfer_unpriced",
                contract_addr=token.contract_addr,
                token_sym=token.token_sym,
            )
            return 0.0

        rate = self._matcher.estimate_price(timestamp)
        return to_usd(rate, raw_amount, token.decimals)
