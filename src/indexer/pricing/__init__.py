"""Price matching and USD normalization."""

from indexer.pricing.matcher import PriceSeriesMatcher
from indexer.pricing.normalizer import UsdValuer, is_btc_token, is_usd_stablecoin, to_usd

__all__ = [
    "PriceSeriesMatcher",
    "UsdValuer",
    "is_btc_token",
    "is_usd_stablecoin",
    "to_usd",
]
