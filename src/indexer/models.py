"""Shared data models for the transfer indexer.

Raw token amounts are arbitrary-precision ints (uint256 on chain). They are
never converted to float directly -- see pricing.normalizer.to_usd.
"""

from dataclasses import dataclass

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


@dataclass
class Token:
    """Token metadata keyed by lowercase contract address.

    Immutable once persisted: the store uses insert-if-absent semantics.
    """

    contract_addr: str
    token_name: str = ""
    token_sym: str = ""
    decimals: int = 18


@dataclass
class TransferEvent:
    """A raw ERC-20 transfer event as reported by the block explorer.

    Lives only for the duration of one pipeline run.
    """

    tx_hash: str
    from_addr: str
    to_addr: str
    contract_addr: str
    value: int
    block_number: int
    timestamp: str  # seconds since epoch, string-encoded by the explorer
    token_name: str = ""
    token_symbol: str = ""
    token_decimal: str = ""

    @property
    def timestamp_seconds(self) -> int:
        """Block timestamp as int seconds, 0 when the field is malformed."""
        try:
            return int(self.timestamp)
        except (TypeError, ValueError):
            return 0

    @property
    def is_mint(self) -> bool:
        """True when the transfer originates from the zero address."""
        return self.from_addr.lower() == ZERO_ADDRESS


@dataclass
class TransferRecord:
    """An enriched transfer, one row per transaction hash."""

    tx_hash: str
    token_addr: str
    token_count: int
    usd: float
    block_num: int
    timestamp: str
    to_chain: int


@dataclass
class PriceSample:
    """A single open/high/low/close sample from the price feed."""

    timestamp: int  # seconds since epoch
    open: float
    high: float
    low: float
    close: float

    def estimate(self) -> float:
        """Representative price for the sample period (mean of the quad)."""
        return (self.open + self.high + self.low + self.close) / 4


@dataclass
class TokenLiquidity:
    """Per-token totals across all persisted transfers."""

    contract_addr: str
    token_name: str
    token_sym: str
    token_count: int
    usd: float
    transfer_count: int
