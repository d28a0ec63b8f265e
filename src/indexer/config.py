"""Configuration system using pydantic-settings with environment variable loading."""

from typing import Literal

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class ExplorerSettings(BaseSettings):
    """Etherscan-compatible block explorer connection settings."""

    model_config = SettingsConfigDict(env_prefix="EXPLORER_")

    base_url: str = "https://api-moonbeam.moonscan.io/api"
    api_key: SecretStr = SecretStr("")
    filter_address: str = "0x0000000000000000000000000000000000000816"  # GMP precompile
    end_block_sentinel: int = 999_999_999
    timeout_seconds: float = 30.0


class PriceFeedSettings(BaseSettings):
    """Historical price series provider settings."""

    model_config = SettingsConfigDict(env_prefix="PRICE_FEED_")

    provider: Literal["twelve_data", "exchange"] = "twelve_data"
    base_url: str = "https://api.twelvedata.com"
    api_key: SecretStr = SecretStr("")
    asset: str = "ETH"
    quote: str = "USD"
    interval: str = "1h"
    output_size: int = 5000  # Twelve Data max per request
    exchange_id: str = "binance"  # ccxt exchange id when provider == "exchange"
    timeout_seconds: float = 30.0


class PipelineSettings(BaseSettings):
    """Ingestion pipeline behaviour and data-quality policies.

    The decimal default and the BTC skip are lossy policies, exposed here so
    a deployment can see and change them rather than relying on silent fallbacks.
    All fields configurable via PIPELINE_ environment variable prefix.
    """

    model_config = SettingsConfigDict(env_prefix="PIPELINE_")

    genesis_block: int = 4_164_120
    chunk_size: int = 250  # records per INSERT batch
    default_decimals: int = 18
    stablecoin_tickers: list[str] = ["USDT", "USDC", "DAI"]
    btc_tickers: list[str] = ["BTC"]
    skip_btc_tokens: bool = True  # no BTC-denominated series wired up yet
    destination_chain: int = 1000  # placeholder until payload decoding exists

    # Scheduling
    interval_seconds: int = 300
    run_timeout_seconds: float = 25.0 * 60

    # External call retry
    max_retries: int = 3
    retry_base_delay: float = 1.0


class DatabaseSettings(BaseSettings):
    """Relational store location."""

    model_config = SettingsConfigDict(env_prefix="DATABASE_")

    path: str = "data/indexer.db"


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    explorer: ExplorerSettings = ExplorerSettings()
    price_feed: PriceFeedSettings = PriceFeedSettings()
    pipeline: PipelineSettings = PipelineSettings()
    database: DatabaseSettings = DatabaseSettings()
