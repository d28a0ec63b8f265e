"""Shared test fixtures for the transfer indexer."""

import pytest
import pytest_asyncio

from indexer.config import (
    AppSettings,
    DatabaseSettings,
    ExplorerSettings,
    PipelineSettings,
    PriceFeedSettings,
)
from indexer.data.database import IndexerDatabase
from indexer.data.store import TransferStore


@pytest.fixture
def settings(tmp_path) -> AppSettings:
    """Return AppSettings with test defaults (dummy keys, no retry delay, temp DB)."""
    return AppSettings(
        log_level="DEBUG",
        explorer=ExplorerSettings(
            api_key="test-explorer-key",  # type: ignore[arg-type]
        ),
        price_feed=PriceFeedSettings(
            api_key="test-price-key",  # type: ignore[arg-type]
        ),
        pipeline=PipelineSettings(
            max_retries=1,
            retry_base_delay=0.0,
            run_timeout_seconds=5.0,
        ),
        database=DatabaseSettings(path=str(tmp_path / "indexer.db")),
    )


@pytest_asyncio.fixture
async def database(settings: AppSettings):
    """Connected IndexerDatabase on a fresh temp file."""
    async with IndexerDatabase(settings.database.path) as db:
        yield db


@pytest.fixture
def store(database: IndexerDatabase) -> TransferStore:
    """TransferStore over the temp database."""
    return TransferStore(database)
