"""Async SQLite database manager for the transfer indexer.

Uses aiosqlite for non-blocking database operations with WAL mode
and enforced foreign keys (TransfersForward.token_addr -> Token).
"""

import os
from typing import Self

import aiosqlite

from indexer.logging import get_logger

logger = get_logger(__name__)

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS Token (
    contract_addr TEXT NOT NULL PRIMARY KEY,
    token_name TEXT NOT NULL,
    token_sym TEXT NOT NULL,
    decimals INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS TransfersForward (
    tx_hash TEXT PRIMARY KEY,
    token_addr TEXT NOT NULL REFERENCES Token(contract_addr),
    token_count TEXT NOT NULL,
    usd REAL NOT NULL,
    block_num INTEGER NOT NULL,
    timestamp TEXT,
    to_chain INTEGER NOT NULL
);
"""

_CREATE_INDEXES_SQL = """
CREATE INDEX IF NOT EXISTS idx_transfers_block_num
    ON TransfersForward(block_num);

CREATE INDEX IF NOT EXISTS idx_transfers_token_addr
    ON TransfersForward(token_addr);
"""


class IndexerDatabase:
    """Async SQLite connection manager for tokens and forwarded transfers.

    Usage:
        async with IndexerDatabase("data/indexer.db") as db:
            await db.db.execute("SELECT ...")
    """

    def __init__(self, db_path: str = "data/indexer.db") -> None:
        self._db_path = db_path
        self._connection: aiosqlite.Connection | None = None

    @property
    def db(self) -> aiosqlite.Connection:
        """Access the raw aiosqlite connection.

        Raises RuntimeError if not connected.
        """
        if self._connection is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._connection

    async def connect(self) -> None:
        """Open database connection, configure pragmas, and create schema.

        Creates the parent directory if it does not exist.
        """
        db_dir = os.path.dirname(self._db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

        self._connection = await aiosqlite.connect(self._db_path)

        await self._connection.execute("PRAGMA journal_mode=WAL")
        await self._connection.execute("PRAGMA synchronous=NORMAL")
        await self._connection.execute("PRAGMA foreign_keys=ON")

        await self._create_tables()

        logger.info("indexer_db_connected", db_path=self._db_path)

    async def close(self) -> None:
        """Close the database connection if open."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.info("indexer_db_closed", db_path=self._db_path)

    async def _create_tables(self) -> None:
        assert self._connection is not None
        await self._connection.executescript(_CREATE_TABLES_SQL)
        await self._connection.executescript(_CREATE_INDEXES_SQL)
        await self._connection.commit()

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        await self.close()
