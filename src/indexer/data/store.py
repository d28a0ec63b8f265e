"""Typed SQLite read/write abstraction for tokens and forwarded transfers.

All SQL is isolated behind TransferStore and uses bound parameters.

CRITICAL: Raw token amounts are stored as TEXT. uint256 values overflow
SQLite's 64-bit INTEGER and would silently lose precision as REAL.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

import aiosqlite

from indexer.data.database import IndexerDatabase
from indexer.exceptions import PersistenceError
from indexer.logging import get_logger
from indexer.models import Token, TokenLiquidity, TransferRecord

logger = get_logger(__name__)

_INSERT_TOKEN_SQL = (
    "INSERT OR IGNORE INTO Token "
    "(contract_addr, token_name, token_sym, decimals) "
    "VALUES (?, ?, ?, ?)"
)

_INSERT_TRANSFER_SQL = (
    "INSERT OR IGNORE INTO TransfersForward "
    "(tx_hash, token_addr, token_count, usd, block_num, timestamp, to_chain) "
    "VALUES (?, ?, ?, ?, ?, ?, ?)"
)


@dataclass
class BatchResult:
    """Outcome of a chunked transfer insert."""

    total: int = 0
    inserted: int = 0
    chunks: int = 0
    failed_chunks: int = 0
    failed_records: int = 0

    @property
    def ok(self) -> bool:
        return self.failed_chunks == 0


class TransferStore:
    """Async SQLite store for the token registry and forwarded transfers.

    Usage:
        async with IndexerDatabase("data/indexer.db") as database:
            store = TransferStore(database)
            watermark = await store.get_max_block()
    """

    def __init__(self, database: IndexerDatabase) -> None:
        self._database = database

    # ──────────────────────────────────────────────
    # Write methods
    # ──────────────────────────────────────────────

    async def insert_tokens(self, tokens: Iterable[Token]) -> int:
        """Insert tokens, keeping existing metadata via INSERT OR IGNORE.

        Returns the number of newly registered tokens.

        Raises:
            PersistenceError: If the statement fails.
        """
        data = [
            (t.contract_addr, t.token_name, t.token_sym, t.decimals) for t in tokens
        ]
        if not data:
            return 0

        db = self._database.db
        try:
            cursor = await db.executemany(_INSERT_TOKEN_SQL, data)
            await db.commit()
        except aiosqlite.Error as e:
            await db.rollback()
            raise PersistenceError(f"token insert failed: {e}") from e

        inserted = cursor.rowcount
        logger.debug("inserted_tokens", total=len(data), inserted=inserted)
        return inserted

    async def insert_transfers(
        self,
        records: Sequence[TransferRecord],
        chunk_size: int = 250,
    ) -> BatchResult:
        """Insert transfers in fixed-size chunks, one transaction per chunk.

        Duplicate tx hashes are ignored, so re-delivering a chunk is a no-op.
        A failed chunk is rolled back and logged; chunks committed before it
        stay committed and later chunks are still attempted.
        """
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")

        result = BatchResult(total=len(records))
        db = self._database.db

        for start in range(0, len(records), chunk_size):
            chunk = records[start : start + chunk_size]
            result.chunks += 1
            data = [
                (
                    r.tx_hash,
                    r.token_addr,
                    str(r.token_count),
                    r.usd,
                    r.block_num,
                    r.timestamp,
                    r.to_chain,
                )
                for r in chunk
            ]
            try:
                cursor = await db.executemany(_INSERT_TRANSFER_SQL, data)
                await db.commit()
            except aiosqlite.Error as e:
                await db.rollback()
                result.failed_chunks += 1
                result.failed_records += len(chunk)
                logger.error(
                    "transfer_chunk_insert_failed",
                    chunk_index=result.chunks - 1,
                    records=len(chunk),
                    first_block=chunk[0].block_num,
                    last_block=chunk[-1].block_num,
                    error=str(e),
                )
                continue

            result.inserted += cursor.rowcount

        logger.debug(
            "inserted_transfers",
            total=result.total,
            inserted=result.inserted,
            chunks=result.chunks,
            failed_chunks=result.failed_chunks,
        )
        return result

    # ──────────────────────────────────────────────
    # Read methods
    # ──────────────────────────────────────────────

    async def get_max_block(self) -> int | None:
        """Return MAX(block_num) over persisted transfers, None when empty.

        Raises:
            PersistenceError: If the aggregate query fails.
        """
        try:
            cursor = await self._database.db.execute(
                "SELECT MAX(block_num) FROM TransfersForward"
            )
            row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise PersistenceError(f"watermark query failed: {e}") from e
        if row is None or row[0] is None:
            return None
        return int(row[0])

    async def get_tokens(self) -> list[Token]:
        """Return all registered tokens ordered by contract address."""
        cursor = await self._database.db.execute(
            "SELECT contract_addr, token_name, token_sym, decimals "
            "FROM Token ORDER BY contract_addr ASC"
        )
        rows = await cursor.fetchall()
        return [
            Token(
                contract_addr=row[0],
                token_name=row[1],
                token_sym=row[2],
                decimals=row[3],
            )
            for row in rows
        ]

    async def get_transfers(self) -> list[TransferRecord]:
        """Return all persisted transfers ordered by block number."""
        cursor = await self._database.db.execute(
            "SELECT tx_hash, token_addr, token_count, usd, block_num, timestamp, to_chain "
            "FROM TransfersForward ORDER BY block_num ASC, tx_hash ASC"
        )
        rows = await cursor.fetchall()
        return [
            TransferRecord(
                tx_hash=row[0],
                token_addr=row[1],
                token_count=int(row[2]),
                usd=row[3],
                block_num=row[4],
                timestamp=row[5],
                to_chain=row[6],
            )
            for row in rows
        ]

    async def get_transfer_count(self) -> int:
        cursor = await self._database.db.execute(
            "SELECT COUNT(*) FROM TransfersForward"
        )
        return (await cursor.fetchone())[0]

    async def get_liquidity_summary(self) -> list[TokenLiquidity]:
        """Aggregate forwarded token amounts and USD value per token.

        token_count is summed in Python since the TEXT column cannot be
        summed in SQL without going through REAL.
        """
        cursor = await self._database.db.execute(
            "SELECT t.contract_addr, t.token_name, t.token_sym, "
            "tf.token_count, tf.usd "
            "FROM TransfersForward tf JOIN Token t ON t.contract_addr = tf.token_addr "
            "ORDER BY t.contract_addr ASC"
        )
        rows = await cursor.fetchall()

        summary: dict[str, TokenLiquidity] = {}
        for addr, name, sym, count, usd in rows:
            entry = summary.get(addr)
            if entry is None:
                entry = summary[addr] = TokenLiquidity(
                    contract_addr=addr,
                    token_name=name,
                    token_sym=sym,
                    token_count=0,
                    usd=0.0,
                    transfer_count=0,
                )
            entry.token_count += int(count)
            entry.usd += usd
            entry.transfer_count += 1
        return list(summary.values())
