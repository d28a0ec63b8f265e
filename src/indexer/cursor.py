"""Watermark-based resume cursor.

The watermark is never stored on its own: it is MAX(block_num) over the
persisted transfers, recomputed on every run.
"""

from indexer.data.store import TransferStore
from indexer.exceptions import PersistenceError
from indexer.logging import get_logger

logger = get_logger(__name__)

GENESIS_BLOCK = 4_164_120


class WatermarkCursor:
    """Computes the first block of the next fetch window."""

    def __init__(self, store: TransferStore, genesis_block: int = GENESIS_BLOCK) -> None:
        self._store = store
        self._genesis_block = genesis_block

    async def get_resume_block(self) -> int:
        """Return ``watermark + 1``, or the genesis block when there is none.

        Fails open: if the watermark query errors the genesis block is
        returned and the run re-scans. Transfer inserts are idempotent on
        tx hash, so a re-scan cannot create duplicates.
        """
        try:
            watermark = await self._store.get_max_block()
        except PersistenceError as e:
            logger.error(
                "watermark_query_failed",
                error=str(e),
                fallback_block=self._genesis_block,
            )
            return self._genesis_block

        if watermark is None:
            logger.info("watermark_empty", resume_block=self._genesis_block)
            return self._genesis_block

        resume_block = watermark + 1
        logger.info("watermark_resolved", watermark=watermark, resume_block=resume_block)
        return resume_block
