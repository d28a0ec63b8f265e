"""Relational persistence layer.

Provides the aiosqlite database manager and the typed store for the
token registry and forwarded transfers.
"""

from indexer.data.database import IndexerDatabase
from indexer.data.store import BatchResult, TransferStore

__all__ = [
    "BatchResult",
    "IndexerDatabase",
    "TransferStore",
]
