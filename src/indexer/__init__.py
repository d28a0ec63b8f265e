"""Cross-chain bridge transfer indexer."""

__version__ = "0.1.0"
