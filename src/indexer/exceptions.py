"""Custom exceptions for the transfer indexer.

Fatal errors (FetchError, NoPriceDataError) end a pipeline run before any
further side effects. ParseError is always recovered locally by defaulting.
PersistenceError is logged per statement or chunk and never aborts the run.
"""


class IndexerError(Exception):
    """Base exception for all indexer errors."""


class FetchError(IndexerError):
    """Raised when an external API call (block explorer or price feed) fails.

    ``retryable`` marks transient failures (timeouts, rate limits, 5xx)
    that fetch_with_retry may attempt again.
    """

    def __init__(self, source: str, detail: str, retryable: bool = False) -> None:
        super().__init__(f"{source}: {detail}")
        self.source = source
        self.detail = detail
        self.retryable = retryable


class ParseError(IndexerError):
    """Raised when a numeric or timestamp field from an external API is malformed."""


class NoPriceDataError(IndexerError):
    """Raised when the price feed returns an empty series."""


class PersistenceError(IndexerError):
    """Raised when a write to the relational store fails."""
