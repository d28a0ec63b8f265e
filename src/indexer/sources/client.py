"""Abstract interfaces for the external data sources.

The pipeline depends only on these interfaces; explorer- and provider-specific
details stay in the concrete adapters.
"""

from abc import ABC, abstractmethod

from indexer.models import PriceSample, TransferEvent


class EventSource(ABC):
    """Source of raw ERC-20 transfer events."""

    @abstractmethod
    async def fetch_transfers(
        self,
        from_block: int,
        to_block: int,
        filter_address: str,
    ) -> list[TransferEvent]:
        """Fetch transfer events for ``filter_address`` in ``[from_block, to_block]``.

        Events are returned in ascending block/timestamp order.

        Raises:
            FetchError: On network, auth or rate-limit failure.
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release network resources."""
        ...


class PriceFeed(ABC):
    """Source of historical price samples for one asset."""

    @abstractmethod
    async def fetch_series(self, asset: str) -> list[PriceSample]:
        """Fetch the price series for ``asset``, ascending by timestamp.

        Raises:
            FetchError: On network, auth or rate-limit failure.
            NoPriceDataError: If the provider returns no samples.
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release network resources."""
        ...
