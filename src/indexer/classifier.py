"""Destination-chain classification for persisted transfers."""

from abc import ABC, abstractmethod

from indexer.models import TransferEvent


class ChainClassifier(ABC):
    """Decides which chain a bridged transfer is forwarded to."""

    @abstractmethod
    def classify(self, event: TransferEvent) -> int:
        """Return the destination chain tag for ``event``."""
        ...


class ConstantChainClassifier(ChainClassifier):
    """Tags every transfer with the same chain id.

    TODO: replace with a classifier that decodes the GMP payload from the
    transaction input once the explorer adapter fetches tx input data.
    """

    def __init__(self, chain_id: int = 1000) -> None:
        self._chain_id = chain_id

    def classify(self, event: TransferEvent) -> int:
        return self._chain_id
