"""Nearest-timestamp price matching over a sorted price series.

The matcher keeps a cursor into the series that only ever moves forward.
Feeding it targets in ascending order gives a single linear sweep over both
sequences (O(transfers + samples)). Targets that go backwards are still
answered, but only from the cursor position onward.
"""

from collections.abc import Iterable

from indexer.exceptions import NoPriceDataError
from indexer.models import PriceSample


class PriceSeriesMatcher:
    """Stateful forward-only matcher for one batch of transfers.

    Usage:
        matcher = PriceSeriesMatcher(samples)
        for transfer in sorted_transfers:
            price = matcher.estimate_price(transfer.timestamp_seconds)
    """

    def __init__(self, series: Iterable[PriceSample]) -> None:
        self._series = sorted(series, key=lambda s: s.timestamp)
        if not self._series:
            raise NoPriceDataError("price series is empty")
        self._index = 0

    @property
    def index(self) -> int:
        """Current cursor position into the sorted series."""
        return self._index

    def match(self, target: int) -> PriceSample:
        """Return the sample closest to ``target`` at or after the cursor.

        Advances while the next sample is strictly closer than the current
        one. Equidistant samples keep the current (earlier) one.
        """
        last = len(self._series) - 1
        while self._index < last:
            cur = self._series[self._index]
            nxt = self._series[self._index + 1]
            if abs(cur.timestamp - target) <= abs(nxt.timestamp - target):
                break
            self._index += 1
        return self._series[self._index]

    def estimate_price(self, target: int) -> float:
        """Return the representative price of the best-matching sample."""
        return self.match(target).estimate()
