"""
Series State — the single ordered candle sequence shown by the dashboard.
Writers: HistoricalLoader (replace) and LiveFeedReconciler (publish). Nothing else.
"""

from __future__ import annotations
from typing import Callable, Iterable, Optional, Tuple

from exchange.errors import StaleResultDiscarded
from exchange.models import Candle
from core.window import now_ms

Series = Tuple[Candle, ...]


class SeriesState:
    """Holds an immutable snapshot per generation; every write swaps the whole tuple."""

    def __init__(self, clock: Optional[Callable[[], int]] = None):
        self._clock = clock or now_ms
        self._bars: Series = ()
        self._generation = 0
        self.updated_at: Optional[int] = None

    @property
    def generation(self) -> int:
        return self._generation

    def get(self) -> Series:
        return self._bars

    def reset(self, generation: int):
        """Start a new generation with an empty series."""
        self._generation = generation
        self._bars = ()
        self.updated_at = None

    def replace(self, generation: int, bars: Iterable[Candle]):
        """Full replace after a historical load."""
        self._swap(generation, bars)

    def publish(self, generation: int, bars: Iterable[Candle]):
        """Publish the result of a live merge."""
        self._swap(generation, bars)

    def check(self, generation: int):
        if generation != self._generation:
            raise StaleResultDiscarded(generation, self._generation)

    def _swap(self, generation: int, bars: Iterable[Candle]):
        self.check(generation)
        self._bars = tuple(bars)
        self.updated_at = self._clock()

    def __len__(self) -> int:
        return len(self._bars)
