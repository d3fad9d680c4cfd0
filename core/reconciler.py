"""
Live Feed Reconciler — merges streamed kline updates into the Series State.

The stream sends repeated updates for the bar that is still open, so a naive
append would duplicate time buckets. Each update is find-or-append, then
sort, then truncate, which keeps the live view equal to what a fresh klines
fetch for the same window would return.
"""

from __future__ import annotations
from typing import Callable, Iterable, List, Optional
from exchange.models import Candle
from core.series import Series, SeriesState
from core.window import max_bars, now_ms, retention_floor


def merge_bar(series: Iterable[Candle], bar: Candle, floor: int, limit: int) -> Series:
    """
    Pure merge of one update into a series.

    Previously retained bars older than `floor` are evicted. The incoming bar is
    kept even when it is older than `floor` (local clock ahead of the exchange).
    """
    merged: List[Candle] = [c for c in series if c.open_time >= floor]

    for i, c in enumerate(merged):
        if c.open_time == bar.open_time:
            merged[i] = bar     # last write wins
            break
    else:
        merged.append(bar)

    merged.sort(key=lambda c: c.open_time)
    if len(merged) > limit:
        merged = merged[len(merged) - limit:]
    return tuple(merged)


class LiveFeedReconciler:
    """Applies kline updates for the current generation."""

    def __init__(self, series: SeriesState, clock: Optional[Callable[[], int]] = None):
        self.series = series
        self._clock = clock or now_ms

    def apply(self, generation: int, bar: Candle, interval: str, range_key: str) -> Series:
        """
        Merge one update and publish it atomically.
        Raises StaleResultDiscarded when `generation` is no longer current.
        """
        self.series.check(generation)
        floor = retention_floor(range_key, self._clock())
        merged = merge_bar(self.series.get(), bar, floor, max_bars(interval, range_key))
        self.series.publish(generation, merged)
        return merged
