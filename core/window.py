"""
Time Window Calculator — request window and bar cap for an (interval, range) pair.

Known limitation: when the range holds more bars than one klines page (1000),
the effective window is narrowed to the most recent 1000 bars. For example
1m bars over 1d show the last 1000 minutes, not 1440.
"""

from __future__ import annotations
import time
from dataclasses import dataclass
from typing import Dict

MAX_BARS_CAP = 1000          # Binance klines page size
HOUR_MS = 3_600_000

INTERVALS = ("1m", "5m", "15m", "30m", "1h")
RANGES = ("1h", "4h", "1d", "7d", "15d", "30d")

BARS_PER_HOUR: Dict[str, int] = {"1m": 60, "5m": 12, "15m": 4, "30m": 2, "1h": 1}
INTERVAL_MS: Dict[str, int] = {k: HOUR_MS // v for k, v in BARS_PER_HOUR.items()}
RANGE_MS: Dict[str, int] = {
    "1h": HOUR_MS,
    "4h": 4 * HOUR_MS,
    "1d": 24 * HOUR_MS,
    "7d": 7 * 24 * HOUR_MS,
    "15d": 15 * 24 * HOUR_MS,
    "30d": 30 * 24 * HOUR_MS,
}


def now_ms() -> int:
    return int(time.time() * 1000)


def validate_interval(interval: str) -> str:
    if interval not in BARS_PER_HOUR:
        raise ValueError(f"Unknown interval {interval!r}; expected one of {', '.join(INTERVALS)}")
    return interval


def validate_range(range_key: str) -> str:
    if range_key not in RANGE_MS:
        raise ValueError(f"Unknown range {range_key!r}; expected one of {', '.join(RANGES)}")
    return range_key


def max_bars(interval: str, range_key: str) -> int:
    """Most bars ever retained for this pair: the range in bars, capped at one page."""
    per_hour = BARS_PER_HOUR[validate_interval(interval)]
    hours = RANGE_MS[validate_range(range_key)] // HOUR_MS
    return min(MAX_BARS_CAP, per_hour * hours)


def retention_floor(range_key: str, now: int) -> int:
    """Oldest open_time still inside the range at `now`."""
    return now - RANGE_MS[validate_range(range_key)]


@dataclass(frozen=True)
class Window:
    start: int
    end: int
    max_bars: int
    interval: str
    range_key: str

    @property
    def truncated(self) -> bool:
        """True when the page cap shows fewer bars than the range promises."""
        return self.max_bars * INTERVAL_MS[self.interval] < RANGE_MS[self.range_key]


def compute_window(interval: str, range_key: str, now: int) -> Window:
    """Pure: derive the request window. Recompute whenever any input changes."""
    return Window(
        start=retention_floor(range_key, now),
        end=now,
        max_bars=max_bars(interval, range_key),
        interval=interval,
        range_key=range_key,
    )
