"""
Historical Loader — seeds the Series State from one bounded klines request.
"""

from __future__ import annotations
from decimal import Decimal, InvalidOperation
from typing import Any, List, TYPE_CHECKING
from exchange.errors import FetchError
from exchange.models import Candle
from core.series import Series, SeriesState
from core.window import Window
import logging

if TYPE_CHECKING:
    from exchange.binance_rest import BinanceRestClient

logger = logging.getLogger(__name__)


def parse_klines(raw_klines: List[Any]) -> List[Candle]:
    """Parse raw Binance kline rows into Candle objects, keeping source order."""
    candles = []
    for k in raw_klines:
        # Binance kline format: [openTime, open, high, low, close, volume, closeTime, ...]
        try:
            candles.append(Candle(
                open_time=int(k[0]),
                open=Decimal(str(k[1])),
                high=Decimal(str(k[2])),
                low=Decimal(str(k[3])),
                close=Decimal(str(k[4])),
                volume=Decimal(str(k[5])),
                confirmed=True,
            ))
        except (IndexError, KeyError, TypeError, ValueError, InvalidOperation) as e:
            logger.warning(f"[HISTORY] Bad kline data: {k!r}: {e}")
    return candles


class HistoricalLoader:
    """Fetches [window.start, window.end] and fully replaces the series."""

    def __init__(self, client: "BinanceRestClient", series: SeriesState):
        self.client = client
        self.series = series

    async def load(self, symbol: str, interval: str, window: Window, generation: int) -> Series:
        """
        Load history for one generation.

        On failure the series is emptied (for this generation) and FetchError is raised.
        A result for a superseded generation raises StaleResultDiscarded and writes nothing.
        """
        if window.truncated:
            logger.info(
                f"[HISTORY] {symbol} {interval}/{window.range_key}: "
                f"capped at {window.max_bars} bars, older part of the range is not shown"
            )

        try:
            raw = await self.client.get_klines(
                symbol=symbol,
                interval=interval,
                start_time=window.start,
                end_time=window.end,
                limit=window.max_bars,
            )
            if not isinstance(raw, list):
                raise FetchError(f"Unexpected klines response: {type(raw).__name__}")
        except FetchError as e:
            self.series.replace(generation, ())
            logger.error(f"[HISTORY] {symbol} {interval}: load failed: {e}")
            raise FetchError(f"history load failed: {e}", e.status) from e

        candles = [c for c in parse_klines(raw) if c.open_time >= window.start]
        self.series.replace(generation, candles)
        logger.info(f"[HISTORY] {symbol} {interval}/{window.range_key}: loaded {len(candles)} candles")
        return self.series.get()
