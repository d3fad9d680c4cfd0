"""
Data models for the candle viewer.
Uses Decimal for all price/volume values — no floating point errors.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum


class ConnectionState(Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


@dataclass(frozen=True)
class Candle:
    """Standard OHLCV candle, keyed by open_time."""
    open_time: int          # Unix ms
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal
    confirmed: bool = True  # Exchange says the bar has closed


@dataclass(frozen=True)
class SymbolInfo:
    """Tradable pair metadata."""
    symbol: str
    base_asset: str         # e.g., "ETH"
    quote_asset: str        # e.g., "USDT"
    status: str

    @property
    def is_trading(self) -> bool:
        return self.status == "TRADING"


@dataclass(frozen=True)
class Ticker24h:
    """Rolling 24h statistics for the summary tile."""
    symbol: str
    last_price: Decimal
    price_change_percent: Decimal
    high_price: Decimal
    low_price: Decimal
    volume: Decimal
    quote_volume: Decimal
