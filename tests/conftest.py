"""Test fixtures for the candle viewer tests."""
import asyncio
import contextlib
import json
from decimal import Decimal
from typing import Any, Dict, List, Optional

import pytest

from config import ViewerConfig
from exchange.errors import FetchError
from exchange.models import Candle, ConnectionState, SymbolInfo, Ticker24h

NOW = 1_700_000_040_000      # Minute-aligned epoch ms
MINUTE = 60_000
HOUR = 3_600_000


def make_candle(open_time: int, close: Any = 1, volume: Any = "1", confirmed: bool = True) -> Candle:
    c = Decimal(str(close))
    return Candle(
        open_time=open_time,
        open=c,
        high=c,
        low=c,
        close=c,
        volume=Decimal(str(volume)),
        confirmed=confirmed,
    )


def kline_row(open_time: int, close: Any = "1.0") -> List[Any]:
    """Raw Binance klines row, including the trailing fields we ignore."""
    c = str(close)
    return [open_time, c, c, c, c, "10.5", open_time + MINUTE - 1, "0", 5, "0", "0", "0"]


def kline_event(open_time: int, close: Any = "1.0", closed: bool = False) -> str:
    c = str(close)
    return json.dumps({
        "e": "kline",
        "E": open_time + 1000,
        "s": "ETHUSDT",
        "k": {
            "t": open_time, "T": open_time + MINUTE - 1, "s": "ETHUSDT", "i": "1m",
            "o": c, "c": c, "h": c, "l": c, "v": "2.5", "x": closed,
        },
    })


async def wait_for(predicate, timeout: float = 2.0):
    """Spin the loop until predicate() holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.001)


class Clock:
    """Controllable epoch-ms clock."""

    def __init__(self, now: int = NOW):
        self.now = now

    def __call__(self) -> int:
        return self.now


# Mock classes (importable for direct instantiation in tests)
class MockBinanceClient:
    """Mock REST client; klines per symbol, optional gates to hold a fetch open."""

    def __init__(self):
        self.api_calls: List[Dict[str, Any]] = []
        self.klines: Dict[str, Any] = {}
        self.errors: Dict[str, Exception] = {}
        self.gates: Dict[str, asyncio.Event] = {}
        self.symbols = [
            SymbolInfo("ETHUSDT", "ETH", "USDT", "TRADING"),
            SymbolInfo("BTCUSDT", "BTC", "USDT", "TRADING"),
        ]
        self.closed = False

    async def get_klines(self, symbol, interval, start_time, end_time, limit=500):
        self.api_calls.append({
            "method": "get_klines",
            "symbol": symbol,
            "interval": interval,
            "start_time": start_time,
            "end_time": end_time,
            "limit": limit,
        })
        gate = self.gates.get(symbol)
        if gate is not None:
            await gate.wait()
        if symbol in self.errors:
            raise self.errors[symbol]
        return self.klines.get(symbol, [])

    async def get_exchange_info(self):
        self.api_calls.append({"method": "get_exchange_info"})
        return list(self.symbols)

    async def get_ticker_24h(self, symbol):
        self.api_calls.append({"method": "get_ticker_24h", "symbol": symbol})
        if symbol not in {s.symbol for s in self.symbols}:
            raise FetchError("Invalid symbol.", 400)
        return Ticker24h(
            symbol=symbol,
            last_price=Decimal("2000.5"),
            price_change_percent=Decimal("-1.25"),
            high_price=Decimal("2100"),
            low_price=Decimal("1900"),
            volume=Decimal("12345.678912"),
            quote_volume=Decimal("24691357.5"),
        )

    async def close(self):
        self.closed = True


class FakeKlineStream:
    """Stand-in for KlineStream; tests drive its callbacks directly."""

    def __init__(self, base_url, symbol, interval, generation, on_bar_update, on_status_change, **kwargs):
        self.symbol = symbol
        self.interval = interval
        self.generation = generation
        self.state = ConnectionState.IDLE
        self.error = None
        self.started = False
        self.kwargs = kwargs
        self._on_bar_update = on_bar_update
        self._on_status_change = on_status_change

    def start(self):
        self.started = True

    async def _set(self, state):
        self.state = state
        await self._on_status_change(self.generation, state)

    async def open(self):
        await self._set(ConnectionState.CONNECTING)
        await self._set(ConnectionState.OPEN)

    async def bar(self, candle: Candle):
        await self._on_bar_update(self.generation, candle)

    async def drop(self, error: Exception):
        self.error = error
        await self._set(ConnectionState.CLOSED)

    async def close(self):
        if self.state is not ConnectionState.CLOSED:
            await self._set(ConnectionState.CLOSED)


class StreamFactory:
    """Records every stream the controller builds."""

    def __init__(self):
        self.streams: List[FakeKlineStream] = []

    def __call__(self, **kwargs) -> FakeKlineStream:
        stream = FakeKlineStream(**kwargs)
        self.streams.append(stream)
        return stream

    @property
    def latest(self) -> Optional[FakeKlineStream]:
        return self.streams[-1] if self.streams else None


class FakeWebSocket:
    """Async-iterable connection fed from a queue; None ends it, exceptions are raised."""

    def __init__(self):
        self.queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def push(self, message):
        self.queue.put_nowait(message)

    def finish(self):
        self.queue.put_nowait(None)

    def fail(self, exc: BaseException):
        self.queue.put_nowait(exc)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self.queue.get()
        if item is None:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self):
        self.closed = True


class FakeConnector:
    """Replacement for websockets.connect."""

    def __init__(self, error: Optional[Exception] = None):
        self.ws = FakeWebSocket()
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    def __call__(self, url, **kwargs):
        self.calls.append({"url": url, **kwargs})
        return self._connection()

    @contextlib.asynccontextmanager
    async def _connection(self):
        if self.error is not None:
            raise self.error
        try:
            yield self.ws
        finally:
            await self.ws.close()


# Fixtures
@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def mock_client():
    return MockBinanceClient()


@pytest.fixture
def stream_factory():
    return StreamFactory()


@pytest.fixture
def viewer_config():
    config = ViewerConfig()
    config.feed.reconnect_delay_sec = 0
    config.log_file = ""
    return config


@pytest.fixture
def eth_rows():
    """Last hour of 1m ETHUSDT rows, oldest first."""
    start = NOW - HOUR
    return [kline_row(start + i * MINUTE, f"{2000 + i}.5") for i in range(60)]
