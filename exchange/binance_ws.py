"""
Binance kline WebSocket stream.
One instance per (symbol, interval) connection: IDLE -> CONNECTING -> OPEN -> CLOSED.
CLOSED is terminal; resuming means building a fresh instance.
"""

from __future__ import annotations
import asyncio
import contextlib
import json
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Coroutine, Optional
import websockets
import logging

from exchange.errors import FeedConnectionError, MalformedEventError
from exchange.models import Candle, ConnectionState

logger = logging.getLogger(__name__)

# Async callbacks receive the generation token the stream was tagged with
BarCallback = Callable[[int, Candle], Coroutine[Any, Any, None]]
StatusCallback = Callable[[int, ConnectionState], Coroutine[Any, Any, None]]


def parse_kline_event(raw: Any) -> Candle:
    """
    Decode one stream message into a Candle.
    Raises MalformedEventError for anything that is not a complete kline update.
    """
    try:
        msg = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise MalformedEventError(f"invalid JSON: {e}") from e

    if not isinstance(msg, dict) or msg.get("e") != "kline":
        raise MalformedEventError("not a kline event")

    k = msg.get("k")
    if not isinstance(k, dict):
        raise MalformedEventError("kline payload missing")

    try:
        return Candle(
            open_time=int(k["t"]),
            open=Decimal(str(k["o"])),
            high=Decimal(str(k["h"])),
            low=Decimal(str(k["l"])),
            close=Decimal(str(k["c"])),
            volume=Decimal(str(k["v"])),
            confirmed=bool(k.get("x", False)),
        )
    except (KeyError, TypeError, ValueError, InvalidOperation) as e:
        raise MalformedEventError(f"bad kline fields: {e!r}") from e


class KlineStream:
    """A single-use kline connection for one (symbol, interval) pair."""

    def __init__(
        self,
        base_url: str,
        symbol: str,
        interval: str,
        generation: int,
        on_bar_update: BarCallback,
        on_status_change: StatusCallback,
        ping_interval: float = 20,
        ping_timeout: float = 10,
        close_timeout: float = 5,
        connect: Optional[Callable[..., Any]] = None,
    ):
        self.symbol = symbol
        self.interval = interval
        self.url = f"{base_url.rstrip('/')}/{symbol.lower()}@kline_{interval}"
        # Re-tagged by the owner when the view changes without a reconnect
        self.generation = generation
        self.state = ConnectionState.IDLE
        self.error: Optional[FeedConnectionError] = None

        self._on_bar_update = on_bar_update
        self._on_status_change = on_status_change
        self._ping_interval = ping_interval
        self._ping_timeout = ping_timeout
        self._close_timeout = close_timeout
        self._connect = connect or websockets.connect
        self._task: Optional[asyncio.Task] = None
        self._closing = False

    def start(self) -> asyncio.Task:
        """Begin connecting. Only valid once per instance."""
        if self.state is not ConnectionState.IDLE or self._task is not None:
            raise RuntimeError(f"KlineStream {self.url} already used (state={self.state.value})")
        self._task = asyncio.create_task(self._run())
        return self._task

    async def close(self):
        """Terminate the connection and wait for it to reach CLOSED."""
        self._closing = True
        if self._task and not self._task.done():
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        if self.state is not ConnectionState.CLOSED:
            await self._set_state(ConnectionState.CLOSED)

    # ==================== Internal Connection Management ====================

    async def _run(self):
        await self._set_state(ConnectionState.CONNECTING)
        try:
            async with self._connect(
                self.url,
                ping_interval=self._ping_interval,
                ping_timeout=self._ping_timeout,
                close_timeout=self._close_timeout,
            ) as ws:
                await self._set_state(ConnectionState.OPEN)
                logger.info(f"[WS] Connected to {self.url}")

                async for raw in ws:
                    await self._handle_message(raw)

            if not self._closing:
                self.error = FeedConnectionError("connection closed by remote")
                logger.warning(f"[WS] {self.url} closed by remote")

        except websockets.ConnectionClosed as e:
            self.error = FeedConnectionError(f"connection closed: {e}")
            logger.warning(f"[WS] {self.url} connection closed: {e}")
        except Exception as e:
            self.error = FeedConnectionError(str(e) or repr(e))
            logger.error(f"[WS] {self.url} error: {e!r}")
        finally:
            await self._set_state(ConnectionState.CLOSED)

    async def _handle_message(self, raw: Any):
        if self.state is not ConnectionState.OPEN or self._closing:
            return

        try:
            candle = parse_kline_event(raw)
        except MalformedEventError as e:
            logger.debug(f"[WS] Dropped message: {e}")
            return

        try:
            await self._on_bar_update(self.generation, candle)
        except Exception as e:
            logger.error(f"[WS] Bar callback error: {e}", exc_info=True)

    async def _set_state(self, state: ConnectionState):
        if self.state is state or self.state is ConnectionState.CLOSED:
            return
        self.state = state
        try:
            await self._on_status_change(self.generation, state)
        except Exception as e:
            logger.error(f"[WS] Status callback error: {e}", exc_info=True)
