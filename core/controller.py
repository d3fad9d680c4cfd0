"""
Candle Viewer — the single controller owning view state, series and live feed.

Every view change bumps the generation token. Historical loads, ticker loads
and feed callbacks all carry the generation they were started for, and
results for a superseded generation are dropped.
"""

from __future__ import annotations
import asyncio
from dataclasses import replace
from typing import Callable, Coroutine, Dict, Optional, Set, TYPE_CHECKING
from exchange.binance_rest import BinanceRestClient
from exchange.binance_ws import KlineStream
from exchange.errors import FetchError, StaleResultDiscarded
from exchange.models import Candle, ConnectionState, SymbolInfo, Ticker24h
from core.history import HistoricalLoader
from core.reconciler import LiveFeedReconciler
from core.series import SeriesState
from core.view_state import ViewChange, ViewState, needs_reconnect, reduce
from core.window import compute_window, now_ms, validate_interval, validate_range
import logging

if TYPE_CHECKING:
    from config import ViewerConfig

logger = logging.getLogger(__name__)


class CandleViewer:
    """Seeds the series from history and keeps it current from the kline stream."""

    def __init__(
        self,
        config: "ViewerConfig",
        client: Optional[BinanceRestClient] = None,
        clock: Optional[Callable[[], int]] = None,
        stream_factory: Optional[Callable[..., KlineStream]] = None,
    ):
        self.config = config
        self.client = client or BinanceRestClient(
            base_url=config.exchange.rest_base_url,
            timeout_sec=config.exchange.request_timeout_sec,
        )
        self._clock = clock or now_ms
        self._stream_factory = stream_factory or KlineStream

        self.view = ViewState(
            symbol=config.view.symbol.strip().upper(),
            interval=validate_interval(config.view.interval),
            range_key=validate_range(config.view.range_key),
        )
        self.series = SeriesState(self._clock)
        self.loader = HistoricalLoader(self.client, self.series)
        self.reconciler = LiveFeedReconciler(self.series, self._clock)

        # Status shown by the dashboard
        self.ws_status = ConnectionState.IDLE
        self.feed_error: Optional[str] = None
        self.loading = False
        self.error: Optional[str] = None
        self.ticker: Optional[Ticker24h] = None
        self.symbols: Dict[str, SymbolInfo] = {}

        self._stream: Optional[KlineStream] = None
        self._tasks: Set[asyncio.Task] = set()
        self._running = False

    async def start(self):
        """Load the symbol list and seed the default view."""
        self._running = True
        await self.refresh_symbols()
        if self.symbols and self.view.symbol not in self.symbols:
            logger.warning(f"[VIEW] Default symbol {self.view.symbol} is not trading")
        await self._apply(None, replace(self.view, generation=self.view.generation + 1))

    async def stop(self):
        """Close the feed, drop pending loads, close the REST session."""
        self._running = False
        await self._close_stream()
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        await self.client.close()
        logger.info("[VIEW] Stopped")

    async def change_view(self, change: ViewChange) -> ViewState:
        """
        Switch symbol, interval and/or range.
        Raises ValueError for unknown keys or a symbol that is not trading.
        """
        if change.symbol is not None:
            self._validate_symbol(change.symbol)
        new = reduce(self.view, change)
        if new is self.view:
            return new
        await self._apply(self.view, new)
        return new

    async def refresh_symbols(self):
        """Fetch the TRADING symbol list used to validate symbol changes."""
        try:
            symbols = await self.client.get_exchange_info()
        except FetchError as e:
            logger.warning(f"[VIEW] Symbol list unavailable, skipping validation: {e}")
            return
        self.symbols = {s.symbol: s for s in symbols if s.is_trading}
        logger.info(f"[VIEW] {len(self.symbols)} trading symbols")

    def now(self) -> int:
        return self._clock()

    async def wait_loaded(self):
        """Wait for the loads currently in flight."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ==================== Reseed ====================

    async def _apply(self, old: Optional[ViewState], new: ViewState):
        self.view = new
        self.series.reset(new.generation)
        self.error = None
        self.loading = True
        logger.info(f"[VIEW] {new.symbol} {new.interval}/{new.range_key} (generation {new.generation})")

        self._spawn(self._load_history(new))
        if old is None or old.symbol != new.symbol:
            self.ticker = None
            self._spawn(self._load_ticker(new))

        stream = self._stream
        if (
            old is None
            or stream is None
            or stream.state is ConnectionState.CLOSED
            or needs_reconnect(old, new)
        ):
            await self._close_stream()
            # A newer change may have landed while the old connection closed
            if self.view.generation == new.generation:
                self._open_stream(new)
        else:
            # Same feed, new window: re-tag so its updates count for this generation
            stream.generation = new.generation

    async def _load_history(self, view: ViewState):
        window = compute_window(view.interval, view.range_key, self._clock())
        try:
            await self.loader.load(view.symbol, view.interval, window, view.generation)
        except StaleResultDiscarded as e:
            logger.debug(f"[HISTORY] Discarded {view.symbol} {view.interval}: {e}")
        except FetchError as e:
            self.error = str(e)
        finally:
            if view.generation == self.view.generation:
                self.loading = False

    async def _load_ticker(self, view: ViewState):
        try:
            ticker = await self.client.get_ticker_24h(view.symbol)
        except FetchError as e:
            logger.warning(f"[VIEW] {view.symbol}: 24h ticker unavailable: {e}")
            ticker = None
        if self.view.symbol == view.symbol:
            self.ticker = ticker

    # ==================== Live Feed ====================

    def _open_stream(self, view: ViewState):
        exchange = self.config.exchange
        self._stream = self._stream_factory(
            base_url=exchange.ws_base_url,
            symbol=view.symbol,
            interval=view.interval,
            generation=view.generation,
            on_bar_update=self._on_bar_update,
            on_status_change=self._on_status_change,
            ping_interval=exchange.ping_interval_sec,
            ping_timeout=exchange.ping_timeout_sec,
            close_timeout=exchange.close_timeout_sec,
        )
        self.ws_status = self._stream.state
        self.feed_error = None
        self._stream.start()

    async def _close_stream(self):
        stream, self._stream = self._stream, None
        if stream is not None:
            await stream.close()

    async def _on_bar_update(self, generation: int, candle: Candle):
        view = self.view
        try:
            self.reconciler.apply(generation, candle, view.interval, view.range_key)
        except StaleResultDiscarded as e:
            logger.debug(f"[FEED] Discarded update {candle.open_time}: {e}")

    async def _on_status_change(self, generation: int, state: ConnectionState):
        if generation != self.view.generation:
            logger.debug(f"[FEED] Ignored {state.value} from generation {generation}")
            return

        self.ws_status = state
        logger.info(f"[FEED] {self.view.symbol} {self.view.interval}: {state.value}")
        if state is not ConnectionState.CLOSED:
            return

        stream = self._stream
        if stream is not None and stream.error is not None:
            self.feed_error = str(stream.error)

        delay = self.config.feed.reconnect_delay_sec
        if self._running and delay > 0:
            self._spawn(self._reconnect_after(delay, generation))

    async def _reconnect_after(self, delay: float, generation: int):
        await asyncio.sleep(delay)
        if not self._running or generation != self.view.generation:
            return
        if self._stream is not None and self._stream.state is not ConnectionState.CLOSED:
            return
        logger.info(f"[FEED] Reconnecting {self.view.symbol} {self.view.interval}...")
        self._open_stream(self.view)

    def _validate_symbol(self, symbol: str):
        name = symbol.strip().upper()
        if self.symbols and name not in self.symbols:
            raise ValueError(f"Unknown or inactive symbol {name!r}")

    def _spawn(self, coro: Coroutine):
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
