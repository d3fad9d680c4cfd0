"""
Dashboard — Lightweight web server for the candle table.
Uses aiohttp.web to serve a JSON API + HTML frontend.
"""

from __future__ import annotations
import os
from datetime import tzinfo
from typing import Optional, TYPE_CHECKING
from aiohttp import web
import logging

from core.formatting import export_csv, export_filename, fmt_num, fmt_vol, table_rows, HEADERS
from core.view_state import ViewChange
from core.window import INTERVALS, RANGES, compute_window

if TYPE_CHECKING:
    from core.controller import CandleViewer

logger = logging.getLogger(__name__)

STATIC_DIR = os.path.join(os.path.dirname(__file__), "static")


class Dashboard:
    """Web dashboard server."""

    def __init__(
        self,
        viewer: "CandleViewer",
        host: str = "0.0.0.0",
        port: int = 8080,
        tz: Optional[tzinfo] = None,
    ):
        self.viewer = viewer
        self.host = host
        self.port = port
        self.tz = tz
        self.app = web.Application()
        self._runner: Optional[web.AppRunner] = None
        self._setup_routes()

    def _setup_routes(self):
        self.app.router.add_get("/", self._serve_html)
        self.app.router.add_get("/api/candles", self._api_candles)
        self.app.router.add_get("/api/ticker", self._api_ticker)
        self.app.router.add_get("/api/options", self._api_options)
        self.app.router.add_post("/api/view", self._api_view)
        self.app.router.add_get("/api/export.csv", self._api_export)

    async def start(self):
        """Start the dashboard web server."""
        self._runner = web.AppRunner(self.app, access_log=None)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info(f"[DASHBOARD] Running on http://{self.host}:{self.port}")

    async def stop(self):
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None

    # ─── Routes ───

    async def _serve_html(self, request: web.Request) -> web.Response:
        """Serve the dashboard HTML."""
        html_path = os.path.join(STATIC_DIR, "dashboard.html")
        if os.path.exists(html_path):
            with open(html_path, "r") as f:
                return web.Response(text=f.read(), content_type="text/html")
        return web.Response(text="Dashboard HTML not found", status=404)

    def _view_payload(self) -> dict:
        view = self.viewer.view
        window = compute_window(view.interval, view.range_key, self.viewer.now())
        return {
            "symbol": view.symbol,
            "interval": view.interval,
            "range": view.range_key,
            "generation": view.generation,
            "max_bars": window.max_bars,
            "window_truncated": window.truncated,
        }

    async def _api_candles(self, request: web.Request) -> web.Response:
        """Table data endpoint — view, feed status and formatted rows in one call."""
        try:
            viewer = self.viewer
            snapshot = viewer.series.get()
            return web.json_response({
                "view": self._view_payload(),
                "ws_status": viewer.ws_status.value,
                "feed_error": viewer.feed_error,
                "loading": viewer.loading,
                "error": viewer.error,
                "headers": HEADERS,
                "rows": table_rows(snapshot, self.tz),
                "updated_at": viewer.series.updated_at,
            })
        except Exception as e:
            logger.error(f"[DASHBOARD] Candles API error: {e}", exc_info=True)
            return web.json_response({"error": str(e)}, status=500)

    async def _api_ticker(self, request: web.Request) -> web.Response:
        """24h summary tile."""
        ticker = self.viewer.ticker
        if ticker is None:
            return web.json_response({"symbol": self.viewer.view.symbol, "ticker": None})

        direction = "up" if ticker.price_change_percent >= 0 else "down"
        return web.json_response({
            "symbol": ticker.symbol,
            "ticker": {
                "last_price": fmt_num(ticker.last_price, 8),
                "price_change_percent": f"{fmt_num(ticker.price_change_percent, 2)}%",
                "high_price": fmt_num(ticker.high_price, 8),
                "low_price": fmt_num(ticker.low_price, 8),
                "volume": fmt_vol(ticker.volume),
                "quote_volume": fmt_num(ticker.quote_volume, 2),
                "direction": direction,
            },
        })

    async def _api_options(self, request: web.Request) -> web.Response:
        return web.json_response({"intervals": list(INTERVALS), "ranges": list(RANGES)})

    async def _api_view(self, request: web.Request) -> web.Response:
        """Change symbol / interval / range."""
        try:
            body = await request.json()
        except ValueError:
            return web.json_response({"error": "Body must be JSON"}, status=400)
        if not isinstance(body, dict):
            return web.json_response({"error": "Body must be a JSON object"}, status=400)

        try:
            await self.viewer.change_view(ViewChange(
                symbol=body.get("symbol"),
                interval=body.get("interval"),
                range_key=body.get("range"),
            ))
        except (TypeError, ValueError, AttributeError) as e:
            return web.json_response({"error": str(e)}, status=400)
        except Exception as e:
            logger.error(f"[DASHBOARD] View API error: {e}", exc_info=True)
            return web.json_response({"error": str(e)}, status=500)

        return web.json_response({"view": self._view_payload()})

    async def _api_export(self, request: web.Request) -> web.Response:
        """CSV of exactly the snapshot the table shows."""
        view = self.viewer.view
        snapshot = self.viewer.series.get()
        filename = export_filename(view.symbol, view.interval, view.range_key)
        return web.Response(
            text=export_csv(snapshot, self.tz),
            content_type="text/csv",
            charset="utf-8",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )
