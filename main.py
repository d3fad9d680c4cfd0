"""
Binance Candles — Main Orchestrator.
Ties the viewer and the dashboard together: startup, signal handling, shutdown.
"""

from __future__ import annotations
import asyncio
import os
import sys
import signal
from typing import Optional
from zoneinfo import ZoneInfo
import logging

from dotenv import load_dotenv

# Load .env file before anything else
load_dotenv()

from config import ViewerConfig
from core.controller import CandleViewer
from dashboard import Dashboard

logger = logging.getLogger(__name__)


def setup_logging(config: ViewerConfig):
    handlers = [logging.StreamHandler(sys.stdout)]
    if config.log_file:
        # Create log dir before FileHandler
        os.makedirs(os.path.dirname(config.log_file) or ".", exist_ok=True)
        handlers.append(logging.FileHandler(config.log_file))

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-7s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=handlers,
    )


class App:
    """Runs the candle viewer and its dashboard until stopped."""

    def __init__(self, config: ViewerConfig):
        self.config = config
        self.viewer = CandleViewer(config)
        tz: Optional[ZoneInfo] = ZoneInfo(config.view.display_tz) if config.view.display_tz else None
        self.dashboard = Dashboard(
            self.viewer,
            host=config.dashboard.host,
            port=config.dashboard.port,
            tz=tz,
        )
        self._stopped = asyncio.Event()

    async def start(self):
        logger.info("=" * 60)
        logger.info("   BINANCE CANDLES — STARTING")
        logger.info("=" * 60)

        await self.viewer.start()
        await self.dashboard.start()
        logger.info("[BOOT] ✅ Running...")
        await self._stopped.wait()

    async def stop(self):
        """Graceful shutdown."""
        logger.info("[SHUTDOWN] Stopping...")
        await self.dashboard.stop()
        await self.viewer.stop()
        self._stopped.set()
        logger.info("[SHUTDOWN] Complete.")


async def main():
    """Entry point."""
    config = ViewerConfig.from_env()
    setup_logging(config)

    try:
        app = App(config)
    except (ValueError, KeyError) as e:
        # Bad default interval/range or unknown DISPLAY_TZ
        logger.critical(f"Invalid configuration: {e}")
        sys.exit(1)

    # Graceful shutdown handler
    if sys.platform != "win32":
        loop = asyncio.get_running_loop()

        def handle_signal(sig):
            logger.info(f"Received signal {sig}. Initiating shutdown...")
            asyncio.create_task(app.stop())

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda s=sig: handle_signal(s))

    try:
        await app.start()
    except KeyboardInterrupt:
        logger.info("KeyboardInterrupt received in main loop.")
        await app.stop()
    except Exception as e:
        logger.critical(f"Fatal error: {e}", exc_info=True)
        await app.stop()
        sys.exit(1)


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
