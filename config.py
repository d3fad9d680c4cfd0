"""
Binance Candles — Configuration
All tunable parameters in one place.
"""

import os
from dataclasses import dataclass, field


@dataclass
class ExchangeConfig:
    rest_base_url: str = "https://api.binance.com"
    ws_base_url: str = "wss://stream.binance.com:9443/ws"
    request_timeout_sec: float = 10.0
    ping_interval_sec: float = 20.0
    ping_timeout_sec: float = 10.0
    close_timeout_sec: float = 5.0


@dataclass
class ViewConfig:
    symbol: str = "ETHUSDT"
    interval: str = "1m"
    range_key: str = "1h"
    display_tz: str = ""                # Empty = local time


@dataclass
class FeedConfig:
    reconnect_delay_sec: float = 3.0    # 0 disables reconnecting


@dataclass
class DashboardConfig:
    host: str = "0.0.0.0"
    port: int = 8080


@dataclass
class ViewerConfig:
    exchange: ExchangeConfig = field(default_factory=ExchangeConfig)
    view: ViewConfig = field(default_factory=ViewConfig)
    feed: FeedConfig = field(default_factory=FeedConfig)
    dashboard: DashboardConfig = field(default_factory=DashboardConfig)
    log_level: str = "INFO"
    log_file: str = "data/viewer.log"

    @classmethod
    def from_env(cls) -> "ViewerConfig":
        """Load config with environment variable overrides."""
        config = cls()
        config.exchange.rest_base_url = os.getenv("BINANCE_REST_URL", config.exchange.rest_base_url)
        config.exchange.ws_base_url = os.getenv("BINANCE_WS_URL", config.exchange.ws_base_url)
        config.view.symbol = os.getenv("DEFAULT_SYMBOL", config.view.symbol).upper()
        config.view.interval = os.getenv("DEFAULT_INTERVAL", config.view.interval)
        config.view.range_key = os.getenv("DEFAULT_RANGE", config.view.range_key)
        config.view.display_tz = os.getenv("DISPLAY_TZ", "")
        config.feed.reconnect_delay_sec = float(os.getenv("RECONNECT_DELAY_SEC", "3"))
        config.dashboard.host = os.getenv("DASHBOARD_HOST", config.dashboard.host)
        config.dashboard.port = int(os.getenv("DASHBOARD_PORT", "8080"))
        config.log_level = os.getenv("LOG_LEVEL", "INFO")
        config.log_file = os.getenv("LOG_FILE", config.log_file)
        return config
