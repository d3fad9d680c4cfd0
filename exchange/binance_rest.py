"""
Binance Spot REST API Client.
Public market endpoints only: klines, exchange info, 24h ticker.
"""

from __future__ import annotations
import asyncio
import json
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional
import aiohttp
import logging

from exchange.errors import FetchError
from exchange.models import SymbolInfo, Ticker24h

logger = logging.getLogger(__name__)


class BinanceRestClient:
    """Async Binance public REST wrapper."""

    def __init__(self, base_url: str, timeout_sec: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout_sec)
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    async def _request(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        GET an endpoint and return the decoded JSON body.
        Raises FetchError on network failure, non-2xx status or a non-JSON body.
        """
        session = await self._get_session()
        url = f"{self.base_url}{endpoint}"
        query = {k: str(v) for k, v in (params or {}).items()}

        try:
            async with session.get(url, params=query) as resp:
                body = await resp.read()
                status = resp.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"[REST] GET {endpoint} Exception: {e!r}")
            raise FetchError(f"GET {endpoint} failed: {e!r}") from e

        text = body.decode("utf-8", errors="replace")
        try:
            # UnicodeDecodeError is a ValueError
            data = json.loads(body.decode("utf-8"))
        except ValueError as e:
            logger.error(f"[REST] GET {endpoint} returned non-JSON body (HTTP {status})")
            raise FetchError(f"GET {endpoint} returned a non-JSON body (HTTP {status})", status) from e

        if not 200 <= status < 300:
            msg = data.get("msg") if isinstance(data, dict) else None
            logger.error(
                f"[REST] GET {endpoint} Error: "
                f"status={status}, code={data.get('code') if isinstance(data, dict) else None}, msg={msg}"
            )
            raise FetchError(f"GET {endpoint} failed: HTTP {status}: {msg or text[:200]}", status)

        return data

    # ==================== Market Endpoints ====================

    async def get_klines(
        self,
        symbol: str,
        interval: str,
        start_time: int,
        end_time: int,
        limit: int = 500,
    ) -> List[List[Any]]:
        """
        Get historical kline/candle data, oldest first.
        Row format: [openTime, open, high, low, close, volume, closeTime, ...]
        """
        data = await self._request(
            "/api/v3/klines",
            {
                "symbol": symbol,
                "interval": interval,
                "startTime": start_time,
                "endTime": end_time,
                "limit": limit,
            },
        )
        if not isinstance(data, list):
            raise FetchError(f"Unexpected klines response: {type(data).__name__}")
        return data

    async def get_exchange_info(self) -> List[SymbolInfo]:
        """Get all symbols currently TRADING."""
        data = await self._request("/api/v3/exchangeInfo")
        raw = data.get("symbols") if isinstance(data, dict) else None
        if not isinstance(raw, list):
            raise FetchError("Unexpected exchangeInfo response")

        symbols = []
        for s in raw:
            if not isinstance(s, dict) or s.get("status") != "TRADING":
                continue
            symbols.append(SymbolInfo(
                symbol=s.get("symbol", ""),
                base_asset=s.get("baseAsset", ""),
                quote_asset=s.get("quoteAsset", ""),
                status=s["status"],
            ))
        return symbols

    async def get_ticker_24h(self, symbol: str) -> Ticker24h:
        """Get rolling 24h statistics for one symbol."""
        d = await self._request("/api/v3/ticker/24hr", {"symbol": symbol})
        try:
            return Ticker24h(
                symbol=d.get("symbol", symbol),
                last_price=Decimal(str(d["lastPrice"])),
                price_change_percent=Decimal(str(d["priceChangePercent"])),
                high_price=Decimal(str(d["highPrice"])),
                low_price=Decimal(str(d["lowPrice"])),
                volume=Decimal(str(d["volume"])),
                quote_volume=Decimal(str(d["quoteVolume"])),
            )
        except (AttributeError, KeyError, InvalidOperation) as e:
            raise FetchError(f"Unexpected ticker response: {e!r}") from e
