"""
Row formatting shared by the table and the CSV export.
The export is built from the same snapshot and the same formatters as the
table, so both always show identical rows in identical order.
"""

from __future__ import annotations
import csv
import io
from datetime import datetime, tzinfo
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, localcontext
from typing import Any, Dict, Iterable, List, Optional, Sequence
from exchange.models import Candle

HEADERS = ["Time", "Open", "High", "Low", "Close", "Volume"]
PRICE_DIGITS = 6
VOLUME_DIGITS = 4


def fmt_num(value: Any, digits: int = PRICE_DIGITS) -> str:
    """Up to `digits` fractional digits, half-up, thousands separators, no trailing zeros."""
    try:
        d = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation:
        return "-"
    if not d.is_finite():
        return "-"

    with localcontext() as ctx:
        # room for every integer digit plus the fractional ones
        ctx.prec = max(ctx.prec, d.adjusted() + digits + 2)
        q = d.quantize(Decimal(1).scaleb(-digits), rounding=ROUND_HALF_UP)
    if q == 0:
        q = abs(q)
    text = f"{q:,f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def fmt_vol(value: Any) -> str:
    return fmt_num(value, VOLUME_DIGITS)


def fmt_time(ms: int, tz: Optional[tzinfo] = None) -> str:
    """Render an epoch-ms timestamp; local time when tz is None."""
    return datetime.fromtimestamp(ms / 1000, tz).strftime("%Y-%m-%d %H:%M:%S")


def format_row(candle: Candle, tz: Optional[tzinfo] = None) -> List[str]:
    return [
        fmt_time(candle.open_time, tz),
        fmt_num(candle.open),
        fmt_num(candle.high),
        fmt_num(candle.low),
        fmt_num(candle.close),
        fmt_vol(candle.volume),
    ]


def table_rows(series: Sequence[Candle], tz: Optional[tzinfo] = None) -> List[Dict[str, Any]]:
    """Table rows with the close-vs-previous-close direction (first row is up)."""
    rows = []
    for i, candle in enumerate(series):
        up = i == 0 or candle.close >= series[i - 1].close
        rows.append({
            "open_time": candle.open_time,
            "cells": format_row(candle, tz),
            "direction": "up" if up else "down",
            "confirmed": candle.confirmed,
        })
    return rows


def export_csv(series: Iterable[Candle], tz: Optional[tzinfo] = None) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(HEADERS)
    for candle in series:
        writer.writerow(format_row(candle, tz))
    return buf.getvalue()


def export_filename(symbol: str, interval: str, range_key: str) -> str:
    return f"{symbol}_{interval}_{range_key}.csv"
