"""
View state — what the dashboard is looking at, as an explicit value.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Optional
from core.window import validate_interval, validate_range


@dataclass(frozen=True)
class ViewState:
    symbol: str
    interval: str
    range_key: str
    generation: int = 0


@dataclass(frozen=True)
class ViewChange:
    """A user request; None fields keep their current value."""
    symbol: Optional[str] = None
    interval: Optional[str] = None
    range_key: Optional[str] = None


def reduce(state: ViewState, change: ViewChange) -> ViewState:
    """
    Apply a change. Returns `state` itself when nothing changes, otherwise a new
    state with the generation bumped (every real change reseeds the series).
    Raises ValueError for unknown interval/range keys or an empty symbol.
    """
    symbol = state.symbol
    if change.symbol is not None:
        symbol = change.symbol.strip().upper()
        if not symbol:
            raise ValueError("Symbol must not be empty")
    interval = validate_interval(change.interval) if change.interval is not None else state.interval
    range_key = validate_range(change.range_key) if change.range_key is not None else state.range_key

    if (symbol, interval, range_key) == (state.symbol, state.interval, state.range_key):
        return state
    return replace(
        state,
        symbol=symbol,
        interval=interval,
        range_key=range_key,
        generation=state.generation + 1,
    )


def needs_reconnect(old: ViewState, new: ViewState) -> bool:
    """The feed is keyed by (symbol, interval); range changes reuse it."""
    return (old.symbol, old.interval) != (new.symbol, new.interval)
