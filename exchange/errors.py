"""
Error taxonomy. None of these are fatal to the process.
"""

from __future__ import annotations
from typing import Optional


class CandleViewerError(Exception):
    """Base class for all viewer errors."""


class FetchError(CandleViewerError):
    """A REST request failed: network error, non-2xx, or malformed body."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class FeedConnectionError(CandleViewerError):
    """The live kline connection dropped or could not be established."""


class MalformedEventError(CandleViewerError):
    """An inbound feed message was unparseable or not a kline update."""


class StaleResultDiscarded(CandleViewerError):
    """A result arrived for a generation that has since been replaced."""

    def __init__(self, generation: int, current: int):
        super().__init__(f"generation {generation} is stale (current: {current})")
        self.generation = generation
        self.current = current
