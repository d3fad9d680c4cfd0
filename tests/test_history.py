"""Tests for the historical loader."""
import pytest

from core.history import HistoricalLoader, parse_klines
from core.series import SeriesState
from core.window import compute_window
from exchange.errors import FetchError, StaleResultDiscarded
from conftest import HOUR, MINUTE, NOW, kline_row, make_candle


@pytest.fixture
def series():
    state = SeriesState()
    state.reset(1)
    return state


class TestParseKlines:
    """Raw row normalization."""

    def test_maps_rows_and_ignores_trailing_fields(self):
        candles = parse_klines([kline_row(NOW, "2000.25")])

        assert len(candles) == 1
        assert candles[0].open_time == NOW
        assert str(candles[0].close) == "2000.25"
        assert str(candles[0].volume) == "10.5"

    def test_skips_bad_rows(self):
        candles = parse_klines([kline_row(NOW), ["x"], None, [NOW + MINUTE, "nope", 1, 1, 1, 1]])

        assert [c.open_time for c in candles] == [NOW]

    def test_keeps_source_order(self):
        candles = parse_klines([kline_row(NOW), kline_row(NOW - MINUTE)])

        assert [c.open_time for c in candles] == [NOW, NOW - MINUTE]


class TestHistoricalLoader:
    """Seeding the series from one bounded request."""

    @pytest.mark.asyncio
    async def test_load_replaces_series(self, mock_client, series, eth_rows):
        mock_client.klines["ETHUSDT"] = eth_rows
        series.publish(1, [make_candle(NOW + HOUR)])
        loader = HistoricalLoader(mock_client, series)
        window = compute_window("1m", "1h", NOW)

        result = await loader.load("ETHUSDT", "1m", window, 1)

        assert result == series.get()
        assert len(result) == 60
        times = [c.open_time for c in result]
        assert times == sorted(set(times))
        assert all(t >= window.start for t in times)

    @pytest.mark.asyncio
    async def test_request_is_bounded_by_window(self, mock_client, series):
        loader = HistoricalLoader(mock_client, series)
        window = compute_window("1m", "1d", NOW)

        await loader.load("ETHUSDT", "1m", window, 1)

        call = mock_client.api_calls[-1]
        assert call["start_time"] == NOW - 24 * HOUR
        assert call["end_time"] == NOW
        assert call["limit"] == 1000

    @pytest.mark.asyncio
    async def test_drops_rows_before_window_start(self, mock_client, series):
        window = compute_window("1m", "1h", NOW)
        mock_client.klines["ETHUSDT"] = [
            kline_row(window.start - MINUTE),
            kline_row(window.start),
            kline_row(window.start + MINUTE),
        ]
        loader = HistoricalLoader(mock_client, series)

        result = await loader.load("ETHUSDT", "1m", window, 1)

        assert [c.open_time for c in result] == [window.start, window.start + MINUTE]

    @pytest.mark.asyncio
    async def test_non_array_body_resets_series(self, mock_client, series):
        """Scenario C: a non-array body empties the series and reports FetchError."""
        mock_client.klines["ETHUSDT"] = {"code": -1121, "msg": "Invalid symbol."}
        series.publish(1, [make_candle(NOW)])
        loader = HistoricalLoader(mock_client, series)

        with pytest.raises(FetchError, match="history load failed"):
            await loader.load("ETHUSDT", "1m", compute_window("1m", "1h", NOW), 1)

        assert series.get() == ()

    @pytest.mark.asyncio
    async def test_client_error_resets_series(self, mock_client, series):
        mock_client.errors["ETHUSDT"] = FetchError("HTTP 400: Invalid symbol.", 400)
        series.publish(1, [make_candle(NOW)])
        loader = HistoricalLoader(mock_client, series)

        with pytest.raises(FetchError) as exc_info:
            await loader.load("ETHUSDT", "1m", compute_window("1m", "1h", NOW), 1)

        assert "Invalid symbol." in str(exc_info.value)
        assert exc_info.value.status == 400
        assert series.get() == ()

    @pytest.mark.asyncio
    async def test_stale_generation_writes_nothing(self, mock_client, series, eth_rows):
        mock_client.klines["ETHUSDT"] = eth_rows
        series.reset(2)
        series.publish(2, [make_candle(NOW)])
        loader = HistoricalLoader(mock_client, series)

        with pytest.raises(StaleResultDiscarded):
            await loader.load("ETHUSDT", "1m", compute_window("1m", "1h", NOW), 1)

        assert series.get() == (make_candle(NOW),)
