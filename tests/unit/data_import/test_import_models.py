"""
Unit tests for the import data model
"""
import pytest

from crypto_importer.modules.data_import.core_import_models import (
    ImportRequest,
    ImportState,
    InvalidRange,
    MinuteRecord,
    Span,
)


RAW_KLINE = [
    1499040000000,
    "0.01634790",
    "0.80000000",
    "0.01575800",
    "0.01577100",
    "148976.11427815",
    1499644799999,
    "2434.19055334",
    308,
    "1756.87402397",
    "28.46694368",
    "0",
]


class TestImportRequest:

    def test_valid_range_passes(self):
        ImportRequest("BTCUSD", "binance", 0, 1).validate()

    @pytest.mark.parametrize("start,end", [(10, 10), (11, 10)])
    def test_start_must_precede_end(self, start, end):
        with pytest.raises(InvalidRange):
            ImportRequest("BTCUSD", "binance", start, end).validate()


class TestSpan:

    def test_dict_round_trip_uses_camel_case(self):
        span = Span("BTCUSD", "binance", 0, 120000)

        data = span.to_dict()

        assert data == {"ticker": "BTCUSD", "exchange": "binance", "startTime": 0, "endTime": 120000}
        assert Span.from_dict(data) == span

    def test_from_dict_accepts_string_timestamps(self):
        span = Span.from_dict({"ticker": "BTCUSD", "exchange": "binance", "startTime": "5", "endTime": "9"})

        assert (span.start_time, span.end_time) == (5, 9)


class TestMinuteRecord:

    def test_from_kline(self):
        record = MinuteRecord.from_kline(RAW_KLINE)

        assert record.open_time == 1499040000000
        assert record.close_time == 1499644799999
        assert record.open == "0.01634790"
        assert record.close == "0.01577100"
        assert record.trades == 308
        assert record.taker_buy_quote_volume == "28.46694368"

    def test_to_dict_keys(self):
        data = MinuteRecord.from_kline(RAW_KLINE).to_dict()

        assert data["openTime"] == 1499040000000
        assert data["quoteAssetVolume"] == "2434.19055334"
        assert data["takerBaseAssetVolume"] == "1756.87402397"


class TestImportState:

    def test_starts_idle(self):
        state = ImportState()

        assert state.active is False
        assert state.request is None
        assert state.progress == 0

    def test_latch_is_single_flight(self):
        state = ImportState()
        first = ImportRequest("BTCUSD", "binance", 0, 1)

        assert state.try_begin(first) is True
        assert state.try_begin(ImportRequest("ETHUSD", "binance", 0, 1)) is False
        assert state.request == first

    def test_progress_never_decreases(self):
        state = ImportState()
        state.try_begin(ImportRequest("BTCUSD", "binance", 0, 1))

        state.advance(0.4)
        state.advance(0.2)
        state.advance(1.7)

        assert state.progress == 1.0

    def test_reset_returns_to_idle(self):
        state = ImportState()
        state.try_begin(ImportRequest("BTCUSD", "binance", 0, 1))
        state.advance(0.8)

        state.reset()

        assert (state.active, state.request, state.progress) == (False, None, 0.0)

    def test_snapshot_is_a_copy(self):
        state = ImportState()
        snapshot = state.snapshot()

        state.try_begin(ImportRequest("BTCUSD", "binance", 0, 1))

        assert snapshot.active is False
