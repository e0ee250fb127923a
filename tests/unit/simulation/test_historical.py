# === MODULE PURPOSE ===
# Unit tests for HistoricalReplayer and period/token/resolution validation.

from datetime import datetime, timedelta, timezone

import pandas as pd
import pytest

from src.simulation.errors import InvalidInputError, InvalidParameterError, InvalidRangeError
from src.simulation.historical import (
    DEFAULT_EARLIEST,
    DEFAULT_LATEST,
    HistoricalReplayer,
    canonical_timestamp,
    estimate_data_points,
    progress_in_period,
    validate_period,
    validate_resolution,
    validate_tokens,
)
from src.simulation.token_pricing import PriceBand, band_price, stable_hash

T0 = datetime(2023, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def replayer() -> HistoricalReplayer:
    return HistoricalReplayer()


class TestValidation:
    """Tests for module-level validators."""

    def test_validate_period_parses(self):
        start, end = validate_period("2023-01-01T00:00:00Z", "2023-02-01T00:00:00Z")
        assert start == datetime(2023, 1, 1, tzinfo=timezone.utc)
        assert end == datetime(2023, 2, 1, tzinfo=timezone.utc)

    @pytest.mark.parametrize(
        "start, end",
        [
            (None, "2023-01-01"),
            ("2023-01-01", None),
            ("", "2023-01-01"),
            ("garbage", "2023-01-01"),
            ("2023-01-01", "garbage"),
            ("2023-02-01", "2023-01-01"),
            ("2023-01-01", "2023-01-01"),
        ],
    )
    def test_validate_period_rejects(self, start, end):
        with pytest.raises(InvalidRangeError):
            validate_period(start, end)

    def test_validate_tokens_strips_and_dedupes(self):
        assert validate_tokens([" ETH ", "BTC", "ETH"]) == ["ETH", "BTC"]

    @pytest.mark.parametrize("tokens", [None, [], "ETH", ["ETH", " "], ["ETH", 3]])
    def test_validate_tokens_rejects(self, tokens):
        with pytest.raises(InvalidInputError):
            validate_tokens(tokens)

    def test_validate_resolution(self):
        assert validate_resolution("15m") == "15m"
        with pytest.raises(InvalidParameterError):
            validate_resolution("2h")

    def test_estimate_data_points(self):
        start = datetime(2023, 1, 1, tzinfo=timezone.utc)
        assert estimate_data_points(start, start + timedelta(days=1)) == 24
        assert estimate_data_points(start, start + timedelta(days=1), "1d") == 1
        assert estimate_data_points(start, start + timedelta(minutes=90), "1h") == 2
        assert estimate_data_points(start, start + timedelta(hours=1), "1m") == 60

    def test_progress_in_period(self):
        start = datetime(2023, 1, 1, tzinfo=timezone.utc)
        end = start + timedelta(days=4)
        assert progress_in_period(start, end, start + timedelta(days=1)) == 0.25
        assert progress_in_period(start, end, start - timedelta(days=1)) == 0.0
        assert progress_in_period(start, end, end + timedelta(days=1)) == 1.0


class TestPriceAt:
    """Tests for HistoricalReplayer.price_at."""

    def test_bit_identical_on_repeat(self, replayer):
        assert replayer.price_at("ETH", T0) == replayer.price_at("ETH", T0)

    def test_equivalent_timestamp_forms_agree(self, replayer):
        by_datetime = replayer.price_at("ETH", T0)
        assert replayer.price_at("ETH", "2023-03-01T12:00:00Z") == by_datetime
        assert replayer.price_at("ETH", "2023-03-01T20:00:00+08:00") == by_datetime
        assert replayer.price_at("ETH", T0.timestamp()) == by_datetime

    def test_hash_driven_by_token_and_timestamp(self, replayer):
        expected = band_price(PriceBand.ETH, stable_hash("ETH" + canonical_timestamp(T0)))
        assert replayer.price_at("ETH", T0) == expected

    def test_prices_within_band(self, replayer):
        for hours in range(48):
            ts = T0 + timedelta(hours=hours)
            assert 30_000 <= replayer.price_at("BTC", ts) < 50_000
            assert 1_500 <= replayer.price_at("ETH", ts) < 3_500
            assert replayer.price_at("PEPE", ts) > 0

    def test_invalid_timestamp_rejected(self, replayer):
        with pytest.raises(InvalidParameterError):
            replayer.price_at("ETH", "not-a-time")


class TestSnapshots:
    """Tests for token_snapshot / snapshot_at."""

    def test_token_snapshot_fields(self, replayer):
        snap = replayer.token_snapshot("ETH", T0)
        assert snap.price == replayer.price_at("ETH", T0)
        assert snap.market_cap == pytest.approx(snap.price * snap.supply)
        assert snap.volume >= 0
        assert snap.market_depth is None

    def test_supply_constant_over_time(self, replayer):
        first = replayer.token_snapshot("ETH", T0)
        later = replayer.token_snapshot("ETH", T0 + timedelta(days=30))
        assert first.supply == later.supply

    def test_snapshot_at(self, replayer):
        snapshot = replayer.snapshot_at(["ETH", "BTC"], T0, progress=0.5)

        assert snapshot.timestamp == T0
        assert snapshot.progress == 0.5
        assert set(snapshot.tokens) == {"ETH", "BTC"}
        assert snapshot.metrics.total_volume == sum(t.volume for t in snapshot.tokens.values())
        for value in (
            snapshot.metrics.volatility_index,
            snapshot.metrics.liquidity_index,
            snapshot.metrics.sentiment_index,
        ):
            assert 0 <= value <= 100

    def test_snapshot_deterministic(self, replayer):
        first = replayer.snapshot_at(["ETH"], T0).to_dict()
        second = HistoricalReplayer().snapshot_at(["ETH"], T0).to_dict()
        assert first == second


class TestReplaySeries:
    """Tests for replay_series."""

    def test_series_shape(self, replayer):
        df = replayer.replay_series(["ETH", "BTC"], "2023-01-01T00:00:00Z", "2023-01-02T00:00:00Z", "1h")

        assert isinstance(df, pd.DataFrame)
        assert list(df.columns) == ["ETH", "BTC"]
        assert len(df) == 25
        assert df.index.name == "timestamp"
        assert df.index[0] == pd.Timestamp("2023-01-01T00:00:00Z")

    def test_series_matches_price_at(self, replayer):
        df = replayer.replay_series(["ETH"], "2023-01-01", "2023-01-01T04:00:00", "1h")
        for ts, price in df["ETH"].items():
            assert price == replayer.price_at("ETH", ts.to_pydatetime())

    def test_series_validates_inputs(self, replayer):
        with pytest.raises(InvalidRangeError):
            replayer.replay_series(["ETH"], "2023-01-02", "2023-01-01")
        with pytest.raises(InvalidInputError):
            replayer.replay_series([], "2023-01-01", "2023-01-02")
        with pytest.raises(InvalidParameterError):
            replayer.replay_series(["ETH"], "2023-01-01", "2023-01-02", "3h")


class TestAvailableTimeRange:
    """Tests for available_time_range."""

    def test_default_range(self, replayer):
        time_range = replayer.available_time_range()
        assert time_range.earliest == DEFAULT_EARLIEST
        assert time_range.latest == DEFAULT_LATEST
        assert time_range.resolutions == ["1m", "5m", "15m", "1h", "4h", "1d"]

    def test_to_dict(self, replayer):
        data = replayer.available_time_range().to_dict()
        assert data["earliest"] == "2020-01-01T00:00:00+00:00"
        assert data["latest"] == "2023-12-31T23:59:59+00:00"
