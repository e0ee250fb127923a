# === MODULE PURPOSE ===
# Unit tests for stable hashing and base-price banding.

import hashlib

import pytest

from src.simulation.token_pricing import (
    PriceBand,
    band_price,
    base_price,
    classify_token,
    stable_fraction,
    stable_hash,
)


class TestStableHash:
    """Tests for stable_hash / stable_fraction."""

    def test_matches_documented_construction(self):
        digest = hashlib.sha256(b"ETH").digest()
        expected = int.from_bytes(digest[:8], "big") & 0x7FFFFFFF
        assert stable_hash("ETH") == expected

    def test_repeatable_and_non_negative(self):
        assert stable_hash("some-token") == stable_hash("some-token")
        assert 0 <= stable_hash("some-token") < 2**31

    def test_fraction_in_unit_interval(self):
        for text in ("a", "b", "ETH", "BTC2023-01-01T00:00:00.000+00:00"):
            assert 0.0 <= stable_fraction(text) < 1.0


class TestClassifyToken:
    """Tests for classify_token."""

    @pytest.mark.parametrize(
        "token, band",
        [
            ("BTC", PriceBand.BTC),
            ("wbtc", PriceBand.BTC),
            ("ETH", PriceBand.ETH),
            ("stETH", PriceBand.ETH),
            ("USDC", PriceBand.STABLECOIN),
            ("usdt", PriceBand.STABLECOIN),
            ("SOL", PriceBand.OTHER),
            ("0xabc", PriceBand.OTHER),
        ],
    )
    def test_bands(self, token, band):
        assert classify_token(token) == band

    def test_btc_checked_before_eth(self):
        assert classify_token("WBTC-ETH") == PriceBand.BTC


class TestBandPrice:
    """Tests for band_price / base_price."""

    def test_band_formulas(self):
        assert band_price(PriceBand.BTC, 20_001) == 30_001.0
        assert band_price(PriceBand.ETH, 2_005) == 1_505.0
        assert band_price(PriceBand.STABLECOIN, 7) == pytest.approx(1.0)
        assert band_price(PriceBand.OTHER, 1_234) == pytest.approx(23.5)

    @pytest.mark.parametrize(
        "token, low, high",
        [
            ("BTC", 30_000, 50_000),
            ("ETH", 1_500, 3_500),
            ("USDC", 0.98, 1.03),
            ("SOL", 0.1, 100.1),
        ],
    )
    def test_base_price_within_band(self, token, low, high):
        price = base_price(token)
        assert low <= price < high
        assert price > 0

    def test_base_price_deterministic(self):
        assert base_price("ETH") == base_price("ETH")
