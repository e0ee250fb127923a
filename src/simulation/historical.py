# === MODULE PURPOSE ===
# Historical market replay for simulations.
# Provides deterministic synthetic prices for any (token, timestamp).

# === DEPENDENCIES ===
# - token_pricing: Stable hash and base-price bands
# - pandas: Time-indexed price series for a replay period

# === KEY CONCEPTS ===
# - Pure function: No stored state, identical queries give identical results
# - Period: [start, end) window a historical simulation replays
# - Resolution: Sampling step for series and data-point estimates

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable

import pandas as pd

from src.simulation.clock import parse_timestamp
from src.simulation.errors import InvalidInputError, InvalidParameterError, InvalidRangeError
from src.simulation.models import MarketMetrics, MarketSnapshot, TokenSnapshot
from src.simulation.token_pricing import band_price, classify_token, stable_fraction, stable_hash

logger = logging.getLogger(__name__)

# Resolution name -> step in seconds
RESOLUTIONS: dict[str, int] = {
    "1m": 60,
    "5m": 5 * 60,
    "15m": 15 * 60,
    "1h": 60 * 60,
    "4h": 4 * 60 * 60,
    "1d": 24 * 60 * 60,
}
DEFAULT_RESOLUTION = "1h"

DEFAULT_EARLIEST = datetime(2020, 1, 1, tzinfo=timezone.utc)
DEFAULT_LATEST = datetime(2023, 12, 31, 23, 59, 59, tzinfo=timezone.utc)


def canonical_timestamp(timestamp: datetime) -> str:
    """UTC ISO-8601 form used as hash input (millisecond precision)."""
    return timestamp.astimezone(timezone.utc).isoformat(timespec="milliseconds")


def validate_period(start: Any, end: Any) -> tuple[datetime, datetime]:
    """
    Validate and parse a replay period.

    Returns:
        Parsed (start, end) as UTC datetimes.

    Raises:
        InvalidRangeError: If either bound is missing or unparsable, or
            start is not before end.
    """
    if start is None or end is None or start == "" or end == "":
        raise InvalidRangeError("Period must have start and end dates")

    try:
        start_dt = parse_timestamp(start)
    except InvalidParameterError as e:
        raise InvalidRangeError(f"Invalid start date: {start!r}") from e
    try:
        end_dt = parse_timestamp(end)
    except InvalidParameterError as e:
        raise InvalidRangeError(f"Invalid end date: {end!r}") from e

    if start_dt >= end_dt:
        raise InvalidRangeError(
            f"Start date must be before end date: {start_dt.isoformat()} >= {end_dt.isoformat()}"
        )
    return start_dt, end_dt


def validate_tokens(tokens: Iterable[str] | None) -> list[str]:
    """
    Validate a token list.

    Tokens are opaque identifiers; only emptiness is checked here.
    Duplicates are dropped, order is kept.

    Raises:
        InvalidInputError: If the list is empty or holds blank entries.
    """
    if tokens is None or isinstance(tokens, str):
        raise InvalidInputError("At least one token is required")

    result: list[str] = []
    for token in tokens:
        if not isinstance(token, str) or not token.strip():
            raise InvalidInputError(f"Invalid token identifier: {token!r}")
        name = token.strip()
        if name not in result:
            result.append(name)

    if not result:
        raise InvalidInputError("At least one token is required")
    return result


def validate_resolution(resolution: str) -> str:
    """
    Raises:
        InvalidParameterError: If resolution is not a supported step.
    """
    if resolution not in RESOLUTIONS:
        raise InvalidParameterError(
            f"Unsupported resolution: {resolution!r} (expected one of {', '.join(RESOLUTIONS)})"
        )
    return resolution


def estimate_data_points(start: datetime, end: datetime, resolution: str = DEFAULT_RESOLUTION) -> int:
    """Number of samples a period holds at the given resolution."""
    step = RESOLUTIONS[validate_resolution(resolution)]
    return math.ceil((end - start).total_seconds() / step)


def progress_in_period(start: datetime, end: datetime, now: datetime) -> float:
    """Fraction of the period elapsed at now, clamped to [0, 1]."""
    span = (end - start).total_seconds()
    if span <= 0:
        return 1.0
    return min(1.0, max(0.0, (now - start).total_seconds() / span))


@dataclass
class HistoricalTimeRange:
    """Time range and resolutions the replayer offers."""

    earliest: datetime
    latest: datetime
    resolutions: list[str] = field(default_factory=lambda: list(RESOLUTIONS))

    def to_dict(self) -> dict[str, Any]:
        return {
            "earliest": self.earliest.isoformat(),
            "latest": self.latest.isoformat(),
            "resolutions": list(self.resolutions),
        }


class HistoricalReplayer:
    """
    Deterministic synthetic historical data.

    Prices come from the token's price band with the hash driven by token
    and timestamp, so the same query always returns the same numbers.

    Usage:
        replayer = HistoricalReplayer()

        # Single price
        price = replayer.price_at("ETH", "2023-03-01T12:00:00Z")

        # Full snapshot
        snapshot = replayer.snapshot_at(["ETH", "BTC"], datetime(2023, 3, 1, tzinfo=timezone.utc))

        # Price series over a period
        df = replayer.replay_series(["ETH"], "2023-03-01", "2023-03-02", resolution="1h")
    """

    validate_period = staticmethod(validate_period)
    validate_tokens = staticmethod(validate_tokens)
    validate_resolution = staticmethod(validate_resolution)
    estimate_data_points = staticmethod(estimate_data_points)

    def __init__(
        self,
        earliest: datetime = DEFAULT_EARLIEST,
        latest: datetime = DEFAULT_LATEST,
    ):
        self.earliest = parse_timestamp(earliest)
        self.latest = parse_timestamp(latest)

    def available_time_range(self) -> HistoricalTimeRange:
        """Get the replayable time range."""
        return HistoricalTimeRange(earliest=self.earliest, latest=self.latest)

    def price_at(self, token: str, timestamp: Any) -> float:
        """
        Synthetic price of a token at a timestamp.

        Args:
            token: Opaque token identifier.
            timestamp: datetime, ISO-8601 string or epoch seconds.

        Returns:
            Price > 0 within the token's band.
        """
        ts = parse_timestamp(timestamp)
        return band_price(classify_token(token), stable_hash(token + canonical_timestamp(ts)))

    def token_snapshot(self, token: str, timestamp: Any) -> TokenSnapshot:
        """Price, volume, supply and market cap of a token at a timestamp."""
        ts = parse_timestamp(timestamp)
        key = token + canonical_timestamp(ts)

        price = band_price(classify_token(token), stable_hash(key))
        # Supply is a property of the token, not of the moment
        supply = float(1_000_000 + stable_hash(f"supply|{token}") % 999_000_000)
        volume = float(stable_hash(f"volume|{key}") % 10_000_000)

        return TokenSnapshot(
            price=price,
            volume=volume,
            market_cap=price * supply,
            supply=supply,
        )

    def snapshot_at(
        self,
        tokens: Iterable[str],
        timestamp: Any,
        progress: float | None = None,
    ) -> MarketSnapshot:
        """
        Materialize the replayed market at a timestamp.

        Args:
            tokens: Token identifiers to include.
            timestamp: Point in simulated time.
            progress: Optional fraction of the replay period elapsed.

        Returns:
            MarketSnapshot with deterministic per-token data and metrics.
        """
        ts = parse_timestamp(timestamp)
        stamp = canonical_timestamp(ts)

        token_data = {token: self.token_snapshot(token, ts) for token in tokens}
        market_metrics = MarketMetrics(
            volatility_index=stable_fraction(f"volatility|{stamp}") * 100,
            liquidity_index=stable_fraction(f"liquidity|{stamp}") * 100,
            sentiment_index=stable_fraction(f"sentiment|{stamp}") * 100,
            total_volume=sum(snap.volume for snap in token_data.values()),
        )

        return MarketSnapshot(
            timestamp=ts,
            progress=progress,
            tokens=token_data,
            metrics=market_metrics,
        )

    def replay_series(
        self,
        tokens: Iterable[str],
        start: Any,
        end: Any,
        resolution: str = DEFAULT_RESOLUTION,
    ) -> pd.DataFrame:
        """
        Price series for tokens over a period.

        Returns:
            DataFrame indexed by UTC timestamp (named "timestamp") with one
            price column per token. Both period bounds are included when
            they fall on the sampling grid.

        Raises:
            InvalidRangeError / InvalidInputError / InvalidParameterError
        """
        start_dt, end_dt = validate_period(start, end)
        token_list = validate_tokens(tokens)
        step = RESOLUTIONS[validate_resolution(resolution)]

        index = pd.date_range(start=start_dt, end=end_dt, freq=pd.Timedelta(seconds=step), name="timestamp")
        data = {
            token: [self.price_at(token, ts.to_pydatetime()) for ts in index]
            for token in token_list
        }

        logger.debug(f"Replayed {len(index)} points for {len(token_list)} token(s) at {resolution}")
        return pd.DataFrame(data, index=index)
