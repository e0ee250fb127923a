# === MODULE PURPOSE ===
# Data models for the market simulation core.
# Defines clock state, data source configs, and market snapshots.

# === KEY CONCEPTS ===
# - VirtualClockState: Point-in-time view of a simulation clock
# - DataSourceConfig: Either a historical replay or a synthetic scenario
# - MarketSnapshot: Materialized market state at the current simulated time
# - SimulationRecord: Clock + data source owned by one simulation id

import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Mapping, Union

if TYPE_CHECKING:
    from src.simulation.clock import VirtualClock


class ClockStatus(Enum):
    """Whether simulated time is flowing."""

    RUNNING = "running"
    PAUSED = "paused"


class SimulationStatus(Enum):
    """Lifecycle status of a simulation."""

    INITIALIZED = "initialized"  # Created or reset, not yet driven
    RUNNING = "running"
    PAUSED = "paused"
    TERMINATED = "terminated"  # Terminal


class SourceType(Enum):
    """Kind of market data source backing a simulation."""

    HISTORICAL = "historical"
    SCENARIO = "scenario"


@dataclass
class VirtualClockState:
    """Snapshot of a virtual clock."""

    start_time: datetime
    current_time: datetime
    time_scale: float
    status: ClockStatus
    simulation_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API response."""
        return {
            "simulation_id": self.simulation_id,
            "start_time": self.start_time.isoformat(),
            "current_time": self.current_time.isoformat(),
            "time_scale": self.time_scale,
            "status": self.status.value,
        }


@dataclass
class TimeInfo:
    """Clock state plus the effective real-time factor."""

    simulation_id: str | None
    current_time: datetime
    time_scale: float
    status: ClockStatus

    @property
    def real_time_factor(self) -> float:
        """Simulated seconds per wall second (0 while paused)."""
        return self.time_scale if self.status == ClockStatus.RUNNING else 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API response."""
        return {
            "simulation_id": self.simulation_id,
            "current_time": self.current_time.isoformat(),
            "time_scale": self.time_scale,
            "status": self.status.value,
            "real_time_factor": self.real_time_factor,
        }


@dataclass(frozen=True)
class HistoricalSourceConfig:
    """Replay of synthetic historical data over a fixed period."""

    period_start: datetime
    period_end: datetime
    tokens: tuple[str, ...]
    resolution: str = "1h"
    data_points: int = 0

    @property
    def source_type(self) -> SourceType:
        return SourceType.HISTORICAL

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API response."""
        return {
            "type": self.source_type.value,
            "period": {
                "start": self.period_start.isoformat(),
                "end": self.period_end.isoformat(),
            },
            "tokens": list(self.tokens),
            "resolution": self.resolution,
            "data_points": self.data_points,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HistoricalSourceConfig":
        """Inverse of to_dict(). Raises KeyError/TypeError/ValueError on bad input."""
        period = data["period"]
        return cls(
            period_start=datetime.fromisoformat(period["start"]),
            period_end=datetime.fromisoformat(period["end"]),
            tokens=tuple(data["tokens"]),
            resolution=data.get("resolution", "1h"),
            data_points=int(data.get("data_points", 0)),
        )


@dataclass(frozen=True)
class ScenarioSourceConfig:
    """Synthetic market scenario driven by progress through its duration."""

    scenario_type: str
    parameters: Mapping[str, float]
    tokens: tuple[str, ...]
    duration_seconds: float

    def __post_init__(self) -> None:
        # Read-only view over a private copy
        object.__setattr__(self, "parameters", MappingProxyType(dict(self.parameters)))
        object.__setattr__(self, "tokens", tuple(self.tokens))

    @property
    def source_type(self) -> SourceType:
        return SourceType.SCENARIO

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API response."""
        return {
            "type": self.source_type.value,
            "scenario_type": self.scenario_type,
            "parameters": dict(self.parameters),
            "tokens": list(self.tokens),
            "duration_seconds": self.duration_seconds,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScenarioSourceConfig":
        """Inverse of to_dict(). Raises KeyError/TypeError/ValueError on bad input."""
        return cls(
            scenario_type=str(data["scenario_type"]),
            parameters=dict(data.get("parameters") or {}),
            tokens=tuple(data["tokens"]),
            duration_seconds=float(data["duration_seconds"]),
        )


DataSourceConfig = Union[HistoricalSourceConfig, ScenarioSourceConfig]


@dataclass
class OrderBookLevel:
    """One price level of a synthetic order book."""

    price: float
    amount: float

    def to_dict(self) -> dict[str, float]:
        return {"price": self.price, "amount": self.amount}


@dataclass
class OrderBook:
    """Synthetic order book, best levels first."""

    asks: list[OrderBookLevel] = field(default_factory=list)
    bids: list[OrderBookLevel] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "asks": [level.to_dict() for level in self.asks],
            "bids": [level.to_dict() for level in self.bids],
        }


@dataclass
class TokenSnapshot:
    """Per-token market data at a point in simulated time."""

    price: float
    volume: float
    market_cap: float | None = None  # Historical replay
    supply: float | None = None  # Historical replay
    price_change_24h: float | None = None  # Scenario, percent
    market_depth: OrderBook | None = None  # Scenario

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API response."""
        data: dict[str, Any] = {"price": self.price, "volume": self.volume}
        if self.market_cap is not None:
            data["market_cap"] = self.market_cap
        if self.supply is not None:
            data["supply"] = self.supply
        if self.price_change_24h is not None:
            data["price_change_24h"] = self.price_change_24h
        if self.market_depth is not None:
            data["market_depth"] = self.market_depth.to_dict()
        return data


@dataclass
class MarketMetrics:
    """Aggregate market indices, each roughly on a 0-100 scale."""

    volatility_index: float
    liquidity_index: float
    sentiment_index: float
    total_volume: float | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "volatility_index": self.volatility_index,
            "liquidity_index": self.liquidity_index,
            "sentiment_index": self.sentiment_index,
        }
        if self.total_volume is not None:
            data["total_volume"] = self.total_volume
        return data


@dataclass
class MarketSnapshot:
    """Market state materialized by a data source."""

    timestamp: datetime
    tokens: dict[str, TokenSnapshot]
    metrics: MarketMetrics
    progress: float | None = None
    simulation_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API response."""
        return {
            "simulation_id": self.simulation_id,
            "timestamp": self.timestamp.isoformat(),
            "progress": self.progress,
            "tokens": {token: snap.to_dict() for token, snap in self.tokens.items()},
            "market_metrics": self.metrics.to_dict(),
        }


@dataclass
class SimulationRecord:
    """
    Everything owned by one simulation id.

    The lock serializes operations on this record; different records
    never share mutable state.
    """

    simulation_id: str
    clock: "VirtualClock"
    data_source: DataSourceConfig
    created_at: datetime
    status: SimulationStatus = SimulationStatus.INITIALIZED
    metadata: dict[str, Any] = field(default_factory=dict)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def source_type(self) -> SourceType:
        return self.data_source.source_type

    @property
    def is_terminated(self) -> bool:
        return self.status == SimulationStatus.TERMINATED


@dataclass
class SimulationEnvironment:
    """Descriptive view of a simulation for callers."""

    simulation_id: str
    source_type: SourceType
    status: SimulationStatus
    time: TimeInfo
    data_source: DataSourceConfig
    created_at: datetime
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API response."""
        return {
            "simulation_id": self.simulation_id,
            "type": self.source_type.value,
            "status": self.status.value,
            "time_control": self.time.to_dict(),
            "data_source": self.data_source.to_dict(),
            "created_at": self.created_at.isoformat(),
            "metadata": dict(self.metadata),
        }
