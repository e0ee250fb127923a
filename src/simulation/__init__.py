# === MODULE PURPOSE ===
# Market simulation core.
# Virtual time control plus synthetic market generation (scenarios and
# historical replay) for agent training environments.

# === EXPORTS ===
from src.simulation.clock import VirtualClock, parse_timestamp
from src.simulation.errors import (
    InvalidInputError,
    InvalidParameterError,
    InvalidRangeError,
    InvalidStateError,
    NotFoundError,
    SimulationError,
    SimulationTerminatedError,
)
from src.simulation.historical import HistoricalReplayer, HistoricalTimeRange
from src.simulation.manager import (
    SimulationOrchestrator,
    SimulationSettings,
    create_orchestrator_from_config,
)
from src.simulation.models import (
    ClockStatus,
    HistoricalSourceConfig,
    MarketMetrics,
    MarketSnapshot,
    OrderBook,
    OrderBookLevel,
    ScenarioSourceConfig,
    SimulationEnvironment,
    SimulationStatus,
    SourceType,
    TimeInfo,
    TokenSnapshot,
    VirtualClockState,
)
from src.simulation.noise import NullJitter, RandomJitter
from src.simulation.repository import SimulationRepository
from src.simulation.scenarios import ScenarioGenerator, ScenarioParameters, ScenarioType

__all__ = [
    # Models
    "ClockStatus",
    "SimulationStatus",
    "SourceType",
    "VirtualClockState",
    "TimeInfo",
    "HistoricalSourceConfig",
    "ScenarioSourceConfig",
    "OrderBookLevel",
    "OrderBook",
    "TokenSnapshot",
    "MarketMetrics",
    "MarketSnapshot",
    "SimulationEnvironment",
    # Errors
    "SimulationError",
    "InvalidParameterError",
    "InvalidRangeError",
    "InvalidInputError",
    "NotFoundError",
    "InvalidStateError",
    "SimulationTerminatedError",
    # Components
    "VirtualClock",
    "parse_timestamp",
    "ScenarioGenerator",
    "ScenarioParameters",
    "ScenarioType",
    "HistoricalReplayer",
    "HistoricalTimeRange",
    "RandomJitter",
    "NullJitter",
    "SimulationRepository",
    # Orchestrator
    "SimulationOrchestrator",
    "SimulationSettings",
    "create_orchestrator_from_config",
]
