# === MODULE PURPOSE ===
# Main orchestrator for market simulations.
# Owns one virtual clock and one data source per simulation id and
# materializes market snapshots at the current simulated time.

# === DEPENDENCIES ===
# - clock: VirtualClock (simulated time per simulation)
# - scenarios: ScenarioGenerator (synthetic trend scenarios)
# - historical: HistoricalReplayer (deterministic historical replay)
# - repository: SimulationRepository (id -> record store)

# === KEY CONCEPTS ===
# - Lifecycle: initialized -> running <-> paused, any -> terminated
# - Per-record lock: Operations on one id are serialized, ids are independent
# - Export/import: Versioned plain-dict snapshot for external persistence

import logging
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Iterator, Mapping

import pandas as pd

from src.common.config import Config, load_simulation_config
from src.simulation.clock import (
    MAX_TIME_SCALE,
    MIN_TIME_SCALE,
    VirtualClock,
    WallClock,
    parse_timestamp,
)
from src.simulation.errors import (
    InvalidInputError,
    InvalidParameterError,
    InvalidRangeError,
)
from src.simulation.historical import (
    DEFAULT_EARLIEST,
    DEFAULT_LATEST,
    DEFAULT_RESOLUTION,
    HistoricalReplayer,
    HistoricalTimeRange,
    estimate_data_points,
    progress_in_period,
    validate_period,
    validate_resolution,
    validate_tokens,
)
from src.simulation.models import (
    ClockStatus,
    DataSourceConfig,
    HistoricalSourceConfig,
    MarketSnapshot,
    ScenarioSourceConfig,
    SimulationEnvironment,
    SimulationRecord,
    SimulationStatus,
    SourceType,
    TimeInfo,
)
from src.simulation.noise import JitterSource, RandomJitter
from src.simulation.repository import DEFAULT_MAX_TOMBSTONES, SimulationRepository
from src.simulation.scenarios import (
    DEFAULT_JITTER_AMPLITUDE,
    DEFAULT_ORDER_BOOK_LEVELS,
    ScenarioDefinition,
    ScenarioGenerator,
    ScenarioParameters,
    available_scenarios,
    parse_scenario_type,
    progress_between,
)

logger = logging.getLogger(__name__)

EXPORT_VERSION = 1


def _new_simulation_id() -> str:
    return f"sim_{uuid.uuid4().hex[:12]}"


@dataclass
class SimulationSettings:
    """Tunables shared by every simulation an orchestrator creates."""

    min_time_scale: float = MIN_TIME_SCALE
    max_time_scale: float = MAX_TIME_SCALE
    default_time_scale: float = 1.0
    order_book_levels: int = DEFAULT_ORDER_BOOK_LEVELS
    jitter_amplitude: float = DEFAULT_JITTER_AMPLITUDE
    jitter_seed: int | None = None
    default_resolution: str = DEFAULT_RESOLUTION
    history_earliest: datetime = DEFAULT_EARLIEST
    history_latest: datetime = DEFAULT_LATEST

    def __post_init__(self) -> None:
        if not 0 < self.min_time_scale <= self.max_time_scale:
            raise InvalidParameterError(
                f"Invalid time scale bounds: [{self.min_time_scale}, {self.max_time_scale}]"
            )
        validate_resolution(self.default_resolution)

    @classmethod
    def from_config(cls, config: Config) -> "SimulationSettings":
        """
        Build settings from the simulation.* section of a config.

        Missing keys fall back to the dataclass defaults.
        """
        seed = config.get("simulation.order_book.jitter_seed")
        return cls(
            min_time_scale=config.get_float("simulation.clock.min_time_scale", MIN_TIME_SCALE),
            max_time_scale=config.get_float("simulation.clock.max_time_scale", MAX_TIME_SCALE),
            default_time_scale=config.get_float("simulation.clock.default_time_scale", 1.0),
            order_book_levels=config.get_int("simulation.order_book.levels", DEFAULT_ORDER_BOOK_LEVELS),
            jitter_amplitude=config.get_float(
                "simulation.order_book.jitter_amplitude", DEFAULT_JITTER_AMPLITUDE
            ),
            jitter_seed=int(seed) if seed is not None else None,
            default_resolution=config.get_str("simulation.historical.default_resolution", DEFAULT_RESOLUTION),
            history_earliest=parse_timestamp(config.get("simulation.historical.earliest", DEFAULT_EARLIEST)),
            history_latest=parse_timestamp(config.get("simulation.historical.latest", DEFAULT_LATEST)),
        )


class SimulationOrchestrator:
    """
    Main entry point of the simulation core.

    Each simulation id owns one VirtualClock and one data source (either a
    historical replay or a synthetic scenario). get_state() reads the clock
    and asks the data source for the market at that instant.

    Usage:
        orchestrator = SimulationOrchestrator()

        sim_id = orchestrator.initialize(
            "scenario",
            tokens=["ETH", "BTC"],
            time_scale=100,
            scenario_type="bull_market",
            scenario_parameters={"intensity": 0.5},
        )

        # Market at the current simulated time
        snapshot = orchestrator.get_state(sim_id)

        # Time control
        orchestrator.pause(sim_id)
        orchestrator.set_scale(sim_id, 600)
        orchestrator.resume(sim_id)

        orchestrator.terminate(sim_id)

    Thread Safety:
        Operations on the same id are serialized by the record's lock.
        Different ids never share mutable state.
    """

    def __init__(
        self,
        repository: SimulationRepository | None = None,
        settings: SimulationSettings | None = None,
        wall_clock: WallClock = time.monotonic,
        jitter: JitterSource | None = None,
        id_factory: Callable[[], str] | None = None,
        scenario_generator: ScenarioGenerator | None = None,
        replayer: HistoricalReplayer | None = None,
    ):
        """
        Args:
            repository: Record store (a new in-memory one by default).
            settings: Scale bounds, order book shape and replay defaults.
            wall_clock: Monotonic seconds source shared by all clocks.
            jitter: Order-book jitter source (seeded from settings by default).
            id_factory: Produces new simulation ids.
            scenario_generator: Overrides the generator built from settings.
            replayer: Overrides the replayer built from settings.
        """
        self._settings = settings or SimulationSettings()
        self._repository = repository if repository is not None else SimulationRepository()
        self._wall_clock = wall_clock
        self._id_factory = id_factory or _new_simulation_id

        if scenario_generator is None:
            scenario_generator = ScenarioGenerator(
                jitter=jitter if jitter is not None else RandomJitter(self._settings.jitter_seed),
                order_book_levels=self._settings.order_book_levels,
                jitter_amplitude=self._settings.jitter_amplitude,
            )
        self._generator = scenario_generator
        self._replayer = replayer or HistoricalReplayer(
            earliest=self._settings.history_earliest,
            latest=self._settings.history_latest,
        )

    @property
    def settings(self) -> SimulationSettings:
        return self._settings

    # === Lifecycle ===

    def initialize(
        self,
        source_type: SourceType | str,
        tokens: Iterable[str],
        start_time: Any = None,
        time_scale: Any = None,
        *,
        period: Any = None,
        resolution: str | None = None,
        scenario_type: Any = None,
        scenario_parameters: ScenarioParameters | Mapping[str, Any] | None = None,
        agent_id: str | None = None,
        description: str | None = None,
    ) -> str:
        """
        Create a simulation.

        Args:
            source_type: "historical" or "scenario".
            tokens: Token identifiers the simulation prices.
            start_time: Simulated start. Historical defaults to the period
                start, scenario defaults to now (UTC).
            time_scale: Simulated seconds per wall second (clamped).
            period: Historical only; {"start": ..., "end": ...} or (start, end).
            resolution: Historical only; sampling step, e.g. "1h".
            scenario_type: Scenario only; one of the seven archetypes.
            scenario_parameters: Scenario only; parameter overrides.
            agent_id: Optional owner recorded in metadata.
            description: Optional free text recorded in metadata.

        Returns:
            The new simulation id. The clock is already running.

        Raises:
            InvalidInputError: Unknown source/scenario type or bad tokens.
            InvalidRangeError: Bad historical period.
            InvalidParameterError: Bad scale, start time, resolution or
                scenario parameters.
        """
        kind = _parse_source_type(source_type)
        token_list = validate_tokens(tokens)
        scale = self._settings.default_time_scale if time_scale is None else time_scale

        data_source: DataSourceConfig
        if kind == SourceType.HISTORICAL:
            data_source = self._historical_source(token_list, period, resolution)
            if start_time is None:
                start_time = data_source.period_start
        else:
            data_source = self._scenario_source(token_list, scenario_type, scenario_parameters)

        simulation_id = self._id_factory()
        clock = self._new_clock(simulation_id, start_time, scale)

        metadata: dict[str, Any] = {}
        if agent_id is not None:
            metadata["agent_id"] = agent_id
        if description is not None:
            metadata["description"] = description

        record = SimulationRecord(
            simulation_id=simulation_id,
            clock=clock,
            data_source=data_source,
            created_at=datetime.now(timezone.utc),
            metadata=metadata,
        )
        self._repository.add(record)

        logger.info(
            f"Simulation initialized: {simulation_id} ({kind.value}, "
            f"{len(token_list)} token(s), {clock.time_scale:g}x)"
        )
        return simulation_id

    def terminate(self, simulation_id: str) -> None:
        """
        Release a simulation. Every later operation on the id fails.

        Raises:
            NotFoundError: Unknown id, or already terminated
                (SimulationTerminatedError).
        """
        with self._locked(simulation_id) as record:
            record.status = SimulationStatus.TERMINATED
            self._repository.remove(simulation_id)

        logger.info(f"Simulation terminated: {simulation_id}")

    # === Market state ===

    def get_state(self, simulation_id: str) -> MarketSnapshot:
        """
        Materialize the market at the simulation's current simulated time.

        Returns:
            MarketSnapshot stamped with the simulation id. Scenario
            snapshots carry progress through the scenario duration,
            historical ones progress through the replay period.
        """
        with self._locked(simulation_id) as record:
            now = record.clock.now()
            self._mark_driven(record)
            source = record.data_source

            if isinstance(source, ScenarioSourceConfig):
                progress = progress_between(record.clock.start_time, now, source.duration_seconds)
                snapshot = self._generator.generate(
                    source.scenario_type,
                    source.parameters,
                    progress,
                    source.tokens,
                    timestamp=now,
                )
            else:
                progress = progress_in_period(source.period_start, source.period_end, now)
                snapshot = self._replayer.snapshot_at(source.tokens, now, progress=progress)

        snapshot.simulation_id = simulation_id
        return snapshot

    def get_price_series(self, simulation_id: str) -> pd.DataFrame:
        """
        Price series over a historical simulation's replay period.

        Raises:
            InvalidInputError: If the simulation is scenario-driven.
        """
        with self._locked(simulation_id) as record:
            source = record.data_source
            if not isinstance(source, HistoricalSourceConfig):
                raise InvalidInputError(
                    f"Price series is only available for historical simulations: {simulation_id}",
                    simulation_id=simulation_id,
                )

        return self._replayer.replay_series(
            source.tokens, source.period_start, source.period_end, source.resolution
        )

    # === Time control ===

    def get_time(self, simulation_id: str) -> TimeInfo:
        """Current simulated time, scale, status and real-time factor."""
        with self._locked(simulation_id) as record:
            return record.clock.time_info()

    def pause(self, simulation_id: str) -> TimeInfo:
        """Freeze simulated time (no-op if already paused)."""
        with self._locked(simulation_id) as record:
            record.clock.pause()
            self._mark_driven(record)
            return record.clock.time_info()

    def resume(self, simulation_id: str) -> TimeInfo:
        """Let simulated time flow again; wall time spent paused is skipped."""
        with self._locked(simulation_id) as record:
            record.clock.resume()
            self._mark_driven(record)
            return record.clock.time_info()

    def reset(self, simulation_id: str) -> TimeInfo:
        """Rewind to the start time, paused. The data source is unchanged."""
        with self._locked(simulation_id) as record:
            record.clock.reset()
            record.status = SimulationStatus.INITIALIZED
            return record.clock.time_info()

    def set_scale(self, simulation_id: str, time_scale: Any) -> TimeInfo:
        """
        Change the time scale from this instant on.

        Raises:
            InvalidParameterError: Non-numeric, non-finite or <= 0 scale.
        """
        with self._locked(simulation_id) as record:
            record.clock.set_scale(time_scale)
            self._mark_driven(record)
            return record.clock.time_info()

    def set_time(self, simulation_id: str, timestamp: Any) -> TimeInfo:
        """
        Jump to an arbitrary simulated time.

        Raises:
            InvalidParameterError: Unparsable timestamp.
        """
        with self._locked(simulation_id) as record:
            record.clock.set_time(timestamp)
            self._mark_driven(record)
            return record.clock.time_info()

    # === Introspection ===

    def describe(self, simulation_id: str) -> SimulationEnvironment:
        """Descriptive view of a simulation."""
        with self._locked(simulation_id) as record:
            return SimulationEnvironment(
                simulation_id=record.simulation_id,
                source_type=record.source_type,
                status=record.status,
                time=record.clock.time_info(),
                data_source=record.data_source,
                created_at=record.created_at,
                metadata=dict(record.metadata),
            )

    def list_simulations(self) -> list[str]:
        """Ids of all live simulations, in creation order."""
        return self._repository.ids()

    def available_scenarios(self) -> list[ScenarioDefinition]:
        """Scenario archetypes that can back a simulation."""
        return available_scenarios()

    def available_time_range(self) -> HistoricalTimeRange:
        """Time range and resolutions historical simulations can replay."""
        return self._replayer.available_time_range()

    # === Export / import ===

    def export_state(self, simulation_id: str) -> dict[str, Any]:
        """
        Snapshot a simulation as a JSON-serializable dict.

        The blob restores the clock (start, current time, scale, status),
        the data source and metadata via import_state().
        """
        with self._locked(simulation_id) as record:
            clock_state = record.clock.state
            return {
                "version": EXPORT_VERSION,
                "simulation_id": record.simulation_id,
                "status": record.status.value,
                "created_at": record.created_at.isoformat(),
                "clock": {
                    "start_time": clock_state.start_time.isoformat(),
                    "current_time": clock_state.current_time.isoformat(),
                    "time_scale": clock_state.time_scale,
                    "status": clock_state.status.value,
                },
                "data_source": record.data_source.to_dict(),
                "metadata": dict(record.metadata),
            }

    def import_state(self, blob: Mapping[str, Any]) -> str:
        """
        Restore a simulation from an export_state() blob.

        A running clock resumes from the exported current time; wall time
        between export and import is not caught up.

        Returns:
            The restored simulation id.

        Raises:
            InvalidInputError: Malformed blob or unsupported version.
            InvalidStateError: A live simulation already uses the id.
        """
        if not isinstance(blob, Mapping):
            raise InvalidInputError(f"State blob must be a mapping, got {type(blob).__name__}")
        if blob.get("version") != EXPORT_VERSION:
            raise InvalidInputError(f"Unsupported state blob version: {blob.get('version')!r}")

        try:
            simulation_id = blob["simulation_id"]
            if not isinstance(simulation_id, str) or not simulation_id:
                raise ValueError(f"invalid simulation id {simulation_id!r}")

            status = SimulationStatus(blob["status"])
            if status == SimulationStatus.TERMINATED:
                raise ValueError("terminated simulations cannot be imported")

            data_source = _source_from_dict(blob["data_source"])
            clock_data = blob["clock"]
            clock = self._new_clock(simulation_id, clock_data["start_time"], clock_data["time_scale"])
            if ClockStatus(clock_data["status"]) == ClockStatus.PAUSED:
                clock.pause()
            clock.set_time(clock_data["current_time"])

            record = SimulationRecord(
                simulation_id=simulation_id,
                clock=clock,
                data_source=data_source,
                created_at=parse_timestamp(blob["created_at"]),
                status=status,
                metadata=dict(blob.get("metadata") or {}),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidInputError(f"Malformed state blob: {e}") from e

        self._repository.add(record)

        logger.info(f"Simulation imported: {simulation_id} ({record.source_type.value})")
        return simulation_id

    # === Internals ===

    @contextmanager
    def _locked(self, simulation_id: str) -> Iterator[SimulationRecord]:
        """
        Hold a live record's lock for the duration of an operation.

        A record terminated while we waited for its lock is looked up
        again: the id may have been re-imported in the meantime. If it
        was not, the repository raises SimulationTerminatedError.
        """
        while True:
            record = self._repository.get(simulation_id)
            with record.lock:
                if not record.is_terminated:
                    yield record
                    return

    def _mark_driven(self, record: SimulationRecord) -> None:
        record.status = (
            SimulationStatus.RUNNING if record.clock.is_running else SimulationStatus.PAUSED
        )

    def _new_clock(self, simulation_id: str, start_time: Any, time_scale: Any) -> VirtualClock:
        return VirtualClock(
            start_time=start_time,
            time_scale=time_scale,
            wall_clock=self._wall_clock,
            min_scale=self._settings.min_time_scale,
            max_scale=self._settings.max_time_scale,
            simulation_id=simulation_id,
        )

    def _historical_source(
        self,
        tokens: list[str],
        period: Any,
        resolution: str | None,
    ) -> HistoricalSourceConfig:
        start, end = _split_period(period)
        start_dt, end_dt = validate_period(start, end)
        resolution = validate_resolution(resolution or self._settings.default_resolution)

        return HistoricalSourceConfig(
            period_start=start_dt,
            period_end=end_dt,
            tokens=tuple(tokens),
            resolution=resolution,
            data_points=estimate_data_points(start_dt, end_dt, resolution),
        )

    def _scenario_source(
        self,
        tokens: list[str],
        scenario_type: Any,
        parameters: ScenarioParameters | Mapping[str, Any] | None,
    ) -> ScenarioSourceConfig:
        if scenario_type is None:
            raise InvalidInputError("Scenario simulations require a scenario type")
        kind = parse_scenario_type(scenario_type)
        if not isinstance(parameters, ScenarioParameters):
            parameters = ScenarioParameters.from_mapping(parameters)
        resolved = parameters.resolve(kind)

        return ScenarioSourceConfig(
            scenario_type=kind.value,
            parameters=resolved.to_dict(),
            tokens=tuple(tokens),
            duration_seconds=float(resolved.duration_seconds),
        )


def _parse_source_type(value: SourceType | str) -> SourceType:
    if isinstance(value, SourceType):
        return value
    try:
        return SourceType(str(value).strip().lower())
    except ValueError as e:
        raise InvalidInputError(f"Invalid simulation type: {value!r}") from e


def _split_period(period: Any) -> tuple[Any, Any]:
    """Accept {"start": ..., "end": ...} or a (start, end) pair."""
    if period is None:
        raise InvalidRangeError("Historical simulations require a period")
    if isinstance(period, Mapping):
        return period.get("start"), period.get("end")
    try:
        start, end = period
    except (TypeError, ValueError) as e:
        raise InvalidRangeError(f"Period must be a start/end pair: {period!r}") from e
    return start, end


def _source_from_dict(data: Mapping[str, Any]) -> DataSourceConfig:
    """Rebuild and revalidate an exported data source config."""
    source_type = SourceType(data["type"])

    if source_type == SourceType.HISTORICAL:
        source = HistoricalSourceConfig.from_dict(data)
        start, end = validate_period(source.period_start, source.period_end)
        validate_tokens(source.tokens)
        validate_resolution(source.resolution)
        return replace(source, period_start=start, period_end=end)

    source = ScenarioSourceConfig.from_dict(data)
    validate_tokens(source.tokens)
    ScenarioParameters.from_mapping(source.parameters)
    parse_scenario_type(source.scenario_type)
    if not source.duration_seconds > 0:
        raise ValueError(f"scenario duration must be > 0: {source.duration_seconds}")
    return source


def create_orchestrator_from_config(config: Config | None = None, **kwargs: Any) -> SimulationOrchestrator:
    """
    Create a SimulationOrchestrator from configuration.

    Args:
        config: Loaded config; defaults to load_simulation_config().
        **kwargs: Passed through to SimulationOrchestrator (wall_clock,
            jitter, repository, ...).

    Returns:
        Configured SimulationOrchestrator instance.
    """
    if config is None:
        config = load_simulation_config()

    settings = SimulationSettings.from_config(config)
    logger.debug(f"Orchestrator settings: {settings}")
    if kwargs.get("repository") is None:
        kwargs["repository"] = SimulationRepository(
            max_tombstones=config.get_int("simulation.repository.max_tombstones", DEFAULT_MAX_TOMBSTONES)
        )
    return SimulationOrchestrator(settings=settings, **kwargs)
