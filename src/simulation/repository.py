# === MODULE PURPOSE ===
# In-memory repository of simulation records keyed by simulation id.
# Owned by (and injected into) the orchestrator; no module-level state.

# === KEY CONCEPTS ===
# - Record lookup: Unknown ids raise NotFoundError
# - Tombstones: Terminated ids are remembered and raise SimulationTerminatedError
#   (the most recent max_tombstones of them; older ones fall back to NotFoundError)
# - Map lock: Held only for lookup/insert/remove, never while a record is in use

import logging
import threading
from collections import OrderedDict

from src.simulation.errors import (
    InvalidParameterError,
    InvalidStateError,
    NotFoundError,
    SimulationTerminatedError,
)
from src.simulation.models import SimulationRecord

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOMBSTONES = 10_000


class SimulationRepository:
    """
    Thread-safe store of live simulation records.

    Usage:
        repo = SimulationRepository()
        repo.add(record)

        record = repo.get("sim_abc123")
        repo.remove("sim_abc123")  # Tombstones the id

    Thread Safety:
        The id -> record map is guarded by a threading.Lock. Each record
        carries its own lock for serializing operations on it.
    """

    def __init__(self, max_tombstones: int = DEFAULT_MAX_TOMBSTONES) -> None:
        """
        Args:
            max_tombstones: How many terminated ids to remember. Once
                exceeded, the oldest tombstone is forgotten and that id
                reports NotFoundError instead of SimulationTerminatedError.
        """
        if max_tombstones < 1:
            raise InvalidParameterError(f"max_tombstones must be positive, got {max_tombstones}")
        self._records: dict[str, SimulationRecord] = {}
        self._terminated: OrderedDict[str, None] = OrderedDict()
        self._max_tombstones = max_tombstones
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, simulation_id: object) -> bool:
        with self._lock:
            return simulation_id in self._records

    def add(self, record: SimulationRecord) -> None:
        """
        Register a record.

        A previously terminated id may be reused (e.g. restoring a snapshot).

        Raises:
            InvalidStateError: If a live record already uses the id.
        """
        with self._lock:
            if record.simulation_id in self._records:
                raise InvalidStateError(
                    f"Simulation already exists: {record.simulation_id}",
                    simulation_id=record.simulation_id,
                )
            self._records[record.simulation_id] = record
            self._terminated.pop(record.simulation_id, None)

    def get(self, simulation_id: str) -> SimulationRecord:
        """
        Look up a live record.

        Raises:
            SimulationTerminatedError: If the id was terminated.
            NotFoundError: If the id was never registered.
        """
        with self._lock:
            record = self._records.get(simulation_id)
            if record is not None:
                return record
            if simulation_id in self._terminated:
                raise SimulationTerminatedError(simulation_id)
        raise NotFoundError(f"Simulation not found: {simulation_id}", simulation_id=simulation_id)

    def remove(self, simulation_id: str) -> SimulationRecord:
        """
        Drop a record and tombstone its id.

        Raises:
            SimulationTerminatedError / NotFoundError: As for get().
        """
        with self._lock:
            record = self._records.pop(simulation_id, None)
            if record is None:
                if simulation_id in self._terminated:
                    raise SimulationTerminatedError(simulation_id)
                raise NotFoundError(f"Simulation not found: {simulation_id}", simulation_id=simulation_id)
            self._terminated[simulation_id] = None
            if len(self._terminated) > self._max_tombstones:
                forgotten, _ = self._terminated.popitem(last=False)
                logger.debug(f"Tombstone evicted: {forgotten}")
            return record

    def ids(self) -> list[str]:
        """Ids of all live simulations, in creation order."""
        with self._lock:
            return list(self._records)

    def is_terminated(self, simulation_id: str) -> bool:
        with self._lock:
            return simulation_id in self._terminated
