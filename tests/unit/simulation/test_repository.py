# === MODULE PURPOSE ===
# Unit tests for SimulationRepository.

from datetime import datetime, timezone

import pytest

from src.simulation.clock import VirtualClock
from src.simulation.errors import (
    InvalidParameterError,
    InvalidStateError,
    NotFoundError,
    SimulationTerminatedError,
)
from src.simulation.models import ScenarioSourceConfig, SimulationRecord
from src.simulation.repository import SimulationRepository


def make_record(simulation_id: str, wall) -> SimulationRecord:
    return SimulationRecord(
        simulation_id=simulation_id,
        clock=VirtualClock(start_time="2024-01-01T00:00:00Z", wall_clock=wall),
        data_source=ScenarioSourceConfig(
            scenario_type="bull_market",
            parameters={},
            tokens=("ETH",),
            duration_seconds=3600.0,
        ),
        created_at=datetime.now(timezone.utc),
    )


@pytest.fixture
def repo() -> SimulationRepository:
    return SimulationRepository()


class TestSimulationRepository:
    """Tests for add/get/remove and tombstones."""

    def test_add_and_get(self, repo, wall):
        record = make_record("sim_a", wall)
        repo.add(record)

        assert repo.get("sim_a") is record
        assert "sim_a" in repo
        assert len(repo) == 1

    def test_unknown_id(self, repo):
        with pytest.raises(NotFoundError) as exc_info:
            repo.get("sim_missing")
        assert not isinstance(exc_info.value, SimulationTerminatedError)
        assert exc_info.value.simulation_id == "sim_missing"

    def test_duplicate_live_id_rejected(self, repo, wall):
        repo.add(make_record("sim_a", wall))
        with pytest.raises(InvalidStateError):
            repo.add(make_record("sim_a", wall))

    def test_remove_tombstones(self, repo, wall):
        repo.add(make_record("sim_a", wall))
        repo.remove("sim_a")

        assert "sim_a" not in repo
        assert repo.is_terminated("sim_a")
        with pytest.raises(SimulationTerminatedError):
            repo.get("sim_a")

    def test_terminated_error_is_both_not_found_and_invalid_state(self, repo, wall):
        repo.add(make_record("sim_a", wall))
        repo.remove("sim_a")

        with pytest.raises(NotFoundError):
            repo.get("sim_a")
        with pytest.raises(InvalidStateError):
            repo.remove("sim_a")

    def test_remove_unknown(self, repo):
        with pytest.raises(NotFoundError):
            repo.remove("sim_missing")

    def test_tombstoned_id_can_be_reused(self, repo, wall):
        repo.add(make_record("sim_a", wall))
        repo.remove("sim_a")

        replacement = make_record("sim_a", wall)
        repo.add(replacement)

        assert repo.get("sim_a") is replacement
        assert not repo.is_terminated("sim_a")

    def test_ids_in_creation_order(self, repo, wall):
        for name in ("sim_c", "sim_a", "sim_b"):
            repo.add(make_record(name, wall))
        repo.remove("sim_a")

        assert repo.ids() == ["sim_c", "sim_b"]


class TestTombstoneLimit:
    """Tests for the bounded tombstone memory."""

    def test_oldest_tombstone_forgotten(self, wall):
        repo = SimulationRepository(max_tombstones=2)
        for name in ("sim_a", "sim_b", "sim_c"):
            repo.add(make_record(name, wall))
            repo.remove(name)

        assert not repo.is_terminated("sim_a")
        assert repo.is_terminated("sim_b")
        assert repo.is_terminated("sim_c")

        with pytest.raises(NotFoundError) as exc_info:
            repo.get("sim_a")
        assert not isinstance(exc_info.value, SimulationTerminatedError)
        with pytest.raises(SimulationTerminatedError):
            repo.get("sim_b")

    def test_reused_id_frees_its_tombstone(self, wall):
        repo = SimulationRepository(max_tombstones=2)
        for name in ("sim_a", "sim_b"):
            repo.add(make_record(name, wall))
            repo.remove(name)

        repo.add(make_record("sim_a", wall))
        repo.add(make_record("sim_c", wall))
        repo.remove("sim_c")

        assert repo.is_terminated("sim_b")
        assert repo.is_terminated("sim_c")
        assert repo.get("sim_a") is not None

    def test_invalid_limit_rejected(self):
        with pytest.raises(InvalidParameterError):
            SimulationRepository(max_tombstones=0)
