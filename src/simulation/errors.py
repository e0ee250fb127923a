# === MODULE PURPOSE ===
# Typed errors raised by the simulation core.
# Every failure is local and deterministic; callers map these to responses.

# === KEY CONCEPTS ===
# - InvalidParameterError: malformed scale, timestamp or scenario parameter
# - InvalidRangeError: bad historical period
# - InvalidInputError: empty token list, unknown scenario/source type
# - NotFoundError / InvalidStateError: lifecycle errors for a simulation id


class SimulationError(Exception):
    """Base class for all simulation core errors."""

    def __init__(self, message: str = "", simulation_id: str | None = None):
        super().__init__(message)
        self.simulation_id = simulation_id


class InvalidParameterError(SimulationError, ValueError):
    """A scalar argument (scale, timestamp, parameter) is malformed."""


class InvalidRangeError(SimulationError, ValueError):
    """A historical period is missing, unparsable or empty."""


class InvalidInputError(SimulationError, ValueError):
    """A structured input (tokens, source type, snapshot blob) is invalid."""


class NotFoundError(SimulationError, LookupError):
    """No simulation is registered under the given id."""


class InvalidStateError(SimulationError):
    """The operation is not allowed in the simulation's current state."""


class SimulationTerminatedError(NotFoundError, InvalidStateError):
    """
    The simulation was terminated.

    Raised for any operation against a terminated id, including a second
    terminate. Catchable as either NotFoundError or InvalidStateError.
    """

    def __init__(self, simulation_id: str):
        super().__init__(f"Simulation terminated: {simulation_id}", simulation_id=simulation_id)
