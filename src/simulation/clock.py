# === MODULE PURPOSE ===
# Virtual time controller for market simulations.
# Maps wall-clock time to simulated time with run/pause/scale/reset/set.

# === KEY CONCEPTS ===
# - Virtual time: Simulated clock independent of real time
# - Time scale: Simulated seconds per wall second, clamped to a range
# - Lazy advance: Time is advanced on read, no background timer thread

import logging
import math
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from src.simulation.errors import InvalidParameterError
from src.simulation.models import ClockStatus, TimeInfo, VirtualClockState

logger = logging.getLogger(__name__)

MIN_TIME_SCALE = 0.1
MAX_TIME_SCALE = 1000.0

# Simulated time saturates here instead of overflowing
LATEST_TIME = datetime.max.replace(tzinfo=timezone.utc)

WallClock = Callable[[], float]


def parse_timestamp(value: Any) -> datetime:
    """
    Parse a timestamp into a timezone-aware UTC datetime.

    Accepts datetime objects (naive values are taken as UTC), ISO-8601
    strings (a trailing "Z" is accepted) and epoch seconds.

    Raises:
        InvalidParameterError: If the value cannot be interpreted.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, bool):
        raise InvalidParameterError(f"Invalid timestamp: {value!r}")
    elif isinstance(value, (int, float)):
        if not math.isfinite(value):
            raise InvalidParameterError(f"Invalid timestamp: {value!r}")
        try:
            parsed = datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as e:
            raise InvalidParameterError(f"Invalid timestamp: {value!r}") from e
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as e:
            raise InvalidParameterError(f"Invalid timestamp: {value!r}") from e
    else:
        raise InvalidParameterError(f"Invalid timestamp: {value!r}")

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    try:
        return parsed.astimezone(timezone.utc)
    except OverflowError as e:
        raise InvalidParameterError(f"Timestamp out of range: {value!r}") from e


def validate_time_scale(
    scale: Any,
    min_scale: float = MIN_TIME_SCALE,
    max_scale: float = MAX_TIME_SCALE,
) -> float:
    """
    Validate a time scale and clamp it into [min_scale, max_scale].

    Malformed input is rejected before clamping is considered.

    Raises:
        InvalidParameterError: If scale is not a finite positive number.
    """
    if isinstance(scale, bool) or not isinstance(scale, (int, float)):
        raise InvalidParameterError(f"Time scale must be a positive number: {scale!r}")
    if not math.isfinite(scale) or scale <= 0:
        raise InvalidParameterError(f"Time scale must be a positive number: {scale!r}")

    return max(min_scale, min(max_scale, float(scale)))


@dataclass
class VirtualClock:
    """
    Virtual time controller for one simulation.

    Simulated time advances by (wall elapsed x time_scale) while running.
    The advance is computed lazily: every read or mutation first syncs the
    clock, so a scale change or pause applies exactly from the call onwards.

    Usage:
        clock = VirtualClock(start_time="2024-01-01T00:00:00Z", time_scale=60)

        # Get current simulated time
        now = clock.now()

        # Freeze and thaw
        clock.pause()
        clock.resume()

        # Speed up
        clock.set_scale(600)

        # Back to the beginning (paused)
        clock.reset()
    """

    start_time: Any = None
    time_scale: float = 1.0
    wall_clock: WallClock = time.monotonic
    min_scale: float = MIN_TIME_SCALE
    max_scale: float = MAX_TIME_SCALE
    simulation_id: str | None = None

    current_time: datetime = field(init=False)
    status: ClockStatus = field(default=ClockStatus.RUNNING, init=False)
    _last_sync_wall: float = field(default=0.0, init=False, repr=False)

    def __post_init__(self) -> None:
        """Validate inputs and start running from start_time."""
        if self.start_time is None:
            self.start_time = datetime.now(timezone.utc)
        else:
            self.start_time = parse_timestamp(self.start_time)

        self.time_scale = validate_time_scale(self.time_scale, self.min_scale, self.max_scale)
        self.current_time = self.start_time
        self.status = ClockStatus.RUNNING
        self._last_sync_wall = self.wall_clock()

    @property
    def is_running(self) -> bool:
        return self.status == ClockStatus.RUNNING

    @property
    def state(self) -> VirtualClockState:
        """Synced snapshot of the clock."""
        self._sync()
        return VirtualClockState(
            simulation_id=self.simulation_id,
            start_time=self.start_time,
            current_time=self.current_time,
            time_scale=self.time_scale,
            status=self.status,
        )

    @property
    def elapsed(self) -> timedelta:
        """Simulated time since start_time (negative after set_time into the past)."""
        return self.now() - self.start_time

    def time_info(self) -> TimeInfo:
        """Synced time info including the real-time factor."""
        self._sync()
        return TimeInfo(
            simulation_id=self.simulation_id,
            current_time=self.current_time,
            time_scale=self.time_scale,
            status=self.status,
        )

    def now(self) -> datetime:
        """Get current simulated time, advancing it if running."""
        self._sync()
        return self.current_time

    def set_scale(self, new_scale: Any) -> VirtualClockState:
        """
        Change the time scale from this instant on.

        Time elapsed so far is accounted for at the old scale.

        Raises:
            InvalidParameterError: If new_scale is not a finite positive number.
        """
        self._sync()
        scale = validate_time_scale(new_scale, self.min_scale, self.max_scale)

        old_scale = self.time_scale
        self.time_scale = scale
        logger.debug(f"Clock scale changed: {old_scale:g}x -> {scale:g}x")

        return self.state

    def pause(self) -> VirtualClockState:
        """Freeze simulated time. Pausing a paused clock is a no-op."""
        self._sync()
        if self.is_running:
            self.status = ClockStatus.PAUSED
            logger.debug(f"Clock paused at {self.current_time.isoformat()}")
        return self.state

    def resume(self) -> VirtualClockState:
        """
        Let simulated time flow again.

        Wall time spent paused is not caught up. Resuming a running clock
        is a no-op.
        """
        if not self.is_running:
            self.status = ClockStatus.RUNNING
            self._last_sync_wall = self.wall_clock()
            logger.debug(f"Clock resumed at {self.current_time.isoformat()}")
        return self.state

    def reset(self) -> VirtualClockState:
        """Return to start_time and pause."""
        self.current_time = self.start_time
        self.status = ClockStatus.PAUSED
        self._last_sync_wall = self.wall_clock()
        logger.debug(f"Clock reset to {self.start_time.isoformat()}")
        return self.state

    def set_time(self, timestamp: Any) -> VirtualClockState:
        """
        Jump to an arbitrary simulated time.

        Args:
            timestamp: datetime, ISO-8601 string or epoch seconds.

        Raises:
            InvalidParameterError: If timestamp cannot be parsed.
        """
        new_time = parse_timestamp(timestamp)
        self.current_time = new_time
        self._last_sync_wall = self.wall_clock()
        logger.debug(f"Clock set to {new_time.isoformat()}")
        return self.state

    def _sync(self) -> None:
        """Fold wall time elapsed since the last sync into current_time."""
        wall_now = self.wall_clock()
        elapsed_wall = wall_now - self._last_sync_wall
        if elapsed_wall <= 0:
            return

        if self.is_running:
            try:
                self.current_time += timedelta(seconds=elapsed_wall * self.time_scale)
            except OverflowError:
                if self.current_time != LATEST_TIME:
                    logger.warning(f"Simulated time saturated at {LATEST_TIME.isoformat()}")
                self.current_time = LATEST_TIME
        self._last_sync_wall = wall_now
