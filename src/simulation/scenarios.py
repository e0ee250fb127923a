# === MODULE PURPOSE ===
# Synthetic market scenarios for agent training.
# Closed-form functions of scenario progress produce market metrics,
# per-token prices/volumes and synthetic order books.

# === DEPENDENCIES ===
# - token_pricing: Deterministic base price per token
# - noise: Injectable jitter for order-book amounts

# === KEY CONCEPTS ===
# - Progress: Fraction in [0, 1] of the scenario duration elapsed
# - Modifier: Multiplier applied to a token's base price/volume/depth
# - Determinism: Everything except order-book jitter is a pure function
#   of (scenario type, parameters, progress, token)

import logging
import math
from dataclasses import asdict, dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Mapping

from src.simulation.errors import InvalidInputError, InvalidParameterError
from src.simulation.models import MarketMetrics, MarketSnapshot, OrderBook, OrderBookLevel, TokenSnapshot
from src.simulation.noise import JitterSource, NullJitter
from src.simulation.token_pricing import base_price, stable_fraction

logger = logging.getLogger(__name__)

# Prices never drop below 1% of base
MIN_PRICE_MODIFIER = 0.01

DEFAULT_ORDER_BOOK_LEVELS = 5
DEFAULT_JITTER_AMPLITUDE = 0.2
BASE_VOLUME = 1_000_000

_HOUR = 60 * 60
_DAY = 24 * _HOUR


class ScenarioType(Enum):
    """Canonical market scenario archetypes."""

    BULL_MARKET = "bull_market"
    BEAR_MARKET = "bear_market"
    MARKET_CRASH = "market_crash"
    SIDEWAYS_MARKET = "sideways_market"
    HIGH_VOLATILITY = "high_volatility"
    LIQUIDITY_CRISIS = "liquidity_crisis"
    FLASH_CRASH = "flash_crash"


@dataclass(frozen=True)
class ScenarioDefinition:
    """Catalog entry describing a scenario archetype."""

    scenario_type: ScenarioType
    description: str
    parameters: tuple[str, ...]
    difficulty: str
    duration_seconds: float
    recovery_speed: float = 0.0
    oscillations: float = 1.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API response."""
        return {
            "type": self.scenario_type.value,
            "description": self.description,
            "parameters": list(self.parameters),
            "difficulty": self.difficulty,
            "duration_seconds": self.duration_seconds,
        }


SCENARIO_CATALOG: dict[ScenarioType, ScenarioDefinition] = {
    ScenarioType.BULL_MARKET: ScenarioDefinition(
        scenario_type=ScenarioType.BULL_MARKET,
        description="Sustained upward price movement with low volatility",
        parameters=("intensity", "duration_seconds"),
        difficulty="easy",
        duration_seconds=7 * _DAY,
    ),
    ScenarioType.BEAR_MARKET: ScenarioDefinition(
        scenario_type=ScenarioType.BEAR_MARKET,
        description="Sustained downward price movement with moderate volatility",
        parameters=("intensity", "duration_seconds"),
        difficulty="medium",
        duration_seconds=14 * _DAY,
    ),
    ScenarioType.MARKET_CRASH: ScenarioDefinition(
        scenario_type=ScenarioType.MARKET_CRASH,
        description="Sudden sharp decline in prices with high volatility",
        parameters=("intensity", "recovery_speed"),
        difficulty="hard",
        duration_seconds=1 * _DAY,
        recovery_speed=0.3,
    ),
    ScenarioType.SIDEWAYS_MARKET: ScenarioDefinition(
        scenario_type=ScenarioType.SIDEWAYS_MARKET,
        description="Range-bound price movement with low volatility",
        parameters=("range_width", "oscillations", "duration_seconds"),
        difficulty="medium",
        duration_seconds=30 * _DAY,
        oscillations=5.0,
    ),
    ScenarioType.HIGH_VOLATILITY: ScenarioDefinition(
        scenario_type=ScenarioType.HIGH_VOLATILITY,
        description="Erratic price movements with high volatility",
        parameters=("intensity", "direction_bias", "oscillations", "duration_seconds"),
        difficulty="hard",
        duration_seconds=3 * _DAY,
        oscillations=10.0,
    ),
    ScenarioType.LIQUIDITY_CRISIS: ScenarioDefinition(
        scenario_type=ScenarioType.LIQUIDITY_CRISIS,
        description="Reduced market depth and wider spreads",
        parameters=("intensity", "duration_seconds"),
        difficulty="expert",
        duration_seconds=2 * _DAY,
    ),
    ScenarioType.FLASH_CRASH: ScenarioDefinition(
        scenario_type=ScenarioType.FLASH_CRASH,
        description="Extremely rapid price decline followed by recovery",
        parameters=("intensity", "recovery_speed"),
        difficulty="expert",
        duration_seconds=4 * _HOUR,
        recovery_speed=0.5,
    ),
}

# Accepted spellings for parameter keys
_PARAMETER_ALIASES = {
    "intensity": "intensity",
    "direction_bias": "direction_bias",
    "directionBias": "direction_bias",
    "range_width": "range_width",
    "rangeWidth": "range_width",
    "recovery_speed": "recovery_speed",
    "recoverySpeed": "recovery_speed",
    "oscillations": "oscillations",
    "oscillation_count": "oscillations",
    "oscillationCount": "oscillations",
    "duration": "duration_seconds",
    "duration_seconds": "duration_seconds",
    "durationSeconds": "duration_seconds",
}


def parse_scenario_type(value: "ScenarioType | str") -> ScenarioType:
    """
    Resolve a scenario type from its enum or string value.

    Raises:
        InvalidInputError: If the type is not one of the seven archetypes.
    """
    if isinstance(value, ScenarioType):
        return value
    try:
        return ScenarioType(str(value).strip().lower())
    except ValueError as e:
        raise InvalidInputError(f"Invalid scenario type: {value!r}") from e


def available_scenarios() -> list[ScenarioDefinition]:
    """List all scenario archetypes in catalog order."""
    return list(SCENARIO_CATALOG.values())


def _finite(name: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise InvalidParameterError(f"Scenario parameter '{name}' must be a finite number: {value!r}")
    return float(value)


@dataclass(frozen=True)
class ScenarioParameters:
    """
    Tunable knobs of a scenario.

    None means "use the scenario's default" (see SCENARIO_CATALOG); call
    resolve() to fill them in.
    """

    intensity: float = 0.5
    direction_bias: float = 0.0
    range_width: float = 0.1
    recovery_speed: float | None = None
    oscillations: float | None = None
    duration_seconds: float | None = None

    def __post_init__(self) -> None:
        """Validate ranges."""
        intensity = _finite("intensity", self.intensity)
        if not 0.0 <= intensity <= 1.0:
            raise InvalidParameterError(f"Scenario parameter 'intensity' must be in [0, 1]: {intensity}")

        direction_bias = _finite("direction_bias", self.direction_bias)
        if not -1.0 <= direction_bias <= 1.0:
            raise InvalidParameterError(
                f"Scenario parameter 'direction_bias' must be in [-1, 1]: {direction_bias}"
            )

        if _finite("range_width", self.range_width) < 0:
            raise InvalidParameterError(f"Scenario parameter 'range_width' must be >= 0: {self.range_width}")

        if self.recovery_speed is not None and _finite("recovery_speed", self.recovery_speed) < 0:
            raise InvalidParameterError(
                f"Scenario parameter 'recovery_speed' must be >= 0: {self.recovery_speed}"
            )

        if self.oscillations is not None and _finite("oscillations", self.oscillations) <= 0:
            raise InvalidParameterError(f"Scenario parameter 'oscillations' must be > 0: {self.oscillations}")

        if self.duration_seconds is not None and _finite("duration_seconds", self.duration_seconds) <= 0:
            raise InvalidParameterError(
                f"Scenario parameter 'duration_seconds' must be > 0: {self.duration_seconds}"
            )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "ScenarioParameters":
        """
        Build parameters from a mapping (snake_case or camelCase keys).

        Raises:
            InvalidParameterError: On unknown keys or invalid values.
        """
        if not data:
            return cls()

        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            name = _PARAMETER_ALIASES.get(key)
            if name is None:
                raise InvalidParameterError(f"Unknown scenario parameter: {key!r}")
            if value is not None:
                kwargs[name] = value
        return cls(**kwargs)

    def resolve(self, scenario_type: ScenarioType) -> "ScenarioParameters":
        """Fill unset values from the scenario's catalog defaults."""
        definition = SCENARIO_CATALOG[scenario_type]
        return replace(
            self,
            recovery_speed=(
                self.recovery_speed if self.recovery_speed is not None else definition.recovery_speed
            ),
            oscillations=self.oscillations if self.oscillations is not None else definition.oscillations,
            duration_seconds=(
                self.duration_seconds if self.duration_seconds is not None else definition.duration_seconds
            ),
        )

    def to_dict(self) -> dict[str, float]:
        """Set values only, keyed by snake_case name."""
        return {key: value for key, value in asdict(self).items() if value is not None}


ParametersLike = ScenarioParameters | Mapping[str, Any] | None


def _prepare(
    scenario_type: ScenarioType | str,
    params: ParametersLike,
) -> tuple[ScenarioType, ScenarioParameters]:
    kind = parse_scenario_type(scenario_type)
    if not isinstance(params, ScenarioParameters):
        params = ScenarioParameters.from_mapping(params)
    return kind, params.resolve(kind)


def clamp_progress(progress: float) -> float:
    """Clamp progress into [0, 1]."""
    value = _finite("progress", progress)
    return min(1.0, max(0.0, value))


def progress_between(start: datetime, now: datetime, duration_seconds: float) -> float:
    """Fraction of duration_seconds elapsed between start and now, clamped."""
    if duration_seconds <= 0:
        return 1.0
    return clamp_progress((now - start).total_seconds() / duration_seconds)


# === Phase helpers ===


def _crash_point(progress: float) -> float:
    """Position within the crash window (first 20% of the scenario)."""
    return min(1.0, progress / 0.2)


def _crash_recovery(progress: float) -> float:
    """Position within the post-crash recovery window."""
    return max(0.0, (progress - 0.2) / 0.8)


def _flash_phase(progress: float) -> float:
    """Flash crash descent: 0 before 10%, ramps to 1 at 30%."""
    if progress < 0.1:
        return 0.0
    if progress < 0.3:
        return (progress - 0.1) / 0.2
    return 1.0


def _flash_recovery(progress: float) -> float:
    """Flash crash recovery: 0 before 30%, ramps to 1 at 100%."""
    if progress < 0.3:
        return 0.0
    return (progress - 0.3) / 0.7


def _bump(x: float, center: float, sharpness: float) -> float:
    """Gaussian bump exp(-sharpness * (x - center)^2)."""
    return math.exp(-sharpness * (x - center) ** 2)


# === Closed-form scenario functions ===


def metrics(scenario_type: ScenarioType | str, params: ParametersLike, progress: float) -> MarketMetrics:
    """
    Aggregate volatility/liquidity/sentiment indices at a given progress.

    Args:
        scenario_type: Scenario archetype.
        params: Scenario parameters (or mapping, or None for defaults).
        progress: Fraction of the scenario elapsed, clamped to [0, 1].

    Returns:
        MarketMetrics with indices on a roughly 0-100 scale.
    """
    kind, p = _prepare(scenario_type, params)
    x = clamp_progress(progress)
    k = p.oscillations

    if kind == ScenarioType.BULL_MARKET:
        vol = 20 + 10 * math.sin(x * math.pi)
        liq = 80 + 10 * math.sin(x * math.pi)
        sent = 70 + 20 * x
    elif kind == ScenarioType.BEAR_MARKET:
        vol = 40 + 20 * math.sin(x * math.pi)
        liq = 60 - 20 * x
        sent = 30 - 20 * x
    elif kind == ScenarioType.MARKET_CRASH:
        shock = _bump(_crash_point(x), 0.5, 5)
        vol = 50 + 50 * shock
        liq = 80 - 60 * shock
        sent = 50 - 40 * shock
    elif kind == ScenarioType.SIDEWAYS_MARKET:
        vol = 30 + 10 * math.sin(x * 2 * k * math.pi)
        liq = 70 + 10 * math.sin(x * k * math.pi)
        sent = 50 + 10 * math.sin(x * 1.6 * k * math.pi)
    elif kind == ScenarioType.HIGH_VOLATILITY:
        vol = 70 + 30 * math.sin(x * 2 * k * math.pi)
        liq = 50 + 20 * math.sin(x * 1.5 * k * math.pi)
        sent = 40 + 30 * math.sin(x * k * math.pi)
    elif kind == ScenarioType.LIQUIDITY_CRISIS:
        vol = 60 + 20 * x
        liq = 70 - 60 * x
        sent = 40 - 30 * x
    else:  # FLASH_CRASH
        phase = _flash_phase(x)
        recovery = _flash_recovery(x)
        vol = 30 + 70 * _bump(phase, 0.5, 10)
        liq = 80 - 70 * phase + 50 * recovery
        sent = 60 - 50 * phase + 30 * recovery

    return MarketMetrics(volatility_index=vol, liquidity_index=liq, sentiment_index=sent)


def price_modifier(scenario_type: ScenarioType | str, params: ParametersLike, progress: float) -> float:
    """
    Multiplier applied to a token's base price.

    Always >= MIN_PRICE_MODIFIER so prices stay strictly positive.
    """
    kind, p = _prepare(scenario_type, params)
    x = clamp_progress(progress)
    i = p.intensity

    if kind == ScenarioType.BULL_MARKET:
        value = 1 + i * x
    elif kind == ScenarioType.BEAR_MARKET:
        value = 1 - i * 0.7 * x
    elif kind == ScenarioType.MARKET_CRASH:
        crash_effect = i * (1 - math.exp(-5 * _crash_point(x)))
        recovery_effect = p.recovery_speed * _crash_recovery(x)
        value = 1 - crash_effect + crash_effect * recovery_effect
    elif kind == ScenarioType.SIDEWAYS_MARKET:
        value = 1 + p.range_width * math.sin(x * 2 * p.oscillations * math.pi)
    elif kind == ScenarioType.HIGH_VOLATILITY:
        value = 1 + i * 0.5 * math.sin(x * 2 * p.oscillations * math.pi) + p.direction_bias * x
    elif kind == ScenarioType.LIQUIDITY_CRISIS:
        value = 1 - i * 0.3 * x + i * 0.2 * math.sin(x * 15 * math.pi)
    else:  # FLASH_CRASH
        crash_depth = i * 0.7
        value = 1 - crash_depth * _flash_phase(x) + crash_depth * p.recovery_speed * _flash_recovery(x)

    return max(MIN_PRICE_MODIFIER, value)


def volume_modifier(scenario_type: ScenarioType | str, params: ParametersLike, progress: float) -> float:
    """Multiplier applied to base trading volume (>= 0)."""
    kind, p = _prepare(scenario_type, params)
    x = clamp_progress(progress)
    i = p.intensity

    if kind == ScenarioType.BULL_MARKET:
        value = 1 + i * x
    elif kind == ScenarioType.BEAR_MARKET:
        # Capitulation volume peaks mid-scenario
        value = 1 + i * x * (1 - x)
    elif kind == ScenarioType.MARKET_CRASH:
        value = 1 + i * 3 * _bump(_crash_point(x), 0.5, 10)
    elif kind == ScenarioType.SIDEWAYS_MARKET:
        value = 0.7 + 0.5 * math.sin(x * 2 * p.oscillations * math.pi) ** 2
    elif kind == ScenarioType.HIGH_VOLATILITY:
        value = 1.5 + i * math.sin(x * 2 * p.oscillations * math.pi)
    elif kind == ScenarioType.LIQUIDITY_CRISIS:
        value = 1 - i * 0.7 * x
    else:  # FLASH_CRASH
        value = (
            1
            + i * 4 * _bump(_flash_phase(x), 0.5, 10)
            + i * 2 * _bump(_flash_recovery(x), 0.3, 10)
        )

    return max(0.0, value)


def depth_modifier(scenario_type: ScenarioType | str, params: ParametersLike, progress: float) -> float:
    """Multiplier applied to order-book depth (>= 0)."""
    kind, p = _prepare(scenario_type, params)
    x = clamp_progress(progress)
    i = p.intensity

    if kind == ScenarioType.BULL_MARKET:
        value = 1 + i * 0.5 * x
    elif kind == ScenarioType.BEAR_MARKET:
        value = 1 - i * 0.3 * x
    elif kind == ScenarioType.MARKET_CRASH:
        value = 1 - i * 0.8 * _bump(_crash_point(x), 0.5, 5)
    elif kind == ScenarioType.SIDEWAYS_MARKET:
        value = 1 + 0.1 * math.sin(x * 2 * p.oscillations * math.pi)
    elif kind == ScenarioType.HIGH_VOLATILITY:
        value = 1 + i * 0.5 * math.sin(x * 1.5 * p.oscillations * math.pi)
    elif kind == ScenarioType.LIQUIDITY_CRISIS:
        value = 1 - i * 0.8 * x
    else:  # FLASH_CRASH
        value = 1 - i * 0.9 * _flash_phase(x) + i * 0.7 * _flash_recovery(x)

    return max(0.0, value)


def price_change_24h(
    scenario_type: ScenarioType | str,
    params: ParametersLike,
    progress: float,
    token: str = "",
) -> float:
    """
    Signed 24h price change in percent.

    The spread within each regime comes from a hash of (scenario, token,
    progress), so repeated calls agree.
    """
    kind, p = _prepare(scenario_type, params)
    x = clamp_progress(progress)
    i = p.intensity
    u = stable_fraction(f"{kind.value}|{token}|{x:.9f}")

    if kind == ScenarioType.BULL_MARKET:
        return i * 5 + i * 5 * u
    if kind == ScenarioType.BEAR_MARKET:
        return -i * 5 - i * 5 * u
    if kind == ScenarioType.MARKET_CRASH:
        if _crash_point(x) < 0.8:
            return -i * 20 - i * 10 * u
        return i * 5 + i * 5 * u
    if kind == ScenarioType.SIDEWAYS_MARKET:
        return (u * 2 - 1) * i * 3
    if kind == ScenarioType.HIGH_VOLATILITY:
        return (u * 2 - 1) * i * 15
    if kind == ScenarioType.LIQUIDITY_CRISIS:
        return -i * 8 - i * 7 * u
    # FLASH_CRASH
    if _flash_phase(x) < 0.5:
        return -i * 30 - i * 20 * u
    return i * 15 + i * 10 * u


def scenario_duration(scenario_type: ScenarioType | str, params: ParametersLike = None) -> float:
    """Duration of a scenario in simulated seconds."""
    _, p = _prepare(scenario_type, params)
    return float(p.duration_seconds)


class ScenarioGenerator:
    """
    Materializes scenario market snapshots.

    The closed-form functions above are pure; this class adds the order
    book, whose amounts carry jitter from an injectable source.

    Usage:
        generator = ScenarioGenerator(jitter=RandomJitter(seed=7))

        snapshot = generator.generate(
            "market_crash", {"intensity": 0.7}, progress=0.15, tokens=["ETH", "BTC"]
        )
        eth_price = snapshot.tokens["ETH"].price
    """

    def __init__(
        self,
        jitter: JitterSource | None = None,
        order_book_levels: int = DEFAULT_ORDER_BOOK_LEVELS,
        jitter_amplitude: float = DEFAULT_JITTER_AMPLITUDE,
    ):
        if order_book_levels < 1:
            raise InvalidParameterError(f"Order book needs at least one level: {order_book_levels}")
        if _finite("jitter_amplitude", jitter_amplitude) < 0:
            raise InvalidParameterError(f"Jitter amplitude must be >= 0: {jitter_amplitude}")

        self._jitter = jitter or NullJitter()
        self.order_book_levels = order_book_levels
        self.jitter_amplitude = jitter_amplitude

    def token_price(
        self,
        token: str,
        scenario_type: ScenarioType | str,
        params: ParametersLike,
        progress: float,
    ) -> float:
        """Base price of the token scaled by the scenario price modifier."""
        return base_price(token) * price_modifier(scenario_type, params, progress)

    def order_book(self, price: float, depth: float, levels: int | None = None) -> OrderBook:
        """
        Build a synthetic order book around price.

        Level l sits (l+1) * 0.1% away from price with amount
        depth * (1000 - 150*l) * (1 + jitter). Amounts never go negative.
        """
        levels = levels or self.order_book_levels
        return OrderBook(
            asks=self._side(price, depth, levels, direction=1),
            bids=self._side(price, depth, levels, direction=-1),
        )

    def _side(self, price: float, depth: float, levels: int, direction: int) -> list[OrderBookLevel]:
        result = []
        for level in range(levels):
            level_price = price + direction * (level + 1) * 0.001 * price
            amount = max(0.0, depth * (1000 - level * 150))
            amount *= 1 + self.jitter_amplitude * self._jitter.uniform()
            result.append(OrderBookLevel(price=level_price, amount=amount))
        return result

    def generate(
        self,
        scenario_type: ScenarioType | str,
        params: ParametersLike,
        progress: float,
        tokens: Iterable[str],
        timestamp: datetime | None = None,
    ) -> MarketSnapshot:
        """
        Materialize the market for a scenario at a given progress.

        Args:
            scenario_type: Scenario archetype.
            params: Scenario parameters.
            progress: Fraction of the scenario elapsed.
            tokens: Token identifiers to price.
            timestamp: Simulated time to stamp on the snapshot.

        Returns:
            MarketSnapshot with prices, volumes and order books per token.
        """
        kind, resolved = _prepare(scenario_type, params)
        x = clamp_progress(progress)

        price_mod = price_modifier(kind, resolved, x)
        volume = float(math.floor(BASE_VOLUME * volume_modifier(kind, resolved, x)))
        depth = depth_modifier(kind, resolved, x)

        token_data: dict[str, TokenSnapshot] = {}
        for token in tokens:
            price = base_price(token) * price_mod
            token_data[token] = TokenSnapshot(
                price=price,
                volume=volume,
                price_change_24h=price_change_24h(kind, resolved, x, token),
                market_depth=self.order_book(price, depth),
            )

        return MarketSnapshot(
            timestamp=timestamp or datetime.now(timezone.utc),
            progress=x,
            tokens=token_data,
            metrics=metrics(kind, resolved, x),
        )
