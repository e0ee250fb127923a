# === MODULE PURPOSE ===
# Configuration management for the simulation core.
# Loads YAML configuration files and provides typed access to settings.

# === KEY CONCEPTS ===
# - YAML-based: Human-readable configuration format
# - Environment override: SIMULATION_CONFIG_PATH points at another file
# - Optional file: Built-in defaults apply when no config file exists

import logging
import os
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent.parent
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "config" / "simulation-config.yaml"
CONFIG_PATH_ENV = "SIMULATION_CONFIG_PATH"

DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class Config:
    """
    Configuration loader and accessor.

    Loads configuration from YAML files and provides typed access
    to configuration values.

    Usage:
        config = Config.load("config/simulation-config.yaml")

        # Access nested values
        levels = config.get("simulation.order_book.levels", default=5)

        # Access with type checking
        max_scale = config.get_float("simulation.clock.max_time_scale", default=1000.0)
    """

    def __init__(self, data: dict[str, Any]):
        self._data = data

    @classmethod
    def load(cls, config_path: str | Path) -> "Config":
        """
        Load configuration from a YAML file.

        Args:
            config_path: Path to the YAML configuration file

        Returns:
            Config instance with loaded data

        Raises:
            FileNotFoundError: If config file doesn't exist
            yaml.YAMLError: If YAML parsing fails
        """
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        logger.info(f"Loaded configuration from {path}")
        return cls(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """Create Config from a dictionary."""
        return cls(data)

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value by dot-separated key.

        Args:
            key: Dot-separated path (e.g., "simulation.clock.min_time_scale")
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        value: Any = self._data

        for k in key.split("."):
            if isinstance(value, dict):
                value = value.get(k)
                if value is None:
                    return default
            else:
                return default

        return value

    def get_str(self, key: str, default: str = "") -> str:
        """Get a string configuration value."""
        value = self.get(key, default)
        return str(value) if value is not None else default

    def get_int(self, key: str, default: int = 0) -> int:
        """Get an integer configuration value."""
        value = self.get(key, default)
        try:
            return int(value)
        except (TypeError, ValueError):
            return default

    def get_float(self, key: str, default: float = 0.0) -> float:
        """Get a float configuration value."""
        value = self.get(key, default)
        try:
            return float(value)
        except (TypeError, ValueError):
            return default

    def __repr__(self) -> str:
        return f"Config({list(self._data.keys())})"


def load_config(config_path: str | Path) -> Config:
    """
    Load configuration from a YAML file.

    This is a convenience function that wraps Config.load().
    """
    return Config.load(config_path)


def load_simulation_config(config_path: str | Path | None = None) -> Config:
    """
    Load the simulation configuration.

    Resolution order:
    1. Explicit config_path argument (must exist)
    2. SIMULATION_CONFIG_PATH environment variable (must exist)
    3. config/simulation-config.yaml under the project root, if present
    4. Empty config (built-in defaults)

    Raises:
        FileNotFoundError: If an explicitly requested file is missing.
    """
    if config_path is not None:
        return load_config(config_path)

    env_path = os.environ.get(CONFIG_PATH_ENV, "")
    if env_path:
        return load_config(env_path)

    if DEFAULT_CONFIG_PATH.exists():
        return load_config(DEFAULT_CONFIG_PATH)

    logger.debug("No simulation config file found, using built-in defaults")
    return Config.from_dict({})


def setup_logging(config: Config) -> None:
    """Configure logging based on the logging.* keys of a config."""
    level = config.get_str("logging.level", "INFO")
    format_str = config.get_str("logging.format", DEFAULT_LOG_FORMAT)

    log_file = config.get_str("logging.file")
    if log_file:
        log_path = Path(log_file)
        if not log_path.is_absolute():
            log_path = PROJECT_ROOT / log_path
        log_path.parent.mkdir(parents=True, exist_ok=True)

        logging.basicConfig(
            level=getattr(logging, level.upper(), logging.INFO),
            format=format_str,
            handlers=[
                logging.StreamHandler(),
                logging.FileHandler(log_path, encoding="utf-8"),
            ],
        )
    else:
        logging.basicConfig(
            level=getattr(logging, level.upper(), logging.INFO),
            format=format_str,
        )
