# === MODULE PURPOSE ===
# Common utilities shared across all modules.

from .config import Config, load_config, load_simulation_config, setup_logging

__all__ = [
    "Config",
    "load_config",
    "load_simulation_config",
    "setup_logging",
]
