# === MODULE PURPOSE ===
# Injectable randomness for synthetic order books.
# The only non-deterministic input to scenario generation.

# === DEPENDENCIES ===
# - numpy: Seedable PCG64 generator

from typing import Protocol

import numpy as np


class JitterSource(Protocol):
    """Source of uniform draws in [0, 1)."""

    def uniform(self) -> float: ...


class RandomJitter:
    """
    NumPy-backed jitter source.

    Two instances built with the same seed produce the same sequence.

    Usage:
        jitter = RandomJitter(seed=42)
        u = jitter.uniform()
    """

    def __init__(self, seed: int | None = None):
        self.seed = seed
        self._rng = np.random.default_rng(seed)

    def uniform(self) -> float:
        return float(self._rng.random())

    def __repr__(self) -> str:
        return f"RandomJitter(seed={self.seed})"


class NullJitter:
    """Jitter source that always returns 0 (jitter disabled)."""

    def uniform(self) -> float:
        return 0.0

    def __repr__(self) -> str:
        return "NullJitter()"
