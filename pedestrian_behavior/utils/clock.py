"""Simulation time source and the shared, seedable random source."""

from typing import Optional
import numpy as np


class SimulationClock:
    """Monotonic simulated clock, advanced in fixed steps by the scene."""

    def __init__(self, start_time: float = 0.0):
        self._time = float(start_time)

    def now(self) -> float:
        return self._time

    def advance(self, dt: float) -> float:
        """Move the clock forward by ``dt`` seconds and return the new time."""
        if dt < 0:
            raise ValueError(f"Clock cannot move backwards (dt={dt})")
        self._time += dt
        return self._time

    def reset(self, start_time: float = 0.0) -> None:
        self._time = float(start_time)


class RandomSource:
    """Single random stream shared by every decision in a scene.

    Wraps ``numpy.random.Generator`` so that a run is reproducible from its seed.

    Attributes:
        seed (Optional[int]): Seed the generator was created from.
    """

    def __init__(self, seed: Optional[int] = None):
        self.seed = seed
        self._rng = np.random.default_rng(seed)

    def uniform(self) -> float:
        """Sample from uniform [0, 1)."""
        return float(self._rng.random())

    def uniform_range(self, low: float, high: float) -> float:
        return float(self._rng.uniform(low, high))

    def index(self, n: int) -> int:
        """Uniformly pick an index in ``range(n)``."""
        if n <= 0:
            raise ValueError("Cannot pick an index from an empty range")
        return int(self._rng.integers(0, n))

    def reseed(self, seed: Optional[int]) -> None:
        self.seed = seed
        self._rng = np.random.default_rng(seed)
