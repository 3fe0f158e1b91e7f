"""Deterministic seed sources for the price formulas.

The supply/demand formula needs a value in [0, 1) that is stable for a given
seed (the day of year, or the second of the day). ``SineFraction`` is the
historical ``frac(sin(seed) * 10000)`` function. It is reproducible but not
uniformly distributed, so the share of "up" days is whatever the sine curve
gives, not a designed probability. Alternatives plug in through SeedSource.
"""

import math
import random
from abc import ABC, abstractmethod


class SeedSource(ABC):
    """Maps an integer seed to a float in [0, 1)."""

    @abstractmethod
    def sample(self, seed: int) -> float:
        ...


class SineFraction(SeedSource):
    """frac(sin(seed) * 10000), bit-compatible with the legacy price curve."""

    def sample(self, seed: int) -> float:
        return frac(math.sin(seed) * 10000)


class SeededUniform(SeedSource):
    """Uniform draw from a PRNG seeded with ``seed``; same seed, same value."""

    def sample(self, seed: int) -> float:
        return random.Random(seed).random()


def frac(value: float) -> float:
    """Fractional part, x - floor(x). Always in [0, 1)."""
    return value - math.floor(value)
