"""
Random sources for spin resolution.

Every roll the engine makes goes through an RNGBase, so simulations and
tests replay a seed while live spins draw from the OS entropy pool.
"""
import random
from abc import ABC, abstractmethod
from typing import Sequence, TypeVar

T = TypeVar("T")


class RNGBase(ABC):
    """Draws used by grid generation and win resolution."""

    @abstractmethod
    def random(self) -> float:
        """Uniform float in [0, 1)."""

    @abstractmethod
    def randint(self, a: int, b: int) -> int:
        """Uniform int in [a, b]."""

    def chance(self, probability: float) -> bool:
        """One roll that hits with the given probability (one random() draw)."""
        return self.random() < probability

    def choice(self, items: Sequence[T]) -> T:
        if not items:
            raise IndexError("cannot choose from an empty sequence")
        return items[self.randint(0, len(items) - 1)]


class _GeneratorRNG(RNGBase):
    """Delegates to a random.Random generator."""

    def __init__(self, generator: random.Random):
        self._generator = generator

    def random(self) -> float:
        return self._generator.random()

    def randint(self, a: int, b: int) -> int:
        return self._generator.randint(a, b)


class ProductionRNG(_GeneratorRNG):
    """Live spins. Unseeded and backed by os.urandom, so players cannot predict grids."""

    def __init__(self):
        super().__init__(random.SystemRandom())


class SeededRNG(_GeneratorRNG):
    """Simulations and tests: the same seed replays the same spins."""

    def __init__(self, seed: int):
        super().__init__(random.Random(seed))
        self.seed = seed
