import random
from typing import Optional, Sequence, TypeVar

T = TypeVar("T")


class RandomSource:
    """
    Every random draw the simulation makes goes through here.

    ``source`` is anything with a ``random()`` method returning floats in
    [0, 1): a seeded ``random.Random`` for reproducible runs, or a scripted
    stub in tests.
    """

    def __init__(self, source=None, seed: Optional[int] = None):
        self._source = source if source is not None else random.Random(seed)

    def random(self) -> float:
        return self._source.random()

    def chance(self, probability: float) -> bool:
        return self.random() < probability

    def uniform(self, low: float, high: float) -> float:
        return low + (high - low) * self.random()

    def jitter(self, amplitude: float) -> float:
        """Uniform in [-amplitude, +amplitude)."""
        return (self.random() - 0.5) * 2 * amplitude

    def integer(self, low: int, high: int) -> int:
        """Integer in [low, high], both ends inclusive."""
        return low + min(int(self.random() * (high - low + 1)), high - low)

    def pick(self, items: Sequence[T]) -> T:
        if not items:
            raise IndexError("cannot pick from an empty sequence")
        return items[min(int(self.random() * len(items)), len(items) - 1)]
