"""
Seeded pseudo-random stream for map generation.

Mulberry32 keyed off a string or numeric seed. String seeds are hashed with
the classic 31-multiplier string hash over UTF-16 code units, so the same
seed yields the same sequence on every platform.
"""

import math
from typing import Any, List, Sequence, Union

_MASK32 = 0xFFFFFFFF
_DEFAULT_SEED = 12345


def _uint32(n: int) -> int:
    """Convert to unsigned 32-bit integer."""
    return int(n) & _MASK32


def _imul(a: int, b: int) -> int:
    """32-bit integer multiply, result as unsigned."""
    return (a * b) & _MASK32


def hash_string(text: str) -> int:
    """
    Hash a string to a non-negative 32-bit integer.

    Order-sensitive, not cryptographic: h = h * 31 + code_unit, wrapped to a
    signed 32-bit value, absolute value taken at the end.
    """
    h = 0
    data = text.encode("utf-16-le")
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        h = ((h << 5) - h + unit) & _MASK32
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h)


def seed_to_int(seed: Union[str, int, float, None]) -> int:
    """Resolve a string or numeric seed to the integer state of the stream."""
    if isinstance(seed, str):
        return hash_string(seed)
    if seed is None or isinstance(seed, bool):
        return _DEFAULT_SEED
    try:
        value = float(seed)
    except (TypeError, ValueError):
        return _DEFAULT_SEED
    if not math.isfinite(value):
        return _DEFAULT_SEED
    return int(value)


class Mulberry32:
    """
    Mulberry32 PRNG.

    Small, fast and fully deterministic. Every random decision of a generation
    run is drawn from a single instance, in pipeline order.
    """

    def __init__(self, seed: Union[str, int, float, None] = None):
        """Initialize with seed string or number."""
        self.seed = seed
        self.seed_number = seed_to_int(seed)
        self._state = _uint32(self.seed_number)
        self.call_count = 0

    def random(self) -> float:
        """Generate next random number in [0, 1)."""
        self.call_count += 1
        self._state = (self._state + 0x6D2B79F5) & _MASK32
        s = self._state
        t = _imul(s ^ (s >> 15), 1 | s)
        t = ((t + _imul(t ^ (t >> 7), 61 | t)) & _MASK32) ^ t
        return ((t ^ (t >> 14)) & _MASK32) / 4294967296.0

    def uniform(self, low: float = 0.0, high: float = 1.0) -> float:
        """Random float in [low, high)."""
        return low + (high - low) * self.random()

    def randint(self, low: int, high: int) -> int:
        """Random integer in [low, high], both inclusive."""
        return int(math.floor(self.random() * (high - low + 1))) + low

    def choice(self, seq: Sequence[Any]) -> Any:
        """Choose a random element from a non-empty sequence."""
        if not seq:
            raise IndexError("Cannot choose from an empty sequence")
        return seq[int(len(seq) * self.random())]

    def shuffle(self, seq: Sequence[Any]) -> List[Any]:
        """Return a shuffled copy of seq (Fisher-Yates from the end)."""
        result = list(seq)
        for i in range(len(result) - 1, 0, -1):
            j = int(math.floor(self.random() * (i + 1)))
            result[i], result[j] = result[j], result[i]
        return result


def make_rng(seed: Union[str, int, float, None]) -> Mulberry32:
    """Create the random stream for a run."""
    return Mulberry32(seed)
