"""
Coherent value noise, fractal sums and domain warping.

The noise is stateless: a value depends only on (seed, x, y), never on call
order, so elevation synthesis can sample arbitrary coordinates without
touching the run's random stream. All functions accept scalars or numpy
arrays and compute with wrapping 32-bit integer arithmetic.
"""

from typing import Callable, Tuple, Union

import numpy as np

ArrayLike = Union[float, np.ndarray]
NoiseFunction = Callable[[ArrayLike, ArrayLike], ArrayLike]

_MASK32 = np.uint64(0xFFFFFFFF)


def fnv1a_32(text: str) -> int:
    """FNV-1a hash of a string's UTF-16 code units."""
    h = 2166136261
    data = text.encode("utf-16-le")
    for i in range(0, len(data), 2):
        h ^= data[i] | (data[i + 1] << 8)
        h = (h * 16777619) & 0xFFFFFFFF
    return h


def _mix32(i: np.ndarray) -> np.ndarray:
    """Robert Jenkins' 32-bit integer hash on a uint64 array of 32-bit values."""
    m = _MASK32
    i = (i + np.uint64(0x7ED55D16) + ((i << np.uint64(12)) & m)) & m
    i = (i ^ np.uint64(0xC761C23C) ^ (i >> np.uint64(19))) & m
    i = (i + np.uint64(0x165667B1) + ((i << np.uint64(5)) & m)) & m
    i = ((i + np.uint64(0xD3A2646C)) & m) ^ ((i << np.uint64(9)) & m)
    i = (i + np.uint64(0xFD7046C5) + ((i << np.uint64(3)) & m)) & m
    i = (i ^ np.uint64(0xB55A4F09) ^ (i >> np.uint64(16))) & m
    return i


def _lattice(seed_int: int, ix: np.ndarray, iy: np.ndarray) -> np.ndarray:
    """Hash lattice corners to values in [0, 1]."""
    hx = (ix * 374761393) & 0xFFFFFFFF
    hy = (iy * 668265263) & 0xFFFFFFFF
    h = (np.int64(seed_int) ^ hx ^ hy).astype(np.uint64)
    h = _mix32(h)
    return (h >> np.uint64(8)).astype(np.float64) / float(0xFFFFFF)


def _smoothstep(t: np.ndarray) -> np.ndarray:
    return t * t * (3.0 - 2.0 * t)


def _value_noise(seed_int: int, x: ArrayLike, y: ArrayLike) -> ArrayLike:
    scalar = np.ndim(x) == 0 and np.ndim(y) == 0
    xa = np.atleast_1d(np.asarray(x, dtype=np.float64))
    ya = np.atleast_1d(np.asarray(y, dtype=np.float64))
    xa, ya = np.broadcast_arrays(xa, ya)

    fx0 = np.floor(xa)
    fy0 = np.floor(ya)
    ix = fx0.astype(np.int64)
    iy = fy0.astype(np.int64)
    u = _smoothstep(xa - fx0)
    v = _smoothstep(ya - fy0)

    n00 = _lattice(seed_int, ix, iy)
    n10 = _lattice(seed_int, ix + 1, iy)
    n01 = _lattice(seed_int, ix, iy + 1)
    n11 = _lattice(seed_int, ix + 1, iy + 1)

    nx0 = n00 + (n10 - n00) * u
    nx1 = n01 + (n11 - n01) * u
    result = (nx0 + (nx1 - nx0) * v) * 2.0 - 1.0

    if scalar:
        return float(result[0])
    return result


class ValueNoise:
    """
    2D lattice value noise keyed by a seed.

    Calling the instance with (x, y) returns a value in [-1, 1].
    """

    def __init__(self, seed: Union[str, int, float, None]):
        self.seed = seed
        self.seed_int = fnv1a_32(str(seed))

    def __call__(self, x: ArrayLike, y: ArrayLike) -> ArrayLike:
        return _value_noise(self.seed_int, x, y)


def noise2d(seed: Union[str, int, float, None], x: ArrayLike, y: ArrayLike) -> ArrayLike:
    """Value noise in [-1, 1] for the given seed and coordinates."""
    return _value_noise(fnv1a_32(str(seed)), x, y)


def fbm(
    noise: NoiseFunction,
    x: ArrayLike,
    y: ArrayLike,
    octaves: int = 5,
    lacunarity: float = 2.0,
    gain: float = 0.5,
    scale: float = 1.0,
) -> ArrayLike:
    """
    Fractal Brownian motion: sum of decaying noise octaves.

    Args:
        noise: Noise callable returning values in [-1, 1]
        x, y: Sample coordinates
        octaves: Number of octaves
        lacunarity: Frequency multiplier per octave
        gain: Amplitude multiplier per octave
        scale: Feature size; coordinates are divided by it

    Returns:
        Normalised sum in [-1, 1]
    """
    amp = 0.5
    freq = 1.0
    total = 0.0
    norm = 0.0
    for _ in range(octaves):
        total = total + amp * noise(x * freq / scale, y * freq / scale)
        norm += amp
        amp *= gain
        freq *= lacunarity
    return total / (norm or 1.0)


def domain_warp(
    noise: NoiseFunction,
    x: ArrayLike,
    y: ArrayLike,
    scale: float = 200.0,
    amp: float = 20.0,
) -> Tuple[ArrayLike, ArrayLike]:
    """Offset coordinates by two independently shifted noise channels."""
    wx = noise(x / scale, y / scale)
    wy = noise((x + 137) / scale, (y - 91) / scale)
    return x + wx * amp, y + wy * amp
