"""
Safe-zone seeding helpers for terrain features.

Each feature kind draws its seed cell from a fractional rectangle of the map,
which biases high-energy features away from the edges.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from .errors import ConfigurationError
from .rng import Mulberry32
from .voronoi_graph import CellMesh


@dataclass(frozen=True)
class SeedWindow:
    """Fractional bounding box, all values in [0, 1]."""

    left: float = 0.2
    right: float = 0.8
    top: float = 0.2
    bottom: float = 0.8

    def __post_init__(self):
        for name in ("left", "right", "top", "bottom"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(f"Seed window {name}={value} outside [0, 1]")
        if self.left >= self.right or self.top >= self.bottom:
            raise ConfigurationError(f"Seed window is empty: {self}")

    def contains(self, u: float, v: float) -> bool:
        return self.left <= u <= self.right and self.top <= v <= self.bottom

    def to_pixels(self, width: float, height: float) -> Tuple[float, float, float, float]:
        """(x0, y0, x1, y1) in map units."""
        return (self.left * width, self.top * height, self.right * width, self.bottom * height)


DEFAULT_WINDOW = SeedWindow()

# Carving kinds get looser windows than additive ones so basins and straits
# can reach close to the frame.
DEFAULT_SEED_WINDOWS: Dict[str, SeedWindow] = {
    "core": SeedWindow(0.3, 0.7, 0.3, 0.7),
    "volcano": SeedWindow(0.35, 0.65, 0.35, 0.65),
    "hill": SeedWindow(0.15, 0.85, 0.15, 0.85),
    "ridge": SeedWindow(0.2, 0.8, 0.2, 0.8),
    "trough": SeedWindow(0.1, 0.9, 0.1, 0.9),
    "sea": SeedWindow(0.05, 0.95, 0.05, 0.95),
}


def sample_xy_in_window(
    rng: Mulberry32, width: float, height: float, window: SeedWindow
) -> Tuple[float, float]:
    """Random map coordinates inside the window."""
    x = window.left + (window.right - window.left) * rng.random()
    y = window.top + (window.bottom - window.top) * rng.random()
    return x * width, y * height


def sample_cell_in_window(
    mesh: CellMesh, rng: Mulberry32, window: SeedWindow, max_tries: int = 80
) -> int:
    """
    Pick a random cell whose site lies in the window.

    Returns -1 when max_tries random cells all fall outside.
    """
    n = mesh.cell_count
    for _ in range(max_tries):
        i = int(rng.random() * n)
        cx, cy = mesh.centroids[i]
        if window.contains(cx / mesh.width, cy / mesh.height):
            return i
    return -1


class SeedSelector:
    """Seed cell/position picker honouring per-kind safe zones."""

    def __init__(
        self,
        mesh: CellMesh,
        rng: Mulberry32,
        windows: Optional[Dict[str, SeedWindow]] = None,
        enforce_safe_zones: bool = True,
        max_tries: int = 80,
    ):
        self.mesh = mesh
        self.rng = rng
        self.windows = dict(DEFAULT_SEED_WINDOWS)
        if windows:
            self.windows.update(windows)
        self.enforce_safe_zones = enforce_safe_zones
        self.max_tries = max_tries

    def window(self, kind: str) -> SeedWindow:
        return self.windows.get(kind, DEFAULT_WINDOW)

    def seeded_xy(self, kind: str) -> Tuple[float, float]:
        """(x, y) seed for a feature kind."""
        if not self.enforce_safe_zones:
            return self.rng.random() * self.mesh.width, self.rng.random() * self.mesh.height
        return sample_xy_in_window(self.rng, self.mesh.width, self.mesh.height, self.window(kind))

    def seeded_cell(self, kind: str) -> int:
        """Cell index seed for a feature kind."""
        if not self.enforce_safe_zones:
            return int(self.rng.random() * self.mesh.cell_count)

        window = self.window(kind)
        idx = sample_cell_in_window(self.mesh, self.rng, window, self.max_tries)
        if idx >= 0:
            return idx

        # Fallback: nearest cell to a point inside the window
        x, y = sample_xy_in_window(self.rng, self.mesh.width, self.mesh.height, window)
        return self.mesh.find_nearest_cell(x, y)
