"""Shared fixtures."""

import numpy as np
import pytest

from py_mapgen.core.rng import make_rng
from py_mapgen.core.voronoi_graph import build_mesh, sample_points


def grid_points(count: int, size: float = 100.0) -> np.ndarray:
    """Regular count x count grid of cell centres in a size x size box, row by row."""
    step = size / count
    coords = step / 2 + step * np.arange(count)
    return np.array([(x, y) for y in coords for x in coords], dtype=np.float64)


@pytest.fixture
def grid_mesh():
    """Factory for square grid meshes."""

    def factory(count: int, size: float = 100.0):
        return build_mesh(grid_points(count, size), size, size)

    return factory


@pytest.fixture(scope="module")
def random_mesh():
    """Poisson-disc mesh of a 200x160 map."""
    points = sample_points(200, 160, 12, make_rng("mesh_fixture"))
    return build_mesh(points, 200, 160)
