"""Tests for coastline extraction and smoothing."""

import numpy as np
import pytest

from py_mapgen.core.coastline import (
    CoastlineOptions,
    chain_edges,
    edge_key,
    extract_coastlines,
    smooth_closed_chaikin,
    smooth_open_chaikin,
    snap_key,
)
from py_mapgen.core.errors import ConfigurationError
from py_mapgen.core.features import classify_water
from py_mapgen.core.elevation import TemplateElevation


def grid_cell(col, row, count=5):
    return row * count + col


def consumed_edges(coastline):
    return sum(len(line) - 1 for line in coastline.loops + coastline.open_chains)


class TestSnapping:
    """Test vertex snapping."""

    def test_snap_key(self):
        assert snap_key(1.234, 5.678) == (123, 568)
        assert snap_key(1.234, 5.678, digits=0) == (1, 6)

    def test_edge_key_is_canonical(self):
        assert edge_key((1, 2), (0, 5)) == edge_key((0, 5), (1, 2))


class TestChaining:
    """Test edge chaining."""

    def test_square_loop(self):
        keys = [(0, 0), (1, 0), (1, 1), (0, 1)]
        coords = {k: (float(k[0]), float(k[1])) for k in keys}
        edges = [edge_key(keys[i], keys[(i + 1) % 4]) for i in range(4)]
        loops, open_chains = chain_edges(edges, coords)

        assert len(loops) == 1
        assert not open_chains
        assert len(loops[0]) == 5
        np.testing.assert_array_equal(loops[0][0], loops[0][-1])

    def test_open_chain(self):
        keys = [(0, 0), (1, 0), (2, 0), (3, 1)]
        coords = {k: (float(k[0]), float(k[1])) for k in keys}
        edges = [edge_key(keys[i], keys[i + 1]) for i in range(3)]
        loops, open_chains = chain_edges(edges, coords)

        assert not loops
        assert len(open_chains) == 1
        assert len(open_chains[0]) == 4

    def test_figure_eight_consumes_every_edge_once(self):
        # Two squares sharing the vertex (1, 1)
        ring_a = [(0, 0), (1, 0), (1, 1), (0, 1)]
        ring_b = [(1, 1), (2, 1), (2, 2), (1, 2)]
        edges = [edge_key(r[i], r[(i + 1) % 4]) for r in (ring_a, ring_b) for i in range(4)]
        coords = {k: (float(k[0]), float(k[1])) for r in (ring_a, ring_b) for k in r}
        loops, open_chains = chain_edges(edges, coords)

        assert not open_chains
        assert sum(len(loop) - 1 for loop in loops) == 8
        for loop in loops:
            np.testing.assert_array_equal(loop[0], loop[-1])


class TestChaikin:
    """Test corner cutting."""

    def test_closed_ring(self):
        square = np.array([[0, 0], [1, 0], [1, 1], [0, 1], [0, 0]], dtype=float)
        smoothed = smooth_closed_chaikin(square, iterations=1)
        assert len(smoothed) == 9
        np.testing.assert_array_equal(smoothed[0], smoothed[-1])
        np.testing.assert_allclose(smoothed[0], [0.25, 0.0])
        np.testing.assert_allclose(smoothed[1], [0.75, 0.0])

    def test_closed_ring_without_closing_point(self):
        square = np.array([[0, 0], [1, 0], [1, 1], [0, 1]], dtype=float)
        a = smooth_closed_chaikin(square, iterations=2)
        b = smooth_closed_chaikin(np.vstack([square, square[:1]]), iterations=2)
        np.testing.assert_array_equal(a, b)
        assert len(a) == 4 * 4 + 1

    def test_zero_iterations(self):
        square = np.array([[0, 0], [1, 0], [1, 1], [0, 1], [0, 0]], dtype=float)
        np.testing.assert_array_equal(smooth_closed_chaikin(square, iterations=0), square)

    def test_open_keeps_endpoints(self):
        line = np.array([[0, 0], [1, 0], [1, 1]], dtype=float)
        smoothed = smooth_open_chaikin(line, iterations=2)
        np.testing.assert_array_equal(smoothed[0], line[0])
        np.testing.assert_array_equal(smoothed[-1], line[-1])
        assert len(smoothed) > len(line)


class TestExtractCoastlines:
    """Test extraction on grid and random meshes."""

    def test_single_land_cell(self, grid_mesh):
        mesh = grid_mesh(5)
        heights = np.zeros(25)
        heights[grid_cell(2, 2)] = 1.0
        water = classify_water(mesh, heights, 0.5)
        coast = extract_coastlines(mesh, water.is_land, water.is_ocean)

        assert coast.edge_count == 4
        assert len(coast.loops) == 1
        assert not coast.open_chains
        loop = coast.loops[0]
        assert len(loop) == 5
        np.testing.assert_array_equal(loop[0], loop[-1])
        corners = {tuple(np.round(p, 6)) for p in loop}
        assert corners == {(40.0, 40.0), (60.0, 40.0), (60.0, 60.0), (40.0, 60.0)}
        assert coast.total_length == pytest.approx(80.0)
        assert len(coast.smoothed_loops) == 1

    def test_land_on_frame_gives_open_chain(self, grid_mesh):
        mesh = grid_mesh(5)
        heights = np.zeros(25)
        for row in range(5):
            heights[grid_cell(0, row)] = 1.0
        water = classify_water(mesh, heights, 0.5)
        coast = extract_coastlines(mesh, water.is_land, water.is_ocean)

        assert coast.edge_count == 5
        assert not coast.loops
        assert len(coast.open_chains) == 1
        chain = coast.open_chains[0]
        assert len(chain) == 6
        np.testing.assert_allclose(chain[:, 0], 20.0)
        assert {round(chain[0][1], 6), round(chain[-1][1], 6)} == {0.0, 100.0}

    def test_lake_shores_are_skipped(self, grid_mesh):
        mesh = grid_mesh(5)
        heights = np.ones(25)
        heights[grid_cell(2, 2)] = 0.0
        water = classify_water(mesh, heights, 0.5)
        coast = extract_coastlines(mesh, water.is_land, water.is_ocean)
        assert coast.edge_count == 0
        assert not coast.loops and not coast.open_chains

    def test_all_land_has_no_coastline(self, grid_mesh):
        mesh = grid_mesh(3)
        is_land = np.ones(9, dtype=bool)
        coast = extract_coastlines(mesh, is_land, ~is_land)
        assert coast.edge_count == 0

    def test_random_map(self, random_mesh):
        elevation = TemplateElevation(random_mesh, "coast").generate()
        water = classify_water(random_mesh, elevation.heights, elevation.sea_level)
        coast = extract_coastlines(random_mesh, water.is_land, water.is_ocean)

        assert coast.edge_count > 0
        assert consumed_edges(coast) == coast.edge_count
        for loop in coast.loops:
            np.testing.assert_array_equal(loop[0], loop[-1])
            assert len(loop) >= 4
        for smoothed in coast.smoothed_loops:
            np.testing.assert_array_equal(smoothed[0], smoothed[-1])

    def test_deterministic(self, random_mesh):
        elevation = TemplateElevation(random_mesh, "coast").generate()
        water = classify_water(random_mesh, elevation.heights, elevation.sea_level)
        a = extract_coastlines(random_mesh, water.is_land, water.is_ocean)
        b = extract_coastlines(random_mesh, water.is_land, water.is_ocean)
        assert len(a.loops) == len(b.loops)
        for la, lb in zip(a.loops, b.loops):
            np.testing.assert_array_equal(la, lb)

    def test_invalid_options(self, grid_mesh):
        mesh = grid_mesh(3)
        is_land = np.ones(9, dtype=bool)
        with pytest.raises(ConfigurationError):
            extract_coastlines(mesh, is_land, ~is_land, CoastlineOptions(snap_digits=-1))
