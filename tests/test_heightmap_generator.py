"""Tests for blob-field heightmap generation."""

import numpy as np
import pytest
from structlog.testing import capture_logs

from py_mapgen.config import heightmap_templates
from py_mapgen.core.errors import ConfigurationError
from py_mapgen.core.heightmap_generator import (
    SATURATION_CEILING,
    BlobFieldOptions,
    BlobOptions,
    HeightmapGenerator,
    add_blend,
    subtract_blend,
)
from py_mapgen.core.rng import make_rng
from py_mapgen.core.sampling import SeedSelector, SeedWindow, sample_xy_in_window
from py_mapgen.core.voronoi_graph import build_mesh, sample_points


class TestBlendOperators:
    """Test additive and subtractive blends."""

    def test_additive_formula(self):
        out = add_blend(np.array([0.5]), np.array([0.2]))
        assert out[0] == pytest.approx(0.5 * 0.72 + 0.2 * 0.62)

    def test_saturation_bound(self):
        heights = np.zeros(3)
        ones = np.ones(3)
        for _ in range(1000):
            heights = add_blend(heights, ones)
            assert np.all(heights < 1.0)
        assert heights[0] == SATURATION_CEILING

    def test_zero_increment_leaves_cell(self):
        heights = np.array([0.4, 0.4])
        out = add_blend(heights, np.array([0.0, 0.3]))
        assert out[0] == 0.4
        assert out[1] != 0.4

    def test_inputs_not_mutated(self):
        heights = np.array([0.3, 0.6])
        add_blend(heights, np.array([0.5, 0.5]))
        subtract_blend(heights, np.array([0.5, 0.5]))
        np.testing.assert_array_equal(heights, [0.3, 0.6])

    def test_subtractive(self):
        out = subtract_blend(np.array([0.5, 0.1, 0.3]), np.array([0.2, 0.5, 0.0]))
        np.testing.assert_allclose(out, [0.5 - 0.2 * 0.85, 0.0, 0.3])


class TestBlobOptions:
    """Test blob parameter validation."""

    @pytest.mark.parametrize(
        "kwargs",
        [{"peak": 0.0}, {"peak": 1.5}, {"radius": 1.0}, {"sharpness": -0.1}, {"stop_threshold": 1.0}],
    )
    def test_invalid(self, kwargs):
        with pytest.raises(ConfigurationError):
            BlobOptions(**kwargs)

    def test_override(self):
        blob = BlobOptions(peak=0.5, radius=0.9, sharpness=0.2, stop_threshold=0.05)
        other = blob.override(peak=0.7)
        assert other.peak == 0.7
        assert other.radius == 0.9
        assert other.stop_threshold == 0.05


class TestGrowBlob:
    """Test breadth-first blob growth."""

    def test_blob_shape(self, random_mesh):
        gen = HeightmapGenerator(random_mesh, make_rng("blob"))
        blob = BlobOptions(peak=0.8, radius=0.9, sharpness=0.2, stop_threshold=0.03)
        values = gen.grow_blob(10, blob)

        assert values[10] == 0.8
        assert values.max() == 0.8
        others = np.delete(values, 10)
        assert np.all(others < 0.8)
        assert np.all((others == 0) | (others > 0.03))
        assert np.count_nonzero(values) > 1
        assert not gen.heights.any()

    def test_children_never_exceed_decayed_parent(self, random_mesh):
        gen = HeightmapGenerator(random_mesh, make_rng("decay"))
        values = gen.grow_blob(0, BlobOptions(peak=1.0, radius=0.95, sharpness=0.3))
        for i in np.flatnonzero(values):
            if i == 0:
                continue
            assert max(values[j] for j in random_mesh.neighbors[i]) > values[i]

    def test_deterministic(self, random_mesh):
        blob = BlobOptions(peak=1.0, radius=0.93)
        a = HeightmapGenerator(random_mesh, make_rng("same")).grow_blob(3, blob)
        b = HeightmapGenerator(random_mesh, make_rng("same")).grow_blob(3, blob)
        np.testing.assert_array_equal(a, b)

    def test_mask_blocks_propagation(self, random_mesh):
        gen = HeightmapGenerator(random_mesh, make_rng("mask"), mask_fn=lambda cell: 0.0)
        values = gen.grow_blob(7, BlobOptions(peak=1.0, radius=0.95))
        assert np.count_nonzero(values) == 1

    def test_invalid_seed_cell(self, random_mesh):
        gen = HeightmapGenerator(random_mesh, make_rng("bad"))
        with pytest.raises(ConfigurationError):
            gen.grow_blob(random_mesh.cell_count, BlobOptions())


class TestSeedSelection:
    """Test safe-zone seeding."""

    def test_window_validation(self):
        with pytest.raises(ConfigurationError):
            SeedWindow(0.6, 0.4, 0.2, 0.8)
        with pytest.raises(ConfigurationError):
            SeedWindow(-0.1, 0.5, 0.2, 0.8)

    def test_xy_inside_window(self):
        rng = make_rng("xy")
        window = SeedWindow(0.3, 0.7, 0.4, 0.6)
        for _ in range(100):
            x, y = sample_xy_in_window(rng, 200, 100, window)
            assert 60 <= x <= 140
            assert 40 <= y <= 60

    def test_seeded_cell_respects_window(self, random_mesh):
        selector = SeedSelector(random_mesh, make_rng("cells"))
        window = selector.window("core")
        for _ in range(50):
            cx, cy = random_mesh.points[selector.seeded_cell("core")]
            assert window.left * 200 - 12 <= cx <= window.right * 200 + 12
            assert window.top * 160 - 12 <= cy <= window.bottom * 160 + 12

    def test_unknown_kind_uses_default_window(self, random_mesh):
        selector = SeedSelector(random_mesh, make_rng("default"))
        assert selector.window("unknown") == SeedWindow()


class TestTemplateScripts:
    """Test script parsing and template runs."""

    @pytest.mark.parametrize("name", heightmap_templates.list_templates())
    def test_templates_run(self, random_mesh, name):
        gen = HeightmapGenerator(random_mesh, make_rng("templates"))
        heights = gen.from_template(name)
        assert heights.shape == (random_mesh.cell_count,)
        assert np.all(heights >= 0)
        assert np.all(heights < 1)
        assert heights.max() > 0.05

    def test_alias(self, random_mesh):
        a = HeightmapGenerator(random_mesh, make_rng("alias")).from_template("continents")
        b = HeightmapGenerator(random_mesh, make_rng("alias")).from_template("continental_islands")
        np.testing.assert_array_equal(a, b)

    def test_low_island_is_rescaled(self, random_mesh):
        high_gen = HeightmapGenerator(random_mesh, make_rng("low"))
        high = high_gen.from_template("volcanic_island")
        low_gen = HeightmapGenerator(random_mesh, make_rng("low"))
        low = low_gen.from_template("low_island")
        if not low_gen.failsafe_applied:
            np.testing.assert_allclose(low, high * 0.3)

    def test_unknown_template(self, random_mesh):
        gen = HeightmapGenerator(random_mesh, make_rng("x"))
        with pytest.raises(ConfigurationError):
            gen.from_template("no_such_template")

    def test_unknown_command(self, random_mesh):
        gen = HeightmapGenerator(random_mesh, make_rng("x"))
        with pytest.raises(ConfigurationError):
            gen.run_script("Strait 1")

    def test_bad_arguments(self, random_mesh):
        gen = HeightmapGenerator(random_mesh, make_rng("x"))
        with pytest.raises(ConfigurationError):
            gen.run_script("Hill many")
        with pytest.raises(ConfigurationError):
            gen.run_script("Hill 2 tall")
        with pytest.raises(ConfigurationError):
            gen.run_script("Hill 5-2")

    def test_count_range(self, random_mesh):
        gen = HeightmapGenerator(random_mesh, make_rng("range"))
        counts = {gen._get_number_in_range("2-4") for _ in range(100)}
        assert counts == {2, 3, 4}
        assert gen._get_number_in_range("7") == 7

    def test_comments_and_blank_lines(self, random_mesh):
        gen = HeightmapGenerator(random_mesh, make_rng("comments"))
        gen.run_script("# a comment\n\nHill 1 0.5\n")
        assert gen.heights.max() == pytest.approx(0.5 * 0.62)

    def test_pit_carves(self, random_mesh):
        gen = HeightmapGenerator(random_mesh, make_rng("pit"))
        gen.heights = np.full(random_mesh.cell_count, 0.5)
        # Radius 0.5 stops propagation at the seed cell
        gen.run_script("Pit 1 0.1 0.5")
        assert gen.heights.min() == pytest.approx(0.5 - 0.1 * 0.85)
        assert gen.heights.max() == 0.5

    def test_rescale(self, random_mesh):
        gen = HeightmapGenerator(random_mesh, make_rng("rescale"))
        gen.heights = np.full(random_mesh.cell_count, 0.5)
        gen.run_script("Rescale 0.3")
        np.testing.assert_allclose(gen.heights, 0.15)


class TestFailsafe:
    """Test the empty-result fallback."""

    def test_disk_painted_and_logged(self, random_mesh):
        gen = HeightmapGenerator(random_mesh, make_rng("failsafe"))
        with capture_logs() as logs:
            applied = gen.apply_failsafe()

        assert applied
        assert gen.failsafe_applied
        center = random_mesh.find_nearest_cell(100, 80)
        assert gen.heights[center] == pytest.approx(0.6)
        assert gen.heights.max() == pytest.approx(0.6)
        assert any(entry["log_level"] == "warning" for entry in logs)

    def test_not_applied_when_land_exists(self, random_mesh):
        gen = HeightmapGenerator(random_mesh, make_rng("failsafe"))
        gen.heights[3] = 0.5
        assert not gen.apply_failsafe()
        assert not gen.failsafe_applied

    def test_empty_template_still_yields_land(self, random_mesh, monkeypatch):
        monkeypatch.setitem(heightmap_templates.TEMPLATES, "empty", "Pit 1")
        gen = HeightmapGenerator(random_mesh, make_rng("empty"), BlobFieldOptions(template="empty"))
        result = gen.generate()
        assert result.failsafe_applied
        assert result.is_land.any()


class TestPostPasses:
    """Test normalisation, margin sinking and island suppression."""

    def test_normalize(self, random_mesh):
        gen = HeightmapGenerator(random_mesh, make_rng("norm"))
        gen.heights = np.linspace(0.2, 0.4, random_mesh.cell_count)
        gen.normalize_heights(0.0, 0.85)
        assert gen.heights.min() == pytest.approx(0.0)
        assert gen.heights.max() == pytest.approx(0.85)

    def test_normalize_flat_field(self, random_mesh):
        gen = HeightmapGenerator(random_mesh, make_rng("norm"))
        gen.heights = np.full(random_mesh.cell_count, 0.3)
        gen.normalize_heights()
        assert np.all(gen.heights == 0.3)

    def test_sink_outer_margin(self, random_mesh):
        gen = HeightmapGenerator(random_mesh, make_rng("margin"))
        gen.heights = np.full(random_mesh.cell_count, 0.5)
        gen.sink_outer_margin(0.04, 0.15)

        band = 160 * 0.04
        x = random_mesh.points[:, 0]
        y = random_mesh.points[:, 1]
        d = np.minimum(np.minimum(x, y), np.minimum(200 - x, 160 - y))
        np.testing.assert_allclose(gen.heights[d < band], 0.35)
        np.testing.assert_allclose(gen.heights[d >= band], 0.5)

    def test_suppress_small_islands(self, grid_mesh):
        mesh = grid_mesh(10)
        gen = HeightmapGenerator(mesh, make_rng("islands"))
        gen.heights = np.full(100, 0.1)

        def cell(col, row):
            return row * 10 + col

        big = [cell(0, 0), cell(1, 0), cell(0, 1), cell(1, 1)]
        single = [cell(5, 5)]
        pair = [cell(8, 2), cell(8, 3)]
        for c in big + single + pair:
            gen.heights[c] = 0.8

        sunk = gen.suppress_small_islands(0.3, keep=1, min_cells=3, epsilon=0.01)

        assert sunk == 2
        assert np.all(gen.heights[big] == 0.8)
        assert np.all(gen.heights[single + pair] == pytest.approx(0.29))
        assert gen.heights.max() == 0.8

    def test_suppression_never_raises(self, grid_mesh):
        mesh = grid_mesh(10)
        gen = HeightmapGenerator(mesh, make_rng("islands"))
        before = np.linspace(0.0, 0.9, 100)
        gen.heights = before.copy()
        gen.suppress_small_islands(0.5, keep=0, min_cells=1000)
        assert np.all(gen.heights <= before)


class TestGenerate:
    """Test the full blob engine run."""

    def test_generate(self, random_mesh):
        gen = HeightmapGenerator(random_mesh, make_rng("generate"))
        result = gen.generate(target_land_fraction=0.35)

        assert result.engine == "blob"
        assert result.template == "volcanic_island"
        assert np.all(result.heights >= 0)
        assert np.all(result.heights <= 0.85 + 1e-12)
        assert result.is_land.any()
        np.testing.assert_array_equal(result.is_land, result.heights > result.sea_level)

    def test_deterministic(self, random_mesh):
        a = HeightmapGenerator(random_mesh, make_rng("same")).generate()
        b = HeightmapGenerator(random_mesh, make_rng("same")).generate()
        np.testing.assert_array_equal(a.heights, b.heights)
        assert a.sea_level == b.sea_level

    def test_post_passes_can_be_disabled(self, random_mesh):
        options = BlobFieldOptions(normalize=False, sink_margin=False, suppress_small_islands=False)
        gen = HeightmapGenerator(random_mesh, make_rng("raw"), options)
        result = gen.generate()
        raw = HeightmapGenerator(random_mesh, make_rng("raw"), options).from_template()
        np.testing.assert_array_equal(result.heights, raw)


class TestBlobReach:
    """Test that blob reach follows map units rather than ring counts."""

    @pytest.fixture(scope="class")
    def meshes(self):
        coarse = build_mesh(sample_points(400, 300, 12, make_rng("coarse")), 400, 300)
        fine = build_mesh(sample_points(400, 300, 6, make_rng("fine")), 400, 300)
        return coarse, fine

    @staticmethod
    def extent(mesh, values, start):
        cells = np.flatnonzero(values)
        sx, sy = mesh.points[start]
        return float(np.hypot(mesh.points[cells, 0] - sx, mesh.points[cells, 1] - sy).max())

    def test_density_exponent(self, meshes):
        coarse, fine = meshes
        for mesh in (coarse, fine):
            gen = HeightmapGenerator(mesh, make_rng("exp"))
            assert gen.density_exponent == pytest.approx(np.sqrt(3000 / mesh.cell_count))

    @pytest.mark.parametrize("kind", ["trough", "pit", "sea"])
    def test_carving_blobs_stay_local(self, meshes, kind):
        _, fine = meshes
        gen = HeightmapGenerator(fine, make_rng("carve"))
        start = fine.find_nearest_cell(200, 150)
        values = gen.grow_blob(start, gen.options.blob(kind))
        assert np.count_nonzero(values) < 0.1 * fine.cell_count
        assert self.extent(fine, values, start) < 0.3 * 300

    def test_reach_similar_across_densities(self, meshes):
        extents = []
        for mesh in meshes:
            gen = HeightmapGenerator(mesh, make_rng("reach"))
            start = mesh.find_nearest_cell(200, 150)
            values = gen.grow_blob(start, gen.options.blob("hill"))
            extents.append(self.extent(mesh, values, start))
        coarse_extent, fine_extent = extents
        assert 0.5 < fine_extent / coarse_extent < 2.0

    def test_missed_target_is_logged(self, random_mesh, monkeypatch):
        monkeypatch.setitem(heightmap_templates.TEMPLATES, "speck", "Hill 1 0.5 0.3")
        gen = HeightmapGenerator(random_mesh, make_rng("speck"), BlobFieldOptions(template="speck"))
        with capture_logs() as logs:
            result = gen.generate(target_land_fraction=0.35)

        assert not result.failsafe_applied
        assert result.metadata["land_fraction_at_sea_level"] < 0.3
        assert any(
            entry["event"] == "Sea level misses the target land fraction"
            and entry["log_level"] == "warning"
            for entry in logs
        )

    def test_negative_count(self, random_mesh):
        gen = HeightmapGenerator(random_mesh, make_rng("negative"))
        with pytest.raises(ConfigurationError):
            gen.run_script("Hill -3")
        with pytest.raises(ConfigurationError):
            gen._get_number_in_range(-1)
