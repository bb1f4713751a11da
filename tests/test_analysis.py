"""
Tests for per-cell geometry analysis and terrain-zone classification.
"""

import math

import pytest
import numpy as np

from ridgeline.terrain.analysis import (
    DEFAULT_THRESHOLDS,
    SlopeThresholds,
    TerrainZone,
    analyze_geometry,
    classify_cells,
    classify_terrain_zone,
    classify_terrain_zones,
    compute_gradients,
)

from conftest import CELL_SIZE, grid_heights


class TestZoneBands:
    """Tests for slope-angle zone bands."""

    def test_bands_exhaustive_and_exclusive(self):
        """Test that every angle in [0, 90) maps to exactly one zone consistent with its band."""
        bands = sorted((minimum, zone) for zone, minimum in DEFAULT_THRESHOLDS.bands())
        for angle in np.arange(0.0, 90.0, 0.25):
            zone = classify_terrain_zone(angle)
            matching = [z for minimum, z in bands if angle >= minimum]
            expected = matching[-1] if matching else TerrainZone.WALKABLE
            assert zone == expected

    def test_threshold_sequence_strictly_increasing(self):
        """Test that default band minima are strictly increasing."""
        minima = [minimum for _, minimum in reversed(DEFAULT_THRESHOLDS.bands())]
        assert all(a < b for a, b in zip(minima, minima[1:]))
        assert 0.0 < minima[0] and minima[-1] < 90.0

    def test_every_zone_reachable(self):
        """Test that each zone is produced by some angle."""
        seen = {classify_terrain_zone(a) for a in np.arange(0.0, 90.0, 0.5)}
        assert seen == set(TerrainZone)

    @pytest.mark.parametrize(
        "angle,zone",
        [
            (0.0, TerrainZone.WALKABLE),
            (19.99, TerrainZone.WALKABLE),
            (20.0, TerrainZone.STEEP),
            (24.9, TerrainZone.STEEP),
            (25.0, TerrainZone.SLIDEABLE),
            (34.9, TerrainZone.SLIDEABLE),
            (35.0, TerrainZone.DOWNCLIMB),
            (50.0, TerrainZone.RAPPEL_REQUIRED),
            (69.9, TerrainZone.RAPPEL_REQUIRED),
            (70.0, TerrainZone.CLIFF),
            (89.9, TerrainZone.CLIFF),
        ],
    )
    def test_band_boundaries(self, angle, zone):
        """Test zone boundaries at the default thresholds."""
        assert classify_terrain_zone(angle) == zone

    def test_vectorized_matches_scalar(self):
        """Test that array classification agrees with the scalar version."""
        angles = np.linspace(0.0, 89.9, 400)
        zones = classify_terrain_zones(angles)
        assert zones.dtype == np.int8
        assert [TerrainZone(z) for z in zones] == [classify_terrain_zone(a) for a in angles]

    @pytest.mark.parametrize(
        "overrides",
        [
            {"steep_min": 25.0},
            {"downclimb_min": 20.0},
            {"cliff_min": 90.0},
            {"steep_min": 0.0},
            {"slide_max": 20.0},
        ],
    )
    def test_unreachable_band_rejected(self, overrides):
        """Test that duplicated or misordered minima fail construction."""
        with pytest.raises(ValueError):
            SlopeThresholds(**overrides)

    def test_custom_thresholds(self):
        """Test classification against non-default thresholds."""
        thresholds = SlopeThresholds(steep_min=10.0, slide_min=15.0)
        assert classify_terrain_zone(12.0, thresholds) == TerrainZone.STEEP
        assert classify_terrain_zone(16.0, thresholds) == TerrainZone.SLIDEABLE


class TestGradients:
    """Tests for gradient estimation."""

    def test_plane_gradient_interior_and_edges(self):
        """Test that a tilted plane yields the same descent vector everywhere, edges included."""
        grid = grid_heights(lambda x, z: 2.0 * x - 1.0 * z, resolution=8).reshape(8, 8)
        dx, dz = compute_gradients(grid, 1.0)
        np.testing.assert_allclose(dx, -2.0)
        np.testing.assert_allclose(dz, 1.0)

    def test_cell_size_scales_gradient(self):
        """Test that the gradient is divided by cell size."""
        grid = grid_heights(lambda x, z: 4.0 * x, resolution=6).reshape(6, 6)
        dx, _ = compute_gradients(grid, 2.0)
        np.testing.assert_allclose(dx, -2.0)


class TestGeometry:
    """Tests for analyze_geometry."""

    def test_flat_scenario(self, flat_heights):
        """Test that a flat 32x32 chunk is walkable with zero slope and no cliffs."""
        geometry = analyze_geometry(flat_heights, 32, CELL_SIZE)
        zones = classify_cells(geometry)

        np.testing.assert_allclose(geometry.slope, 0.0, atol=1e-9)
        assert (zones.zones == TerrainZone.WALKABLE).all()
        assert not zones.is_cliff.any()
        assert zones.is_walkable.all()
        np.testing.assert_allclose(geometry.downhill, 0.0)
        np.testing.assert_allclose(geometry.aspect, 0.0)
        np.testing.assert_allclose(geometry.normal, np.tile([0.0, 1.0, 0.0], (1024, 1)))

    def test_south_facing_slope(self, slope_heights):
        """Test slope, downhill, aspect and normal on a 30 degree slope descending to +z."""
        geometry = analyze_geometry(slope_heights, 32, CELL_SIZE)

        np.testing.assert_allclose(geometry.slope, 30.0, atol=1e-6)
        np.testing.assert_allclose(geometry.downhill, np.tile([0.0, 1.0], (1024, 1)), atol=1e-9)
        np.testing.assert_allclose(geometry.aspect, 180.0, atol=1e-6)

        t = math.tan(math.radians(30.0))
        expected_normal = np.array([0.0, 1.0, t]) / math.sqrt(1.0 + t * t)
        np.testing.assert_allclose(geometry.normal, np.tile(expected_normal, (1024, 1)), atol=1e-9)

    def test_east_facing_aspect(self):
        """Test that a slope descending to +x faces east."""
        heights = grid_heights(lambda x, z: 3000.0 - 0.5 * x, resolution=8)
        geometry = analyze_geometry(heights, 8, 1.0)
        np.testing.assert_allclose(geometry.aspect, 90.0, atol=1e-6)
        np.testing.assert_allclose(geometry.downhill[:, 0], 1.0)

    def test_north_facing_aspect(self):
        """Test that a slope descending to -z faces north."""
        heights = grid_heights(lambda x, z: 3000.0 + 0.5 * z, resolution=8)
        geometry = analyze_geometry(heights, 8, 1.0)
        wrapped = np.minimum(geometry.aspect, 360.0 - geometry.aspect)
        np.testing.assert_allclose(wrapped, 0.0, atol=1e-6)

    def test_ridge_convex_and_gully_concave(self):
        """Test curvature sign and drainage on a ridge and a gully."""
        ridge = grid_heights(lambda x, z: 3000.0 - 0.1 * (x - 8.0) ** 2, resolution=16)
        gully = grid_heights(lambda x, z: 3000.0 + 0.1 * (x - 8.0) ** 2, resolution=16)

        ridge_geo = analyze_geometry(ridge, 16, 1.0)
        gully_geo = analyze_geometry(gully, 16, 1.0)
        center = 8 * 16 + 8

        assert ridge_geo.curvature[center] == pytest.approx(0.1)
        assert ridge_geo.drainage[center] == 0.0
        assert ridge_geo.wind_exposure[center] == pytest.approx(1.0)

        assert gully_geo.curvature[center] == pytest.approx(-0.1)
        assert gully_geo.drainage[center] == pytest.approx(1.0)
        assert gully_geo.wind_exposure[center] == pytest.approx(0.0)

    def test_geometry_arrays_read_only(self, flat_heights):
        """Test that geometry arrays cannot be modified in place."""
        geometry = analyze_geometry(flat_heights, 32, CELL_SIZE)
        with pytest.raises(ValueError):
            geometry.slope[0] = 45.0

    def test_positions_use_origin(self, flat_heights):
        """Test that world positions include the chunk origin."""
        geometry = analyze_geometry(flat_heights, 32, CELL_SIZE, origin=(64.0, -64.0))
        np.testing.assert_allclose(geometry.position[33], [66.0, 3000.0, -62.0])

    def test_size_mismatch(self):
        """Test that the height count must match the resolution."""
        with pytest.raises(ValueError):
            analyze_geometry(np.zeros(10), 4, 1.0)


class TestCellClassification:
    """Tests for classify_cells on synthetic terrain."""

    def test_step_marks_cliff_exactly_at_edge(self, step_heights):
        """Test that a single-row 500 unit step is a cliff only on the two rows at the step."""
        geometry = analyze_geometry(step_heights, 32, CELL_SIZE)
        zones = classify_cells(geometry)

        cliff_rows = np.unique(np.flatnonzero(zones.is_cliff) // 32)
        np.testing.assert_array_equal(cliff_rows, [15, 16])
        assert zones.is_cliff.reshape(32, 32)[15:17].all()
        assert zones.requires_rope[zones.is_cliff].all()
        assert (zones.zones.reshape(32, 32)[:14] == TerrainZone.WALKABLE).all()

    def test_index_sets(self, step_heights):
        """Test the cliff and rope-required index sets."""
        zones = classify_cells(analyze_geometry(step_heights, 32, CELL_SIZE))
        assert len(zones.cliff_indices) == 64
        assert set(zones.cliff_indices) <= set(zones.rope_indices)

    def test_slope_is_slideable_zone(self, slope_heights):
        """Test that a 30 degree slope is in the slideable band and still not walkable."""
        zones = classify_cells(analyze_geometry(slope_heights, 32, CELL_SIZE))
        assert (zones.zones == TerrainZone.SLIDEABLE).all()
        assert not zones.is_walkable.any()
