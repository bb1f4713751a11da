"""
Tests for cliff-distance fields, exit zones and slide risk.
"""

import tracemalloc

import pytest
import numpy as np

from ridgeline.snow.surfaces import Environment, SurfaceType, classify_surfaces
from ridgeline.terrain.analysis import analyze_geometry, classify_cells
from ridgeline.terrain.hazards import (
    HazardConfig,
    compute_cliff_distances,
    derive_hazards,
    exit_zone_quality,
    slide_risk,
)

from ridgeline.terrain.chunks import TerrainChunk
from ridgeline.terrain.pipeline import AnalysisConfig, analyze_chunk

from conftest import CELL_SIZE, grid_heights


def grid_positions(resolution, heights):
    z, x = np.divmod(np.arange(resolution * resolution), resolution)
    return np.stack([x * CELL_SIZE, heights, z * CELL_SIZE], axis=1).astype(np.float64)


class TestCliffDistances:
    """Tests for the nearest-cliff search."""

    def test_single_cliff_cell_euclidean(self):
        """Test that distances equal the Euclidean distance to a lone cliff cell."""
        rng = np.random.default_rng(11)
        positions = grid_positions(16, rng.uniform(3000.0, 3050.0, 256))
        mask = np.zeros(256, dtype=bool)
        mask[5 * 16 + 9] = True
        target = positions[5 * 16 + 9]

        field = compute_cliff_distances(positions, mask)

        expected = np.linalg.norm(positions - target, axis=1)
        np.testing.assert_allclose(field.distance, expected)

        others = ~mask
        expected_dir = (target - positions[others]) / expected[others][:, None]
        np.testing.assert_allclose(field.direction[others], expected_dir)
        np.testing.assert_allclose(field.direction[mask], 0.0)

    def test_no_cliffs_uses_maximum(self):
        """Test that a chunk without cliffs reports the maximum distance."""
        positions = grid_positions(4, np.zeros(16))
        field = compute_cliff_distances(positions, np.zeros(16, dtype=bool))
        np.testing.assert_allclose(field.distance, 1000.0)
        np.testing.assert_allclose(field.direction, 0.0)

    def test_far_cells_capped(self):
        """Test that cells beyond max distance are capped with a zero direction."""
        positions = np.array([[0.0, 0.0, 0.0], [5.0, 0.0, 0.0], [50.0, 0.0, 0.0]])
        mask = np.array([True, False, False])
        field = compute_cliff_distances(positions, mask, HazardConfig(max_cliff_distance=10.0))
        np.testing.assert_allclose(field.distance, [0.0, 5.0, 10.0])
        np.testing.assert_allclose(field.direction[2], 0.0)

    def test_blocked_search_matches(self):
        """Test that block size does not change the result."""
        rng = np.random.default_rng(2)
        positions = grid_positions(8, rng.uniform(0.0, 100.0, 64))
        mask = rng.random(64) < 0.1
        mask[0] = True
        a = compute_cliff_distances(positions, mask, HazardConfig(max_block_pairs=7))
        b = compute_cliff_distances(positions, mask, HazardConfig(max_block_pairs=10_000_000))
        np.testing.assert_allclose(a.distance, b.distance)
        np.testing.assert_allclose(a.direction, b.direction)

    def test_all_cliff_chunk_memory_bounded(self):
        """Test that a large chunk made entirely of cliffs keeps the search within a small memory budget."""
        resolution = 96
        positions = grid_positions(resolution, np.linspace(0.0, 500.0, resolution * resolution))
        mask = np.ones(resolution * resolution, dtype=bool)

        tracemalloc.start()
        try:
            field = compute_cliff_distances(positions, mask, HazardConfig(max_block_pairs=500_000))
            _, peak = tracemalloc.get_traced_memory()
        finally:
            tracemalloc.stop()

        assert peak < 64 * 1024 * 1024
        np.testing.assert_allclose(field.distance, 0.0)
        np.testing.assert_allclose(field.direction, 0.0)

    def test_step_distance_monotonic(self, step_heights):
        """Test that cliff distance grows with distance from the step edge."""
        geometry = analyze_geometry(step_heights, 32, CELL_SIZE)
        zones = classify_cells(geometry)
        field = compute_cliff_distances(geometry.position, zones.is_cliff)
        distance = field.distance.reshape(32, 32)

        np.testing.assert_allclose(distance[15:17], 0.0)
        for x in range(32):
            upper = distance[:15, x][::-1]
            lower = distance[17:, x]
            assert np.all(np.diff(upper) > 0)
            assert np.all(np.diff(lower) > 0)
        np.testing.assert_allclose(distance[:15, 10], 2.0 * (15 - np.arange(15)))

    def test_direction_points_at_cliff(self, step_heights):
        """Test that cells above the step point towards +z."""
        geometry = analyze_geometry(step_heights, 32, CELL_SIZE)
        field = compute_cliff_distances(geometry.position, classify_cells(geometry).is_cliff)
        np.testing.assert_allclose(field.direction[5 * 32 + 10], [0.0, 0.0, 1.0], atol=1e-9)


class TestExitZones:
    """Tests for exit-zone quality and flags."""

    def test_quality_monotonic_in_slope(self):
        """Test that flatter slopes score strictly higher at fixed cliff distance."""
        slopes = np.linspace(24.0, 0.0, 25)
        quality = exit_zone_quality(slopes, np.full(25, 30.0))
        assert np.all(np.diff(quality) > 0)

    def test_quality_saturates_with_distance(self):
        """Test that cliff proximity stops mattering beyond the falloff distance."""
        quality = exit_zone_quality(np.array([0.0, 0.0, 0.0]), np.array([25.0, 50.0, 500.0]))
        np.testing.assert_allclose(quality, [0.5, 1.0, 1.0])

    def test_flat_chunk_is_all_exit(self, flat_chunk):
        """Test that flat terrain far from cliffs is a perfect exit zone."""
        assert flat_chunk.hazards.is_exit_zone.all()
        np.testing.assert_allclose(flat_chunk.hazards.exit_zone_quality, 1.0)
        assert len(flat_chunk.exit_zone_cells) == 32 * 32

    def test_near_cliff_not_exit(self, step_chunk):
        """Test that cliffs and cells within 10 units of them are not exit zones."""
        hazards = step_chunk.hazards.is_exit_zone.reshape(32, 32)
        distance = step_chunk.cliff_field.distance.reshape(32, 32)
        assert not hazards[15:17].any()
        assert not hazards[distance <= 10.0].any()
        assert hazards[0:5, 5:27].all()

    def test_gently_convex_crest_is_exit(self):
        """Test that the curvature gate admits a gently rounded crest and a tighter gate rejects it."""
        # Parabolic crest along row 16: curvature 0.1 there, slope zero
        heights = grid_heights(lambda x, z: 3000.0 - 0.4 * (z - 16.0) ** 2)

        def crest_is_exit(config):
            chunk = TerrainChunk((0, 0), chunk_size=64.0, resolution=32)
            chunk.load_heightmap(heights, 32)
            analyze_chunk(chunk, config=config)
            index = 16 * 32 + 10
            assert chunk.geometry.curvature[index] == pytest.approx(0.1)
            assert chunk.geometry.slope[index] == pytest.approx(0.0, abs=1e-9)
            return bool(chunk.hazards.is_exit_zone[index])

        assert crest_is_exit(AnalysisConfig())
        assert not crest_is_exit(AnalysisConfig(hazards=HazardConfig(exit_max_curvature=0.05)))


class TestSlideHazards:
    """Tests for slideability and slide risk."""

    def test_snow_slope_is_slideable(self, slope_chunk):
        """Test that a 30 degree snow slope is slideable with a modest risk."""
        assert slope_chunk.hazards.is_slideable.all()
        risk = slope_chunk.hazards.slide_risk
        assert np.all(risk >= 0.1 - 1e-9)
        assert np.all(risk <= 0.3 + 1e-9)

    def test_flat_not_slideable(self, flat_chunk):
        """Test that flat terrain has no slide risk."""
        assert not flat_chunk.hazards.is_slideable.any()
        np.testing.assert_allclose(flat_chunk.hazards.slide_risk, 0.0)

    def test_rock_not_slideable(self, slope_heights):
        """Test that slideability requires a slideable surface."""
        geometry = analyze_geometry(slope_heights - 1000.0, 32, CELL_SIZE)
        zones = classify_cells(geometry)
        material = classify_surfaces(geometry, Environment(base_temperature=10.0))
        forced = classify_surfaces(
            geometry, Environment(), overlay_codes=np.full(1024, int(SurfaceType.ROCK), dtype=np.int16)
        )
        field = compute_cliff_distances(geometry.position, zones.is_cliff)

        hazards = derive_hazards(geometry, zones, field, forced)
        assert not hazards.is_slideable.any()

        rock_or_scree = derive_hazards(geometry, zones, field, material)
        scree = material.surface_type == SurfaceType.SCREE
        np.testing.assert_array_equal(rock_or_scree.is_slideable, scree)

    def test_risk_terms(self):
        """Test slope, cliff-proximity and ice contributions to slide risk."""
        risk = slide_risk(
            np.array([25.0, 40.0, 25.0, 25.0, 40.0]),
            np.array([1000.0, 1000.0, 25.0, 1000.0, 0.0]),
            np.array([0.0, 0.0, 0.0, 1.0, 1.0]),
        )
        np.testing.assert_allclose(risk, [0.0, 0.3, 0.25, 0.2, 1.0])
