"""
Tests for the TerrainQuery facade.
"""

import math

import pytest
import numpy as np

from ridgeline.snow.surfaces import Environment, SurfaceType
from ridgeline.terrain.analysis import TerrainZone
from ridgeline.terrain.chunks import TerrainCell
from ridgeline.terrain.manifest import MountainManifest
from ridgeline.terrain.query import TerrainQuery
from ridgeline.terrain.slide_path import SlideOutcome

from conftest import make_chunk, make_world


@pytest.fixture
def step_query(step_chunk):
    return TerrainQuery(make_world(step_chunk))


@pytest.fixture
def annotated_world(flat_chunk, tmp_path):
    world = make_world(flat_chunk)
    world.manifest = MountainManifest.from_dict(
        {
            "bounds": {"min_x": 0, "max_x": 64, "min_z": 0, "max_z": 64},
            "heightmap": {"format": "raw16", "resolution": 32},
            "hazards": [
                {"type": "avalanche", "position": [10, 3000, 10], "radius": 5, "severity": 0.9},
                {"type": "serac", "position": [50, 3000, 50], "radius": 2},
            ],
            "routes": [{"name": "Normal Route", "difficulty": "easy", "waypoints": [[0, 3000, 0], [60, 3000, 60]]}],
        },
        "test",
        tmp_path,
    )
    return world


class TestDefaults:
    """Tests for queries outside loaded terrain."""

    def test_default_cell_outside(self, flat_chunk):
        """Test that positions outside all chunks return conservative defaults."""
        query = TerrainQuery(make_world(flat_chunk))
        x, z = 5000.0, -5000.0

        assert query.get_slope(x, z) == 0.0
        assert query.get_terrain_zone(x, z) == TerrainZone.WALKABLE
        assert query.get_cliff_distance(x, z) == 1000.0
        assert query.get_surface_type(x, z) == SurfaceType.SNOW_FIRM
        assert query.get_height(x, z) == 0.0
        assert query.get_normal(x, z) == (0.0, 1.0, 0.0)
        assert query.get_downhill_direction(x, z) == (0.0, 0.0)
        assert not query.is_cliff(x, z)
        assert not query.is_slideable(x, z)
        assert query.get_slide_risk(x, z) == 0.0

    @pytest.mark.parametrize(
        "x,z",
        [(math.nan, 10.0), (10.0, math.nan), (math.inf, 10.0), (10.0, -math.inf), (math.nan, math.inf)],
    )
    def test_non_finite_position(self, flat_chunk, x, z):
        """Test that NaN and infinite positions return the default cell instead of raising."""
        query = TerrainQuery(make_world(flat_chunk))

        cell = query.get_cell(x, z)

        assert cell == TerrainCell.default()
        assert all(math.isfinite(v) for v in cell.position)
        assert query.get_slope(x, z) == 0.0
        assert query.get_height(x, z) == 0.0
        assert not query.is_cliff(x, z)
        assert query.predict_slide(x, z).outcome is SlideOutcome.OFF_TERRAIN

    def test_empty_world(self):
        """Test that a world with no chunks never fails a query."""
        from ridgeline.terrain.world import TerrainWorld

        query = TerrainQuery(TerrainWorld())
        assert query.get_cell(1.0, 2.0).is_walkable
        assert query.find_nearest_exit_zone(0.0, 0.0) is None
        assert query.get_map_markers()["cliffs"].shape == (0, 3)
        assert query.get_contours() == []
        assert query.get_hazards_near(0.0, 0.0, 100.0) == []
        assert query.get_route("anything") is None


class TestCellQueries:
    """Tests for per-position property queries."""

    def test_slope_queries(self, slope_chunk):
        """Test geometry queries on a south-facing 30 degree slope."""
        query = TerrainQuery(make_world(slope_chunk))
        assert query.get_slope(20.0, 20.0) == pytest.approx(30.0)
        assert query.get_aspect(20.0, 20.0) == pytest.approx(180.0)
        assert query.get_downhill_direction(20.0, 20.0) == pytest.approx((0.0, 1.0))
        assert query.get_terrain_zone(20.0, 20.0) == TerrainZone.SLIDEABLE
        assert query.is_slideable(20.0, 20.0)
        assert query.get_slide_risk(20.0, 20.0) > 0.0
        assert query.get_curvature(20.0, 20.0) == pytest.approx(0.0, abs=1e-9)
        assert 0.0 <= query.get_sun_exposure(20.0, 20.0) <= 1.0
        assert query.get_wind_exposure(20.0, 20.0) == pytest.approx(0.5)
        assert query.get_snow_depth(20.0, 20.0) > 0.0
        assert 0.0 <= query.get_ice_probability(20.0, 20.0) <= 1.0
        assert query.get_friction(20.0, 20.0) == pytest.approx(0.3)

    def test_cliff_queries(self, step_query):
        """Test hazard queries around a cliff band."""
        assert step_query.is_cliff(20.0, 31.0)
        assert step_query.get_terrain_zone(20.0, 31.0) == TerrainZone.CLIFF
        assert not step_query.is_exit_zone(20.0, 31.0)

        assert step_query.get_cliff_distance(20.0, 10.0) == pytest.approx(20.0)
        assert step_query.get_cliff_direction(20.0, 10.0) == pytest.approx((0.0, 0.0, 1.0))
        assert step_query.is_exit_zone(20.0, 2.0)
        assert step_query.get_exit_zone_quality(20.0, 2.0) == pytest.approx(28.0 / 50.0)

    def test_height_is_bilinear(self, step_query):
        """Test that height queries interpolate between grid points."""
        assert step_query.get_height(20.0, 31.0) == pytest.approx(3250.0)

    def test_predict_slide(self, slope_to_cliff_heights):
        """Test slide prediction through the facade."""
        query = TerrainQuery(make_world(make_chunk(slope_to_cliff_heights)))
        path = query.predict_slide(32.0, 34.5)
        assert path.outcome is SlideOutcome.CLIFF


class TestCache:
    """Tests for the one-entry position cache."""

    def test_nearby_queries_hit(self, flat_chunk):
        """Test that repeated queries within the radius hit the cache."""
        query = TerrainQuery(make_world(flat_chunk))
        query.get_slope(10.0, 10.0)
        query.get_friction(10.2, 10.2)
        query.is_exit_zone(10.0, 10.0)
        assert query.cache_stats() == {"hits": 2, "misses": 1}

    def test_far_query_misses(self, flat_chunk):
        """Test that moving beyond the radius refreshes the cache."""
        query = TerrainQuery(make_world(flat_chunk))
        query.get_slope(10.0, 10.0)
        query.get_slope(11.0, 10.0)
        assert query.cache_stats() == {"hits": 0, "misses": 2}

    def test_revision_invalidates(self, flat_chunk):
        """Test that reclassification invalidates the cached cell."""
        world = make_world(flat_chunk)
        query = TerrainQuery(world)
        assert query.get_surface_type(10.0, 10.0) == SurfaceType.SNOW_FIRM

        world.update_environment(Environment(base_temperature=0.0))

        assert query.get_surface_type(10.0, 10.0) == SurfaceType.SNOW_SOFT
        assert query.cache_stats()["misses"] == 2

    def test_clear_cache(self, flat_chunk):
        """Test explicit cache clearing."""
        query = TerrainQuery(make_world(flat_chunk))
        query.get_slope(10.0, 10.0)
        query.clear_cache()
        query.get_slope(10.0, 10.0)
        assert query.cache_stats()["misses"] == 2


class TestSearchAndAnnotations:
    """Tests for exit-zone search, markers, contours and manifest annotations."""

    def test_find_nearest_exit_zone(self, step_query):
        """Test that the nearest exit zone from the cliff lies outside the 10 unit buffer."""
        cell = step_query.find_nearest_exit_zone(20.0, 31.0)
        assert cell is not None
        assert cell.is_exit_zone
        assert cell.position[0] == pytest.approx(20.0)
        assert cell.distance_to_cliff > 10.0
        assert abs(cell.position[2] - 31.0) == pytest.approx(13.0)

    def test_find_nearest_exit_zone_max_distance(self, step_query):
        """Test that the search honours max_distance."""
        assert step_query.find_nearest_exit_zone(20.0, 31.0, max_distance=5.0) is None

    def test_map_markers(self, step_query):
        """Test cliff and exit marker positions for the map renderer."""
        markers = step_query.get_map_markers()
        assert markers["cliffs"].shape == (64, 3)
        assert set(np.unique(markers["cliffs"][:, 2])) == {30.0, 32.0}
        assert len(markers["exit_zones"]) > 0

    def test_contours(self, step_query):
        """Test contour tracing through the facade."""
        lines = step_query.get_contours(minor_interval=100.0, major_interval=500.0)
        assert [line.elevation for line in lines] == [3100.0, 3200.0, 3300.0, 3400.0, 3500.0]
        assert [line.is_major for line in lines] == [False, False, False, False, True]

    def test_hazards_near(self, annotated_world):
        """Test that hazard markers are matched by distance plus radius."""
        query = TerrainQuery(annotated_world)
        near = query.get_hazards_near(14.0, 14.0, radius=1.0)
        assert [h.type for h in near] == ["avalanche"]
        assert query.get_hazards_near(30.0, 30.0, radius=1.0) == []
        assert len(query.get_hazards_near(30.0, 30.0, radius=30.0)) == 2

    def test_route(self, annotated_world):
        """Test route lookup by name."""
        query = TerrainQuery(annotated_world)
        route = query.get_route("Normal Route")
        assert route.difficulty == "easy"
        assert len(route.waypoints) == 2
        assert query.get_route("Direttissima") is None
