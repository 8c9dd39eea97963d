"""
Shadow Raytracing Tests

Each test verifies a property the ray march must hold: night is always
shade, flat ground never shades, the nearest obstruction wins and equal
heights count as shade.
"""

import math

import numpy as np
import pytest
from apero_soleil.components.raytrace import clearance_distance, ray_distances, trace_ray
from apero_soleil.models import EngineConfig, SlotConditions, SunPosition
from apero_soleil.runner import classify_terrace
from conftest import make_dsm, terrace_at

# =============================================================================
# Test Fixtures
# =============================================================================

PIXEL = 0.5
TERRACE_ROW, TERRACE_COL = 100, 100
SOUTH = SunPosition(azimuth=180.0, altitude=45.0)


def create_street(size=(720, 200), ground=0.0):
    """0.5 m DSM with 300 m of open ground south of the terrace cell."""
    return np.full(size, ground, dtype=np.float64)


def row_south(distance_m):
    """Raster row sampled by a southbound ray at ``distance_m``."""
    return TERRACE_ROW + int(round(distance_m / PIXEL))


def trace_south(grid, height0=0.0, sun=SOUTH, **kwargs):
    dsm = make_dsm(grid, pixel_size=PIXEL)
    terrace = terrace_at(dsm, TERRACE_ROW, TERRACE_COL)
    return trace_ray(dsm, terrace.x, terrace.y, height0, sun, **kwargs)


def night_config():
    return EngineConfig(dsm_path="dsm.tif", terraces_path="terraces.geojson", date="2025-12-21")


# =============================================================================
# Property Tests
# =============================================================================


class TestNight:
    """Sun at or below the horizon is shade, without tracing."""

    def test_trace_ray_rejects_sun_below_horizon(self):
        """Tracing is only defined for a sun above the horizon."""
        for altitude in [-10.0, -0.5, 0.0]:
            with pytest.raises(ValueError, match="not above the horizon"):
                trace_south(create_street(), sun=SunPosition(azimuth=180.0, altitude=altitude))

    def test_night_slots_are_shaded_regardless_of_geometry(self):
        """Open ground or not, a night slot is never sunlit."""
        dsm = make_dsm(create_street(), pixel_size=PIXEL)
        terrace = terrace_at(dsm, TERRACE_ROW, TERRACE_COL)
        table = {
            "t0600": SlotConditions("t0600", SunPosition(azimuth=60.0, altitude=-12.0)),
            "t0700": SlotConditions("t0700", SunPosition(azimuth=75.0, altitude=0.0)),
            "t2200": SlotConditions("t2200", SunPosition(azimuth=300.0, altitude=-3.0)),
        }
        result = classify_terrace(terrace, dsm, table, night_config())

        assert [c.slot for c in result.classifications] == ["t0600", "t0700", "t2200"]
        for c in result.classifications:
            assert c.is_sunlit is False
            assert c.geometric_sunlit is False
            assert c.ray is None


class TestOpenGround:
    """Flat terrain never obstructs a ray leaving from ground level."""

    def test_flat_ground_is_sunlit(self):
        """Terrace at 0 m, sun at 45°, flat 0 m DSM: sunlit."""
        result = trace_south(create_street())
        assert result.sunlit is True
        assert result.obstruction is None
        assert result.partial_coverage is False

    def test_flat_ground_full_march(self):
        """With a tall building off the ray the march runs to the cut-off."""
        grid = create_street()
        grid[TERRACE_ROW, 0:5] = 400.0  # west of the terrace, never on a southbound ray
        result = trace_south(grid, max_distance=300.0)
        assert result.sunlit is True
        assert result.steps == 300
        assert result.partial_coverage is False

    def test_ray_distances_include_cut_off(self):
        """Samples start one step out and include the cut-off."""
        distances = ray_distances(1.0, 300.0)
        assert distances[0] == 1.0
        assert distances[-1] == 300.0
        assert len(distances) == 300
        assert len(ray_distances(0.1, 300.0)) == 3000

    def test_ray_distances_validate(self):
        with pytest.raises(ValueError):
            ray_distances(0.0, 300.0)
        with pytest.raises(ValueError):
            ray_distances(2.0, 1.0)


class TestObstruction:
    """Buildings along the ray."""

    def test_building_five_metres_away_shades(self):
        """10 m building 5 m south, sun 45°: shaded, obstruction at 5 m."""
        grid = create_street()
        grid[row_south(5) : row_south(15), :] = 10.0
        result = trace_south(grid)

        assert result.sunlit is False
        assert result.obstruction is not None
        assert result.obstruction.distance == pytest.approx(5.0)
        assert result.obstruction.height == pytest.approx(10.0)
        assert result.obstruction.ray_height == pytest.approx(5.0)
        assert result.partial_coverage is False

    def test_first_obstruction_wins(self):
        """Two obstructions above the ray: the nearer one is recorded."""
        grid = create_street()
        grid[row_south(5), :] = 10.0
        grid[row_south(20), :] = 50.0
        result = trace_south(grid)

        assert result.sunlit is False
        assert result.obstruction.distance == pytest.approx(5.0)
        assert result.obstruction.height == pytest.approx(10.0)

    def test_low_wall_does_not_hide_tall_building(self):
        """A near obstacle below the ray is passed over."""
        grid = create_street()
        grid[row_south(5), :] = 3.0
        grid[row_south(20), :] = 50.0
        result = trace_south(grid)

        assert result.obstruction.distance == pytest.approx(20.0)
        assert result.obstruction.height == pytest.approx(50.0)

    def test_obstruction_position_is_along_azimuth(self):
        """The recorded obstruction lies at the recorded distance toward the sun."""
        grid = create_street()
        grid[row_south(5) : row_south(15), :] = 10.0
        dsm = make_dsm(grid, pixel_size=PIXEL)
        terrace = terrace_at(dsm, TERRACE_ROW, TERRACE_COL)
        result = trace_ray(dsm, terrace.x, terrace.y, 0.0, SOUTH)

        assert result.obstruction.x == pytest.approx(terrace.x)
        assert result.obstruction.y == pytest.approx(terrace.y - 5.0)

    def test_northern_sun_looks_north(self):
        """Azimuth 0° marches toward decreasing rows."""
        grid = create_street()
        grid[TERRACE_ROW - 20, :] = 40.0
        grid[row_south(10), :] = 40.0
        result = trace_south(grid, sun=SunPosition(azimuth=0.0, altitude=45.0))
        assert result.obstruction.distance == pytest.approx(10.0)

    def test_raised_terrace_sees_over_building(self):
        """A rooftop terrace above the obstacle is sunlit."""
        grid = create_street()
        grid[row_south(5) : row_south(15), :] = 10.0
        result = trace_south(grid, height0=12.0)
        assert result.sunlit is True

    def test_cut_off_ignores_far_obstacles(self):
        """Obstacles beyond the maximum distance are not seen."""
        grid = create_street()
        grid[row_south(250), :] = 1000.0
        assert trace_south(grid, max_distance=200.0).sunlit is True
        assert trace_south(grid, max_distance=300.0).sunlit is False


class TestTieBreak:
    """DSM height exactly equal to the ray height counts as shade."""

    def test_equal_height_is_obstruction(self):
        tie_height = 5.0 * math.tan(math.radians(45.0))
        grid = create_street()
        grid[row_south(5), :] = tie_height
        result = trace_south(grid)

        assert result.sunlit is False
        assert result.obstruction.distance == pytest.approx(5.0)

    def test_slightly_lower_is_not_obstruction(self):
        tie_height = 5.0 * math.tan(math.radians(45.0))
        grid = create_street()
        grid[row_south(5), :] = tie_height - 1e-6
        assert trace_south(grid).sunlit is True


class TestCoverage:
    """Samples outside the raster or on nodata are open sky, but flagged."""

    def test_leaving_the_raster_is_partial_coverage(self):
        grid = create_street(size=(120, 200))
        grid[0, 0] = 80.0  # keeps the march going past the raster edge
        result = trace_south(grid)

        assert result.sunlit is True
        assert result.partial_coverage is True
        assert result.steps < 300

    def test_nodata_before_obstruction_is_flagged(self):
        grid = create_street()
        grid[row_south(3), :] = np.nan
        grid[row_south(5), :] = 10.0
        result = trace_south(grid)

        assert result.sunlit is False
        assert result.partial_coverage is True

    def test_nodata_after_obstruction_is_not_flagged(self):
        grid = create_street()
        grid[row_south(5), :] = 10.0
        grid[row_south(30), :] = np.nan
        result = trace_south(grid)

        assert result.sunlit is False
        assert result.partial_coverage is False

    def test_clearance_distance(self):
        """Beyond the clearance distance the ray is above every DSM value."""
        assert clearance_distance(10.0, 0.0, 45.0) == pytest.approx(10.0)
        assert clearance_distance(5.0, 10.0, 45.0) == 0.0
