"""Shared pytest configuration and synthetic inputs.

DSMs are built in Lambert-93 (EPSG:2154) around central Paris so that the
WGS84 round trip exercised by the runner behaves as it does on real data.
"""

from __future__ import annotations

import json
from pathlib import Path

import numpy as np
import pytest
from apero_soleil.io import save_dsm
from apero_soleil.models import DsmRaster, EngineConfig, Terrace

CRS = "EPSG:2154"
ORIGIN_X = 651800.0
ORIGIN_Y = 6862200.0


def make_transform(pixel_size: float = 1.0) -> list[float]:
    return [ORIGIN_X, pixel_size, 0.0, ORIGIN_Y, 0.0, -pixel_size]


def make_dsm(data: np.ndarray, pixel_size: float = 1.0) -> DsmRaster:
    """Wrap a height grid as an in-memory DsmRaster."""
    return DsmRaster(data=data, transform=make_transform(pixel_size), crs=CRS)


def create_flat_dsm(size=(400, 400), elevation=0.0, dtype=np.float64) -> np.ndarray:
    """Completely flat DSM."""
    return np.full(size, elevation, dtype=dtype)


def terrace_at(dsm: DsmRaster, row: float, col: float, terrace_id: str = "terrace") -> Terrace:
    """Projected terrace at the centre of cell (row, col)."""
    (x,), (y,) = dsm.cell_center([row], [col])
    (lon,), (lat,) = dsm.unproject([x], [y])
    return Terrace(id=terrace_id, latitude=float(lat), longitude=float(lon)).with_projection(x, y)


def write_registry(path: Path, terraces: list[Terrace]) -> Path:
    """Write terraces as a GeoJSON FeatureCollection of points."""
    document = {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "geometry": {"type": "Point", "coordinates": [t.longitude, t.latitude]},
                "properties": {"id": t.id},
            }
            for t in terraces
        ],
    }
    path.write_text(json.dumps(document), encoding="utf-8")
    return path


# =============================================================================
# Neighbourhood scene used by the end-to-end tests
# =============================================================================
#
# 400 m × 400 m at 1 m, ground at 35 m. A 30 m tall block spans 3 m to 40 m
# south of the raster centre and 40 m either side of it.
#
#   "courtyard"  centre cell, right north of the block: shaded at midday
#   "boulevard"  80 m east of the centre, nothing between it and the sun
#   "banlieue"   50 m west of the raster, outside coverage

GROUND = 35.0
BLOCK_HEIGHT = 30.0
CENTRE = 200


def neighbourhood_grid() -> np.ndarray:
    grid = create_flat_dsm(elevation=GROUND, dtype=np.float32)
    grid[CENTRE + 3 : CENTRE + 40, CENTRE - 40 : CENTRE + 40] = GROUND + BLOCK_HEIGHT
    return grid


@pytest.fixture
def neighbourhood_dsm() -> DsmRaster:
    return make_dsm(neighbourhood_grid())


@pytest.fixture
def neighbourhood_terraces(neighbourhood_dsm) -> list[Terrace]:
    dsm = neighbourhood_dsm
    courtyard = terrace_at(dsm, CENTRE, CENTRE, "courtyard")
    boulevard = terrace_at(dsm, CENTRE, CENTRE + 80, "boulevard")
    (lon,), (lat,) = dsm.unproject([ORIGIN_X - 50.0], [ORIGIN_Y - CENTRE - 0.5])
    banlieue = Terrace(id="banlieue", latitude=float(lat), longitude=float(lon))
    return [courtyard, boulevard, banlieue]


@pytest.fixture
def neighbourhood_files(tmp_path, neighbourhood_terraces) -> dict[str, Path]:
    """DSM GeoTIFF and registry on disk."""
    dsm_path = tmp_path / "dsm.tif"
    save_dsm(dsm_path, neighbourhood_grid(), make_transform(), CRS)
    registry_path = write_registry(tmp_path / "terraces.geojson", neighbourhood_terraces)
    return {"dsm": dsm_path, "terraces": registry_path, "dir": tmp_path}


@pytest.fixture
def midday_config(neighbourhood_files) -> EngineConfig:
    """Three hourly slots around solar noon on the summer solstice, no weather."""
    return EngineConfig(
        dsm_path=str(neighbourhood_files["dsm"]),
        terraces_path=str(neighbourhood_files["terraces"]),
        date="2025-06-21",
        output_path=str(neighbourhood_files["dir"] / "out" / "sunlight_results.geojson"),
        slot_start="12:00",
        slot_end="14:00",
        slot_interval_minutes=60,
        weather_source="none",
        workers=2,
        progress=False,
    )
