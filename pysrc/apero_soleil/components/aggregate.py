"""
Result aggregator and writer.

Single-threaded reduce after the worker pool: turns per-terrace results
into the interchange GeoJSON FeatureCollection and writes it atomically.

Document layout::

    {
      "type": "FeatureCollection",
      "metadata": {"date": ..., "time_slots": [...], ...},
      "features": [
        {"type": "Feature",
         "geometry": {"type": "Point", "coordinates": [lon, lat]},
         "properties": {"id": "...", "t0900": true, "t0930": false, ...}}
      ]
    }

Features follow registry order and carry no timestamps, so identical
inputs produce byte-identical files.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from ..io import write_geojson_atomic
from ..soleil_logging import get_logger
from ..utils import round_coord

if TYPE_CHECKING:
    from ..models.config import EngineConfig
    from ..models.results import TerraceResult
    from ..models.surface import DsmRaster
    from ..models.weather import SlotConditions

logger = get_logger(__name__)

# Metres and degrees in diagnostics
DIAGNOSTIC_DECIMALS = 3


def _round(value: float) -> float:
    return round(float(value), DIAGNOSTIC_DECIMALS)


def slot_diagnostics(result: TerraceResult, dsm: DsmRaster) -> dict:
    """
    Verbose per-slot properties of one terrace.

    Obstruction positions are converted back to WGS84 here rather than in
    the workers, since pyproj transformers are shared by all of them.
    """
    props: dict = {}
    terrace = result.terrace
    if terrace.resolved_height is not None:
        props["h_terrace"] = _round(terrace.resolved_height)

    obstructed = [c for c in result.classifications if c.ray is not None and c.ray.obstruction is not None]
    lonlat = {}
    if obstructed:
        lons, lats = dsm.unproject(
            [c.ray.obstruction.x for c in obstructed],
            [c.ray.obstruction.y for c in obstructed],
        )
        lonlat = {c.slot: (lon, lat) for c, lon, lat in zip(obstructed, lons, lats)}

    for c in result.classifications:
        if c.ray is None:
            continue
        if c.ray.obstruction is not None:
            obs = c.ray.obstruction
            lon, lat = lonlat[c.slot]
            props[f"{c.slot}_distance_to_obstacle"] = _round(obs.distance)
            props[f"{c.slot}_obstruction_height"] = _round(obs.height)
            props[f"{c.slot}_ray_height_at_obstacle"] = _round(obs.ray_height)
            props[f"{c.slot}_obstruction_lat"] = round_coord(lat)
            props[f"{c.slot}_obstruction_lon"] = round_coord(lon)
        if c.ray.partial_coverage:
            props[f"{c.slot}_partial_coverage"] = True
    return props


def build_feature(result: TerraceResult, dsm: DsmRaster | None = None, verbose: bool = False) -> dict:
    """
    One GeoJSON Feature per terrace: id, point geometry, one boolean per slot.

    Args:
        result: Classified terrace.
        dsm: Raster used for the run; required when ``verbose`` is set.
        verbose: Add obstruction diagnostics.
    """
    terrace = result.terrace
    properties: dict = {"id": terrace.id}
    for c in result.classifications:
        properties[c.slot] = bool(c.is_sunlit)
    if verbose:
        if dsm is None:
            raise ValueError("Verbose output needs the DSM to convert obstruction positions")
        properties.update(slot_diagnostics(result, dsm))

    return {
        "type": "Feature",
        "geometry": {
            "type": "Point",
            "coordinates": [round_coord(terrace.longitude), round_coord(terrace.latitude)],
        },
        "properties": properties,
    }


def build_metadata(
    config: EngineConfig,
    slot_table: dict[str, SlotConditions],
    weather_source: str,
) -> dict:
    """Run-level foreign member of the FeatureCollection."""
    metadata = {
        "date": config.date,
        "time_slots": list(slot_table),
        "weather_source": weather_source,
        "cloud_threshold_pct": config.cloud_threshold_pct,
        "weather_unadjusted_slots": [key for key, cond in slot_table.items() if not cond.weather_adjusted],
    }
    if config.verbose_output:
        metadata["sun"] = {
            key: {
                "azimuth": _round(cond.sun.azimuth),
                "altitude": _round(cond.sun.altitude),
                "cloud_cover": _round(cond.cloud_cover),
            }
            for key, cond in slot_table.items()
        }
    return metadata


def build_feature_collection(
    results: list[TerraceResult],
    config: EngineConfig,
    slot_table: dict[str, SlotConditions],
    dsm: DsmRaster | None = None,
    weather_source: str | None = None,
) -> dict:
    """
    Assemble the interchange document.

    Args:
        results: Successfully classified terraces, in registry order.
        config: Run configuration.
        slot_table: Per-slot sun and cloud table of the run.
        dsm: Raster used for the run (verbose output only).
        weather_source: Name of the provider actually used; defaults to the configured one.

    Raises:
        ValueError: If a terrace id appears twice or a result misses a slot.
    """
    slot_keys = list(slot_table)
    seen: set[str] = set()
    features = []
    for result in results:
        terrace_id = result.terrace.id
        if terrace_id in seen:
            raise ValueError(f"Terrace '{terrace_id}' appears twice in the results")
        seen.add(terrace_id)
        if [c.slot for c in result.classifications] != slot_keys:
            raise ValueError(f"Terrace '{terrace_id}' does not have exactly one record per slot")
        features.append(build_feature(result, dsm, config.verbose_output))

    return {
        "type": "FeatureCollection",
        "metadata": build_metadata(config, slot_table, weather_source or config.weather_source),
        "features": features,
    }


def write_results(document: dict, out_path: str | Path) -> Path:
    """Write the document atomically. See :func:`apero_soleil.io.write_geojson_atomic`."""
    return write_geojson_atomic(document, out_path)
