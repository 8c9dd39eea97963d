"""
Batch orchestration.

One run classifies every terrace of the registry for every slot of one day:

1. Load the DSM and the registry (fatal on failure).
2. Project terrace coordinates into the DSM CRS (single-threaded).
3. Build the per-slot table of sun position and cloud cover once.
4. Classify terraces in a thread pool. Workers share the read-only DSM and
   slot table; a failing terrace is logged, counted and excluded.
5. Reduce to the interchange GeoJSON in registry order and write it atomically.
"""

from __future__ import annotations

import math
import os
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import TYPE_CHECKING

import numpy as np

from .components.aggregate import build_feature_collection, write_results
from .components.height import resolve_terrace_height
from .components.raytrace import ray_distances, trace_ray
from .components.solar import compute_sun_positions
from .components.weather import apply_cloud_filter, build_slot_conditions, make_provider
from .errors import OutOfCoverageError
from .io import load_dsm, load_terraces
from .metadata import create_run_metadata, save_run_metadata
from .models.results import Classification, TerraceResult
from .models.weather import Location
from .progress import ProgressReporter
from .soleil_logging import get_logger
from .summary import DUPLICATE_ID, OUT_OF_COVERAGE, TERRACE_FAILURE, RunSummary
from .timeslots import generate_time_slots

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from .models.config import EngineConfig
    from .models.surface import DsmRaster
    from .models.terrace import Terrace
    from .models.weather import SlotConditions

logger = get_logger(__name__)

_MAX_AUTO_WORKERS = 8


def _resolve_workers(workers: int | None, n_terraces: int) -> int:
    """Resolve worker count for the terrace pool."""
    if n_terraces <= 0:
        return 1
    if workers is not None and workers < 1:
        raise ValueError(f"workers must be >= 1, got {workers}")
    if workers is None:
        cpu_count = os.cpu_count() or 2
        workers = max(2, min(_MAX_AUTO_WORKERS, cpu_count // 2))
    return max(1, min(workers, n_terraces))


def project_terraces(dsm: DsmRaster, terraces: list[Terrace], summary: RunSummary | None = None) -> list[Terrace]:
    """
    Attach DSM-CRS coordinates to every terrace.

    Runs on the calling thread: the raster's pyproj transformers are not
    shared with the workers. Terraces whose coordinates cannot be projected
    are reported as out of coverage.
    """
    if not terraces:
        return []
    xs, ys = dsm.project([t.longitude for t in terraces], [t.latitude for t in terraces])

    projected = []
    for terrace, x, y in zip(terraces, np.atleast_1d(xs), np.atleast_1d(ys)):
        if not (math.isfinite(x) and math.isfinite(y)):
            logger.warning(str(OutOfCoverageError(terrace.id, terrace.latitude, terrace.longitude)))
            if summary is not None:
                summary.record_error(OUT_OF_COVERAGE, terrace.id)
            continue
        projected.append(terrace.with_projection(x, y))
    return projected


def classify_terrace(
    terrace: Terrace,
    dsm: DsmRaster,
    slot_table: dict[str, SlotConditions],
    config: EngineConfig,
    distances: NDArray[np.floating] | None = None,
) -> TerraceResult:
    """
    Full day timeline of one terrace.

    Slots with the sun at or below the horizon are shaded without tracing.

    Raises:
        OutOfCoverageError: If the height buffer has no DSM coverage.
    """
    if distances is None:
        distances = ray_distances(config.ray_step_m, config.max_ray_distance_m)

    height = resolve_terrace_height(dsm, terrace, config.height_buffer_m)
    terrace = terrace.with_height(height)

    classifications = []
    for key, conditions in slot_table.items():
        if not conditions.sun.is_up:
            classifications.append(Classification(slot=key, is_sunlit=False, geometric_sunlit=False))
            continue

        ray = trace_ray(
            dsm,
            terrace.x,
            terrace.y,
            height,
            conditions.sun,
            step=config.ray_step_m,
            max_distance=config.max_ray_distance_m,
            distances=distances,
        )
        final = apply_cloud_filter(ray.sunlit, conditions.cloud_cover, config.cloud_threshold_pct)
        classifications.append(
            Classification(
                slot=key,
                is_sunlit=final,
                geometric_sunlit=ray.sunlit,
                cloud_downgraded=ray.sunlit and not final,
                ray=ray,
            )
        )

    logger.debug(f"Terrace {terrace.id}: h={height:.2f} m, {sum(c.is_sunlit for c in classifications)} sunlit slots")
    return TerraceResult(terrace=terrace, classifications=classifications)


def classify_terraces(
    terraces: list[Terrace],
    dsm: DsmRaster,
    slot_table: dict[str, SlotConditions],
    config: EngineConfig,
    summary: RunSummary,
) -> list[TerraceResult]:
    """
    Classify terraces in parallel.

    numpy releases the GIL during the vectorised ray samples, so threads
    share the raster without copying it.

    Returns:
        Successful results in input order. Failures are counted in ``summary``.
    """
    if not terraces:
        return []

    distances = ray_distances(config.ray_step_m, config.max_ray_distance_m)
    n_workers = _resolve_workers(config.workers, len(terraces))
    logger.info(f"Classifying {len(terraces)} terraces × {len(slot_table)} slots with {n_workers} workers")

    progress = ProgressReporter(total=len(terraces), desc="Raytracing terraces", disable=not config.progress)
    results: dict[int, TerraceResult] = {}

    with ThreadPoolExecutor(max_workers=n_workers) as executor:
        futures = {
            executor.submit(classify_terrace, terrace, dsm, slot_table, config, distances): (index, terrace)
            for index, terrace in enumerate(terraces)
        }
        for future in as_completed(futures):
            index, terrace = futures[future]
            try:
                results[index] = future.result()
            except OutOfCoverageError as err:
                logger.warning(str(err))
                summary.record_error(OUT_OF_COVERAGE, terrace.id)
            except Exception as err:
                logger.warning(f"Terrace '{terrace.id}' failed and is excluded: {type(err).__name__}: {err}")
                summary.record_error(TERRACE_FAILURE, terrace.id)
            progress.update(1)

    progress.close()
    return [results[index] for index in sorted(results)]


def run(config: EngineConfig) -> RunSummary:
    """
    Run the batch engine.

    Args:
        config: Validated run configuration.

    Returns:
        RunSummary with counts by error kind and the output path.

    Raises:
        InputNotFoundError: If the DSM or the registry is missing or unusable.
        SerializationError: If the output or the run metadata cannot be written.

    Example:
        >>> config = load_config(dsm_path="dsm.tif", terraces_path="terraces.geojson", date="2025-06-21")
        >>> summary = run(config)
        >>> print(summary.report())
    """
    start = time.perf_counter()

    dsm = load_dsm(config.dsm_path)
    terraces, duplicates = load_terraces(config.terraces_path, config.terrace_id_field)

    summary = RunSummary(n_input=len(terraces))
    if duplicates:
        summary.error_counts[DUPLICATE_ID] += duplicates

    terraces = project_terraces(dsm, terraces, summary)

    slots = generate_time_slots(config.target_date, config.slot_start, config.slot_end, config.slot_interval_minutes)
    location = Location(config.reference_latitude, config.reference_longitude, config.timezone)
    sun_positions = compute_sun_positions(location, slots, config.use_refraction)
    provider = make_provider(config)
    weather_source = provider.name if provider is not None else "none"
    slot_table = build_slot_conditions(slots, sun_positions, provider, location, config.target_date)

    summary.n_slots = len(slot_table)
    summary.n_daylight_slots = sum(1 for cond in slot_table.values() if cond.sun.is_up)
    summary.weather_unadjusted_slots = [key for key, cond in slot_table.items() if not cond.weather_adjusted]
    logger.info(
        f"Slot table ready: {summary.n_slots} slots, {summary.n_daylight_slots} with sun, "
        f"weather source '{weather_source}'"
    )
    if summary.weather_unadjusted_slots:
        logger.warning(f"{len(summary.weather_unadjusted_slots)} slot(s) are not weather-adjusted")

    results = classify_terraces(terraces, dsm, slot_table, config, summary)
    summary.n_written = len(results)
    summary.n_sunlit = sum(result.sunlit_slots for result in results)

    excluded = summary.error_counts[OUT_OF_COVERAGE] + summary.error_counts[TERRACE_FAILURE]
    if excluded:
        logger.warning(f"{excluded} terrace(s) excluded from the output")

    document = build_feature_collection(results, config, slot_table, dsm, weather_source)
    summary.output_path = write_results(document, config.output_path)
    summary.elapsed_s = time.perf_counter() - start

    metadata = create_run_metadata(config, dsm, location, summary, weather_source)
    save_run_metadata(metadata, summary.output_path.parent)

    logger.info(summary.report())
    return summary
