"""
Shadow raytracing component.

Marches a straight ray from the terrace toward the sun over the DSM and
reports the first sample whose surface height reaches the ray:

1. Horizontal direction is the sun azimuth (terrace -> sun).
2. Samples are taken every ``step`` metres, from ``step`` up to ``max_distance``.
3. Ray height at distance d is ``h0 + d * tan(altitude)``.
4. A sample obstructs when ``dsm_height >= ray_height``. Ties count as
   shade; the comparison is evaluated for all samples at once and the
   nearest obstructing one is reported, so the result does not depend on
   evaluation order.
5. Samples outside the raster or on nodata never obstruct. When such a
   sample precedes the verdict of an unobstructed ray, the result carries
   ``partial_coverage=True`` so it can be told apart from a fully
   confirmed sunlit verdict.

The ray stops early once it clears the highest DSM value: nothing beyond
that distance can reach it.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

import numpy as np

from ..models.results import Obstruction, RayResult

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from ..models.surface import DsmRaster
    from ..models.weather import SunPosition

# Guards floor() against 300.0 / 0.1 landing on 2999.9999
_STEP_EPS = 1e-9


def ray_distances(step: float, max_distance: float) -> NDArray[np.floating]:
    """
    Sample distances ``step, 2*step, ...`` up to and including ``max_distance``.

    Raises:
        ValueError: If step <= 0 or max_distance < step.
    """
    if step <= 0:
        raise ValueError(f"step must be > 0, got {step}")
    if max_distance < step:
        raise ValueError(f"max_distance ({max_distance}) must be >= step ({step})")
    n_steps = int(math.floor(max_distance / step + _STEP_EPS))
    return np.arange(1, n_steps + 1, dtype=np.float64) * step


def clearance_distance(max_surface: float, height0: float, altitude_deg: float) -> float:
    """Distance beyond which the ray is above every DSM value."""
    if max_surface < height0:
        return 0.0
    return (max_surface - height0) / math.tan(math.radians(altitude_deg))


def trace_ray(
    dsm: DsmRaster,
    x0: float,
    y0: float,
    height0: float,
    sun: SunPosition,
    step: float = 1.0,
    max_distance: float = 300.0,
    distances: NDArray[np.floating] | None = None,
) -> RayResult:
    """
    Determine whether the straight path from a point to the sun is clear.

    Args:
        dsm: Height raster.
        x0, y0: Start point in the DSM CRS.
        height0: Start height (the terrace's resolved height), metres.
        sun: Sun position; altitude must be > 0.
        step: Sample spacing in metres.
        max_distance: Cut-off distance in metres.
        distances: Precomputed :func:`ray_distances` (shared across calls).

    Returns:
        RayResult with the first obstruction, if any.

    Raises:
        ValueError: If the sun is at or below the horizon. Night slots are
            shaded by definition and must not be traced.
    """
    if not sun.is_up:
        raise ValueError(f"Sun altitude {sun.altitude:.2f}° is not above the horizon; nothing to trace")

    if distances is None:
        distances = ray_distances(step, max_distance)

    tan_alt = math.tan(math.radians(sun.altitude))
    # one extra step absorbs rounding at the exact clearance distance
    reach = clearance_distance(dsm.max_height, height0, sun.altitude) + step
    if reach < distances[-1]:
        distances = distances[distances <= reach]
    if distances.size == 0:
        return RayResult(sunlit=True)

    azimuth = math.radians(sun.azimuth)
    xs = x0 + distances * math.sin(azimuth)
    ys = y0 + distances * math.cos(azimuth)

    surface = dsm.sample(xs, ys)
    ray_heights = height0 + distances * tan_alt

    covered = np.isfinite(surface)
    blocked = covered & (surface >= ray_heights)

    if not blocked.any():
        return RayResult(
            sunlit=True,
            partial_coverage=bool((~covered).any()),
            steps=int(covered.sum()),
        )

    first = int(np.argmax(blocked))
    obstruction = Obstruction(
        distance=float(distances[first]),
        height=float(surface[first]),
        ray_height=float(ray_heights[first]),
        x=float(xs[first]),
        y=float(ys[first]),
    )
    return RayResult(
        sunlit=False,
        obstruction=obstruction,
        partial_coverage=bool((~covered[:first]).any()),
        steps=int(covered[: first + 1].sum()),
    )
