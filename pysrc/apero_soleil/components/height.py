"""
Terrace height component.

Registry coordinates are imprecise and often land on a building footprint
next to the sidewalk where the terrace really is. Taking the MINIMUM DSM
height within a small buffer biases the estimate toward street level; the
mean or the value at the exact point would put such terraces on a roof.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

import numpy as np

from ..errors import OutOfCoverageError

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from ..models.surface import DsmRaster
    from ..models.terrace import Terrace


def buffer_samples(dsm: DsmRaster, x: float, y: float, radius: float) -> NDArray[np.floating]:
    """
    DSM heights of all cells within ``radius`` of (x, y).

    A cell belongs to the buffer when its centre lies within the radius; the
    cell containing the point always belongs, so a radius smaller than half
    a pixel still samples one cell. Cells outside the grid and nodata cells
    are left out.

    Returns:
        1-D array of finite heights (possibly empty).
    """
    (row0,), (col0,) = dsm.rowcol([x], [y])
    reach = int(math.ceil(radius / dsm.pixel_size)) + 1
    n_rows, n_cols = dsm.shape

    r_lo, r_hi = max(row0 - reach, 0), min(row0 + reach + 1, n_rows)
    c_lo, c_hi = max(col0 - reach, 0), min(col0 + reach + 1, n_cols)
    if r_lo >= r_hi or c_lo >= c_hi:
        return np.empty(0, dtype=np.float64)

    rows, cols = np.mgrid[r_lo:r_hi, c_lo:c_hi]
    cx, cy = dsm.cell_center(rows, cols)
    within = np.hypot(cx - x, cy - y) <= radius
    within |= (rows == row0) & (cols == col0)

    values = dsm.data[r_lo:r_hi, c_lo:c_hi][within].astype(np.float64)
    return values[np.isfinite(values)]


def resolve_terrace_height(dsm: DsmRaster, terrace: Terrace, radius: float) -> float:
    """
    Representative seating height of a terrace: the buffer minimum.

    Args:
        dsm: Height raster.
        terrace: Terrace with projected coordinates.
        radius: Buffer radius in metres.

    Returns:
        Minimum DSM height in the buffer (m).

    Raises:
        OutOfCoverageError: If no finite DSM cell falls in the buffer.
        ValueError: If the terrace has not been projected.
    """
    if not terrace.is_projected:
        raise ValueError(f"Terrace '{terrace.id}' has no projected coordinates")

    values = buffer_samples(dsm, terrace.x, terrace.y, radius)
    if values.size == 0:
        raise OutOfCoverageError(terrace.id, terrace.latitude, terrace.longitude)
    return float(values.min())
