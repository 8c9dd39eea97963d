"""Digital surface model raster."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from functools import cached_property
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np
from pyproj import CRS, Transformer

from ..errors import InvalidRasterError
from ..soleil_logging import get_logger

if TYPE_CHECKING:
    from numpy.typing import ArrayLike, NDArray

logger = get_logger(__name__)

FLOAT_TOLERANCE = 1e-9
WGS84 = "EPSG:4326"


def _assert_north_up(transform: list[float], path: str) -> None:
    """Ensure the GDAL-style transform describes a north-up raster."""
    if len(transform) < 6:
        raise InvalidRasterError(path, "transform must contain 6 elements")
    if not math.isclose(transform[2], 0.0, abs_tol=FLOAT_TOLERANCE) or not math.isclose(
        transform[4], 0.0, abs_tol=FLOAT_TOLERANCE
    ):
        raise InvalidRasterError(path, "only north-up rasters (no rotation) are supported")
    if transform[1] <= 0 or transform[5] >= 0:
        raise InvalidRasterError(path, "expected positive pixel width and negative pixel height")


@dataclass
class DsmRaster:
    """
    Height raster shared read-only by every raytracing operation.

    Attributes:
        data: 2D height grid in metres. NaN marks nodata.
        transform: GDAL-style geotransform [x_origin, pixel_width, 0, y_origin, 0, -pixel_height].
        crs: CRS as WKT or any string pyproj accepts (e.g. "EPSG:2154"). Must be projected in metres.
        path: Source file, for messages only.

    Example:
        >>> dsm = DsmRaster(np.zeros((100, 100)), [650000.0, 0.5, 0, 6862000.0, 0, -0.5], "EPSG:2154")
        >>> dsm.sample(np.array([650010.0]), np.array([6861990.0]))
        array([0.])
    """

    data: NDArray[np.floating]
    transform: list[float]
    crs: str
    path: str = "<memory>"
    _to_raster: Transformer = field(init=False, repr=False)
    _to_wgs84: Transformer = field(init=False, repr=False)

    def __post_init__(self):
        data = np.asarray(self.data)
        if data.ndim != 2:
            raise InvalidRasterError(self.path, f"expected a 2D grid, got {data.ndim} dimensions")
        if data.size == 0:
            raise InvalidRasterError(self.path, "raster is empty")
        if not np.issubdtype(data.dtype, np.floating):
            data = data.astype(np.float32)
        # read-only view; the caller's array keeps its own flags
        data = data.view()
        data.flags.writeable = False
        self.data = data

        self.transform = [float(v) for v in self.transform]
        _assert_north_up(self.transform, self.path)

        if not self.crs:
            raise InvalidRasterError(self.path, "raster has no CRS; a projected CRS in metres is required")
        crs = CRS.from_user_input(self.crs)
        if not crs.is_projected:
            raise InvalidRasterError(self.path, "CRS is geographic; a projected CRS in metres is required")
        unit = crs.axis_info[0].unit_name if crs.axis_info else "metre"
        if unit not in ("metre", "meter"):
            raise InvalidRasterError(self.path, f"CRS linear unit is '{unit}'; metres are required")

        self._to_raster = Transformer.from_crs(WGS84, crs, always_xy=True)
        self._to_wgs84 = Transformer.from_crs(crs, WGS84, always_xy=True)

    @property
    def shape(self) -> tuple[int, int]:
        return self.data.shape

    @property
    def pixel_size(self) -> float:
        """Pixel width in metres."""
        return self.transform[1]

    @cached_property
    def max_height(self) -> float:
        """Highest finite DSM value (m); bounds how far any ray can be obstructed."""
        finite = self.data[np.isfinite(self.data)]
        if finite.size == 0:
            raise InvalidRasterError(self.path, "raster contains only nodata")
        return float(finite.max())

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        """(minx, miny, maxx, maxy) in raster CRS."""
        rows, cols = self.shape
        left = self.transform[0]
        top = self.transform[3]
        right = left + cols * self.transform[1]
        bottom = top + rows * self.transform[5]
        return left, bottom, right, top

    def rowcol(self, x: ArrayLike, y: ArrayLike) -> tuple[NDArray[np.int64], NDArray[np.int64]]:
        """
        Map projected coordinates to (row, col) indices of the containing cell.

        Indices outside the grid are returned as-is; use :meth:`in_bounds`.
        """
        x = np.asarray(x, dtype=np.float64)
        y = np.asarray(y, dtype=np.float64)
        cols = np.floor((x - self.transform[0]) / self.transform[1]).astype(np.int64)
        rows = np.floor((y - self.transform[3]) / self.transform[5]).astype(np.int64)
        return rows, cols

    def in_bounds(self, rows: NDArray[np.int64], cols: NDArray[np.int64]) -> NDArray[np.bool_]:
        n_rows, n_cols = self.shape
        return (rows >= 0) & (rows < n_rows) & (cols >= 0) & (cols < n_cols)

    def cell_center(self, rows: ArrayLike, cols: ArrayLike) -> tuple[NDArray[np.floating], NDArray[np.floating]]:
        """Projected coordinates of cell centres."""
        rows = np.asarray(rows, dtype=np.float64)
        cols = np.asarray(cols, dtype=np.float64)
        x = self.transform[0] + (cols + 0.5) * self.transform[1]
        y = self.transform[3] + (rows + 0.5) * self.transform[5]
        return x, y

    def sample(self, x: ArrayLike, y: ArrayLike) -> NDArray[np.floating]:
        """
        Nearest-cell heights at projected coordinates.

        Returns:
            Float64 heights, NaN outside the grid or on nodata cells.
        """
        rows, cols = self.rowcol(x, y)
        inside = self.in_bounds(rows, cols)
        heights = np.full(rows.shape, np.nan, dtype=np.float64)
        heights[inside] = self.data[rows[inside], cols[inside]]
        return heights

    def project(self, lon: ArrayLike, lat: ArrayLike) -> tuple[NDArray[np.floating], NDArray[np.floating]]:
        """WGS84 lon/lat to raster CRS x/y."""
        x, y = self._to_raster.transform(np.asarray(lon, dtype=np.float64), np.asarray(lat, dtype=np.float64))
        return np.asarray(x), np.asarray(y)

    def unproject(self, x: ArrayLike, y: ArrayLike) -> tuple[NDArray[np.floating], NDArray[np.floating]]:
        """Raster CRS x/y to WGS84 lon/lat."""
        lon, lat = self._to_wgs84.transform(np.asarray(x, dtype=np.float64), np.asarray(y, dtype=np.float64))
        return np.asarray(lon), np.asarray(lat)

    @classmethod
    def from_geotiff(cls, path: str | Path) -> DsmRaster:
        """Load a DSM GeoTIFF. See :func:`apero_soleil.io.load_dsm`."""
        from ..io import load_dsm

        return load_dsm(path)
