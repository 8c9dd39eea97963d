"""Input loading and output writing.

Readers raise :class:`~apero_soleil.errors.InputNotFoundError` for anything
that makes the whole run impossible; the GeoJSON writer raises
:class:`~apero_soleil.errors.SerializationError` and never leaves a
half-written file behind.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd
import rasterio
from rasterio.errors import RasterioIOError
from shapely.geometry import shape

from .errors import InputNotFoundError, InvalidRasterError, SerializationError
from .models.surface import DsmRaster
from .models.terrace import Terrace
from .soleil_logging import get_logger

logger = get_logger(__name__)

CSV_SUFFIXES = {".csv", ".txt"}
GEOJSON_SUFFIXES = {".geojson", ".json"}


def check_path(path_str: str | Path, make_dir: bool = False) -> Path:
    """
    Resolve a file path, optionally creating its parent directory.

    Raises:
        OSError: If the parent directory is missing and ``make_dir`` is False.
    """
    path = Path(path_str).absolute()
    if not path.parent.exists():
        if make_dir:
            path.parent.mkdir(parents=True, exist_ok=True)
        else:
            raise OSError(f"Parent directory {path.parent} does not exist for path {path}. Set make_dir=True to create it.")
    return path


# =============================================================================
# DSM
# =============================================================================


def load_dsm(path_str: str | Path, band: int = 1) -> DsmRaster:
    """
    Load a DSM GeoTIFF.

    Args:
        path_str: Path to the raster file.
        band: 1-based band index.

    Returns:
        DsmRaster with nodata replaced by NaN.

    Raises:
        InputNotFoundError: If the file is missing or cannot be opened.
        InvalidRasterError: If the raster is rotated, empty, or not in a projected CRS.
    """
    path = Path(path_str)
    if not path.exists():
        raise InputNotFoundError("dsm", path)

    try:
        with rasterio.open(path) as dataset:
            if band < 1 or band > dataset.count:
                raise InvalidRasterError(path, f"band {band} out of range; raster has {dataset.count} band(s)")
            trf = dataset.transform
            transform = [trf.c, trf.a, trf.b, trf.f, trf.d, trf.e]
            crs_wkt = dataset.crs.to_wkt() if dataset.crs is not None else None
            no_data_val = dataset.nodata
            rast_arr = dataset.read(band)
    except RasterioIOError as err:
        raise InputNotFoundError("dsm", path, str(err)) from err

    if np.issubdtype(rast_arr.dtype, np.floating):
        if rast_arr.dtype == np.float64:
            rast_arr = rast_arr.astype(np.float32)
    else:
        rast_arr = rast_arr.astype(np.float32)

    # Handle no-data (support NaN)
    if no_data_val is not None and not np.isnan(no_data_val):
        n_nodata = int(np.count_nonzero(rast_arr == no_data_val))
        if n_nodata:
            logger.info(f"No-data value is {no_data_val}, replacing {n_nodata} cells with NaN")
        rast_arr[rast_arr == no_data_val] = np.nan

    dsm = DsmRaster(data=rast_arr, transform=transform, crs=crs_wkt or "", path=str(path))
    rows, cols = dsm.shape
    logger.info(f"Loaded DSM {path.name}: {rows}×{cols} pixels at {dsm.pixel_size:g} m")
    return dsm


def save_dsm(out_path_str: str | Path, data_arr: np.ndarray, trf_arr: list[float], crs: str, no_data_val: float = -9999):
    """
    Save a height grid as a single-band float32 GeoTIFF.

    Used to export cropped DSMs and to build fixtures.

    Args:
        out_path_str: Output file path.
        data_arr: 2D height array (NaN for nodata).
        trf_arr: GDAL-style geotransform.
        crs: CRS as WKT or EPSG string.
        no_data_val: Value written in place of NaN.
    """
    from rasterio.transform import Affine

    out_path = check_path(out_path_str, make_dir=True)
    data = np.where(np.isnan(data_arr), no_data_val, data_arr).astype(np.float32)
    height, width = data.shape
    with rasterio.open(
        out_path,
        "w",
        driver="GTiff",
        height=height,
        width=width,
        count=1,
        dtype=data.dtype,
        crs=crs,
        transform=Affine.from_gdal(*trf_arr),
        nodata=no_data_val,
    ) as dst:
        dst.write(data, 1)
    logger.debug(f"Saved DSM: {out_path}")


# =============================================================================
# Terrace registry
# =============================================================================


def _feature_id(properties: dict[str, Any], id_field: str) -> str | None:
    value = properties.get(id_field)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _terraces_from_geojson(path: Path, id_field: str) -> list[Terrace]:
    try:
        with open(path, encoding="utf-8") as f:
            document = json.load(f)
    except (OSError, json.JSONDecodeError) as err:
        raise InputNotFoundError("terraces", path, str(err)) from err

    features = document.get("features") if isinstance(document, dict) else None
    if not isinstance(features, list):
        raise InputNotFoundError("terraces", path, "not a GeoJSON FeatureCollection")

    terraces = []
    for index, feature in enumerate(features):
        properties = feature.get("properties") or {}
        terrace_id = _feature_id(properties, id_field)
        geometry = feature.get("geometry")
        if terrace_id is None or not geometry:
            logger.warning(f"Skipping feature #{index}: missing '{id_field}' or geometry")
            continue
        try:
            geom = shape(geometry)
        except (ValueError, TypeError, AttributeError) as err:
            logger.warning(f"Skipping feature '{terrace_id}': invalid geometry ({err})")
            continue
        if geom.is_empty:
            logger.warning(f"Skipping feature '{terrace_id}': empty geometry")
            continue
        point = geom if geom.geom_type == "Point" else geom.centroid
        try:
            terraces.append(Terrace(id=terrace_id, latitude=point.y, longitude=point.x))
        except ValueError as err:
            logger.warning(f"Skipping feature '{terrace_id}': {err}")
    return terraces


def _terraces_from_csv(path: Path, id_field: str) -> list[Terrace]:
    try:
        df = pd.read_csv(path, dtype={id_field: str})
    except (OSError, pd.errors.ParserError, pd.errors.EmptyDataError) as err:
        raise InputNotFoundError("terraces", path, str(err)) from err

    missing = [col for col in (id_field, "lat", "lon") if col not in df.columns]
    if missing:
        raise InputNotFoundError("terraces", path, f"missing column(s): {', '.join(missing)}")

    terraces = []
    for index, row in df.iterrows():
        terrace_id = row[id_field]
        lat, lon = row["lat"], row["lon"]
        if pd.isna(terrace_id) or pd.isna(lat) or pd.isna(lon) or not str(terrace_id).strip():
            logger.warning(f"Skipping CSV row {index}: missing id or coordinates")
            continue
        try:
            terraces.append(Terrace(id=str(terrace_id).strip(), latitude=float(lat), longitude=float(lon)))
        except ValueError as err:
            logger.warning(f"Skipping CSV row {index}: {err}")
    return terraces


def load_terraces(path_str: str | Path, id_field: str = "id") -> tuple[list[Terrace], int]:
    """
    Load the terrace registry.

    GeoJSON features may carry any geometry; non-point geometries (e.g. the
    polygons of the Paris terrace permits dataset) are reduced to their
    centroid. CSV files need ``id_field``, ``lat`` and ``lon`` columns.
    Duplicate ids keep their first occurrence.

    Args:
        path_str: Registry path (``.geojson``/``.json`` or ``.csv``).
        id_field: Property or column holding the terrace id.

    Returns:
        Tuple of (terraces in file order, number of duplicate ids dropped).

    Raises:
        InputNotFoundError: If the file is missing, unreadable, or has the wrong structure.
    """
    path = Path(path_str)
    if not path.exists():
        raise InputNotFoundError("terraces", path)

    suffix = path.suffix.lower()
    if suffix in CSV_SUFFIXES:
        terraces = _terraces_from_csv(path, id_field)
    elif suffix in GEOJSON_SUFFIXES:
        terraces = _terraces_from_geojson(path, id_field)
    else:
        raise InputNotFoundError("terraces", path, f"unsupported registry format '{suffix}'")

    unique: dict[str, Terrace] = {}
    duplicates = 0
    for terrace in terraces:
        if terrace.id in unique:
            duplicates += 1
            logger.warning(f"Duplicate terrace id '{terrace.id}', keeping the first occurrence")
            continue
        unique[terrace.id] = terrace

    logger.info(f"Loaded {len(unique)} terraces from {path.name}")
    return list(unique.values()), duplicates


# =============================================================================
# Interchange GeoJSON
# =============================================================================


def _json_default(value: Any) -> Any:
    if isinstance(value, np.bool_):
        return bool(value)
    if isinstance(value, np.integer):
        return int(value)
    if isinstance(value, np.floating):
        return float(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def dumps_geojson(document: dict) -> str:
    """Serialize deterministically: fixed key order from the builder, no NaN."""
    return json.dumps(document, ensure_ascii=False, separators=(",", ":"), allow_nan=False, default=_json_default)


def write_geojson_atomic(document: dict, out_path_str: str | Path) -> Path:
    """
    Write a GeoJSON document through a temporary file and an atomic rename.

    The document is serialized in memory first, so encoding errors surface
    before anything touches the disk.

    Raises:
        SerializationError: On encoding or filesystem errors.
    """
    try:
        text = dumps_geojson(document)
    except (TypeError, ValueError) as err:
        raise SerializationError(out_path_str, f"cannot encode document: {err}") from err

    tmp_name = None
    try:
        out_path = check_path(out_path_str, make_dir=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{out_path.name}.", suffix=".tmp", dir=out_path.parent)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, out_path)
    except OSError as err:
        if tmp_name is not None and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise SerializationError(out_path_str, str(err)) from err

    logger.info(f"Wrote {len(document.get('features', []))} features to {out_path}")
    return out_path


def read_geojson(path_str: str | Path) -> dict:
    """
    Read an interchange GeoJSON file.

    Raises:
        InputNotFoundError: If missing, not JSON, or not a FeatureCollection.
    """
    path = Path(path_str)
    if not path.exists():
        raise InputNotFoundError("results", path)
    try:
        with open(path, encoding="utf-8") as f:
            document = json.load(f)
    except (OSError, json.JSONDecodeError) as err:
        raise InputNotFoundError("results", path, str(err)) from err
    if not isinstance(document, dict) or not isinstance(document.get("features"), list):
        raise InputNotFoundError("results", path, "invalid GeoJSON structure")
    return document
