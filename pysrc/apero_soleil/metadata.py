"""Run metadata and provenance tracking."""

from __future__ import annotations

import hashlib
import json
import os
import tempfile
from datetime import datetime as dt
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np

from .errors import SerializationError

if TYPE_CHECKING:
    from .models import DsmRaster, EngineConfig, Location
    from .summary import RunSummary

METADATA_FILENAME = "run_metadata.json"


def compute_array_hash(arr: np.ndarray, *, sample_size: int = 10000) -> str:
    """
    Compute a fast hash of a numpy array.

    Uses a combination of shape, dtype, and sampled values for speed.
    For large arrays, samples evenly spaced values rather than hashing everything.

    Args:
        arr: Numpy array to hash.
        sample_size: Maximum number of values to sample for hashing.

    Returns:
        Hex string hash.
    """
    hasher = hashlib.sha256()
    hasher.update(str(arr.shape).encode())
    hasher.update(str(arr.dtype).encode())

    flat = arr.ravel()
    if len(flat) <= sample_size:
        hasher.update(flat.tobytes())
    else:
        indices = np.linspace(0, len(flat) - 1, sample_size, dtype=np.int64)
        hasher.update(flat[indices].tobytes())

    return hasher.hexdigest()[:16]


def compute_file_hash(path: str | Path, chunk_size: int = 1 << 20) -> str:
    """SHA-256 of a file's bytes, first 16 hex characters."""
    hasher = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            hasher.update(chunk)
    return hasher.hexdigest()[:16]


def create_run_metadata(
    config: EngineConfig,
    dsm: DsmRaster,
    location: Location,
    summary: RunSummary,
    weather_source: str,
) -> dict:
    """
    Create run metadata dictionary for provenance tracking.

    Args:
        config: Configuration of the run.
        dsm: Raster used for the run.
        location: Reference location for sun and weather.
        summary: Completed run summary.
        weather_source: Provider actually used for cloud cover.

    Returns:
        Dictionary containing run metadata.
    """
    from . import __version__

    return {
        "apero_soleil_version": __version__,
        "run_timestamp": dt.now().isoformat(),
        "grid": {
            "rows": dsm.shape[0],
            "cols": dsm.shape[1],
            "pixel_size": dsm.pixel_size,
            "bounds": list(dsm.bounds),
            "hash": compute_array_hash(np.asarray(dsm.data)),
        },
        "inputs": {
            "dsm": {"path": config.dsm_path, "sha256": compute_file_hash(config.dsm_path)},
            "terraces": {"path": config.terraces_path, "sha256": compute_file_hash(config.terraces_path)},
        },
        "location": {
            "latitude": location.latitude,
            "longitude": location.longitude,
            "timezone": location.timezone,
        },
        "weather_source": weather_source,
        "config": config.to_dict(),
        "summary": summary.to_dict(),
    }


def save_run_metadata(metadata: dict, output_dir: str | Path, filename: str = METADATA_FILENAME) -> Path:
    """
    Save run metadata to JSON file.

    Args:
        metadata: Metadata dictionary from create_run_metadata().
        output_dir: Output directory.
        filename: Filename for metadata JSON (default: run_metadata.json).

    Returns:
        Path to saved metadata file.

    Raises:
        SerializationError: If the file cannot be written.
    """
    metadata_path = Path(output_dir) / filename
    tmp_name = None
    try:
        fd, tmp_name = tempfile.mkstemp(prefix=f".{filename}.", suffix=".tmp", dir=metadata_path.parent)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(metadata, f, indent=2)
        os.replace(tmp_name, metadata_path)
    except OSError as err:
        if tmp_name is not None and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise SerializationError(metadata_path, str(err)) from err
    return metadata_path


def load_run_metadata(metadata_path: str | Path) -> dict:
    """
    Load run metadata from JSON file.

    Args:
        metadata_path: Path to metadata JSON file.

    Returns:
        Metadata dictionary.
    """
    with open(metadata_path, encoding="utf-8") as f:
        return json.load(f)
