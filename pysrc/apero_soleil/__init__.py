"""Apéro Soleil - which Paris terraces are in the sun.

A batch engine that classifies every outdoor terrace of a registry as
sunlit or shaded for each half-hour slot of a day, by marching rays toward
the sun over a digital surface model and filtering the result by cloud
cover. The output is a GeoJSON FeatureCollection with one boolean property
per slot (``t0900``, ``t0930``, ...), served to the map front end as is.

Quick start::

    import apero_soleil

    config = apero_soleil.load_config(
        dsm_path="paris_dsm.tif",
        terraces_path="terraces.geojson",
        date="2025-06-21",
    )
    summary = apero_soleil.run(config)
    print(summary.report())

Reading results::

    features = apero_soleil.reader.load_features("sunlight_results.geojson")
    sunny = apero_soleil.reader.sunlit_at(features, "18:30")
"""

from importlib.metadata import PackageNotFoundError, version

# Version: single source of truth is pyproject.toml
try:
    __version__ = version("apero-soleil")
except PackageNotFoundError:
    __version__ = "0.0.0.dev0"  # Fallback for editable/source installs without metadata

from . import io, progress, reader  # noqa: E402
from .config import load_config  # noqa: E402
from .errors import (  # noqa: E402
    AperoSoleilError,
    ConfigurationError,
    InputNotFoundError,
    InvalidRasterError,
    OutOfCoverageError,
    SerializationError,
    WeatherLookupError,
)
from .metadata import create_run_metadata, load_run_metadata, save_run_metadata  # noqa: E402
from .models import (  # noqa: E402
    Classification,
    DsmRaster,
    EngineConfig,
    Location,
    Obstruction,
    RayResult,
    SlotConditions,
    SunPosition,
    Terrace,
    TerraceResult,
)
from .runner import classify_terrace, run  # noqa: E402
from .summary import RunSummary  # noqa: E402
from .timeslots import TimeSlot, generate_time_slots  # noqa: E402

__all__ = [
    "__version__",
    # Entry points
    "run",
    "load_config",
    "classify_terrace",
    "RunSummary",
    # Modules
    "io",
    "progress",
    "reader",
    # Models
    "EngineConfig",
    "DsmRaster",
    "Terrace",
    "Location",
    "SunPosition",
    "SlotConditions",
    "Obstruction",
    "RayResult",
    "Classification",
    "TerraceResult",
    "TimeSlot",
    "generate_time_slots",
    # Provenance
    "create_run_metadata",
    "save_run_metadata",
    "load_run_metadata",
    # Errors
    "AperoSoleilError",
    "InputNotFoundError",
    "InvalidRasterError",
    "OutOfCoverageError",
    "WeatherLookupError",
    "SerializationError",
    "ConfigurationError",
]
