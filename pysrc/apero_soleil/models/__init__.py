"""Data models for Apéro Soleil runs.

Modules
-------
config
    ``EngineConfig``: every tunable of a batch run.
surface
    ``DsmRaster``: height grid, georeferencing and CRS transforms.
terrace
    ``Terrace``: registry point, enriched with projection and height.
weather
    ``Location``, ``SunPosition`` and ``SlotConditions`` (per-slot shared tables).
results
    ``Obstruction``, ``RayResult``, ``Classification``, ``TerraceResult``.
"""

from .config import EngineConfig
from .results import Classification, Obstruction, RayResult, TerraceResult
from .surface import DsmRaster
from .terrace import Terrace
from .weather import Location, SlotConditions, SunPosition

__all__ = [
    # Configuration
    "EngineConfig",
    # Inputs
    "DsmRaster",
    "Terrace",
    # Sun and weather
    "Location",
    "SunPosition",
    "SlotConditions",
    # Results
    "Obstruction",
    "RayResult",
    "Classification",
    "TerraceResult",
]
