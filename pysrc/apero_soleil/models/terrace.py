"""Terrace data model."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass


@dataclass(frozen=True)
class Terrace:
    """
    An outdoor terrace from the registry.

    Instances are immutable: projection and height resolution return
    enriched copies, so worker threads never mutate shared state.

    Attributes:
        id: Stable unique identifier (the street address in the Paris registry).
        latitude: WGS84 latitude in degrees.
        longitude: WGS84 longitude in degrees.
        x: Easting in the DSM CRS (set by projection).
        y: Northing in the DSM CRS (set by projection).
        resolved_height: Representative ground height in metres (set by the height resolver).
    """

    id: str
    latitude: float
    longitude: float
    x: float | None = None
    y: float | None = None
    resolved_height: float | None = None

    def __post_init__(self):
        if not self.id:
            raise ValueError("Terrace id must be a non-empty string")
        if not -90 <= self.latitude <= 90:
            raise ValueError(f"Latitude must be in [-90, 90], got {self.latitude}")
        if not -180 <= self.longitude <= 180:
            raise ValueError(f"Longitude must be in [-180, 180], got {self.longitude}")

    @property
    def is_projected(self) -> bool:
        return self.x is not None and self.y is not None

    def with_projection(self, x: float, y: float) -> Terrace:
        return dataclasses.replace(self, x=float(x), y=float(y))

    def with_height(self, height: float) -> Terrace:
        return dataclasses.replace(self, resolved_height=float(height))
