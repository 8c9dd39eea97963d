"""Location, sun position and per-slot weather models."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class Location:
    """
    Reference location for sun position and cloud cover.

    One fixed point (the city centre) stands in for the whole area: the sun
    angle varies by far less than the DSM can resolve across Paris, and
    cloud cover is only known at a coarse grid anyway.

    Attributes:
        latitude: Latitude in degrees (north positive).
        longitude: Longitude in degrees (east positive).
        timezone: IANA timezone of local wall-clock times.
        altitude: Altitude above sea level in meters. Default 35 (Paris).
    """

    latitude: float
    longitude: float
    timezone: str = "Europe/Paris"
    altitude: float = 35.0

    def __post_init__(self):
        if not -90 <= self.latitude <= 90:
            raise ValueError(f"Latitude must be in [-90, 90], got {self.latitude}")
        if not -180 <= self.longitude <= 180:
            raise ValueError(f"Longitude must be in [-180, 180], got {self.longitude}")


@dataclass(frozen=True)
class SunPosition:
    """
    Solar angles for one instant.

    Attributes:
        azimuth: Degrees clockwise from north, in [0, 360).
        altitude: Degrees above the horizon; <= 0 means night.
    """

    azimuth: float
    altitude: float

    @property
    def is_up(self) -> bool:
        """Check if sun is above horizon."""
        return self.altitude > 0


@dataclass(frozen=True)
class SlotConditions:
    """
    Shared, precomputed inputs for one time slot.

    Built once per run before the terrace loop and read by every worker.

    Attributes:
        key: Slot key (``tHHMM``).
        sun: Sun position at the reference location.
        cloud_cover: Cloud cover in percent used for the filter.
        weather_adjusted: False when cloud cover could not be looked up and
            0 % was assumed.
    """

    key: str
    sun: SunPosition
    cloud_cover: float = 0.0
    weather_adjusted: bool = True
