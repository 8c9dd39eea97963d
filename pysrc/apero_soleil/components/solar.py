"""
Solar geometry component.

Computes sun azimuth and altitude at the reference location for every time
slot of the run, once, before the terrace loop. Uses the NREL solar
position algorithm as implemented by pvlib (hour angle, declination and
equation of time), with optional atmospheric refraction correction.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
import pandas as pd
from pvlib import solarposition

from ..models.weather import Location, SunPosition

if TYPE_CHECKING:
    from ..timeslots import TimeSlot


def compute_sun_positions(
    location: Location,
    slots: list[TimeSlot],
    use_refraction: bool = True,
) -> dict[str, SunPosition]:
    """
    Sun position for each slot.

    Pure function of its inputs: no I/O, deterministic.

    Args:
        location: Reference point and timezone of the slot wall-clock times.
        slots: Time slots (naive local datetimes).
        use_refraction: If True, altitude is the refraction-corrected
            apparent elevation; otherwise the geometric elevation.

    Returns:
        Slot key -> SunPosition, in slot order.
    """
    if not slots:
        return {}

    # Wall-clock slots inside a DST gap move to the end of the gap; repeated
    # wall-clock times at the autumn change take the first (summer time) instant.
    naive = pd.DatetimeIndex([slot.datetime for slot in slots])
    times = naive.tz_localize(
        location.timezone,
        ambiguous=np.ones(len(naive), dtype=bool),
        nonexistent="shift_forward",
    )
    solpos = solarposition.get_solarposition(
        times,
        latitude=location.latitude,
        longitude=location.longitude,
        altitude=location.altitude,
        method="nrel_numpy",
    )
    elevation = solpos["apparent_elevation"] if use_refraction else solpos["elevation"]

    return {
        slot.key: SunPosition(azimuth=float(azimuth) % 360.0, altitude=float(altitude))
        for slot, azimuth, altitude in zip(slots, solpos["azimuth"].to_numpy(), elevation.to_numpy(), strict=True)
    }


def compute_sun_position(location: Location, slot: TimeSlot, use_refraction: bool = True) -> SunPosition:
    """Single-slot convenience wrapper around :func:`compute_sun_positions`."""
    return compute_sun_positions(location, [slot], use_refraction)[slot.key]
