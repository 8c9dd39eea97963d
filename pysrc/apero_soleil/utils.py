"""Geographic helpers shared by the reader and the aggregator."""

from __future__ import annotations

import math

EARTH_RADIUS_KM = 6371.0

# 1e-7 degrees is about 1 cm at Paris latitude, well below DSM resolution
COORD_DECIMALS = 7


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Great-circle distance between two WGS84 points.

    Args:
        lat1, lon1: First point in degrees.
        lat2, lon2: Second point in degrees.

    Returns:
        Distance in kilometres.
    """
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def normalise_bbox(sw_lng: float, sw_lat: float, ne_lng: float, ne_lat: float) -> tuple[float, float, float, float]:
    """
    Validate a south-west / north-east bounding box.

    Returns:
        (sw_lng, sw_lat, ne_lng, ne_lat) as floats.

    Raises:
        ValueError: If any value is NaN or the corners are inverted.
    """
    values = tuple(float(v) for v in (sw_lng, sw_lat, ne_lng, ne_lat))
    if any(math.isnan(v) for v in values):
        raise ValueError("Bounding box values must be numbers")
    sw_lng, sw_lat, ne_lng, ne_lat = values
    if sw_lng > ne_lng or sw_lat > ne_lat:
        raise ValueError(
            f"Bounding box corners are inverted: south-west ({sw_lng}, {sw_lat}) vs north-east ({ne_lng}, {ne_lat})"
        )
    return sw_lng, sw_lat, ne_lng, ne_lat


def point_in_bbox(lon: float, lat: float, bbox: tuple[float, float, float, float]) -> bool:
    """Return True when (lon, lat) lies inside the bbox, edges included."""
    sw_lng, sw_lat, ne_lng, ne_lat = bbox
    return sw_lng <= lon <= ne_lng and sw_lat <= lat <= ne_lat


def round_coord(value: float) -> float:
    """Round a WGS84 coordinate for output."""
    return round(float(value), COORD_DECIMALS)
