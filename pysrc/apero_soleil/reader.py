"""
Read interface over the interchange GeoJSON.

These helpers are what a serving layer needs: load the file once, then
filter by viewport, by slot or by distance. They only rely on the output
schema (``id``, point geometry, one boolean per ``tHHMM`` key) and never on
how the file was produced.

Example:
    >>> features = load_features("sunlight_results.geojson")
    >>> visible = filter_by_bbox(features, 2.33, 48.85, 2.36, 48.87)
    >>> sunny = sunlit_at(visible, "18:30")
    >>> nearby = find_nearby(features, 48.8566, 2.3522, radius_km=0.5, slot="t1830", only_sunny=True)
"""

from __future__ import annotations

import copy
from pathlib import Path

from .io import read_geojson
from .timeslots import is_slot_key, parse_clock, parse_slot_key, slot_key
from .utils import haversine_km, normalise_bbox, point_in_bbox

DEFAULT_NEARBY_RADIUS_KM = 0.5


def load_features(path: str | Path) -> list[dict]:
    """
    Features of an interchange file.

    Raises:
        InputNotFoundError: If the file is missing or not a FeatureCollection.
    """
    return read_geojson(path)["features"]


def _lonlat(feature: dict) -> tuple[float, float]:
    lon, lat = feature["geometry"]["coordinates"][:2]
    return float(lon), float(lat)


def normalise_slot(slot: str) -> str:
    """Accept ``tHHMM`` or ``HH:MM`` and return the ``tHHMM`` key."""
    if is_slot_key(slot):
        return slot
    return slot_key(parse_clock(slot))


def available_time_slots(features: list[dict]) -> list[str]:
    """Slot keys present in any feature, in chronological order."""
    keys = {key for feature in features for key in feature.get("properties", {}) if is_slot_key(key)}
    return sorted(keys, key=parse_slot_key)


def filter_by_bbox(features: list[dict], sw_lng: float, sw_lat: float, ne_lng: float, ne_lat: float) -> list[dict]:
    """
    Features inside a south-west / north-east box, edges included.

    Raises:
        ValueError: If the box is malformed.
    """
    bbox = normalise_bbox(sw_lng, sw_lat, ne_lng, ne_lat)
    return [f for f in features if point_in_bbox(*_lonlat(f), bbox)]


def sunlit_at(features: list[dict], slot: str) -> list[dict]:
    """
    Features whose final classification for ``slot`` is sunlit.

    Raises:
        ValueError: If ``slot`` is not one of the file's time slots.
    """
    key = normalise_slot(slot)
    if features and key not in available_time_slots(features):
        raise ValueError(f"Time slot '{slot}' is not in the results")
    return [f for f in features if f["properties"].get(key) is True]


def find_nearby(
    features: list[dict],
    latitude: float,
    longitude: float,
    radius_km: float = DEFAULT_NEARBY_RADIUS_KM,
    slot: str | None = None,
    only_sunny: bool = False,
) -> list[dict]:
    """
    Features within ``radius_km`` of a point, nearest first.

    Returned features are copies with an added ``distance_from_search``
    property (km).

    Args:
        features: Interchange features.
        latitude: Search point latitude.
        longitude: Search point longitude.
        radius_km: Search radius in kilometres.
        slot: Time slot used with ``only_sunny``.
        only_sunny: Keep only features sunlit at ``slot``.

    Raises:
        ValueError: If ``only_sunny`` is set without a slot, or the radius is negative.
    """
    if radius_km < 0:
        raise ValueError(f"radius_km must be >= 0, got {radius_km}")
    if only_sunny:
        if slot is None:
            raise ValueError("only_sunny requires a time slot")
        features = sunlit_at(features, slot)

    matches = []
    for feature in features:
        lon, lat = _lonlat(feature)
        distance = haversine_km(latitude, longitude, lat, lon)
        if distance <= radius_km:
            matches.append((distance, feature))
    matches.sort(key=lambda item: item[0])

    nearby = []
    for distance, feature in matches:
        feature = copy.deepcopy(feature)
        feature["properties"]["distance_from_search"] = distance
        nearby.append(feature)
    return nearby


def get_terrace(features: list[dict], terrace_id: str) -> dict | None:
    """Feature with the given id, or None."""
    for feature in features:
        if feature.get("properties", {}).get("id") == terrace_id:
            return feature
    return None


def terrace_timeline(feature: dict) -> list[tuple[str, bool]]:
    """``(slot key, is_sunlit)`` pairs of one feature, in chronological order."""
    properties = feature["properties"]
    keys = sorted((key for key in properties if is_slot_key(key)), key=parse_slot_key)
    return [(key, bool(properties[key])) for key in keys]


def sunshine_counts(features: list[dict]) -> dict[str, int]:
    """Number of sunlit features per slot."""
    return {key: sum(1 for f in features if f["properties"].get(key) is True) for key in available_time_slots(features)}
