"""
Pipeline components.

Each module is one stage of the batch run:

- solar: sun azimuth and altitude per slot (pvlib)
- height: terrace height as the DSM minimum in a buffer
- raytrace: DSM ray march toward the sun
- weather: cloud cover lookup and the downgrade filter
- aggregate: GeoJSON FeatureCollection assembly and writing
"""

from .aggregate import build_feature, build_feature_collection, write_results
from .height import buffer_samples, resolve_terrace_height
from .raytrace import ray_distances, trace_ray
from .solar import compute_sun_position, compute_sun_positions
from .weather import (
    CloudCoverProvider,
    CsvCloudCoverProvider,
    OpenMeteoProvider,
    apply_cloud_filter,
    build_slot_conditions,
    make_provider,
    nearest_hour_cover,
)

__all__ = [
    "compute_sun_positions",
    "compute_sun_position",
    "buffer_samples",
    "resolve_terrace_height",
    "ray_distances",
    "trace_ray",
    "CloudCoverProvider",
    "OpenMeteoProvider",
    "CsvCloudCoverProvider",
    "make_provider",
    "nearest_hour_cover",
    "build_slot_conditions",
    "apply_cloud_filter",
    "build_feature",
    "build_feature_collection",
    "write_results",
]
