"""Engine configuration."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, fields
from datetime import date as date_cls
from pathlib import Path

from ..errors import ConfigurationError
from ..soleil_logging import get_logger
from ..timeslots import parse_clock

logger = get_logger(__name__)

WEATHER_SOURCES = ("open-meteo", "open-meteo-archive", "csv", "none")


@dataclass
class EngineConfig:
    """
    Settings for one batch run.

    Groups every tunable of the pipeline in one typed object. Paths are kept
    as strings so the object serializes to JSON unchanged.

    Attributes:
        dsm_path: DSM GeoTIFF in a projected CRS (metres).
        terraces_path: Terrace registry, GeoJSON FeatureCollection or CSV.
        date: Target date, ISO ``YYYY-MM-DD``.
        output_path: Destination of the interchange GeoJSON.
        slot_start: First slot, ``HH:MM``.
        slot_end: Last slot (inclusive), ``HH:MM``.
        slot_interval_minutes: Slot spacing. Default 30.
        timezone: IANA zone of the slot wall-clock times. Default Europe/Paris.
        reference_latitude: Fixed reference point for sun and weather.
        reference_longitude: Fixed reference point for sun and weather.
        ray_step_m: Ray march step in metres. Default 1.0.
        max_ray_distance_m: Ray cut-off in metres. Documented range 200-500.
        height_buffer_m: Radius of the terrace height buffer. Documented range 1-3.
        cloud_threshold_pct: Cloud cover above which sun is downgraded. Documented range 70-80.
        use_refraction: Use refraction-corrected (apparent) sun altitude.
        weather_source: One of ``open-meteo``, ``open-meteo-archive``, ``csv``, ``none``.
        weather_path: CSV file for ``weather_source="csv"``.
        weather_timeout_s: HTTP timeout for weather requests.
        terrace_id_field: Registry property holding the terrace id.
        workers: Worker threads. If None, picks an adaptive default.
        verbose_output: Emit per-slot obstruction diagnostics.
        progress: Show a progress bar.

    Examples:
        >>> config = EngineConfig(dsm_path="dsm.tif", terraces_path="terraces.geojson", date="2025-06-21")
        >>> config.save("run.json")
        >>> EngineConfig.from_json("run.json").ray_step_m
        1.0
    """

    dsm_path: str
    terraces_path: str
    date: str
    output_path: str = "sunlight_results.geojson"
    slot_start: str = "09:00"
    slot_end: str = "21:00"
    slot_interval_minutes: int = 30
    timezone: str = "Europe/Paris"
    reference_latitude: float = 48.8566
    reference_longitude: float = 2.3522
    ray_step_m: float = 1.0
    max_ray_distance_m: float = 300.0
    height_buffer_m: float = 2.0
    cloud_threshold_pct: float = 75.0
    use_refraction: bool = True
    weather_source: str = "open-meteo"
    weather_path: str | None = None
    weather_timeout_s: float = 10.0
    terrace_id_field: str = "id"
    workers: int | None = None
    verbose_output: bool = False
    progress: bool = True

    def __post_init__(self):
        self.dsm_path = str(self.dsm_path)
        self.terraces_path = str(self.terraces_path)
        self.output_path = str(self.output_path)
        if self.weather_path is not None:
            self.weather_path = str(self.weather_path)
        self.validate()

    def validate(self) -> None:
        """
        Check value ranges and cross-field consistency.

        Raises:
            ConfigurationError: On the first invalid parameter.
        """
        try:
            date_cls.fromisoformat(str(self.date))
        except ValueError as err:
            raise ConfigurationError("date", f"expected YYYY-MM-DD, got {self.date!r}") from err

        try:
            start = parse_clock(self.slot_start)
        except ValueError as err:
            raise ConfigurationError("slot_start", str(err)) from err
        try:
            end = parse_clock(self.slot_end)
        except ValueError as err:
            raise ConfigurationError("slot_end", str(err)) from err
        if end < start:
            raise ConfigurationError("slot_end", f"{self.slot_end} is before slot_start {self.slot_start}")
        if self.slot_interval_minutes <= 0:
            raise ConfigurationError("slot_interval_minutes", f"must be > 0, got {self.slot_interval_minutes}")

        if not -90 <= self.reference_latitude <= 90:
            raise ConfigurationError("reference_latitude", f"must be in [-90, 90], got {self.reference_latitude}")
        if not -180 <= self.reference_longitude <= 180:
            raise ConfigurationError("reference_longitude", f"must be in [-180, 180], got {self.reference_longitude}")

        if self.ray_step_m <= 0:
            raise ConfigurationError("ray_step_m", f"must be > 0, got {self.ray_step_m}")
        if self.max_ray_distance_m < self.ray_step_m:
            raise ConfigurationError(
                "max_ray_distance_m", f"must be >= ray_step_m ({self.ray_step_m}), got {self.max_ray_distance_m}"
            )
        if self.height_buffer_m < 0:
            raise ConfigurationError("height_buffer_m", f"must be >= 0, got {self.height_buffer_m}")
        if not 0 <= self.cloud_threshold_pct <= 100:
            raise ConfigurationError("cloud_threshold_pct", f"must be in [0, 100], got {self.cloud_threshold_pct}")

        if self.weather_source not in WEATHER_SOURCES:
            raise ConfigurationError("weather_source", f"must be one of {WEATHER_SOURCES}, got {self.weather_source!r}")
        if self.weather_source == "csv" and not self.weather_path:
            raise ConfigurationError("weather_path", "required when weather_source is 'csv'")
        if self.weather_timeout_s <= 0:
            raise ConfigurationError("weather_timeout_s", f"must be > 0, got {self.weather_timeout_s}")

        if self.workers is not None and self.workers < 1:
            raise ConfigurationError("workers", f"must be >= 1, got {self.workers}")
        if not self.terrace_id_field:
            raise ConfigurationError("terrace_id_field", "must not be empty")

    @property
    def target_date(self) -> date_cls:
        return date_cls.fromisoformat(self.date)

    @classmethod
    def field_names(cls) -> set[str]:
        return {f.name for f in fields(cls)}

    @classmethod
    def from_dict(cls, values: dict) -> EngineConfig:
        """
        Build a config from a plain dict.

        Raises:
            ConfigurationError: On unknown keys or missing required values.
        """
        unknown = sorted(set(values) - cls.field_names())
        if unknown:
            raise ConfigurationError(unknown[0], f"unknown configuration key (valid: {sorted(cls.field_names())})")
        for required in ("dsm_path", "terraces_path", "date"):
            if values.get(required) in (None, ""):
                raise ConfigurationError(required, "is required")
        return cls(**values)

    @classmethod
    def from_json(cls, path: str | Path) -> EngineConfig:
        """Load a configuration saved with :meth:`save`."""
        with open(path, encoding="utf-8") as f:
            return cls.from_dict(json.load(f))

    def to_dict(self) -> dict:
        return asdict(self)

    def save(self, path: str | Path) -> None:
        """
        Save configuration to JSON file.

        Args:
            path: Output JSON path.
        """
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)
        logger.debug(f"Saved configuration to {path}")
