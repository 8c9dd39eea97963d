"""
Weather filter component.

Cloud cover is coarse (hourly, kilometre grid), so it is looked up once per
run at the reference location and mapped onto the slot grid by nearest
hour. The filter itself is a pure downgrade:

    final = geometric_sunlit and cloud_cover <= threshold

Clouds can turn a geometrically sunlit slot into shade, never the reverse.

Providers:
    OpenMeteoProvider       Open-Meteo forecast or historical archive API
    CsvCloudCoverProvider   Local CSV with ``time`` and ``cloud_cover`` columns

A failed lookup never fails a terrace: the affected slots fall back to 0 %
cloud cover and are flagged as weather-unadjusted.
"""

from __future__ import annotations

from datetime import date as date_cls
from datetime import datetime as dt
from datetime import timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any

import pandas as pd
import requests

from ..errors import WeatherLookupError
from ..models.weather import Location, SlotConditions, SunPosition
from ..soleil_logging import get_logger

if TYPE_CHECKING:
    from ..models.config import EngineConfig
    from ..timeslots import TimeSlot

logger = get_logger(__name__)

OPEN_METEO_FORECAST_URL = "https://api.open-meteo.com/v1/forecast"
OPEN_METEO_ARCHIVE_URL = "https://archive-api.open-meteo.com/v1/archive"

# Hourly cloud cover keyed by naive local wall-clock hour
CloudSeries = dict[dt, float]


class CloudCoverProvider:
    """Source of hourly cloud cover for one day at one location."""

    name = "abstract"

    def fetch(self, location: Location, day: date_cls) -> CloudSeries:
        """
        Hourly cloud cover in percent for ``day``.

        Raises:
            WeatherLookupError: If the source cannot deliver data.
        """
        raise NotImplementedError


class OpenMeteoProvider(CloudCoverProvider):
    """
    Hourly ``cloud_cover`` from the Open-Meteo API.

    Args:
        archive: Query the historical archive instead of the forecast API.
        timeout: HTTP timeout in seconds.
        session: Optional ``requests.Session`` (a new one is created otherwise).
    """

    def __init__(self, archive: bool = False, timeout: float = 10.0, session: requests.Session | None = None):
        self.archive = archive
        self.timeout = timeout
        self.session = session if session is not None else requests.Session()
        self.name = "open-meteo-archive" if archive else "open-meteo"

    @property
    def url(self) -> str:
        return OPEN_METEO_ARCHIVE_URL if self.archive else OPEN_METEO_FORECAST_URL

    def fetch(self, location: Location, day: date_cls) -> CloudSeries:
        params = {
            "latitude": location.latitude,
            "longitude": location.longitude,
            "hourly": "cloud_cover",
            "timezone": location.timezone,
            "start_date": day.isoformat(),
            "end_date": day.isoformat(),
        }
        try:
            response = self.session.get(self.url, params=params, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as err:
            raise WeatherLookupError(f"request to {self.url} failed: {err}") from err
        except ValueError as err:
            raise WeatherLookupError(f"invalid JSON from {self.url}: {err}") from err

        series = parse_open_meteo_hourly(payload)
        logger.info(f"Fetched {len(series)} hourly cloud cover values from {self.name} for {day}")
        return series


def parse_open_meteo_hourly(payload: Any) -> CloudSeries:
    """
    Extract ``hourly.time`` / ``hourly.cloud_cover`` pairs.

    Null values are skipped; the slots they would serve fall back later.

    Raises:
        WeatherLookupError: If the payload does not have the expected shape.
    """
    hourly = payload.get("hourly") if isinstance(payload, dict) else None
    if not isinstance(hourly, dict):
        reason = payload.get("reason") if isinstance(payload, dict) else None
        raise WeatherLookupError(reason or "response has no 'hourly' block")
    times = hourly.get("time")
    values = hourly.get("cloud_cover")
    if not isinstance(times, list) or not isinstance(values, list) or len(times) != len(values):
        raise WeatherLookupError("response 'hourly' block lacks matching 'time' and 'cloud_cover' arrays")

    series: CloudSeries = {}
    for stamp, value in zip(times, values):
        if value is None:
            continue
        try:
            series[dt.fromisoformat(stamp)] = float(value)
        except (TypeError, ValueError) as err:
            raise WeatherLookupError(f"unparseable hourly entry ({stamp!r}, {value!r})") from err
    return series


class CsvCloudCoverProvider(CloudCoverProvider):
    """
    Cloud cover from a local CSV file.

    Expected columns: ``time`` (ISO datetime, local wall-clock or with an
    offset) and ``cloud_cover`` (percent). Rows outside the target day and
    empty values are ignored.
    """

    name = "csv"

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def fetch(self, location: Location, day: date_cls) -> CloudSeries:
        if not self.path.exists():
            raise WeatherLookupError(f"weather file not found: {self.path}")
        try:
            df = pd.read_csv(self.path)
        except (OSError, pd.errors.ParserError, pd.errors.EmptyDataError) as err:
            raise WeatherLookupError(f"cannot read {self.path}: {err}") from err

        missing = [col for col in ("time", "cloud_cover") if col not in df.columns]
        if missing:
            raise WeatherLookupError(f"{self.path.name} is missing column(s): {', '.join(missing)}")

        try:
            times = pd.to_datetime(df["time"])
        except (ValueError, TypeError) as err:
            raise WeatherLookupError(f"unparseable 'time' column in {self.path.name}: {err}") from err
        if times.dt.tz is not None:
            times = times.dt.tz_convert(location.timezone).dt.tz_localize(None)

        cover = pd.to_numeric(df["cloud_cover"], errors="coerce")
        keep = (times.dt.date == day) & cover.notna()
        series = {ts.to_pydatetime(): float(value) for ts, value in zip(times[keep], cover[keep])}
        logger.info(f"Loaded {len(series)} hourly cloud cover values for {day} from {self.path.name}")
        return series


def make_provider(config: EngineConfig) -> CloudCoverProvider | None:
    """Provider for ``config.weather_source``; None disables the weather filter."""
    if config.weather_source == "none":
        return None
    if config.weather_source == "csv":
        return CsvCloudCoverProvider(config.weather_path)
    return OpenMeteoProvider(
        archive=config.weather_source == "open-meteo-archive",
        timeout=config.weather_timeout_s,
    )


def nearest_hour(when: dt) -> dt:
    """
    Round a wall-clock time to the nearest full hour.

    Exactly half past rounds down: 09:30 maps to 09:00, 09:31 to 10:00.
    """
    base = when.replace(minute=0, second=0, microsecond=0)
    if (when - base) > timedelta(minutes=30):
        return base + timedelta(hours=1)
    return base


def nearest_hour_cover(series: CloudSeries, slot: TimeSlot) -> float:
    """
    Cloud cover of the hour nearest to a slot.

    Raises:
        WeatherLookupError: If the series has no value for that hour.
    """
    hour = nearest_hour(slot.datetime)
    if hour not in series:
        raise WeatherLookupError(f"no cloud cover for {hour:%Y-%m-%d %H:%M}", slot=slot.key)
    return series[hour]


def build_slot_conditions(
    slots: list[TimeSlot],
    sun_positions: dict[str, SunPosition],
    provider: CloudCoverProvider | None,
    location: Location,
    day: date_cls,
) -> dict[str, SlotConditions]:
    """
    Precompute the shared per-slot table of sun position and cloud cover.

    Args:
        slots: Slot grid of the run.
        sun_positions: Output of :func:`~apero_soleil.components.solar.compute_sun_positions`.
        provider: Cloud cover source, or None to disable the weather filter.
        location: Reference location.
        day: Target date.

    Returns:
        Slot key -> SlotConditions, in slot order. Slots whose cloud cover
        could not be looked up carry 0 % and ``weather_adjusted=False``.
    """
    if provider is None:
        return {slot.key: SlotConditions(slot.key, sun_positions[slot.key]) for slot in slots}

    try:
        series: CloudSeries | None = provider.fetch(location, day)
    except WeatherLookupError as err:
        logger.warning(f"{err}; assuming 0% cloud cover for all slots")
        series = None

    table = {}
    for slot in slots:
        sun = sun_positions[slot.key]
        if series is None:
            table[slot.key] = SlotConditions(slot.key, sun, cloud_cover=0.0, weather_adjusted=False)
            continue
        try:
            cover = nearest_hour_cover(series, slot)
        except WeatherLookupError as err:
            logger.warning(f"{err}; assuming 0% cloud cover")
            table[slot.key] = SlotConditions(slot.key, sun, cloud_cover=0.0, weather_adjusted=False)
            continue
        table[slot.key] = SlotConditions(slot.key, sun, cloud_cover=cover)
    return table


def apply_cloud_filter(geometric_sunlit: bool, cloud_cover: float, threshold: float) -> bool:
    """Downgrade sun to shade when cloud cover exceeds the threshold."""
    return bool(geometric_sunlit) and cloud_cover <= threshold
