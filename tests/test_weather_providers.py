"""
Tests for cloud cover providers. No network: the HTTP session is mocked.
"""

from datetime import date, datetime
from unittest.mock import MagicMock

import pytest
import requests
from apero_soleil.components.weather import (
    OPEN_METEO_ARCHIVE_URL,
    OPEN_METEO_FORECAST_URL,
    CsvCloudCoverProvider,
    OpenMeteoProvider,
    make_provider,
    parse_open_meteo_hourly,
)
from apero_soleil.errors import WeatherLookupError
from apero_soleil.models import EngineConfig, Location

PARIS = Location(latitude=48.8566, longitude=2.3522)
DAY = date(2025, 6, 21)

PAYLOAD = {
    "latitude": 48.86,
    "longitude": 2.35,
    "timezone": "Europe/Paris",
    "hourly_units": {"time": "iso8601", "cloud_cover": "%"},
    "hourly": {
        "time": ["2025-06-21T09:00", "2025-06-21T10:00", "2025-06-21T11:00"],
        "cloud_cover": [12, None, 88],
    },
}


def mock_session(payload=PAYLOAD, status_error=None, get_error=None):
    session = MagicMock()
    response = MagicMock()
    response.json.return_value = payload
    if status_error is not None:
        response.raise_for_status.side_effect = status_error
    session.get.return_value = response
    if get_error is not None:
        session.get.side_effect = get_error
    return session


class TestOpenMeteo:
    """Open-Meteo forecast and archive endpoints."""

    def test_request_parameters(self):
        session = mock_session()
        OpenMeteoProvider(timeout=5.0, session=session).fetch(PARIS, DAY)

        session.get.assert_called_once()
        url = session.get.call_args.args[0]
        kwargs = session.get.call_args.kwargs
        assert url == OPEN_METEO_FORECAST_URL
        assert kwargs["timeout"] == 5.0
        assert kwargs["params"] == {
            "latitude": 48.8566,
            "longitude": 2.3522,
            "hourly": "cloud_cover",
            "timezone": "Europe/Paris",
            "start_date": "2025-06-21",
            "end_date": "2025-06-21",
        }

    def test_archive_endpoint(self):
        session = mock_session()
        provider = OpenMeteoProvider(archive=True, session=session)
        provider.fetch(PARIS, DAY)
        assert session.get.call_args.args[0] == OPEN_METEO_ARCHIVE_URL
        assert provider.name == "open-meteo-archive"

    def test_series_skips_nulls(self):
        series = OpenMeteoProvider(session=mock_session()).fetch(PARIS, DAY)
        assert series == {datetime(2025, 6, 21, 9): 12.0, datetime(2025, 6, 21, 11): 88.0}

    def test_connection_error(self):
        session = mock_session(get_error=requests.ConnectionError("unreachable"))
        with pytest.raises(WeatherLookupError, match="unreachable"):
            OpenMeteoProvider(session=session).fetch(PARIS, DAY)

    def test_http_error(self):
        session = mock_session(status_error=requests.HTTPError("503 Server Error"))
        with pytest.raises(WeatherLookupError, match="503"):
            OpenMeteoProvider(session=session).fetch(PARIS, DAY)

    def test_invalid_json(self):
        session = mock_session()
        session.get.return_value.json.side_effect = ValueError("Expecting value")
        with pytest.raises(WeatherLookupError, match="invalid JSON"):
            OpenMeteoProvider(session=session).fetch(PARIS, DAY)

    def test_api_error_reason(self):
        with pytest.raises(WeatherLookupError, match="out of allowed range"):
            parse_open_meteo_hourly({"error": True, "reason": "Parameter 'start_date' is out of allowed range"})

    def test_mismatched_arrays(self):
        with pytest.raises(WeatherLookupError):
            parse_open_meteo_hourly({"hourly": {"time": ["2025-06-21T09:00"], "cloud_cover": []}})


class TestCsvProvider:
    """Local CSV cloud cover."""

    def test_reads_target_day(self, tmp_path):
        path = tmp_path / "clouds.csv"
        path.write_text(
            "time,cloud_cover\n"
            "2025-06-20T23:00,100\n"
            "2025-06-21T09:00,20\n"
            "2025-06-21T10:00,\n"
            "2025-06-21T11:00,95\n",
            encoding="utf-8",
        )
        series = CsvCloudCoverProvider(path).fetch(PARIS, DAY)
        assert series == {datetime(2025, 6, 21, 9): 20.0, datetime(2025, 6, 21, 11): 95.0}

    def test_utc_times_converted_to_local(self, tmp_path):
        path = tmp_path / "clouds.csv"
        path.write_text("time,cloud_cover\n2025-06-21T07:00:00+00:00,40\n", encoding="utf-8")
        series = CsvCloudCoverProvider(path).fetch(PARIS, DAY)
        assert series == {datetime(2025, 6, 21, 9): 40.0}

    def test_missing_file(self, tmp_path):
        with pytest.raises(WeatherLookupError, match="not found"):
            CsvCloudCoverProvider(tmp_path / "missing.csv").fetch(PARIS, DAY)

    def test_missing_column(self, tmp_path):
        path = tmp_path / "clouds.csv"
        path.write_text("time,cloudiness\n2025-06-21T09:00,20\n", encoding="utf-8")
        with pytest.raises(WeatherLookupError, match="cloud_cover"):
            CsvCloudCoverProvider(path).fetch(PARIS, DAY)


class TestMakeProvider:
    """Provider selection from the configuration."""

    REQUIRED = {"dsm_path": "dsm.tif", "terraces_path": "terraces.geojson", "date": "2025-06-21"}

    def test_none(self):
        assert make_provider(EngineConfig(**self.REQUIRED, weather_source="none")) is None

    def test_csv(self):
        provider = make_provider(EngineConfig(**self.REQUIRED, weather_source="csv", weather_path="clouds.csv"))
        assert isinstance(provider, CsvCloudCoverProvider)

    def test_open_meteo(self):
        provider = make_provider(EngineConfig(**self.REQUIRED, weather_timeout_s=3.0))
        assert isinstance(provider, OpenMeteoProvider)
        assert provider.name == "open-meteo"
        assert provider.timeout == 3.0
