"""
End-to-end tests of the batch runner on the synthetic neighbourhood.

See conftest.py for the scene: a courtyard right north of a 30 m block
(shaded around noon), an open boulevard (sunlit) and a terrace outside the
DSM (excluded).
"""

import dataclasses
import json
from pathlib import Path
from unittest.mock import patch

import pytest
from apero_soleil.components.height import resolve_terrace_height
from apero_soleil.errors import InputNotFoundError, SerializationError
from apero_soleil.metadata import METADATA_FILENAME, load_run_metadata
from apero_soleil.models import SlotConditions, SunPosition
from apero_soleil.runner import _resolve_workers, classify_terrace, project_terraces, run
from apero_soleil.summary import RunSummary
from conftest import BLOCK_HEIGHT, GROUND, write_registry

SLOTS = ["t1200", "t1300", "t1400"]


def load_output(summary):
    with open(summary.output_path, encoding="utf-8") as f:
        return json.load(f)


def properties_by_id(document):
    return {f["properties"]["id"]: f["properties"] for f in document["features"]}


class TestRun:
    """Full pipeline: DSM and registry on disk to GeoJSON."""

    def test_summary_counts(self, midday_config):
        summary = run(midday_config)

        assert summary.n_input == 3
        assert summary.n_written == 2
        assert summary.n_excluded == 1
        assert summary.n_slots == 3
        assert summary.n_daylight_slots == 3
        assert dict(summary.error_counts) == {"out_of_coverage": 1}
        assert summary.excluded_ids == ["banlieue"]
        assert summary.weather_unadjusted_slots == []

    def test_classifications(self, midday_config):
        document = load_output(run(midday_config))
        props = properties_by_id(document)

        assert props["courtyard"] == {"id": "courtyard", "t1200": False, "t1300": False, "t1400": False}
        assert props["boulevard"] == {"id": "boulevard", "t1200": True, "t1300": True, "t1400": True}

    def test_document_layout(self, midday_config, neighbourhood_terraces):
        document = load_output(run(midday_config))

        assert document["type"] == "FeatureCollection"
        assert [f["properties"]["id"] for f in document["features"]] == ["courtyard", "boulevard"]
        assert document["metadata"] == {
            "date": "2025-06-21",
            "time_slots": SLOTS,
            "weather_source": "none",
            "cloud_threshold_pct": 75.0,
            "weather_unadjusted_slots": [],
        }
        courtyard = document["features"][0]
        lon, lat = courtyard["geometry"]["coordinates"]
        assert courtyard["geometry"]["type"] == "Point"
        assert lon == round(neighbourhood_terraces[0].longitude, 7)
        assert lat == round(neighbourhood_terraces[0].latitude, 7)

    def test_identical_inputs_give_identical_bytes(self, midday_config, tmp_path):
        first = run(midday_config)
        second = run(dataclasses.replace(midday_config, output_path=str(tmp_path / "again" / "results.geojson")))

        assert first.output_path.read_bytes() == second.output_path.read_bytes()

    def test_rerun_over_existing_output(self, midday_config):
        before = run(midday_config).output_path.read_bytes()
        after = run(midday_config).output_path.read_bytes()
        assert before == after

    def test_night_slots(self, midday_config):
        config = dataclasses.replace(midday_config, slot_start="22:30", slot_end="23:30", verbose_output=True)
        summary = run(config)
        props = properties_by_id(load_output(summary))

        assert summary.n_daylight_slots == 0
        for terrace_id in ("courtyard", "boulevard"):
            assert props[terrace_id]["t2230"] is False
            assert props[terrace_id]["t2330"] is False
            assert not any(key.endswith("_distance_to_obstacle") for key in props[terrace_id])

    def test_run_metadata_written(self, midday_config):
        summary = run(midday_config)
        metadata = load_run_metadata(summary.output_path.parent / METADATA_FILENAME)

        assert metadata["summary"]["n_written"] == 2
        assert metadata["config"]["date"] == "2025-06-21"
        assert metadata["weather_source"] == "none"
        assert set(metadata["inputs"]) == {"dsm", "terraces"}
        assert len(metadata["inputs"]["dsm"]["sha256"]) == 16


class TestVerboseOutput:
    """Diagnostic properties."""

    def test_obstruction_diagnostics(self, midday_config, neighbourhood_terraces):
        document = load_output(run(dataclasses.replace(midday_config, verbose_output=True)))
        props = properties_by_id(document)
        courtyard = props["courtyard"]

        assert courtyard["h_terrace"] == GROUND
        for slot in SLOTS:
            assert courtyard[f"{slot}_distance_to_obstacle"] >= 3.0
            assert courtyard[f"{slot}_obstruction_height"] == GROUND + BLOCK_HEIGHT
            assert courtyard[f"{slot}_ray_height_at_obstacle"] < GROUND + BLOCK_HEIGHT
            assert courtyard[f"{slot}_obstruction_lat"] < neighbourhood_terraces[0].latitude
            assert courtyard[f"{slot}_obstruction_lon"] == pytest.approx(neighbourhood_terraces[0].longitude, abs=1e-3)

        boulevard = props["boulevard"]
        assert not any(key.endswith("_distance_to_obstacle") for key in boulevard)
        assert not any(key.endswith("_partial_coverage") for key in boulevard)

    def test_sun_table_in_metadata(self, midday_config):
        document = load_output(run(dataclasses.replace(midday_config, verbose_output=True)))
        sun = document["metadata"]["sun"]

        assert list(sun) == SLOTS
        assert all(entry["altitude"] > 50 for entry in sun.values())
        assert sun["t1200"]["azimuth"] < sun["t1400"]["azimuth"]


class TestWeather:
    """Cloud cover applied through a CSV source."""

    def test_cloud_downgrade_and_fallback(self, midday_config, tmp_path):
        clouds = tmp_path / "clouds.csv"
        clouds.write_text("time,cloud_cover\n2025-06-21T12:00,90\n2025-06-21T13:00,10\n", encoding="utf-8")
        config = dataclasses.replace(midday_config, weather_source="csv", weather_path=str(clouds))

        summary = run(config)
        document = load_output(summary)
        props = properties_by_id(document)

        assert props["boulevard"]["t1200"] is False
        assert props["boulevard"]["t1300"] is True
        assert props["boulevard"]["t1400"] is True
        assert props["courtyard"]["t1300"] is False
        assert summary.weather_unadjusted_slots == ["t1400"]
        assert document["metadata"]["weather_unadjusted_slots"] == ["t1400"]
        assert document["metadata"]["weather_source"] == "csv"

    def test_unavailable_source_does_not_fail_run(self, midday_config, tmp_path):
        config = dataclasses.replace(midday_config, weather_source="csv", weather_path=str(tmp_path / "missing.csv"))
        summary = run(config)

        assert summary.n_written == 2
        assert summary.weather_unadjusted_slots == SLOTS


class TestFailureIsolation:
    """Per-terrace failures are counted; run-level failures propagate."""

    def test_worker_exception_excludes_only_that_terrace(self, midday_config):
        def flaky(dsm, terrace, radius):
            if terrace.id == "boulevard":
                raise RuntimeError("raster read failed")
            return resolve_terrace_height(dsm, terrace, radius)

        with patch("apero_soleil.runner.resolve_terrace_height", side_effect=flaky):
            summary = run(midday_config)

        assert summary.n_written == 1
        assert summary.error_counts["terrace_failure"] == 1
        assert summary.error_counts["out_of_coverage"] == 1
        assert list(properties_by_id(load_output(summary))) == ["courtyard"]

    def test_duplicate_ids_are_counted(self, midday_config, neighbourhood_terraces, tmp_path):
        registry = write_registry(tmp_path / "dupes.geojson", neighbourhood_terraces + neighbourhood_terraces[:1])
        summary = run(dataclasses.replace(midday_config, terraces_path=str(registry)))

        assert summary.error_counts["duplicate_id"] == 1
        assert summary.n_input == 3
        assert summary.n_written == 2

    def test_missing_dsm_is_fatal(self, midday_config, tmp_path):
        with pytest.raises(InputNotFoundError) as exc_info:
            run(dataclasses.replace(midday_config, dsm_path=str(tmp_path / "missing.tif")))
        assert exc_info.value.resource == "dsm"

    def test_unwritable_output_is_fatal(self, midday_config, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory", encoding="utf-8")
        with pytest.raises(SerializationError):
            run(dataclasses.replace(midday_config, output_path=str(blocker / "results.geojson")))


    def test_unwritable_run_metadata_is_fatal(self, midday_config):
        (Path(midday_config.output_path).parent / METADATA_FILENAME).mkdir(parents=True)
        with pytest.raises(SerializationError) as exc_info:
            run(midday_config)
        assert exc_info.value.path.endswith(METADATA_FILENAME)


class TestClassifyTerrace:
    """Single-terrace timeline."""

    def test_cloud_downgrade_is_recorded(self, neighbourhood_dsm, neighbourhood_terraces, midday_config):
        (boulevard,) = project_terraces(neighbourhood_dsm, [neighbourhood_terraces[1]])
        sun = SunPosition(azimuth=130.0, altitude=58.0)
        table = {
            "t1200": SlotConditions("t1200", sun, cloud_cover=90.0),
            "t1300": SlotConditions("t1300", sun, cloud_cover=20.0),
        }
        result = classify_terrace(boulevard, neighbourhood_dsm, table, midday_config)
        first, second = result.classifications

        assert first.geometric_sunlit is True
        assert first.is_sunlit is False
        assert first.cloud_downgraded is True
        assert second.is_sunlit is True
        assert second.cloud_downgraded is False
        assert result.terrace.resolved_height == GROUND
        assert result.flags == {"t1200": False, "t1300": True}

    def test_projection_reports_unprojectable(self, neighbourhood_dsm, neighbourhood_terraces):
        summary = RunSummary()
        projected = project_terraces(neighbourhood_dsm, neighbourhood_terraces, summary)
        assert [t.id for t in projected] == ["courtyard", "boulevard", "banlieue"]
        assert all(t.is_projected for t in projected)
        assert summary.n_warnings == 0


class TestWorkers:
    """Worker count resolution."""

    def test_explicit(self):
        assert _resolve_workers(4, 100) == 4

    def test_capped_at_terraces(self):
        assert _resolve_workers(8, 3) == 3

    def test_automatic(self):
        with patch("apero_soleil.runner.os.cpu_count", return_value=32):
            assert _resolve_workers(None, 100) == 8
        with patch("apero_soleil.runner.os.cpu_count", return_value=2):
            assert _resolve_workers(None, 100) == 2

    def test_invalid(self):
        with pytest.raises(ValueError):
            _resolve_workers(0, 10)
