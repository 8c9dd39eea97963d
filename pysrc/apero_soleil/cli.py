"""
Command line interface.

    apero-soleil run --dsm paris_dsm.tif --terraces terraces.geojson --date 2025-06-21
    apero-soleil run --config paris.json --date 2025-06-22 --weather-source none
    apero-soleil query sunlight_results.geojson --bbox 2.33 48.85 2.36 48.87 --time 18:30 --sunny
    apero-soleil query sunlight_results.geojson --near 48.8566 2.3522 --radius 0.5 --time 18:30
    apero-soleil query sunlight_results.geojson --id "12 RUE DE BUCI"
    apero-soleil query sunlight_results.geojson --counts

Exit status is 0 on success (per-terrace warnings included) and 1 when the
run or query cannot be completed.
"""

from __future__ import annotations

import argparse
import json
import sys

from . import reader
from .config import load_config
from .errors import AperoSoleilError
from .models.config import WEATHER_SOURCES
from .runner import run
from .soleil_logging import LogLevel, set_global_level


def _add_run_parser(subparsers) -> None:
    parser = subparsers.add_parser("run", help="Classify every terrace for every slot of one day.")
    parser.add_argument("--config", default=None, help="JSON file with any subset of the run settings.")
    parser.add_argument("--dsm", dest="dsm_path", default=None, help="DSM GeoTIFF (projected CRS, metres).")
    parser.add_argument("--terraces", dest="terraces_path", default=None, help="Terrace registry (GeoJSON or CSV).")
    parser.add_argument("--date", default=None, help="Target date, YYYY-MM-DD.")
    parser.add_argument("--output", dest="output_path", default=None, help="Output GeoJSON path.")
    parser.add_argument("--slot-start", default=None, help="First slot, HH:MM.")
    parser.add_argument("--slot-end", default=None, help="Last slot (inclusive), HH:MM.")
    parser.add_argument("--interval", dest="slot_interval_minutes", type=int, default=None, help="Slot spacing in minutes.")
    parser.add_argument("--ray-step", dest="ray_step_m", type=float, default=None, help="Ray march step in metres.")
    parser.add_argument("--max-distance", dest="max_ray_distance_m", type=float, default=None, help="Ray cut-off in metres.")
    parser.add_argument("--buffer", dest="height_buffer_m", type=float, default=None, help="Height buffer radius in metres.")
    parser.add_argument(
        "--cloud-threshold", dest="cloud_threshold_pct", type=float, default=None, help="Cloud cover threshold in percent."
    )
    parser.add_argument("--weather-source", choices=WEATHER_SOURCES, default=None, help="Cloud cover source.")
    parser.add_argument("--weather-path", default=None, help="CSV file for --weather-source csv.")
    parser.add_argument("--workers", type=int, default=None, help="Worker threads.")
    parser.add_argument(
        "--verbose-output", action="store_true", default=None, help="Write obstruction diagnostics to the output."
    )
    parser.add_argument("--no-progress", dest="progress", action="store_false", default=None, help="Hide the progress bar.")


def _add_query_parser(subparsers) -> None:
    parser = subparsers.add_parser("query", help="Filter a results file the way the map API does.")
    parser.add_argument("results", help="Interchange GeoJSON written by 'run'.")
    parser.add_argument(
        "--bbox", nargs=4, type=float, metavar=("SW_LNG", "SW_LAT", "NE_LNG", "NE_LAT"), help="Viewport filter."
    )
    parser.add_argument("--time", default=None, help="Time slot, HH:MM or tHHMM.")
    parser.add_argument("--sunny", action="store_true", help="Keep only terraces sunlit at --time.")
    parser.add_argument("--near", nargs=2, type=float, metavar=("LAT", "LON"), help="Search around a point.")
    parser.add_argument("--radius", type=float, default=reader.DEFAULT_NEARBY_RADIUS_KM, help="Search radius in km.")
    parser.add_argument("--id", dest="terrace_id", default=None, help="Print the timeline of one terrace.")
    parser.add_argument("--counts", action="store_true", help="Print the number of sunlit terraces per slot.")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="apero-soleil", description="Sunlit terrace classification for Paris.")
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    verbosity.add_argument("-q", "--quiet", action="store_true", help="Warnings and errors only.")
    subparsers = parser.add_subparsers(dest="command", required=True)
    _add_run_parser(subparsers)
    _add_query_parser(subparsers)
    return parser


RUN_OPTIONS = (
    "dsm_path",
    "terraces_path",
    "date",
    "output_path",
    "slot_start",
    "slot_end",
    "slot_interval_minutes",
    "ray_step_m",
    "max_ray_distance_m",
    "height_buffer_m",
    "cloud_threshold_pct",
    "weather_source",
    "weather_path",
    "workers",
    "verbose_output",
    "progress",
)


def _cmd_run(args: argparse.Namespace) -> int:
    overrides = {name: getattr(args, name) for name in RUN_OPTIONS}
    config = load_config(args.config, **overrides)
    summary = run(config)
    print(summary.report())
    return 0


def _cmd_query(args: argparse.Namespace) -> int:
    features = reader.load_features(args.results)

    if args.terrace_id is not None:
        feature = reader.get_terrace(features, args.terrace_id)
        if feature is None:
            print(f"Terrace '{args.terrace_id}' not found", file=sys.stderr)
            return 1
        timeline = [{"time": key, "is_sunlit": sunlit} for key, sunlit in reader.terrace_timeline(feature)]
        print(json.dumps({"id": args.terrace_id, "geometry": feature["geometry"], "timeline": timeline}))
        return 0

    if args.bbox:
        features = reader.filter_by_bbox(features, *args.bbox)

    if args.counts:
        print(json.dumps(reader.sunshine_counts(features)))
        return 0

    if args.near:
        latitude, longitude = args.near
        features = reader.find_nearby(
            features, latitude, longitude, radius_km=args.radius, slot=args.time, only_sunny=args.sunny
        )
    elif args.sunny:
        if args.time is None:
            raise ValueError("--sunny requires --time")
        features = reader.sunlit_at(features, args.time)

    print(json.dumps({"type": "FeatureCollection", "features": features}))
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        set_global_level(LogLevel.DEBUG)
    elif args.quiet:
        set_global_level(LogLevel.WARNING)

    try:
        if args.command == "run":
            return _cmd_run(args)
        return _cmd_query(args)
    except (AperoSoleilError, ValueError) as err:
        print(f"Error: {err}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
