"""
Command line entry point.

    rainalarm run            # run the scheduler until interrupted
    rainalarm check-alerts   # one alert state check, printed as JSON
    rainalarm poll           # one cycle over every station, report as JSON
    rainalarm readings       # latest reading per station
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

from .config import AlarmConfig, load_config
from .exceptions import RainAlarmError
from .storage import RainfallStore
from .sync import check_alerts_sync, poll_sync, run_sync
from .utils import utc_now

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rainalarm", description="Rainfall alarm engine for KMA rain gauge stations"
    )
    parser.add_argument("--env-file", help="Path to a .env file with settings")
    parser.add_argument("--database", help="SQLite database path (default: RAINALARM_DB_PATH)")
    parser.add_argument(
        "--log-level", help="Logging level (default: LOG_LEVEL or INFO)"
    )
    parser.add_argument("--mock", action="store_true", help="Use synthetic upstream data")

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("run", help="Run the two-tier scheduler until interrupted")
    commands.add_parser("check-alerts", help="Check the regional alert state once")
    commands.add_parser("poll", help="Poll every station once")
    readings = commands.add_parser("readings", help="Show the latest reading per station")
    readings.add_argument("--district", type=int, help="Limit to one district id")
    readings.add_argument(
        "--json", action="store_true", help="Print JSON records instead of a table"
    )
    return parser


def _configure(args: argparse.Namespace) -> AlarmConfig:
    config = load_config(args.env_file)
    if args.database:
        config.database_path = args.database
    if args.mock:
        config.mock_mode = True
    if args.log_level:
        config.log_level = args.log_level.upper()

    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    return config


def _show_readings(config: AlarmConfig, district_id: Optional[int], as_json: bool) -> None:
    with RainfallStore(config.database_path) as store:
        if as_json:
            rows = store.latest_readings(utc_now(), config.freshness_window, district_id)
            print(json.dumps(rows, ensure_ascii=False, indent=2))
            return
        frame = store.latest_readings_frame(utc_now(), config.freshness_window, district_id)
        if frame.empty:
            print("No stations")
        else:
            print(frame.to_string(index=False))


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = _configure(args)
        if args.command == "run":
            try:
                run_sync(config)
            except KeyboardInterrupt:
                logger.info("Interrupted")
        elif args.command == "check-alerts":
            result = check_alerts_sync(config)
            print(json.dumps(result.state.to_dict(), ensure_ascii=False, indent=2))
            return 1 if result.error else 0
        elif args.command == "poll":
            report = poll_sync(config)
            print(json.dumps(report.to_dict(), ensure_ascii=False, indent=2))
        elif args.command == "readings":
            _show_readings(config, args.district, args.json)
    except RainAlarmError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
