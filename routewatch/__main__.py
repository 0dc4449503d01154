"""CLI entry point for routewatch."""

import argparse
import sys
from datetime import datetime
from pathlib import Path

from .app import RoutewatchApp
from .debug_gui import WebSocketGPS
from .gps import GPSRecorder, GPSPlayback
from .logger import LEVELS
from .transport import TransportMode


def _parse_latlng(text: str) -> tuple[float, float]:
    """Parse 'LAT,LNG' into a tuple"""
    try:
        lat, lng = (float(part) for part in text.split(","))
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected LAT,LNG, got {text!r}")
    return lat, lng


def main():
    parser = argparse.ArgumentParser(
        description="routewatch - Real-time route deviation and wrong-way tracking"
    )
    parser.add_argument("route", nargs="?", metavar="ROUTE_FILE",
                        help="Route JSON file ({\"path\": [[lat, lng], ...]})")
    parser.add_argument("--from", dest="origin", type=_parse_latlng, metavar="LAT,LNG",
                        help="Fetch the route from OSRM starting here")
    parser.add_argument("--to", dest="destination", type=_parse_latlng, metavar="LAT,LNG",
                        help="Fetch the route from OSRM ending here")
    parser.add_argument("--mode", choices=[m.value for m in TransportMode], default="walking",
                        help="Initial transport mode (default: walking)")
    parser.add_argument("--manual-mode", action="store_true",
                        help="Report detected transport mode changes without applying them")
    parser.add_argument("--record", metavar="FILE",
                        help="Record GPS trace to JSON file")
    parser.add_argument("--playback", metavar="FILE",
                        help="Playback GPS trace from JSON file")
    parser.add_argument("--speed", type=float, default=1.0,
                        help="Playback speed multiplier, 0 for no delay (default: 1.0)")
    parser.add_argument("--session-log", metavar="FILE",
                        help="Save every navigation update and a summary to a JSON file")
    parser.add_argument("--log", metavar="FILE",
                        help="Log file path (default: routewatch_TIMESTAMP.log)")
    parser.add_argument("--log-level", choices=list(LEVELS), default=None,
                        help="Minimum level written to the log")
    parser.add_argument("--debug-gui", action="store_true",
                        help="Run with web-based visual debugger; click the map to move")

    args = parser.parse_args()

    # Route source: file or both OSRM endpoints
    if args.route and (args.origin or args.destination):
        parser.error("give either ROUTE_FILE or --from/--to, not both")
    if not args.route and (args.origin is None or args.destination is None):
        parser.error("a ROUTE_FILE or both --from and --to are required")
    if args.route and not Path(args.route).exists():
        parser.error(f"route file not found: {args.route}")

    if args.playback and args.record:
        parser.error("--playback and --record cannot be combined")
    if args.debug_gui and args.playback:
        parser.error("--debug-gui takes positions from map clicks, not --playback")

    # Determine log path
    log_path = args.log
    if not log_path:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_path = f"routewatch_{timestamp}.log"

    app = RoutewatchApp(
        mode=args.mode,
        log_path=log_path,
        session_log_path=args.session_log,
        manual_mode=args.manual_mode,
        debug_gui=args.debug_gui,
        log_level=args.log_level,
    )

    # Set up GPS source
    if args.debug_gui:
        # Debug GUI uses WebSocketGPS for click-based location
        app.set_gps_source(WebSocketGPS(app.debug_server))
    elif args.playback:
        if not Path(args.playback).exists():
            print(f"Playback file not found: {args.playback}")
            sys.exit(1)
        app.set_gps_source(GPSPlayback(args.playback, args.speed))
    elif args.record:
        app.set_gps_source(GPSRecorder(app.gps_source, args.record))

    route = app.load_route(args.route, args.origin, args.destination)
    if route is None:
        sys.exit(1)

    if not app.run(route):
        sys.exit(1)


if __name__ == "__main__":
    main()
