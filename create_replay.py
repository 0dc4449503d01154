#!/usr/bin/env python3
"""
Create a synthetic GPS playback trace that travels along a route.

Usage:
    python create_replay.py route.json [-o replay.json] [--speed 1.4]
        [--detour-start 200 --detour-end 400 --detour-offset 60] [--reverse-after 500]

The output uses the same format as `routewatch --record`, so it can be fed
straight back with `routewatch route.json --playback replay.json`.
"""

import argparse
import json
from datetime import datetime
from pathlib import Path
from typing import Optional

from routewatch import Route, haversine_distance, bearing_between
from routewatch.geo import destination_point


def route_stations(path) -> list[float]:
    """Cumulative distance in meters at each route vertex"""
    stations = [0.0]
    for (lat1, lon1), (lat2, lon2) in zip(path, path[1:]):
        stations.append(stations[-1] + haversine_distance(lat1, lon1, lat2, lon2))
    return stations


def point_at(path, stations: list[float], distance: float) -> tuple[float, float, float]:
    """(lat, lon, segment bearing) at a distance along the route"""
    distance = max(0.0, min(distance, stations[-1]))
    for i in range(len(path) - 1):
        if stations[i + 1] >= distance and stations[i + 1] > stations[i]:
            (lat1, lon1), (lat2, lon2) = path[i], path[i + 1]
            bearing = bearing_between(lat1, lon1, lat2, lon2)
            lat, lon = destination_point(lat1, lon1, bearing, distance - stations[i])
            return lat, lon, bearing
    lat1, lon1 = path[-2]
    lat2, lon2 = path[-1]
    return lat2, lon2, bearing_between(lat1, lon1, lat2, lon2)


def build_trace(route: Route, speed: float = 1.4, interval: float = 1.0,
                accuracy: float = 5.0, detour: Optional[tuple[float, float, float]] = None,
                reverse_after: Optional[float] = None,
                start_ms: Optional[float] = None) -> list[dict]:
    """Generate trace entries moving along the route at a constant speed.

    Args:
        detour: (start_m, end_m, offset_m) window where positions are pushed
            sideways off the route, to the right of travel.
        reverse_after: Turn around after this many meters and head back to the start.
    """
    path = route.path
    stations = route_stations(path)
    total = stations[-1]
    if start_ms is None:
        start_ms = datetime.now().timestamp() * 1000

    trace = []
    elapsed = 0.0
    travelled = 0.0
    step = speed * interval
    turnaround = reverse_after if reverse_after is not None else total
    end = turnaround * 2 if reverse_after is not None else total

    while travelled <= end:
        reversed_leg = travelled > turnaround
        along = (2 * turnaround - travelled) if reversed_leg else travelled
        lat, lon, bearing = point_at(path, stations, along)
        heading = (bearing + 180) % 360 if reversed_leg else bearing

        if detour and detour[0] <= along <= detour[1]:
            lat, lon = destination_point(lat, lon, (bearing + 90) % 360, detour[2])

        trace.append({
            "elapsed": round(elapsed, 3),
            "position": {
                "lat": lat,
                "lng": lon,
                "accuracy": accuracy,
                "timestamp_ms": start_ms + elapsed * 1000,
                "speed": speed,
                "heading": round(heading, 1),
            },
            "error": None,
        })

        elapsed += interval
        travelled += step

    return trace


def main():
    parser = argparse.ArgumentParser(description="Create a synthetic playback trace along a route")
    parser.add_argument("route", help="Route JSON file")
    parser.add_argument("-o", "--output", default="replay.json",
                        help="Output trace file (default: replay.json)")
    parser.add_argument("--speed", type=float, default=1.4,
                        help="Travel speed in m/s (default: 1.4, walking pace)")
    parser.add_argument("--interval", type=float, default=1.0,
                        help="Seconds between samples (default: 1.0)")
    parser.add_argument("--accuracy", type=float, default=5.0,
                        help="Reported accuracy in meters (default: 5)")
    parser.add_argument("--detour-start", type=float, metavar="M",
                        help="Distance along the route where the detour begins")
    parser.add_argument("--detour-end", type=float, metavar="M",
                        help="Distance along the route where the detour ends")
    parser.add_argument("--detour-offset", type=float, default=60.0, metavar="M",
                        help="Sideways offset during the detour (default: 60)")
    parser.add_argument("--reverse-after", type=float, metavar="M",
                        help="Turn around after this distance to trigger wrong-way alerts")

    args = parser.parse_args()

    if not Path(args.route).exists():
        print(f"Route file not found: {args.route}")
        return 1
    if (args.detour_start is None) != (args.detour_end is None):
        print("--detour-start and --detour-end must be used together")
        return 1
    if args.speed <= 0 or args.interval <= 0:
        print("--speed and --interval must be positive")
        return 1

    route = Route.load(args.route)
    detour = None
    if args.detour_start is not None:
        detour = (args.detour_start, args.detour_end, args.detour_offset)

    trace = build_trace(route, args.speed, args.interval, args.accuracy,
                        detour=detour, reverse_after=args.reverse_after)

    with open(args.output, "w") as f:
        json.dump({
            "recorded_at": datetime.now().isoformat(),
            "trace": trace,
        }, f, indent=2)

    duration = trace[-1]["elapsed"] if trace else 0
    print(f"Replay saved to {args.output}")
    print(f"  {len(trace)} samples over {duration / 60:.1f} minutes at {args.speed} m/s")
    return 0


if __name__ == "__main__":
    exit(main())
