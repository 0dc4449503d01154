#!/usr/bin/env python3
"""
Visualize a routewatch session log on a map.

Usage:
    python visualize_trace.py session.json [--output map.html]
"""

import argparse
import json
from pathlib import Path

import folium
from folium import plugins

from routewatch import summarize_session

EVENT_STYLE = {
    "route_deviation": ("orange", "exclamation-sign"),
    "back_on_route": ("green", "ok-sign"),
    "wrong_way": ("red", "retweet"),
    "back_on_course": ("lightgreen", "arrow-up"),
    "transport_mode_changed": ("purple", "transfer"),
    "alternatives_found": ("darkblue", "road"),
    "position_warning": ("gray", "warning-sign"),
    "navigation_error": ("black", "remove-sign"),
}


def load_session(session_path: str) -> dict:
    """Load session log from JSON file"""
    with open(session_path) as f:
        return json.load(f)


def _event_popup(event: dict, elapsed: float) -> str:
    minutes = int(elapsed // 60)
    seconds = int(elapsed % 60)
    rows = "".join(
        f"{k}: {v:.1f}<br>" if isinstance(v, float) else f"{k}: {v}<br>"
        for k, v in event.items()
        if k not in ("kind", "routes", "alternative_routes")
    )
    return f"<b>{event['kind']}</b><br>Time: {minutes}m {seconds}s<br>{rows}"


def create_session_map(session: dict, output_path: str):
    """Create map visualization of a navigation session"""

    updates = session.get("updates", [])
    samples = [u for u in updates if u["state"].get("last_position")]
    route_path = session["route"]["path"]

    if not samples:
        print("No positions in session log")
        return

    # Get center point
    lats = [p[0] for p in route_path]
    lons = [p[1] for p in route_path]
    center_lat = sum(lats) / len(lats)
    center_lon = sum(lons) / len(lons)

    # Create map
    m = folium.Map(location=[center_lat, center_lon], zoom_start=16)

    # Add tile options
    folium.TileLayer("OpenStreetMap", name="OpenStreetMap").add_to(m)
    folium.TileLayer("CartoDB positron", name="Light").add_to(m)
    folium.TileLayer("CartoDB dark_matter", name="Dark").add_to(m)

    # Planned route
    folium.PolyLine(
        route_path,
        weight=6,
        color="blue",
        opacity=0.5,
        popup="Planned route"
    ).add_to(m)

    # Travelled path
    path_coords = [
        [u["state"]["last_position"]["lat"], u["state"]["last_position"]["lng"]] for u in samples
    ]
    folium.PolyLine(
        path_coords,
        weight=2,
        color="black",
        opacity=0.6,
        dash_array="4 6",
        popup="Travelled"
    ).add_to(m)

    # Add markers for each sample, coloured by on-route status
    points_group = folium.FeatureGroup(name="Samples", show=True)

    for update in samples:
        state = update["state"]
        pos = state["last_position"]
        elapsed = update.get("elapsed", 0)
        minutes = int(elapsed // 60)
        seconds = int(elapsed % 60)

        popup = f"""
            <b>{minutes}m {seconds}s</b><br>
            Mode: {state['transport_mode']}<br>
            Speed: {state['speed']:.1f} m/s<br>
            From route: {state['distance_from_route']:.0f} m<br>
            Off route for: {state['deviation_duration']:.0f} s<br>
            Wrong way: {'yes' if state['wrong_way_active'] else 'no'}
        """

        if state["wrong_way_active"]:
            color = "red"
        elif state["is_on_route"]:
            color = "green"
        else:
            color = "orange"

        folium.CircleMarker(
            location=[pos["lat"], pos["lng"]],
            radius=4,
            color=color,
            fill=True,
            popup=folium.Popup(popup, max_width=220)
        ).add_to(points_group)

    points_group.add_to(m)

    # Events, marked at the position of the update that carried them
    events_group = folium.FeatureGroup(name="Events", show=True)
    alternatives_group = folium.FeatureGroup(name="Alternative routes", show=False)
    last_pos = None

    for update in updates:
        pos = update["state"].get("last_position") or last_pos
        if pos:
            last_pos = pos
        for event in update.get("events", []):
            if event["kind"] == "alternatives_found":
                for route in event["routes"]:
                    folium.PolyLine(route["path"], weight=3, color="purple",
                                    dash_array="6 6").add_to(alternatives_group)
            if not last_pos:
                continue
            color, icon = EVENT_STYLE.get(event["kind"], ("gray", "info-sign"))
            folium.Marker(
                [last_pos["lat"], last_pos["lng"]],
                popup=folium.Popup(_event_popup(event, update.get("elapsed", 0)), max_width=250),
                icon=folium.Icon(color=color, icon=icon)
            ).add_to(events_group)

    events_group.add_to(m)
    alternatives_group.add_to(m)

    # Add start marker
    start = samples[0]["state"]["last_position"]
    folium.Marker(
        [start["lat"], start["lng"]],
        popup="Start",
        icon=folium.Icon(color="green", icon="play")
    ).add_to(m)

    # Add layer control
    folium.LayerControl().add_to(m)

    # Add legend
    summary = session.get("summary") or summarize_session(session)
    total_time = samples[-1].get("elapsed", 0)
    duration = f"{int(total_time // 60)}m {int(total_time % 60)}s"

    legend_html = f"""
    <div style="
        position: fixed;
        bottom: 50px;
        left: 50px;
        z-index: 1000;
        background-color: white;
        padding: 10px;
        border-radius: 5px;
        border: 2px solid grey;
        font-family: Arial;
        font-size: 12px;
    ">
        <b>Navigation session</b><br>
        <hr style="margin: 5px 0">
        Duration: {duration}<br>
        Samples: {summary['samples']}<br>
        Max from route: {summary['max_distance_from_route_m']:.0f} m<br>
        Off route: {summary['off_route_s']:.0f} s<br>
        Deviations: {summary['deviation_episodes']}<br>
        Wrong way: {summary['wrong_way_episodes']}<br>
        Mode changes: {summary['mode_changes']}<br>
        <hr style="margin: 5px 0">
        <div style="display: flex; align-items: center; margin: 3px 0;">
            <div style="width: 12px; height: 12px; background: green; border-radius: 50%; margin-right: 5px;"></div>
            On route
        </div>
        <div style="display: flex; align-items: center; margin: 3px 0;">
            <div style="width: 12px; height: 12px; background: orange; border-radius: 50%; margin-right: 5px;"></div>
            Off route
        </div>
        <div style="display: flex; align-items: center; margin: 3px 0;">
            <div style="width: 12px; height: 12px; background: red; border-radius: 50%; margin-right: 5px;"></div>
            Wrong way
        </div>
    </div>
    """
    m.get_root().html.add_child(folium.Element(legend_html))

    # Add fullscreen
    plugins.Fullscreen().add_to(m)

    # Save
    m.save(output_path)
    print(f"Session map saved to {output_path}")
    print(f"  {summary['samples']} samples, {summary['deviation_episodes']} deviations")


def main():
    parser = argparse.ArgumentParser(description="Visualize a navigation session on a map")
    parser.add_argument("session", help="Session log JSON file (routewatch --session-log)")
    parser.add_argument("-o", "--output", default="session_map.html",
                        help="Output HTML file (default: session_map.html)")

    args = parser.parse_args()

    if not Path(args.session).exists():
        print(f"Session file not found: {args.session}")
        return 1

    session = load_session(args.session)
    create_session_map(session, args.output)
    return 0


if __name__ == "__main__":
    exit(main())
