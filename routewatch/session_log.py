"""Session logging and evaluation of recorded navigation sessions."""

import json
import threading
import time
from datetime import datetime, timezone
from typing import Optional

from .config import CONFIG
from .models import NavigationUpdate, Route


class SessionLog:
    """Subscriber that records every navigation update for later analysis."""

    def __init__(self, route: Route, transport_mode: str, config: Optional[dict] = None):
        self.data = {
            "version": 1,
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "config": dict(config or CONFIG),
            "transport_mode": transport_mode,
            "route": route.to_dict(),
            "updates": [],
            "summary": None,
        }
        self.start_time = time.time()
        self._lock = threading.Lock()

    def __call__(self, update: NavigationUpdate):
        entry = {"elapsed": round(time.time() - self.start_time, 3)}
        entry.update(update.to_dict())
        with self._lock:
            self.data["updates"].append(entry)

    def finalize(self) -> dict:
        """Attach the summary and return the complete data dict."""
        with self._lock:
            self.data["summary"] = summarize_session(self.data)
            return self.data

    def save(self, path: str):
        """Write session log to JSON file."""
        data = self.finalize()
        with open(path, "w") as f:
            json.dump(data, f, indent=2)


def summarize_session(session_data: dict) -> dict:
    """Summarise a recorded session.

    Off-route time is measured between consecutive samples using their
    timestamps, so gaps in the source count toward the state before them.
    """
    updates = session_data.get("updates", [])

    samples = 0
    max_distance = 0.0
    off_route_s = 0.0
    last_ts = None
    last_on_route = True
    counts = {
        "route_deviation": 0,
        "back_on_route": 0,
        "wrong_way": 0,
        "wrong_way_repeats": 0,
        "transport_mode_changed": 0,
        "alternatives_found": 0,
        "position_warning": 0,
        "navigation_error": 0,
    }
    deviation_actions: dict[str, int] = {}
    deviation_episodes = 0
    modes_seen = []

    for update in updates:
        state = update.get("state", {})
        position = state.get("last_position")

        for event in update.get("events", []):
            kind = event.get("kind")
            if kind == "wrong_way" and event.get("repeat"):
                counts["wrong_way_repeats"] += 1
            elif kind in counts:
                counts[kind] += 1
            if kind == "route_deviation":
                action = event.get("suggested_action")
                deviation_actions[action] = deviation_actions.get(action, 0) + 1
                # The event that opens an episode is the only one with zero duration
                if event.get("duration_s") == 0:
                    deviation_episodes += 1

        # Alternative and warning updates repeat the previous sample's position
        if not position or position.get("timestamp_ms") == last_ts:
            continue

        samples += 1
        ts = position["timestamp_ms"]
        if last_ts is not None and not last_on_route:
            off_route_s += (ts - last_ts) / 1000
        last_ts = ts
        last_on_route = state.get("is_on_route", True)
        max_distance = max(max_distance, state.get("distance_from_route", 0.0))

        mode = state.get("transport_mode")
        if mode and (not modes_seen or modes_seen[-1] != mode):
            modes_seen.append(mode)

    return {
        "samples": samples,
        "max_distance_from_route_m": round(max_distance, 1),
        "off_route_s": round(off_route_s, 1),
        "deviation_episodes": deviation_episodes,
        "deviation_events": counts["route_deviation"],
        "deviation_actions": deviation_actions,
        "returns_to_route": counts["back_on_route"],
        "wrong_way_episodes": counts["wrong_way"],
        "wrong_way_repeats": counts["wrong_way_repeats"],
        "mode_changes": counts["transport_mode_changed"],
        "modes": modes_seen,
        "alternatives_found": counts["alternatives_found"],
        "position_warnings": counts["position_warning"],
        "terminated_by_error": counts["navigation_error"] > 0,
    }

