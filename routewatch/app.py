"""Main routewatch application."""

import threading
import time
from typing import Optional

from .config import CONFIG
from .debug_gui import DebugServer
from .errors import InvalidRouteError, RoutingError, SessionActiveError
from .geo import bearing_to_compass, relative_direction
from .gps import TermuxGPS, GPSRecorder, GPSPlayback
from .logger import Logger
from .models import (
    AlternativesFoundEvent,
    BackOnCourseEvent,
    BackOnRouteEvent,
    LatLng,
    NavigationErrorEvent,
    NavigationUpdate,
    PositionWarningEvent,
    Route,
    RouteDeviation,
    SuggestedAction,
    TransportModeChangedEvent,
    WrongWayEvent,
)
from .navigator import NavigationEngine, NavigationSession, UpdateQueue
from .routing import OSRMRoutingProvider
from .session_log import SessionLog, summarize_session
from .transport import TransportMode

ACTION_TEXT = {
    SuggestedAction.RETURN: "return to the route",
    SuggestedAction.ALTERNATIVE: "consider an alternative route",
    SuggestedAction.RECALCULATE: "recalculating",
}


class RoutewatchApp:
    """Main application: follows one route with a position source and reports events"""

    def __init__(self, mode: str = "walking", log_path: Optional[str] = None,
                 session_log_path: Optional[str] = None, manual_mode: bool = False,
                 debug_gui: bool = False, log_level: Optional[str] = None):
        self.mode = TransportMode(mode)
        self.session_log_path = session_log_path
        self.config = {"auto_detect_transport_mode": not manual_mode}

        # Debug GUI server
        self.debug_server: Optional[DebugServer] = None
        if debug_gui:
            self.debug_server = DebugServer()
            self.debug_server.start()

        # Logger with optional callback for debug GUI
        log_callback = self.debug_server.send_log if self.debug_server else None
        self.logger = Logger(log_path, callback=log_callback,
                             level=log_level or CONFIG["log_level"], echo=False)

        self.provider = OSRMRoutingProvider()
        self.updates = UpdateQueue()
        self.session: Optional[NavigationSession] = None
        self.session_log: Optional[SessionLog] = None
        self.last_update: Optional[NavigationUpdate] = None
        self.last_log_update = 0
        self.start_time = 0

        # GPS source (can be swapped for recording/playback)
        self.gps_source = TermuxGPS()

    def set_gps_source(self, source):
        """Set position source (TermuxGPS, GPSRecorder, GPSPlayback or WebSocketGPS)"""
        self.gps_source = source

    def load_route(self, route_file: Optional[str] = None, origin: Optional[LatLng] = None,
                   destination: Optional[LatLng] = None) -> Optional[Route]:
        """Read the route from a file, or ask OSRM for one between two points"""
        if route_file:
            route = Route.load(route_file)
            self.logger.info("Route loaded", {"file": route_file, "points": len(route.path)})
            return route

        try:
            route = self.provider.compute_route(origin, destination, self.mode)
        except RoutingError as e:
            self.logger.error("Could not fetch route", {"error": str(e)})
            print(f"Could not fetch route: {e}")
            return None
        self.logger.info("Route fetched", {
            "points": len(route.path), "distance": route.distance_m, "duration": route.duration_s,
        })
        print(f"Route fetched: {len(route.path)} points, {route.distance_m or 0:.0f}m")
        return route

    def get_state(self) -> dict:
        """Get current state as dict for logging"""
        state = {
            "gps_status": self.gps_source.get_status() if hasattr(self.gps_source, 'get_status') else "unknown",
        }
        if self.last_update:
            s = self.last_update.state
            state.update({
                "mode": s.transport_mode.value,
                "speed": round(s.speed, 1),
                "on_route": s.is_on_route,
                "distance_from_route": round(s.distance_from_route, 1),
                "wrong_way": s.wrong_way_active,
                "has_alternatives": s.has_alternatives,
            })
            if s.last_position:
                state["location"] = {
                    "lat": s.last_position.lat,
                    "lng": s.last_position.lng,
                    "accuracy": s.last_position.accuracy,
                }
        return state

    def periodic_update(self):
        """Handle periodic status updates"""
        now = time.time()

        # Log to file every 10 seconds
        if now - self.last_log_update >= CONFIG["log_interval"]:
            self.logger.info("STATE", self.get_state())
            self.last_log_update = now

    def describe_event(self, event) -> Optional[str]:
        """One console line for an event"""
        if isinstance(event, RouteDeviation):
            return (f"Off route by {event.distance_m:.0f}m for {event.duration_s:.0f}s: "
                    f"{ACTION_TEXT[event.suggested_action]}")
        if isinstance(event, BackOnRouteEvent):
            return f"Back on route after {event.off_route_duration_s:.0f}s"
        if isinstance(event, WrongWayEvent):
            turn = relative_direction(event.movement_heading, event.expected_heading)
            compass = bearing_to_compass(event.expected_heading)
            prefix = "Still going the wrong way" if event.repeat else "Wrong way"
            return f"{prefix}: {turn}, route heads {compass} (alert {event.count})"
        if isinstance(event, BackOnCourseEvent):
            return "Heading the right way again"
        if isinstance(event, AlternativesFoundEvent):
            lengths = ", ".join(f"{r.distance_m or 0:.0f}m" for r in event.routes)
            return f"Found {len(event.routes)} alternative route(s): {lengths}"
        if isinstance(event, TransportModeChangedEvent):
            verb = "Switched" if event.applied else "Detected"
            return (f"{verb} to {event.detected.value} "
                    f"(from {event.previous.value}, mean {event.mean_speed:.1f} m/s)")
        if isinstance(event, PositionWarningEvent):
            return f"GPS problem ({event.error_kind}): {event.message}"
        if isinstance(event, NavigationErrorEvent):
            return f"Navigation stopped ({event.error_kind}): {event.message}"
        return None

    def handle_update(self, update: NavigationUpdate):
        if update.state.is_navigating:
            self.last_update = update
        for event in update.events:
            text = self.describe_event(event)
            if text:
                print(text)

    def _start_playback(self):
        """Replay the trace on its own thread so this one can consume updates"""
        thread = threading.Thread(
            target=self.gps_source.run,
            kwargs={"should_continue": lambda: self.session is not None and self.session.is_active},
            daemon=True,
        )
        thread.start()
        return thread

    def run(self, route: Route) -> bool:
        """Navigate the route until interrupted, the source fails, or playback ends"""

        print("\n=== routewatch ===")
        print(f"Mode: {self.mode.value}{' (manual)' if not self.config['auto_detect_transport_mode'] else ''}")
        if isinstance(self.gps_source, GPSPlayback):
            print(f"Playback mode: {self.gps_source.speed}x speed")
        print("Press Ctrl+C to stop")
        print()

        engine = NavigationEngine(self.gps_source, routing_provider=self.provider,
                                  config=self.config, logger=self.logger)
        subscribers = [self.updates]
        if self.session_log_path:
            self.session_log = SessionLog(route, self.mode.value, engine.config)
            subscribers.append(self.session_log)
        if self.debug_server:
            self.debug_server.send_route(route)
            subscribers.append(self.debug_server.send_update)

        try:
            self.session = engine.start(route, self.mode, subscribers=subscribers)
        except (InvalidRouteError, SessionActiveError) as e:
            self.logger.error("Could not start navigation", {"error": str(e)})
            print(f"Could not start navigation: {e}")
            self.logger.close()
            return False

        self.start_time = time.time()
        self.last_log_update = time.time()
        playback_thread = None
        if isinstance(self.gps_source, GPSPlayback):
            playback_thread = self._start_playback()

        try:
            while self.session.is_active:
                update = self.updates.get(timeout=CONFIG["gps_poll_interval"])
                if update:
                    self.handle_update(update)
                self.periodic_update()
                # Check if playback finished
                if playback_thread is not None and not playback_thread.is_alive():
                    print("\nPlayback finished")
                    self.logger.info("Playback finished")
                    break
        except KeyboardInterrupt:
            print("\nNavigation interrupted")
            self.logger.info("Navigation interrupted by user")
        finally:
            self.session.stop()
            for update in self.updates.drain():
                self.handle_update(update)

            # Save GPS recording if applicable
            if isinstance(self.gps_source, GPSRecorder):
                self.gps_source.save()

            self._print_summary()

            if self.debug_server:
                self.debug_server.stop()
            self.logger.close()

        return self.session.terminal_error is None

    def _print_summary(self):
        duration = time.time() - self.start_time if self.start_time else 0
        summary = {"duration": duration}
        if self.session_log:
            self.session_log.save(self.session_log_path)
            summary.update(summarize_session(self.session_log.data))
            print(f"Session log saved to {self.session_log_path}")
        self.logger.info("Navigation summary", summary)

        print("\nNavigation summary:")
        print(f"  Duration: {duration/60:.1f} minutes")
        if self.session_log:
            print(f"  Samples: {summary['samples']}")
            print(f"  Max distance from route: {summary['max_distance_from_route_m']:.0f}m")
            print(f"  Time off route: {summary['off_route_s']:.0f}s")
            print(f"  Deviations: {summary['deviation_episodes']}, "
                  f"wrong way: {summary['wrong_way_episodes']}, "
                  f"mode changes: {summary['mode_changes']}")
        if self.session.terminal_error:
            print(f"  Stopped by: {self.session.terminal_error.message}")
