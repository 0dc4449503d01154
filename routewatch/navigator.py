"""Navigation state machine: turns position samples into state and events."""

import queue
import threading
from concurrent.futures import Executor
from dataclasses import replace
from typing import Callable, Iterable, Optional, Union

from .alternatives import AlternativeRouteRequester
from .config import CONFIG
from .deviation import DeviationTracker
from .errors import PositionError, PositionErrorKind, SessionActiveError
from .geo import angle_difference, bearing_between, haversine_distance
from .logger import Logger
from .models import (
    AlternativesFoundEvent,
    BackOnCourseEvent,
    BackOnRouteEvent,
    NavigationErrorEvent,
    NavigationState,
    NavigationUpdate,
    Position,
    PositionWarningEvent,
    Route,
    RouteDeviation,
    SuggestedAction,
    TransportModeChangedEvent,
    WrongWayEvent,
)
from .route_index import RouteIndex
from .transport import TransportMode, TransportModeClassifier, thresholds_for
from .wrong_way import WrongWayDetector

Subscriber = Callable[[NavigationUpdate], None]


class UpdateQueue:
    """Subscriber that buffers updates for a consumer on another thread"""

    def __init__(self):
        self._queue: queue.Queue = queue.Queue()

    def __call__(self, update: NavigationUpdate):
        self._queue.put(update)

    def get(self, timeout: Optional[float] = None) -> Optional[NavigationUpdate]:
        """Block until an update arrives, or return None on timeout"""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> list[NavigationUpdate]:
        """Return every buffered update without blocking"""
        updates = []
        while True:
            try:
                updates.append(self._queue.get_nowait())
            except queue.Empty:
                return updates


class NavigationEngine:
    """Creates navigation sessions bound to a position source.

    One engine runs at most one session at a time. Engines share no state,
    so several can run side by side in one process.

    Typical lifecycle:
        engine = NavigationEngine(gps, routing_provider=OSRMRoutingProvider())
        session = engine.start(route, TransportMode.DRIVING, subscribers=[on_update])
        ...
        session.stop()
    """

    def __init__(self, position_source, routing_provider=None, heading_source=None,
                 config: Optional[dict] = None, logger: Optional[Logger] = None,
                 executor: Optional[Executor] = None):
        self.position_source = position_source
        self.routing_provider = routing_provider
        self.heading_source = heading_source
        self.config = {**CONFIG, **(config or {})}
        self.logger = logger or Logger(echo=False)
        self.executor = executor
        self._lock = threading.Lock()
        self._session: Optional["NavigationSession"] = None

    @property
    def active_session(self) -> Optional["NavigationSession"]:
        with self._lock:
            if self._session is not None and self._session.is_active:
                return self._session
            return None

    def start(self, route: Route, initial_mode: Union[TransportMode, str] = TransportMode.WALKING,
              subscribers: Iterable[Subscriber] = ()) -> "NavigationSession":
        """Begin navigating a route.

        Subscribers passed here are attached before the position source is
        subscribed, so they see the very first sample.

        Raises:
            SessionActiveError: A session from this engine is still running.
            InvalidRouteError: The route has fewer than two distinct points.
            PositionError: The position source refused the subscription.
        """
        mode = TransportMode(initial_mode)
        with self._lock:
            if self._session is not None and self._session.is_active:
                raise SessionActiveError("A navigation session is already active")
            index = RouteIndex(route)
            session = NavigationSession(self, index, mode)
            for callback in subscribers:
                session.subscribe(callback)
            self._session = session

        try:
            session._attach_sources()
        except Exception:
            session.stop()
            raise
        return session

    def stop(self):
        session = self.active_session
        if session:
            session.stop()

    def _release(self, session: "NavigationSession"):
        with self._lock:
            if self._session is session:
                self._session = None


class NavigationSession:
    """One active navigation: the single writer of its NavigationState.

    Samples, source errors and alternative-route completions can arrive on
    different threads; they are serialised by the session lock and
    subscribers are called while it is held, so every subscriber sees
    updates in processing order.
    """

    def __init__(self, engine: NavigationEngine, index: RouteIndex, mode: TransportMode):
        self.engine = engine
        self.config = engine.config
        self.logger = engine.logger
        self.index = index
        self.route = index.route
        self.terminal_error: Optional[PositionError] = None

        self._lock = threading.RLock()
        self._subscribers: list[Subscriber] = []
        self._active = True
        self._mode = mode
        self._detected_mode = mode
        self._auto_mode = self.config["auto_detect_transport_mode"]

        self._classifier = TransportModeClassifier(
            initial_mode=mode,
            window=self.config["speed_window"],
            confirm=self.config["mode_confirm_samples"],
            config=self.config,
        )
        self._deviation = DeviationTracker(
            alternative_after=self.config["deviation_alternative_after"],
            recalculate_after=self.config["deviation_recalculate_after"],
        )
        cooldown = self.config["wrong_way_cooldown"]
        self._wrong_way = WrongWayDetector(
            cooldown_ms=cooldown * 1000 if cooldown is not None else None
        )
        self._requester: Optional[AlternativeRouteRequester] = None
        if engine.routing_provider is not None:
            self._requester = AlternativeRouteRequester(
                engine.routing_provider,
                on_result=self._on_alternatives,
                on_failure=self._on_alternatives_failed,
                executor=engine.executor,
                retry_interval_ms=self.config["alternatives_retry_interval"] * 1000,
                logger=self.logger,
            )

        self._last_position: Optional[Position] = None
        self._movement_heading: Optional[float] = None
        self._compass_heading: Optional[float] = None
        self._alternatives: tuple[Route, ...] = ()
        self._alternatives_key = None
        self._unsubscribe_position: Optional[Callable] = None
        self._unsubscribe_heading: Optional[Callable] = None
        self._state = NavigationState(
            is_navigating=True,
            transport_mode=mode,
            route_direction=index.segment_bearings[0],
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _attach_sources(self):
        self.logger.info("Navigation started", {
            "mode": self._mode.value,
            "route_points": len(self.index.points),
            "destination": list(self.index.destination),
        })
        if self.engine.heading_source is not None:
            try:
                self._unsubscribe_heading = self.engine.heading_source.subscribe(self._on_heading)
            except Exception as e:
                self.logger.warning("Heading source unavailable, using GPS bearing", {"error": str(e)})
        self._unsubscribe_position = self.engine.position_source.subscribe(
            self.process, self.handle_error
        )

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def state(self) -> NavigationState:
        with self._lock:
            return self._state

    @property
    def transport_mode(self) -> TransportMode:
        return self._mode

    @property
    def alternatives(self) -> tuple[Route, ...]:
        with self._lock:
            return self._alternatives

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register for updates; returns a function that unregisters"""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def stop(self):
        """End the session. Safe to call more than once."""
        with self._lock:
            if not self._active:
                return
            self._active = False
            if self._requester:
                self._requester.shutdown()
            self._state = NavigationState(is_navigating=False, transport_mode=self._mode)
            unsubscribers = [self._unsubscribe_position, self._unsubscribe_heading]
            self._unsubscribe_position = None
            self._unsubscribe_heading = None

        # Outside the lock: a source may be blocked waiting for it while we join its thread
        for unsubscribe in unsubscribers:
            if unsubscribe:
                unsubscribe()
        self.engine._release(self)
        self.logger.info("Navigation stopped")

    # ------------------------------------------------------------------
    # Source callbacks
    # ------------------------------------------------------------------

    def _on_heading(self, heading: Optional[float]):
        with self._lock:
            if heading is None:
                self._compass_heading = None
            else:
                self._compass_heading = heading % 360

    def handle_error(self, error: Exception):
        """Position source failure: fatal on permission denial, otherwise a warning"""
        if not isinstance(error, PositionError):
            error = PositionError(PositionErrorKind.POSITION_UNAVAILABLE, str(error))

        with self._lock:
            if not self._active:
                return
            if error.is_fatal:
                self.logger.error("Position permission denied, stopping navigation",
                                  {"error": error.message})
                self.terminal_error = error
                event = NavigationErrorEvent(error_kind=error.kind.value, message=error.message)
                update = NavigationUpdate(
                    NavigationState(is_navigating=False, transport_mode=self._mode), (event,)
                )
            else:
                self.logger.warning("Position source problem", {
                    "kind": error.kind.value, "error": error.message,
                })
                event = PositionWarningEvent(error_kind=error.kind.value, message=error.message)
                update = NavigationUpdate(self._state, (event,))
                self._publish(update)
                return

        self.stop()
        with self._lock:
            self._publish(update)

    def process(self, position: Position) -> Optional[NavigationUpdate]:
        """Run one sample through the pipeline.

        Returns the published update, or None if the sample was dropped.
        """
        with self._lock:
            if not self._active:
                return None
            if not isinstance(position, Position) or not position.is_valid():
                self.logger.debug("Dropped malformed sample", {"sample": repr(position)})
                return None
            previous = self._last_position
            if previous is not None and position.timestamp_ms <= previous.timestamp_ms:
                self.logger.debug("Dropped out-of-order sample", {
                    "timestamp_ms": position.timestamp_ms,
                    "last_timestamp_ms": previous.timestamp_ms,
                })
                return None

            now_ms = position.timestamp_ms
            speed = self._sample_speed(previous, position)
            movement = self._sample_heading(previous, position)
            events = []

            mode_event = self._update_transport_mode(speed)
            thresholds = thresholds_for(self._mode)

            match = self.index.locate(position.lat, position.lng)
            distance = match.distance_m
            is_on_route = distance <= thresholds.route_deviation_distance

            deviation = self._deviation.update(distance, thresholds, now_ms)
            if deviation.started or deviation.escalated:
                events.append(RouteDeviation(
                    distance_m=distance,
                    duration_s=deviation.duration_s,
                    suggested_action=deviation.suggested_action,
                    transport_mode=self._mode,
                    alternative_routes=self._alternatives,
                ))
                self.logger.info("Route deviation", {
                    "distance": round(distance, 1),
                    "duration": round(deviation.duration_s, 1),
                    "action": deviation.suggested_action.value,
                })
            if deviation.returned:
                events.append(BackOnRouteEvent(
                    distance_m=distance,
                    off_route_duration_s=deviation.ended_duration_s,
                    timestamp_ms=now_ms,
                ))
                self.logger.info("Back on route", {"off_route_for": round(deviation.ended_duration_s, 1)})
                self._clear_alternatives()
            if deviation.suggested_action is SuggestedAction.RECALCULATE:
                self._request_alternatives(position, now_ms)

            wrong_way = self._wrong_way.update(
                speed, movement, match.expected_bearing, thresholds, now_ms
            )
            if wrong_way.alert:
                events.append(WrongWayEvent(
                    movement_heading=movement,
                    expected_heading=match.expected_bearing,
                    angle_difference=wrong_way.angle_difference,
                    count=wrong_way.count,
                    repeat=not wrong_way.entered,
                    timestamp_ms=now_ms,
                    transport_mode=self._mode,
                ))
                self.logger.info("Wrong way", {
                    "movement": round(movement),
                    "expected": round(match.expected_bearing),
                    "difference": round(wrong_way.angle_difference),
                    "count": wrong_way.count,
                })
            if wrong_way.cleared:
                events.append(BackOnCourseEvent(timestamp_ms=now_ms))
                self.logger.info("Back on correct direction")

            if mode_event is not None:
                events.append(mode_event)

            heading_difference = None
            if movement is not None:
                heading_difference = angle_difference(movement, match.expected_bearing)

            self._state = NavigationState(
                is_navigating=True,
                last_position=position,
                current_heading=(self._compass_heading if self._compass_heading is not None
                                 else movement),
                movement_heading=movement,
                speed=speed,
                transport_mode=self._mode,
                route_direction=match.expected_bearing,
                is_on_route=is_on_route,
                distance_from_route=distance,
                heading_difference=heading_difference,
                wrong_way_active=wrong_way.active,
                wrong_way_count=wrong_way.count,
                has_alternatives=bool(self._alternatives),
                accuracy=position.accuracy,
                deviation_duration=deviation.duration_s,
            )
            self._last_position = position
            self._movement_heading = movement

            update = NavigationUpdate(self._state, tuple(events))
            self.logger.debug("Sample processed", {
                "lat": round(position.lat, 6),
                "lng": round(position.lng, 6),
                "speed": round(speed, 1),
                "distance": round(distance, 1),
            })
            self._publish(update)
            return update

    # ------------------------------------------------------------------
    # Pipeline steps
    # ------------------------------------------------------------------

    @staticmethod
    def _sample_speed(previous: Optional[Position], position: Position) -> float:
        """Reported speed, or distance over time since the previous sample"""
        if position.speed is not None:
            return position.speed
        if previous is None:
            return 0.0
        elapsed = (position.timestamp_ms - previous.timestamp_ms) / 1000
        moved = haversine_distance(previous.lat, previous.lng, position.lat, position.lng)
        return moved / elapsed

    def _sample_heading(self, previous: Optional[Position], position: Position) -> Optional[float]:
        """Device heading if reported, else bearing from the previous sample"""
        if position.heading is not None:
            return position.heading % 360
        if previous is not None and previous.latlng != position.latlng:
            return bearing_between(previous.lat, previous.lng, position.lat, position.lng)
        return self._movement_heading

    def _update_transport_mode(self, speed: float) -> Optional[TransportModeChangedEvent]:
        classification = self._classifier.update(speed)
        detected = classification.stable_mode
        # Transit is only ever chosen by the caller and never overridden
        if (self._mode is TransportMode.TRANSIT or detected is None
                or detected == self._detected_mode):
            return None

        previous = self._mode
        self._detected_mode = detected
        if self._auto_mode:
            self._mode = detected
        self.logger.info("Transport mode detected", {
            "previous": previous.value,
            "detected": detected.value,
            "mean_speed": round(classification.mean_speed, 2),
            "applied": self._auto_mode,
        })
        return TransportModeChangedEvent(
            previous=previous,
            detected=detected,
            mean_speed=classification.mean_speed,
            applied=self._auto_mode,
        )

    def _request_alternatives(self, position: Position, now_ms: float):
        if self._requester is None:
            return
        episode = self._deviation.started_at_ms
        if self._alternatives_key == episode:
            return
        self._requester.request(
            position.latlng, self.index.destination, self._mode, now_ms, key=episode
        )

    def _clear_alternatives(self):
        self._alternatives = ()
        self._alternatives_key = None
        if self._requester:
            self._requester.cancel()

    def _on_alternatives(self, routes: list[Route], key):
        with self._lock:
            if not self._active:
                return
            if key != self._deviation.started_at_ms:
                self.logger.debug("Discarded alternatives for an ended deviation")
                return
            if not routes:
                self.logger.info("No alternative routes found")
                return
            self._alternatives = tuple(routes)
            self._alternatives_key = key
            self._state = replace(self._state, has_alternatives=True)
            self.logger.info("Found alternative routes", {"count": len(routes)})
            self._publish(NavigationUpdate(self._state, (AlternativesFoundEvent(routes=tuple(routes)),)))

    def _on_alternatives_failed(self, error: Exception, key):
        # Escalation keeps running; the requester retries after its back-off
        self.logger.debug("Alternatives unavailable, will retry on a later sample",
                          {"error": str(error)})

    def _publish(self, update: NavigationUpdate):
        for callback in list(self._subscribers):
            try:
                callback(update)
            except Exception as e:
                self.logger.error("Subscriber failed", {"error": repr(e)})
