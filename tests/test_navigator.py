import pytest

from routewatch import (
    AlternativesFoundEvent,
    BackOnCourseEvent,
    BackOnRouteEvent,
    InvalidRouteError,
    NavigationEngine,
    NavigationErrorEvent,
    PositionError,
    PositionErrorKind,
    PositionWarningEvent,
    Route,
    RouteDeviation,
    RoutingError,
    SessionActiveError,
    SuggestedAction,
    TransportMode,
    TransportModeChangedEvent,
    UpdateQueue,
    WrongWayEvent,
)
from routewatch.logger import Logger

from conftest import FakeHeadingSource, FakePositionSource, FakeProvider, east_of_route


def kinds(update):
    return [e.kind for e in update.events]


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

def test_start_subscribes_and_stop_unsubscribes(engine, fake_source, straight_route):
    session = engine.start(straight_route, TransportMode.WALKING)
    assert fake_source.subscribed
    assert engine.active_session is session
    assert session.state.is_navigating
    assert session.state.route_direction == pytest.approx(0, abs=1e-9)

    session.stop()
    assert fake_source.unsubscribed
    assert not session.is_active
    assert not session.state.is_navigating
    assert engine.active_session is None
    # Idempotent
    session.stop()


def test_second_start_rejected_until_stopped(engine, straight_route):
    session = engine.start(straight_route)
    with pytest.raises(SessionActiveError):
        engine.start(straight_route)
    session.stop()
    engine.start(straight_route).stop()


@pytest.mark.parametrize("path", [[], [(0.0, 0.0)], [(0.0, 0.0), (0.0, 0.0)]])
def test_invalid_route_rejected(engine, fake_source, path):
    with pytest.raises(InvalidRouteError):
        engine.start(Route(path=path))
    assert not fake_source.subscribed
    assert engine.active_session is None


def test_engines_are_independent(straight_route, position):
    first_source, second_source = FakePositionSource(), FakePositionSource()
    first = NavigationEngine(first_source).start(straight_route, TransportMode.DRIVING)
    second = NavigationEngine(second_source).start(straight_route, TransportMode.DRIVING)

    first_source.emit(position(0.005, east_of_route(111), 0))
    second_source.emit(position(0.005, 0, 0))

    assert not first.state.is_on_route
    assert second.state.is_on_route
    first.stop()
    assert second.is_active
    second.stop()


def test_accepts_mode_as_string(engine, straight_route):
    session = engine.start(straight_route, "cycling")
    assert session.transport_mode is TransportMode.CYCLING
    session.stop()


# ---------------------------------------------------------------------------
# Sample pipeline
# ---------------------------------------------------------------------------

def test_off_route_escalates_to_alternative(engine, fake_source, straight_route, position):
    received = []
    session = engine.start(straight_route, TransportMode.DRIVING, subscribers=[received.append])

    fake_source.emit(position(0.005, east_of_route(111.2), 0))
    state = session.state
    assert not state.is_on_route
    assert state.distance_from_route == pytest.approx(111.2, abs=0.5)
    (deviation,) = received[-1].events_of(RouteDeviation)
    assert deviation.suggested_action is SuggestedAction.RETURN
    assert deviation.duration_s == 0

    fake_source.emit(position(0.005, east_of_route(111.2), 31))
    (deviation,) = received[-1].events_of(RouteDeviation)
    assert deviation.suggested_action is SuggestedAction.ALTERNATIVE
    assert deviation.duration_s == pytest.approx(31)
    assert session.state.deviation_duration == pytest.approx(31)
    session.stop()


def test_deviation_events_only_on_change(engine, fake_source, straight_route, position):
    received = []
    engine.start(straight_route, TransportMode.DRIVING, subscribers=[received.append])
    for t in range(0, 20, 2):
        fake_source.emit(position(0.005, east_of_route(111), t))
    assert len(received) == 10
    assert sum(len(u.events_of(RouteDeviation)) for u in received) == 1
    engine.stop()


def test_far_deviation_recalculates_and_requests_alternatives(
        engine, fake_source, provider, manual_executor, straight_route, position):
    received = []
    session = engine.start(straight_route, TransportMode.DRIVING, subscribers=[received.append])

    fake_source.emit(position(0.005, east_of_route(250), 0))
    (deviation,) = received[-1].events_of(RouteDeviation)
    assert deviation.suggested_action is SuggestedAction.RECALCULATE
    assert len(manual_executor.pending) == 1

    manual_executor.run_pending()
    found = received[-1].events_of(AlternativesFoundEvent)
    assert len(found) == 1
    assert len(found[0].routes) == 2
    assert session.state.has_alternatives
    assert session.alternatives == tuple(provider.routes)
    origin, destination, mode = provider.calls[0]
    assert destination == (0.01, 0.0)
    assert mode is TransportMode.DRIVING

    # Still recalculating: no second lookup for the same episode
    fake_source.emit(position(0.005, east_of_route(250), 5))
    manual_executor.run_pending()
    assert len(provider.calls) == 1
    assert session.state.has_alternatives
    assert received[-1].state.has_alternatives

    fake_source.emit(position(0.005, 0, 10))
    assert received[-1].events_of(BackOnRouteEvent)
    assert not session.state.has_alternatives
    assert session.alternatives == ()
    session.stop()


def test_new_episode_starts_without_alternatives(
        engine, fake_source, manual_executor, straight_route, position):
    received = []
    engine.start(straight_route, TransportMode.WALKING, subscribers=[received.append])
    # Recalculate distance for walking is 50 m
    fake_source.emit(position(0.005, east_of_route(60), 0))
    manual_executor.run_pending()
    fake_source.emit(position(0.005, east_of_route(60), 1))
    fake_source.emit(position(0.005, 0, 2))
    fake_source.emit(position(0.005, east_of_route(30), 3))
    (first,) = received[0].events_of(RouteDeviation)
    (second,) = received[-1].events_of(RouteDeviation)
    assert first.alternative_routes == ()
    assert second.alternative_routes == ()
    assert second.suggested_action is SuggestedAction.RETURN
    engine.stop()


def test_failed_lookup_retries_after_interval(fake_source, manual_executor, straight_route, position):
    provider = FakeProvider(error=RoutingError("offline"))
    engine = NavigationEngine(fake_source, routing_provider=provider, executor=manual_executor)
    received = []
    session = engine.start(straight_route, TransportMode.DRIVING, subscribers=[received.append])

    fake_source.emit(position(0.005, east_of_route(250), 0))
    manual_executor.run_pending()
    assert not session.state.has_alternatives
    assert not any(u.events_of(AlternativesFoundEvent) for u in received)

    fake_source.emit(position(0.005, east_of_route(250), 5))
    assert manual_executor.pending == []
    fake_source.emit(position(0.005, east_of_route(250), 16))
    assert len(manual_executor.pending) == 1
    manual_executor.run_pending()
    assert len(provider.calls) == 2
    session.stop()


def test_empty_alternatives_produce_no_event(fake_source, manual_executor, straight_route, position):
    engine = NavigationEngine(fake_source, routing_provider=FakeProvider(routes=[]),
                              executor=manual_executor)
    received = []
    session = engine.start(straight_route, TransportMode.DRIVING, subscribers=[received.append])
    fake_source.emit(position(0.005, east_of_route(250), 0))
    manual_executor.run_pending()
    assert len(received) == 1
    assert not session.state.has_alternatives
    session.stop()


def test_late_completion_after_stop_is_discarded(
        engine, fake_source, manual_executor, straight_route, position):
    received = []
    session = engine.start(straight_route, TransportMode.DRIVING, subscribers=[received.append])
    fake_source.emit(position(0.005, east_of_route(250), 0))
    session.stop()
    manual_executor.run_pending()
    assert not any(u.events_of(AlternativesFoundEvent) for u in received)


def test_late_completion_after_return_is_discarded(
        engine, fake_source, manual_executor, straight_route, position):
    received = []
    session = engine.start(straight_route, TransportMode.DRIVING, subscribers=[received.append])
    fake_source.emit(position(0.005, east_of_route(250), 0))
    fake_source.emit(position(0.005, 0, 3))
    manual_executor.run_pending()
    assert not any(u.events_of(AlternativesFoundEvent) for u in received)
    assert not session.state.has_alternatives
    session.stop()


def test_no_provider_means_no_lookup(fake_source, straight_route, position):
    received = []
    session = NavigationEngine(fake_source).start(
        straight_route, TransportMode.DRIVING, subscribers=[received.append]
    )
    fake_source.emit(position(0.005, east_of_route(250), 0))
    assert received[-1].events_of(RouteDeviation)[0].suggested_action is SuggestedAction.RECALCULATE
    assert not session.state.has_alternatives
    session.stop()


def test_wrong_way_on_first_fast_sample(engine, fake_source, straight_route, position):
    received = []
    session = engine.start(straight_route, TransportMode.DRIVING, subscribers=[received.append])

    fake_source.emit(position(0.005, 0, 0, speed=15, heading=180))
    state = session.state
    assert state.wrong_way_active
    assert state.wrong_way_count == 1
    assert state.heading_difference == pytest.approx(180)
    (event,) = received[-1].events_of(WrongWayEvent)
    assert event.count == 1
    assert not event.repeat
    assert event.expected_heading == pytest.approx(0, abs=1e-9)

    fake_source.emit(position(0.00495, 0, 5, speed=15, heading=180))
    assert received[-1].events == ()

    fake_source.emit(position(0.0048, 0, 11, speed=15, heading=180))
    (event,) = received[-1].events_of(WrongWayEvent)
    assert event.repeat
    assert event.count == 2

    fake_source.emit(position(0.0049, 0, 12, speed=15, heading=0))
    assert received[-1].events_of(BackOnCourseEvent)
    assert not session.state.wrong_way_active
    assert session.state.wrong_way_count == 0
    session.stop()


def test_slow_samples_never_wrong_way(engine, fake_source, straight_route, position):
    received = []
    session = engine.start(straight_route, TransportMode.WALKING, subscribers=[received.append])
    for t in range(8):
        fake_source.emit(position(0.005 - t * 0.000002, 0, t, speed=0.3, heading=180))
    assert not session.state.wrong_way_active
    assert not any(u.events_of(WrongWayEvent) for u in received)
    session.stop()


def test_events_ordered_deviation_wrong_way_mode(engine, fake_source, straight_route, position):
    received = []
    session = engine.start(straight_route, TransportMode.WALKING, subscribers=[received.append])
    for t in range(6):
        fake_source.emit(position(0.001 * t, 0, t, speed=15, heading=0))
    assert session.transport_mode is TransportMode.WALKING

    # Seventh fast sample confirms driving; it is also off-route and reversed
    fake_source.emit(position(0.006, east_of_route(111), 6, speed=15, heading=180))
    assert kinds(received[-1]) == ["route_deviation", "wrong_way", "transport_mode_changed"]
    (change,) = received[-1].events_of(TransportModeChangedEvent)
    assert change.previous is TransportMode.WALKING
    assert change.detected is TransportMode.DRIVING
    assert change.applied
    assert change.mean_speed == pytest.approx(15)
    assert session.transport_mode is TransportMode.DRIVING
    assert session.state.transport_mode is TransportMode.DRIVING
    session.stop()


def test_manual_mode_reports_without_switching(fake_source, straight_route, position):
    engine = NavigationEngine(fake_source, config={"auto_detect_transport_mode": False})
    received = []
    session = engine.start(straight_route, TransportMode.WALKING, subscribers=[received.append])
    for t in range(10):
        fake_source.emit(position(0.0005 * t, 0, t, speed=15, heading=0))
    changes = [e for u in received for e in u.events_of(TransportModeChangedEvent)]
    assert len(changes) == 1
    assert not changes[0].applied
    assert changes[0].detected is TransportMode.DRIVING
    assert session.transport_mode is TransportMode.WALKING
    session.stop()


def test_transit_never_overridden(fake_source, straight_route, position):
    received = []
    session = NavigationEngine(fake_source).start(
        straight_route, TransportMode.TRANSIT, subscribers=[received.append]
    )
    for t in range(10):
        fake_source.emit(position(0.0005 * t, 0, t, speed=1.0))
    assert session.transport_mode is TransportMode.TRANSIT
    assert not any(u.events_of(TransportModeChangedEvent) for u in received)
    session.stop()


def test_speed_and_heading_derived_when_missing(engine, fake_source, straight_route, position):
    session = engine.start(straight_route, TransportMode.WALKING)
    fake_source.emit(position(0.001, 0, 0))
    assert session.state.speed == 0
    assert session.state.movement_heading is None

    # ~11.1 m north in 10 s
    fake_source.emit(position(0.0011, 0, 10))
    assert session.state.speed == pytest.approx(1.11, abs=0.01)
    assert session.state.movement_heading == pytest.approx(0, abs=1e-6)

    # Standing still keeps the last heading
    fake_source.emit(position(0.0011, 0, 11))
    assert session.state.movement_heading == pytest.approx(0, abs=1e-6)
    session.stop()


def test_heading_source_sets_current_heading(fake_source, straight_route, position):
    heading = FakeHeadingSource()
    engine = NavigationEngine(fake_source, heading_source=heading)
    session = engine.start(straight_route, TransportMode.WALKING)
    heading.push(450)

    fake_source.emit(position(0.001, 0, 0))
    fake_source.emit(position(0.0011, 0, 10))
    assert session.state.current_heading == 90
    # Wrong-way checks use the direction of travel, not the compass
    assert session.state.movement_heading == pytest.approx(0, abs=1e-6)
    assert not session.state.wrong_way_active

    session.stop()
    assert heading.callback is None


def test_unavailable_heading_source_falls_back(fake_source, straight_route, position):
    heading = FakeHeadingSource(fail_with=PositionError(PositionErrorKind.PERMISSION_DENIED))
    session = NavigationEngine(fake_source, heading_source=heading).start(straight_route)
    assert session.is_active
    fake_source.emit(position(0.001, 0, 0))
    fake_source.emit(position(0.0011, 0, 10))
    assert session.state.current_heading == pytest.approx(0, abs=1e-6)
    session.stop()


def test_any_heading_source_failure_falls_back(fake_source, straight_route, position):
    heading = FakeHeadingSource(fail_with=PermissionError("orientation permission denied"))
    engine = NavigationEngine(fake_source, heading_source=heading)
    session = engine.start(straight_route)
    assert session.is_active
    assert fake_source.subscribed
    assert engine.active_session is session

    fake_source.emit(position(0.001, 0, 0))
    fake_source.emit(position(0.0011, 0, 10))
    assert session.state.current_heading == pytest.approx(0, abs=1e-6)
    session.stop()


def test_refused_position_source_releases_engine(straight_route):
    source = FakePositionSource(fail_with=PositionError(PositionErrorKind.PERMISSION_DENIED))
    heading = FakeHeadingSource()
    engine = NavigationEngine(source, heading_source=heading)

    with pytest.raises(PositionError):
        engine.start(straight_route)
    assert engine.active_session is None
    assert heading.callback is None

    source.fail_with = None
    session = engine.start(straight_route)
    assert source.subscribed
    assert heading.callback is not None
    session.stop()


# ---------------------------------------------------------------------------
# Dropped samples and source errors
# ---------------------------------------------------------------------------

def test_out_of_order_and_duplicate_samples_dropped(engine, fake_source, straight_route, position):
    received = []
    session = engine.start(straight_route, subscribers=[received.append])
    fake_source.emit(position(0.001, 0, 10))
    fake_source.emit(position(0.002, 0, 5))
    fake_source.emit(position(0.003, 0, 10))
    assert len(received) == 1
    assert session.state.last_position.timestamp_ms == 10_000
    session.stop()


@pytest.mark.parametrize("kwargs", [
    {"lat": float("nan"), "lng": 0.0},
    {"lat": 95.0, "lng": 0.0},
    {"lat": 0.0, "lng": 0.0, "accuracy": -1.0},
    {"lat": 0.0, "lng": 0.0, "speed": -2.0},
])
def test_malformed_samples_dropped(engine, fake_source, straight_route, position, kwargs):
    received = []
    session = engine.start(straight_route, subscribers=[received.append])
    fake_source.emit(position(t=1, **kwargs))
    assert received == []
    assert session.process("not a position") is None
    assert session.state.last_position is None
    session.stop()


def test_permission_denied_stops_session(engine, fake_source, straight_route, position):
    received = []
    session = engine.start(straight_route, subscribers=[received.append])
    fake_source.emit(position(0.001, 0, 0))

    fake_source.fail(PositionErrorKind.PERMISSION_DENIED, "location permission denied")
    final = received[-1]
    (error,) = final.events_of(NavigationErrorEvent)
    assert error.error_kind == "permission_denied"
    assert not final.state.is_navigating
    assert not session.is_active
    assert session.terminal_error.kind is PositionErrorKind.PERMISSION_DENIED
    assert fake_source.unsubscribed
    assert engine.active_session is None

    assert session.process(position(0.002, 0, 5)) is None
    assert len(received) == 2


@pytest.mark.parametrize("kind", [PositionErrorKind.TIMEOUT, PositionErrorKind.POSITION_UNAVAILABLE])
def test_transient_errors_warn_and_continue(engine, fake_source, straight_route, position, kind):
    received = []
    session = engine.start(straight_route, subscribers=[received.append])
    fake_source.emit(position(0.001, 0, 0))
    before = session.state

    fake_source.fail(kind, "no fix")
    (warning,) = received[-1].events_of(PositionWarningEvent)
    assert warning.error_kind == kind.value
    assert received[-1].state is before
    assert session.is_active

    fake_source.emit(position(0.0011, 0, 5))
    assert len(received) == 3
    session.stop()


def test_failing_subscriber_does_not_block_others(engine, fake_source, straight_route, position):
    def broken(update):
        raise RuntimeError("boom")

    queue = UpdateQueue()
    session = engine.start(straight_route, subscribers=[broken, queue])
    fake_source.emit(position(0.001, 0, 0))
    assert len(queue.drain()) == 1
    assert session.is_active
    session.stop()


def test_subscribe_and_unsubscribe_later(engine, fake_source, straight_route, position):
    session = engine.start(straight_route)
    received = []
    unsubscribe = session.subscribe(received.append)
    fake_source.emit(position(0.001, 0, 0))
    unsubscribe()
    fake_source.emit(position(0.0011, 0, 5))
    assert len(received) == 1
    session.stop()


def test_logger_records_transitions(tmp_path, fake_source, straight_route, position):
    log_path = tmp_path / "nav.log"
    logger = Logger(str(log_path), echo=False)
    engine = NavigationEngine(fake_source, logger=logger)
    session = engine.start(straight_route, TransportMode.DRIVING)
    fake_source.emit(position(0.005, east_of_route(111), 0))
    fake_source.emit(position(0.005, 0, 5))
    session.stop()
    logger.close()

    text = log_path.read_text()
    assert "INFO Navigation started" in text
    assert "INFO Route deviation" in text
    assert "INFO Back on route" in text
    # Below the default level
    assert "Sample processed" not in text
