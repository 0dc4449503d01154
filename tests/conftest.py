import pytest
from concurrent.futures import Executor, Future

from routewatch import NavigationEngine, Position, PositionError, Route
from routewatch.logger import Logger


class FakePositionSource:
    """Position source driven by the test: emit() and fail() call the subscriber directly"""

    def __init__(self, fail_with=None):
        self.on_position = None
        self.on_error = None
        self.subscribe_calls = 0
        self.unsubscribed = False
        self.fail_with = fail_with

    def subscribe(self, on_position, on_error=None):
        self.subscribe_calls += 1
        if self.fail_with:
            raise self.fail_with
        self.on_position = on_position
        self.on_error = on_error
        self.unsubscribed = False

        def unsubscribe():
            self.unsubscribed = True
            self.on_position = None
            self.on_error = None

        return unsubscribe

    @property
    def subscribed(self):
        return self.on_position is not None

    def emit(self, position):
        self.on_position(position)

    def fail(self, kind, message=""):
        self.on_error(PositionError(kind, message))


class FakeHeadingSource:
    def __init__(self, fail_with=None):
        self.callback = None
        self.fail_with = fail_with

    def subscribe(self, callback):
        if self.fail_with:
            raise self.fail_with
        self.callback = callback

        def unsubscribe():
            self.callback = None

        return unsubscribe

    def push(self, heading):
        self.callback(heading)


class ManualExecutor(Executor):
    """Executor that only runs submitted work when the test says so"""

    def __init__(self):
        self.pending = []

    def submit(self, fn, *args, **kwargs):
        future = Future()
        self.pending.append((future, fn, args, kwargs))
        return future

    def run_pending(self):
        pending, self.pending = self.pending, []
        for future, fn, args, kwargs in pending:
            if not future.set_running_or_notify_cancel():
                continue
            try:
                result = fn(*args, **kwargs)
            except Exception as e:
                future.set_exception(e)
            else:
                future.set_result(result)


class FakeProvider:
    def __init__(self, routes=None, error=None):
        self.routes = routes or []
        self.error = error
        self.calls = []

    def compute_alternatives(self, origin, destination, mode):
        self.calls.append((origin, destination, mode))
        if self.error:
            raise self.error
        return list(self.routes)


# Offsets east of the straight route at the equator
METERS_PER_DEGREE = 111194.93


def east_of_route(meters):
    return meters / METERS_PER_DEGREE


@pytest.fixture
def straight_route():
    # ~1.1 km due north along the prime meridian
    return Route(path=[(0.0, 0.0), (0.01, 0.0)])


@pytest.fixture
def fake_source():
    return FakePositionSource()


@pytest.fixture
def manual_executor():
    return ManualExecutor()


@pytest.fixture
def alternative_routes():
    return [
        Route(path=[(0.0, 0.002), (0.01, 0.002), (0.01, 0.0)], distance_m=1350, duration_s=100),
        Route(path=[(0.0, 0.002), (0.005, 0.0), (0.01, 0.0)], distance_m=1200, duration_s=95),
    ]


@pytest.fixture
def provider(alternative_routes):
    return FakeProvider(routes=alternative_routes)


@pytest.fixture
def engine(fake_source, provider, manual_executor):
    return NavigationEngine(fake_source, routing_provider=provider,
                            logger=Logger(echo=False, level="debug"),
                            executor=manual_executor)


@pytest.fixture
def position():
    """Factory for samples; times are in seconds"""
    def make(lat, lng, t, speed=None, heading=None, accuracy=5.0):
        return Position(lat=lat, lng=lng, accuracy=accuracy, timestamp_ms=t * 1000,
                        speed=speed, heading=heading)
    return make
