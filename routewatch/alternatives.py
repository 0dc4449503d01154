"""Asynchronous alternative-route lookups for a navigation session."""

import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from functools import partial
from typing import Callable, Optional

from .logger import Logger
from .models import LatLng
from .transport import TransportMode


class AlternativeRouteRequester:
    """Runs routing-provider lookups off the sample-processing path.

    At most one request is outstanding; further requests are ignored until
    it completes. After a failure, the next request waits for
    ``retry_interval_ms`` of sample time. ``cancel()`` invalidates the
    outstanding request so its completion is discarded.

    Args:
        provider: Object with ``compute_alternatives(origin, destination, mode)``.
        on_result: Called with ``(routes, key)`` on success.
        on_failure: Called with ``(exception, key)`` on provider failure.
        executor: Where provider calls run. Defaults to a private
            single-worker thread pool.
        retry_interval_ms: Back-off after a failed request.
    """

    def __init__(self, provider, on_result: Callable, on_failure: Optional[Callable] = None,
                 executor: Optional[Executor] = None, retry_interval_ms: float = 0,
                 logger: Optional[Logger] = None):
        self.provider = provider
        self.on_result = on_result
        self.on_failure = on_failure
        self.retry_interval_ms = retry_interval_ms
        self.logger = logger or Logger(echo=False)
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="routewatch-alternatives"
        )
        self._lock = threading.Lock()
        self._future: Optional[Future] = None
        self._generation = 0
        self._failed_at_ms: Optional[float] = None

    @property
    def in_flight(self) -> bool:
        with self._lock:
            return self._future is not None

    def request(self, origin: LatLng, destination: LatLng, mode: TransportMode,
                now_ms: float, key=None) -> bool:
        """Start a lookup unless one is outstanding or the retry back-off applies.

        Returns True if a provider call was submitted.
        """
        with self._lock:
            if self._future is not None:
                return False
            if (self._failed_at_ms is not None and
                    now_ms - self._failed_at_ms < self.retry_interval_ms):
                return False
            generation = self._generation
            future = self._executor.submit(
                self.provider.compute_alternatives, origin, destination, mode
            )
            self._future = future

        self.logger.info("Requesting alternative routes", {
            "origin": list(origin), "destination": list(destination), "mode": mode.value,
        })
        future.add_done_callback(partial(self._complete, generation, now_ms, key))
        return True

    def _complete(self, generation: int, requested_at_ms: float, key, future: Future):
        with self._lock:
            if generation != self._generation:
                return
            self._future = None
            if future.cancelled():
                return
            error = future.exception()
            self._failed_at_ms = requested_at_ms if error is not None else None

        if error is not None:
            self.logger.warning("Alternative route lookup failed", {"error": str(error)})
            if self.on_failure:
                self.on_failure(error, key)
            return

        routes = list(future.result() or [])
        self.logger.info("Alternative route lookup finished", {"routes": len(routes)})
        self.on_result(routes, key)

    def cancel(self):
        """Invalidate any outstanding request and clear the failure back-off"""
        with self._lock:
            self._generation += 1
            future, self._future = self._future, None
            self._failed_at_ms = None
        # Cancelling runs done-callbacks inline, so the lock must be released first
        if future is not None:
            future.cancel()

    def shutdown(self):
        self.cancel()
        if self._owns_executor:
            self._executor.shutdown(wait=False)
