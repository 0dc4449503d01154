"""Position sources: live GPS, recording and playback."""

import json
import subprocess
import threading
import time
from datetime import datetime
from typing import Callable, Optional

from .config import CONFIG
from .errors import PositionError, PositionErrorKind
from .models import Position


class _Subscribers:
    """Thread-safe fan-out of position and error callbacks"""

    def __init__(self):
        self._lock = threading.Lock()
        self._items: list[tuple[Callable, Callable]] = []

    def add(self, on_position: Callable, on_error: Optional[Callable]) -> tuple:
        item = (on_position, on_error)
        with self._lock:
            self._items.append(item)
        return item

    def remove(self, item: tuple) -> bool:
        """Remove a subscriber; returns True if none are left"""
        with self._lock:
            if item in self._items:
                self._items.remove(item)
            return not self._items

    def __bool__(self) -> bool:
        with self._lock:
            return bool(self._items)

    def emit_position(self, position: Position):
        with self._lock:
            items = list(self._items)
        for on_position, _ in items:
            on_position(position)

    def emit_error(self, error: PositionError):
        with self._lock:
            items = list(self._items)
        for _, on_error in items:
            if on_error:
                on_error(error)


class TermuxGPS:
    """GPS access via Termux API, polled on a background thread"""

    def __init__(self, poll_interval: Optional[float] = None, timeout: Optional[int] = None):
        self.poll_interval = poll_interval if poll_interval is not None else CONFIG["gps_poll_interval"]
        self.timeout = timeout or CONFIG["gps_fix_timeout"]
        self.last_position: Optional[Position] = None
        self.consecutive_failures = 0
        self._subscribers = _Subscribers()
        self._lock = threading.Lock()
        self._stop_event: Optional[threading.Event] = None

    def get_location(self, timeout: Optional[int] = None) -> Position:
        """Get current position using termux-location.

        Raises:
            PositionError: The fix failed; ``kind`` says whether it is worth retrying.
        """
        try:
            result = subprocess.run(
                ["termux-location", "-p", "gps", "-r", "once"],
                capture_output=True,
                text=True,
                timeout=timeout or self.timeout
            )
        except subprocess.TimeoutExpired:
            self.consecutive_failures += 1
            raise PositionError(PositionErrorKind.TIMEOUT, "GPS fix timed out")
        except FileNotFoundError:
            self.consecutive_failures += 1
            raise PositionError(PositionErrorKind.POSITION_UNAVAILABLE,
                                "termux-location not found (is Termux:API installed?)")

        if result.returncode != 0:
            self.consecutive_failures += 1
            error_msg = result.stderr.strip() if result.stderr else "unknown error"
            if "permission" in error_msg.lower():
                raise PositionError(PositionErrorKind.PERMISSION_DENIED, error_msg)
            raise PositionError(PositionErrorKind.POSITION_UNAVAILABLE, error_msg)

        if not result.stdout or not result.stdout.strip():
            self.consecutive_failures += 1
            raise PositionError(PositionErrorKind.POSITION_UNAVAILABLE, "empty GPS response")

        try:
            data = json.loads(result.stdout)
            position = Position(
                lat=data["latitude"],
                lng=data["longitude"],
                accuracy=data.get("accuracy") or 0.0,
                timestamp_ms=time.time() * 1000,
                speed=data.get("speed"),
                heading=data.get("bearing"),
            )
        except (json.JSONDecodeError, KeyError) as e:
            self.consecutive_failures += 1
            raise PositionError(PositionErrorKind.POSITION_UNAVAILABLE, f"bad GPS response: {e}")

        self.last_position = position
        self.consecutive_failures = 0
        return position

    def subscribe(self, on_position: Callable, on_error: Optional[Callable] = None) -> Callable[[], None]:
        """Deliver fixes to callbacks from a polling thread until unsubscribed"""
        item = self._subscribers.add(on_position, on_error)
        with self._lock:
            if self._stop_event is None:
                self._stop_event = threading.Event()
                thread = threading.Thread(target=self._poll_loop, args=(self._stop_event,),
                                          daemon=True)
                thread.start()

        def unsubscribe():
            if self._subscribers.remove(item):
                with self._lock:
                    # The polling thread may be the caller, so signal rather than join
                    if self._stop_event is not None:
                        self._stop_event.set()
                        self._stop_event = None

        return unsubscribe

    def _poll_loop(self, stop: threading.Event):
        while not stop.is_set():
            try:
                position = self.get_location()
            except PositionError as e:
                if not stop.is_set():
                    self._subscribers.emit_error(e)
                if e.is_fatal:
                    return
            else:
                if not stop.is_set():
                    self._subscribers.emit_position(position)
            stop.wait(self.poll_interval)

    def get_status(self) -> str:
        """Get GPS status string"""
        if self.consecutive_failures == 0:
            acc = f", accuracy {self.last_position.accuracy:.0f}m" if self.last_position and self.last_position.accuracy else ""
            return f"GPS OK{acc}"
        else:
            return f"GPS: {self.consecutive_failures} consecutive failures"


class GPSRecorder:
    """Records everything a position source delivers to a JSON trace"""

    def __init__(self, source, record_path: str):
        self.source = source
        self.record_path = record_path
        self.trace: list[dict] = []
        self.start_time = time.time()
        self._lock = threading.Lock()

    def _record(self, position: Optional[Position], error: Optional[PositionError]):
        entry = {
            "elapsed": time.time() - self.start_time,
            "timestamp": time.time(),
            "position": position.to_dict() if position else None,
            "error": {"kind": error.kind.value, "message": error.message} if error else None,
        }
        with self._lock:
            self.trace.append(entry)

    def subscribe(self, on_position: Callable, on_error: Optional[Callable] = None) -> Callable[[], None]:
        def record_position(position: Position):
            self._record(position, None)
            on_position(position)

        def record_error(error: PositionError):
            self._record(None, error)
            if on_error:
                on_error(error)

        return self.source.subscribe(record_position, record_error)

    def get_status(self) -> str:
        return self.source.get_status() if hasattr(self.source, "get_status") else "recording"

    def save(self):
        """Save trace to file"""
        with self._lock:
            trace = list(self.trace)
        with open(self.record_path, "w") as f:
            json.dump({
                "recorded_at": datetime.now().isoformat(),
                "trace": trace
            }, f, indent=2)
        print(f"GPS trace saved to {self.record_path} ({len(trace)} entries)")


class GPSPlayback:
    """Plays back a recorded trace to subscribers.

    Nothing is delivered until ``run()`` is called; it replays the trace on
    the calling thread, sleeping between entries according to the recorded
    timing divided by ``speed``. A speed of 0 replays without sleeping.
    """

    def __init__(self, playback_path: str, speed: float = 1.0):
        self.playback_path = playback_path
        self.speed = speed
        self.trace: list[dict] = []
        self.index = 0
        self.last_position: Optional[Position] = None
        self.consecutive_failures = 0
        self._subscribers = _Subscribers()

        # Load trace
        with open(playback_path) as f:
            data = json.load(f)
            self.trace = data["trace"]
        print(f"Loaded GPS trace from {playback_path} ({len(self.trace)} entries)")

    def subscribe(self, on_position: Callable, on_error: Optional[Callable] = None) -> Callable[[], None]:
        item = self._subscribers.add(on_position, on_error)

        def unsubscribe():
            self._subscribers.remove(item)

        return unsubscribe

    def step(self) -> bool:
        """Deliver the next trace entry. Returns False once the trace is exhausted."""
        if self.index >= len(self.trace):
            return False

        entry = self.trace[self.index]
        self.index += 1

        if entry.get("position"):
            position = Position.from_dict(entry["position"])
            self.last_position = position
            self.consecutive_failures = 0
            self._subscribers.emit_position(position)
        else:
            self.consecutive_failures += 1
            error = entry.get("error") or {}
            kind = PositionErrorKind(error.get("kind", PositionErrorKind.POSITION_UNAVAILABLE.value))
            self._subscribers.emit_error(PositionError(kind, error.get("message", "")))
        return True

    def get_poll_interval(self) -> float:
        """Get the interval to wait before the next entry based on trace timing and speed"""
        if self.speed <= 0:
            return 0.0
        if self.index <= 0 or self.index >= len(self.trace):
            return CONFIG["gps_poll_interval"] / self.speed

        prev_elapsed = self.trace[self.index - 1].get("elapsed", 0)
        curr_elapsed = self.trace[self.index].get("elapsed", 0)
        delta = curr_elapsed - prev_elapsed

        # Apply speed multiplier and clamp to reasonable range
        interval = delta / self.speed
        return max(0.0, min(interval, 5.0))

    def run(self, should_continue: Optional[Callable[[], bool]] = None):
        """Replay the rest of the trace, optionally stopping early"""
        while self._subscribers and (should_continue is None or should_continue()):
            if not self.step():
                break
            interval = self.get_poll_interval()
            if interval > 0 and not self.is_finished():
                time.sleep(interval)

    def is_finished(self) -> bool:
        """Check if playback is complete"""
        return self.index >= len(self.trace)

    def get_status(self) -> str:
        progress = f"{self.index}/{len(self.trace)}"
        if self.consecutive_failures == 0:
            return f"Playback OK ({progress})"
        else:
            return f"Playback: {self.consecutive_failures} failures ({progress})"
