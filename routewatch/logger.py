"""Logging module for routewatch."""

import json
import threading
from datetime import datetime
from typing import Optional, Callable

LEVELS = {"debug": 10, "info": 20, "warning": 30, "error": 40}


class Logger:
    """Logs messages to stdout, an optional file and an optional callback"""

    def __init__(self, log_path: Optional[str] = None, callback: Optional[Callable] = None,
                 level: str = "info", echo: bool = True):
        if level not in LEVELS:
            raise ValueError(f"Unknown log level: {level}")
        self.log_path = log_path
        self.callback = callback
        self.level = level
        self.echo = echo
        self.file = None
        # Position sources and routing completions log from their own threads
        self._lock = threading.Lock()
        if log_path:
            self.file = open(log_path, "a")
            self._write_header()

    def _write_header(self):
        if self.file:
            self.file.write(f"\n{'='*60}\n")
            self.file.write(f"routewatch log - {datetime.now().isoformat()}\n")
            self.file.write(f"{'='*60}\n\n")
            self.file.flush()

    def enabled_for(self, level: str) -> bool:
        return LEVELS[level] >= LEVELS[self.level]

    def log(self, message: str, data: Optional[dict] = None, level: str = "info"):
        """Log a message with optional structured data"""
        if not self.enabled_for(level):
            return
        timestamp = datetime.now().isoformat()
        line = f"[{timestamp}] {level.upper()} {message}"
        if data:
            line += f" | {json.dumps(data, default=str)}"
        with self._lock:
            if self.echo:
                print(line)
            if self.file:
                self.file.write(line + "\n")
                self.file.flush()
        if self.callback:
            self.callback(message, data)

    def debug(self, message: str, data: Optional[dict] = None):
        self.log(message, data, level="debug")

    def info(self, message: str, data: Optional[dict] = None):
        self.log(message, data, level="info")

    def warning(self, message: str, data: Optional[dict] = None):
        self.log(message, data, level="warning")

    def error(self, message: str, data: Optional[dict] = None):
        self.log(message, data, level="error")

    def close(self):
        with self._lock:
            if self.file:
                self.file.close()
                self.file = None
