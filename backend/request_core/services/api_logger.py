"""
Request Core — Structured API Logger
======================================

What:  Leveled logger that keeps the most recent entries in memory and emits
       each one through the standard logging module.
Why:   Request/response/error observability needs a uniform record shape,
       and tests (and debug endpoints) need to read back what was logged
       without scraping stdout.
How:   Each accepted call builds a LogEntry, appends it to a bounded deque
       (oldest dropped first), formats it as JSON or a text line, and hands
       the line to the stdlib logger `request_core.api`.
Who:   Owned by RequestCore; used by the logging and error-handling steps
       and by the auth service.

Level filtering:
    debug < info < warn < error
    A call below the configured level is a no-op: not buffered, not emitted.

Output formats:
    json:  {"level": "info", "message": "...", "timestamp": "...", "data": {...}}
    text:  [2024-01-15T12:00:00.000000+00:00] [INFO] message {"k": "v"}
"""

import json
import logging
import traceback
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional

from starlette.requests import Request
from starlette.responses import Response

LEVELS = ("debug", "info", "warn", "error")

# Map our level names onto stdlib levels for emission
STDLIB_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


@dataclass
class LogEntry:
    level: str
    message: str
    timestamp: str
    data: Any = None
    error: Optional[BaseException] = None

    def to_dict(self, include_timestamp: bool = True) -> Dict[str, Any]:
        record: Dict[str, Any] = {"level": self.level, "message": self.message}
        if include_timestamp:
            record["timestamp"] = self.timestamp
        if self.data is not None:
            record["data"] = self.data
        if self.error is not None:
            record["error"] = {
                "type": type(self.error).__name__,
                "message": str(self.error),
                "stack": _format_stack(self.error),
            }
        return record


def _format_stack(error: BaseException) -> Optional[str]:
    if error.__traceback__ is None:
        return None
    return "".join(traceback.format_exception(type(error), error, error.__traceback__))


class APILogger:
    """
    In-memory ring buffer of structured log entries, mirrored to stdlib logging.

    Args:
        level:      Minimum level accepted (debug, info, warn, error)
        fmt:        "json" (one object per line) or "text"
        timestamp:  Include the ISO-8601 timestamp in emitted output
        max_entries: Ring buffer capacity
        logger:     stdlib logger to emit through (defaults to request_core.api)
    """

    def __init__(
        self,
        level: str = "info",
        fmt: str = "json",
        timestamp: bool = True,
        max_entries: int = 1000,
        logger: Optional[logging.Logger] = None,
    ):
        if level not in LEVELS:
            raise ValueError(f"Unknown log level '{level}'. Must be one of: {LEVELS}")
        if fmt not in ("json", "text"):
            raise ValueError(f"Unknown log format '{fmt}'")
        self.level = level
        self.fmt = fmt
        self.timestamp = timestamp
        self.max_entries = max_entries
        # deque(maxlen) drops from the left when full: FIFO eviction
        self._entries: Deque[LogEntry] = deque(maxlen=max_entries)
        self._logger = logger or logging.getLogger("request_core.api")

    # ── Core ──────────────────────────────────────────────────────────────

    def should_log(self, level: str) -> bool:
        return LEVELS.index(level) >= LEVELS.index(self.level)

    def _log(
        self,
        level: str,
        message: str,
        data: Any = None,
        error: Optional[BaseException] = None,
    ) -> Optional[LogEntry]:
        if not self.should_log(level):
            return None
        entry = LogEntry(
            level=level,
            message=message,
            timestamp=datetime.now(timezone.utc).isoformat(),
            data=data,
            error=error,
        )
        self._entries.append(entry)
        self._logger.log(STDLIB_LEVELS[level], self.format_entry(entry))
        return entry

    def format_entry(self, entry: LogEntry) -> str:
        if self.fmt == "json":
            return json.dumps(entry.to_dict(self.timestamp), default=str)

        parts = []
        if self.timestamp:
            parts.append(f"[{entry.timestamp}]")
        parts.append(f"[{entry.level.upper()}]")
        parts.append(entry.message)
        if entry.data is not None:
            parts.append(json.dumps(entry.data, default=str))
        line = " ".join(parts)
        if entry.error is not None:
            line += f"\nError: {entry.error}"
            stack = _format_stack(entry.error)
            if stack:
                line += f"\nStack: {stack}"
        return line

    def debug(self, message: str, data: Any = None, error: Optional[BaseException] = None) -> None:
        self._log("debug", message, data, error)

    def info(self, message: str, data: Any = None, error: Optional[BaseException] = None) -> None:
        self._log("info", message, data, error)

    def warn(self, message: str, data: Any = None, error: Optional[BaseException] = None) -> None:
        self._log("warn", message, data, error)

    def error(self, message: str, data: Any = None, error: Optional[BaseException] = None) -> None:
        self._log("error", message, data, error)

    # ── Request / Response Observability ──────────────────────────────────

    def log_request(self, request: Request) -> None:
        self.info(
            f"Request: {request.method} {request.url.path}",
            {"method": request.method, "path": request.url.path, "query": request.url.query},
        )

    def log_response(self, response: Response, duration_ms: float, request: Optional[Request] = None) -> None:
        """
        Logs the outcome of a request.

        Level follows the status: 5xx → error, 4xx → warn, otherwise info,
        so severity-based alerting works off the same buffer.
        """
        status = response.status_code
        data: Dict[str, Any] = {"status": status, "duration_ms": round(duration_ms, 2)}
        if request is not None:
            data["method"] = request.method
            data["path"] = request.url.path
        message = f"Response: {status} ({duration_ms:.1f}ms)"
        if status >= 500:
            self.error(message, data)
        elif status >= 400:
            self.warn(message, data)
        else:
            self.info(message, data)

    def log_error(self, error: BaseException, request: Optional[Request] = None) -> None:
        if request is not None:
            message = f"Error processing {request.method} {request.url.path}"
        else:
            message = "Error occurred"
        self.error(message, error=error)

    # ── Buffer Access ─────────────────────────────────────────────────────

    def get_entries(self, level: Optional[str] = None) -> List[LogEntry]:
        """Returns a copy of the buffer, oldest first, optionally for one level."""
        if level is None:
            return list(self._entries)
        return [e for e in self._entries if e.level == level]

    def clear(self) -> None:
        self._entries.clear()

    def flush(self) -> None:
        """Flushes the stdlib handlers (called at shutdown)."""
        logger: Optional[logging.Logger] = self._logger
        while logger is not None:
            for handler in logger.handlers:
                handler.flush()
            logger = logger.parent if logger.propagate else None
