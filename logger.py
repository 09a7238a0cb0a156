"""
In-memory log capture for "copy logs" style diagnostics reports.

LogBuffer is a logging.Handler that keeps the most recent records in a
bounded ring. It is an ordinary object with an explicit lifecycle: create one
at start-up, install() it, uninstall() it at shutdown. Tests create a fresh one
per case instead of sharing module state.

    buffer = LogBuffer()
    buffer.install()
    ...
    report = buffer.get_formatted_logs("1.4.0")
    buffer.uninstall()
"""
import logging
from collections import deque
from datetime import datetime
from typing import TypedDict

import config_manager
import configs
assert config_manager  # silence unused import warning

__all__ = ['LogEntry', 'LogBuffer']


class LogEntry(TypedDict):
    timestamp: float
    level: str
    message: str


class LogBuffer(logging.Handler):
    """
    Ring buffer of the last `capacity` log records.

    :ivar capacity: Maximum number of entries kept, older ones are dropped first.
    :type capacity: int
    """
    def __init__(self, capacity: int = configs.LOG_BUFFER_SIZE, level: int = logging.DEBUG):
        if capacity <= 0:
            raise ValueError("LogBuffer capacity must be positive")
        super().__init__(level)
        self.capacity = capacity
        self._entries: deque[LogEntry] = deque(maxlen=capacity)
        self._target: logging.Logger | None = None
        self._previous_level: int | None = None
        self._capturing_warnings: bool = False

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = self.format(record)
        except Exception:
            self.handleError(record)
            return
        entry = LogEntry(timestamp=record.created, level=record.levelname.lower(), message=message)
        with self.lock:
            self._entries.append(entry)

    # Lifecycle
    @property
    def installed(self) -> bool:
        return self._target is not None

    def install(self, target: logging.Logger | None = None, capture_warnings: bool = True) -> None:
        """
        Attach to `target` (the root logger by default). Calling it again while installed does nothing.

        The target's level is lowered to this handler's level so debug records
        are captured, and restored by uninstall(). With `capture_warnings`,
        warnings.warn() output is routed into logging as well.
        """
        if self._target is not None:
            return
        target = target if target is not None else logging.getLogger()
        self._previous_level = target.level
        if target.level == logging.NOTSET or target.level > self.level:
            target.setLevel(self.level)
        target.addHandler(self)
        self._target = target

        # Leave capture alone if someone else already turned it on
        if capture_warnings and logging._warnings_showwarning is None:  # pylint: disable=protected-access
            logging.captureWarnings(True)
            self._capturing_warnings = True

    def uninstall(self) -> None:
        if self._target is None:
            return
        self._target.removeHandler(self)
        if self._previous_level is not None:
            self._target.setLevel(self._previous_level)
        if self._capturing_warnings:
            logging.captureWarnings(False)
            self._capturing_warnings = False
        self._target = None
        self._previous_level = None

    def __enter__(self) -> "LogBuffer":
        self.install()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.uninstall()

    # Access
    def get_entries(self) -> list[LogEntry]:
        """Return the buffered entries, oldest first."""
        with self.lock:
            return list(self._entries)

    def clear(self) -> None:
        with self.lock:
            self._entries.clear()

    def get_formatted_logs(self, app_version: str = "unknown") -> str:
        """
        Render the buffer as plain text, ready to paste into a bug report.

        :param app_version: Version string shown in the header line.
        """
        header = f"Foxtrot v{app_version} - {datetime.now().isoformat(timespec='seconds')}\n{'-' * 50}\n"
        lines = []
        for entry in self.get_entries():
            moment = datetime.fromtimestamp(entry["timestamp"])
            ts = moment.strftime("%H:%M:%S") + f".{moment.microsecond // 1000:03d}"
            lines.append(f"[{ts}] [{entry['level'].upper():<5}] {entry['message']}")
        return header + "\n".join(lines)
