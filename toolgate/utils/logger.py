"""
Logging infrastructure for Toolgate.

Components log through a small ``Logger`` facade that takes a message plus
an optional structured data mapping. Records are emitted through the
standard ``logging`` module under the ``toolgate`` logger name, so host
applications can route them with their usual handlers.
"""

from typing import Any, Optional
from dataclasses import dataclass
from datetime import datetime, timezone
import json
import logging

from toolgate.types.config import LogLevel


LOGGER_NAME = "toolgate"

# Numeric priority for log levels (lower = more verbose)
LOG_LEVEL_PRIORITY: dict[str, int] = {
    "debug": 0,
    "info": 1,
    "warn": 2,
    "error": 3,
    "silent": 4,
}

_STDLIB_LEVELS: dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


def should_log(message_level: LogLevel, configured_level: LogLevel) -> bool:
    return LOG_LEVEL_PRIORITY[message_level] >= LOG_LEVEL_PRIORITY[configured_level]


def format_message(message: str, data: Optional[dict[str, Any]] = None) -> str:
    if data:
        return f"{message} {json.dumps(data, default=str)}"
    return message


@dataclass
class LogEntry:
    """A captured log record."""

    level: LogLevel
    message: str
    timestamp: datetime
    context: Optional[dict[str, Any]] = None
    error: Optional[BaseException] = None


class Logger:
    """
    Leveled logger with structured context.

    Example:
        >>> logger = create_logger("info")
        >>> logger.info("Validator added", {"name": "blocklist"})
    """

    def __init__(
        self,
        level: LogLevel = "info",
        context: Optional[dict[str, Any]] = None,
        name: str = LOGGER_NAME,
    ):
        if level not in LOG_LEVEL_PRIORITY:
            raise ValueError(f"Unknown log level: {level!r}")
        self.level: LogLevel = level
        self._context = dict(context) if context else {}
        self._logger = logging.getLogger(name)

    def debug(self, message: str, data: Optional[dict[str, Any]] = None) -> None:
        self._log("debug", message, data)

    def info(self, message: str, data: Optional[dict[str, Any]] = None) -> None:
        self._log("info", message, data)

    def warn(self, message: str, data: Optional[dict[str, Any]] = None) -> None:
        self._log("warn", message, data)

    def error(
        self,
        message: str,
        data: Optional[dict[str, Any]] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        self._log("error", message, data, error)

    def child(self, context: dict[str, Any]) -> "Logger":
        """Create a logger that adds ``context`` to every entry."""
        child = self.__class__.__new__(self.__class__)
        child.__dict__.update(self.__dict__)
        child._context = {**self._context, **context}
        return child

    def _log(
        self,
        level: LogLevel,
        message: str,
        data: Optional[dict[str, Any]],
        error: Optional[BaseException] = None,
    ) -> None:
        if not should_log(level, self.level):
            return
        merged = {**self._context, **data} if data else dict(self._context)
        self._emit(level, message, merged or None, error)

    def _emit(
        self,
        level: LogLevel,
        message: str,
        data: Optional[dict[str, Any]],
        error: Optional[BaseException],
    ) -> None:
        exc_info = (type(error), error, error.__traceback__) if error else None
        self._logger.log(
            _STDLIB_LEVELS[level],
            format_message(message, data),
            exc_info=exc_info,
            extra={"toolgate_data": data},
        )


class SilentLogger(Logger):
    """A logger that discards all messages."""

    def __init__(self) -> None:
        super().__init__("silent")

    def _log(self, level, message, data, error=None) -> None:  # type: ignore[no-untyped-def]
        return None


class MemoryLogger(Logger):
    """
    Logger that stores entries in memory.

    Useful for tests or capturing logs for later analysis.
    """

    def __init__(self, level: LogLevel = "debug"):
        super().__init__(level)
        self.entries: list[LogEntry] = []

    def clear(self) -> None:
        self.entries.clear()

    def messages(self, level: Optional[LogLevel] = None) -> list[str]:
        return [e.message for e in self.entries if level is None or e.level == level]

    def _emit(self, level, message, data, error) -> None:  # type: ignore[no-untyped-def]
        self.entries.append(
            LogEntry(
                level=level,
                message=message,
                timestamp=datetime.now(timezone.utc),
                context=data,
                error=error,
            )
        )


def _ensure_handler() -> None:
    root = logging.getLogger(LOGGER_NAME)
    if root.handlers:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(
        logging.Formatter("[%(asctime)s] [TOOLGATE] %(levelname)-7s %(message)s")
    )
    root.addHandler(handler)
    root.setLevel(logging.DEBUG)
    root.propagate = False


def create_logger(level: LogLevel) -> Logger:
    """
    Create a console logger with the specified minimum level.

    A stream handler is attached to the ``toolgate`` logger the first time
    unless the host application already configured one.
    """
    if level == "silent":
        return SilentLogger()
    _ensure_handler()
    return Logger(level)
