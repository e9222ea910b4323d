from toolgate.utils.logger import (
    Logger,
    LogEntry,
    SilentLogger,
    MemoryLogger,
    create_logger,
)
from toolgate.utils.id import generate_id, generate_tool_call_id
from toolgate.utils.clock import Clock, as_utc, utc_now, to_rfc3339

__all__ = [
    "Logger",
    "LogEntry",
    "SilentLogger",
    "MemoryLogger",
    "create_logger",
    "generate_id",
    "generate_tool_call_id",
    "Clock",
    "utc_now",
    "as_utc",
    "to_rfc3339",
]
