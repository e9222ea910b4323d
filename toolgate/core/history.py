"""
Tool call history tracking.

Keeps a bounded, ordered log of recent tool calls and their decisions,
providing context to validators about previous calls.
"""

from typing import Any, Optional
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
import threading

from toolgate.types.config import ToolCallHistoryEntry, ValidationResult
from toolgate.utils.clock import Clock, as_utc, utc_now
from toolgate.utils.logger import Logger


@dataclass
class HistoryTrackerOptions:
    """Options for the history tracker."""

    logger: Logger
    # Maximum number of entries to keep
    max_size: int = 100
    clock: Clock = utc_now


@dataclass(frozen=True)
class HistoryStats:
    """Statistics about tool call history."""

    total_calls: int
    allowed_calls: int
    denied_calls: int
    modified_calls: int
    calls_by_tool: dict[str, int] = field(default_factory=dict)


class HistoryTracker:
    """
    Tracks the history of tool calls.

    Entries are evicted oldest-first once ``max_size`` is exceeded. Every
    query returns a tuple snapshot that later additions, evictions or
    ``clear()`` calls never change.
    """

    def __init__(self, options: HistoryTrackerOptions):
        if options.max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._max_size = options.max_size
        self._logger = options.logger
        self._clock = options.clock
        self._entries: deque[ToolCallHistoryEntry] = deque()
        self._lock = threading.Lock()

    @property
    def max_size(self) -> int:
        return self._max_size

    def add(self, entry: ToolCallHistoryEntry) -> None:
        """Append an entry, evicting the oldest entries beyond ``max_size``."""
        evicted: list[ToolCallHistoryEntry] = []
        with self._lock:
            self._entries.append(entry)
            while len(self._entries) > self._max_size:
                evicted.append(self._entries.popleft())
            size = len(self._entries)

        for removed in evicted:
            self._logger.debug(
                "History entry evicted due to size limit",
                {"evicted_tool": removed.tool_name, "history_size": size},
            )
        self._logger.debug(
            "History entry added",
            {
                "tool_name": entry.tool_name,
                "decision": entry.validation_result.decision,
                "history_size": size,
            },
        )

    def record(
        self,
        tool_name: str,
        arguments: dict[str, Any],
        result: ValidationResult,
        duration_ms: Optional[float] = None,
    ) -> ToolCallHistoryEntry:
        """Create and add a history entry stamped with the current time."""
        entry = ToolCallHistoryEntry(
            tool_name=tool_name,
            arguments=dict(arguments),
            validation_result=result,
            timestamp=self._clock(),
            duration_ms=duration_ms,
        )
        self.add(entry)
        return entry

    def get_all(self) -> tuple[ToolCallHistoryEntry, ...]:
        with self._lock:
            return tuple(self._entries)

    def get_last(self, count: int) -> tuple[ToolCallHistoryEntry, ...]:
        if count <= 0:
            return ()
        with self._lock:
            return tuple(self._entries)[-count:]

    def get_by_tool(self, tool_name: str) -> tuple[ToolCallHistoryEntry, ...]:
        with self._lock:
            return tuple(e for e in self._entries if e.tool_name == tool_name)

    def get_by_time_range(
        self,
        since: datetime,
        until: Optional[datetime] = None,
    ) -> tuple[ToolCallHistoryEntry, ...]:
        """
        Get entries with ``since <= timestamp <= until`` (until defaults to now).

        Naive datetimes are treated as UTC.
        """
        start = as_utc(since)
        end = as_utc(until if until is not None else self._clock())
        with self._lock:
            return tuple(
                e for e in self._entries if start <= as_utc(e.timestamp) <= end
            )

    def get_denied(self) -> tuple[ToolCallHistoryEntry, ...]:
        with self._lock:
            return tuple(
                e for e in self._entries if e.validation_result.decision == "deny"
            )

    def size(self) -> int:
        return len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            previous_size = len(self._entries)
            self._entries.clear()
        self._logger.debug("History cleared", {"previous_size": previous_size})

    def get_stats(self) -> HistoryStats:
        """Compute call counts from a single pass over the current entries."""
        calls_by_tool: dict[str, int] = {}
        counts = {"allow": 0, "deny": 0, "modify": 0}

        for entry in self.get_all():
            calls_by_tool[entry.tool_name] = calls_by_tool.get(entry.tool_name, 0) + 1
            counts[entry.validation_result.decision] += 1

        return HistoryStats(
            total_calls=sum(calls_by_tool.values()),
            allowed_calls=counts["allow"],
            denied_calls=counts["deny"],
            modified_calls=counts["modify"],
            calls_by_tool=calls_by_tool,
        )
