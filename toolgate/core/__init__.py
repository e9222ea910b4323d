"""
Core validation pipeline: validator chain, history ledger, interceptor and
the Toolgate facade.
"""

from toolgate.core.validator import (
    ValidationEngine,
    ValidationEngineOptions,
    ValidatorRunResult,
    AggregatedValidationResult,
    create_passthrough_validator,
    create_blocklist_validator,
    create_allowlist_validator,
)
from toolgate.core.history import HistoryTracker, HistoryTrackerOptions, HistoryStats
from toolgate.core.interceptor import (
    Interceptor,
    InterceptorOptions,
    InterceptionResult,
    ToolCallDeniedError,
    ValidationHooks,
)
from toolgate.core.toolgate import Toolgate, ToolgateOptions, ToolgateMode

__all__ = [
    "ValidationEngine",
    "ValidationEngineOptions",
    "ValidatorRunResult",
    "AggregatedValidationResult",
    "create_passthrough_validator",
    "create_blocklist_validator",
    "create_allowlist_validator",
    "HistoryTracker",
    "HistoryTrackerOptions",
    "HistoryStats",
    "Interceptor",
    "InterceptorOptions",
    "InterceptionResult",
    "ToolCallDeniedError",
    "ValidationHooks",
    "Toolgate",
    "ToolgateOptions",
    "ToolgateMode",
]
