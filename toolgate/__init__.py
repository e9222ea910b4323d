"""
Toolgate - A policy enforcement point for AI agent tool calls.

Toolgate sits between the AI model and tool execution, intercepting and
validating tool calls before they are executed. Rules are loaded from YAML
and resolved by an external decision service.

Example:
    >>> from toolgate import Toolgate, ToolgateOptions
    >>>
    >>> gate = await Toolgate.init(ToolgateOptions(rules_dir="./toolgate/rules"))
    >>>
    >>> # Wrap your tools
    >>> wrapped_tools = gate.wrap_tools(my_tools)
    >>>
    >>> # Pass to your Agent/LLM
    >>> agent = create_agent(tools=wrapped_tools)
"""

# Main export
from toolgate.core.toolgate import (
    Toolgate,
    ToolgateOptions,
    ToolgateMode,
    ToolCallDeniedError,
    WrappedHandler,
)

# Core types
from toolgate.types.tool import (
    ToolCall,
    ToolResult,
    ToolHandler,
    ExecutableTool,
)

from toolgate.types.config import (
    LogLevel,
    ValidationDecision,
    ValidationResult,
    ValidationContext,
    Validator,
    NamedValidator,
    ToolCallHistoryEntry,
)

# Pipeline
from toolgate.core.validator import (
    ValidationEngine,
    ValidationEngineOptions,
    AggregatedValidationResult,
    create_passthrough_validator,
    create_blocklist_validator,
    create_allowlist_validator,
)
from toolgate.core.interceptor import (
    Interceptor,
    InterceptorOptions,
    InterceptionResult,
    ValidationHooks,
)
from toolgate.core.history import HistoryTracker, HistoryTrackerOptions, HistoryStats

# Rules
from toolgate.rules.types import Rule, RuleSet, RuleIndex, DecisionResponse
from toolgate.rules.loader import RuleLoader, RuleLoadError, RuleParserNotConfiguredError
from toolgate.rules.decision_client import (
    DecisionClient,
    DecisionServiceClient,
    DecisionServiceConfig,
)
from toolgate.rules.rule_validator import RuleValidator, RuleValidatorConfig

from toolgate.utils.logger import Logger, create_logger

__all__ = [
    # Main
    "Toolgate",
    "ToolgateOptions",
    "ToolgateMode",
    "ToolCallDeniedError",
    "WrappedHandler",
    # Tool types
    "ToolCall",
    "ToolResult",
    "ToolHandler",
    "ExecutableTool",
    # Config types
    "LogLevel",
    "ValidationDecision",
    "ValidationResult",
    "ValidationContext",
    "Validator",
    "NamedValidator",
    "ToolCallHistoryEntry",
    # Pipeline
    "ValidationEngine",
    "ValidationEngineOptions",
    "AggregatedValidationResult",
    "create_passthrough_validator",
    "create_blocklist_validator",
    "create_allowlist_validator",
    "Interceptor",
    "InterceptorOptions",
    "InterceptionResult",
    "ValidationHooks",
    "HistoryTracker",
    "HistoryTrackerOptions",
    "HistoryStats",
    # Rules
    "Rule",
    "RuleSet",
    "RuleIndex",
    "DecisionResponse",
    "RuleLoader",
    "RuleLoadError",
    "RuleParserNotConfiguredError",
    "DecisionClient",
    "DecisionServiceClient",
    "DecisionServiceConfig",
    "RuleValidator",
    "RuleValidatorConfig",
    # Logging
    "Logger",
    "create_logger",
]
