from toolgate.types.tool import (
    ToolCall,
    ToolResult,
    ToolHandler,
    ExecutableTool,
    is_executable_tool,
    find_tool_by_name,
)
from toolgate.types.config import (
    DEFAULT_PRIORITY,
    LogLevel,
    ValidationDecision,
    ValidationResult,
    ValidationContext,
    Validator,
    NamedValidator,
    ToolCallHistoryEntry,
    is_named_validator,
    normalize_validator,
)

__all__ = [
    "ToolCall",
    "ToolResult",
    "ToolHandler",
    "ExecutableTool",
    "is_executable_tool",
    "find_tool_by_name",
    "DEFAULT_PRIORITY",
    "LogLevel",
    "ValidationDecision",
    "ValidationResult",
    "ValidationContext",
    "Validator",
    "NamedValidator",
    "ToolCallHistoryEntry",
    "is_named_validator",
    "normalize_validator",
]
