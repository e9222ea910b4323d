"""
Validation types for the Toolgate pipeline.
"""

from typing import Any, Awaitable, Callable, Literal, Optional, Union
from dataclasses import dataclass, field
from datetime import datetime


# Log level for Toolgate operations
LogLevel = Literal["debug", "info", "warn", "error", "silent"]

# Validation decision for a tool call
ValidationDecision = Literal["allow", "deny", "modify"]

DEFAULT_PRIORITY = 100


@dataclass(frozen=True)
class ValidationResult:
    """Result of validating a tool call."""

    decision: ValidationDecision
    reason: Optional[str] = None
    # Required for "modify" decisions
    modified_arguments: Optional[dict[str, Any]] = None
    metadata: Optional[dict[str, Any]] = None

    def __post_init__(self) -> None:
        if self.decision not in ("allow", "deny", "modify"):
            raise ValueError(f"Unknown validation decision: {self.decision!r}")
        if self.decision == "modify" and self.modified_arguments is None:
            raise ValueError("A 'modify' result requires modified_arguments")


@dataclass(frozen=True)
class ToolCallHistoryEntry:
    """Entry in the tool call history."""

    tool_name: str
    arguments: dict[str, Any]
    validation_result: ValidationResult
    timestamp: datetime
    duration_ms: Optional[float] = None


@dataclass(frozen=True)
class ValidationContext:
    """Context provided to validators for making decisions."""

    tool_name: str
    arguments: dict[str, Any]
    call_id: str
    timestamp: datetime
    call_history: tuple[ToolCallHistoryEntry, ...] = ()
    custom: Optional[dict[str, Any]] = None


# Validator function, sync or async
Validator = Callable[
    [ValidationContext], Union[ValidationResult, Awaitable[ValidationResult]]
]


@dataclass
class NamedValidator:
    """Named validator with optional configuration."""

    name: str
    validate: Validator
    description: Optional[str] = None
    # Lower runs first
    priority: int = DEFAULT_PRIORITY
    # Only run for these tool names (None or empty runs for all)
    tool_filter: Optional[list[str]] = field(default=None)

    def applies_to(self, tool_name: str) -> bool:
        if not self.tool_filter:
            return True
        return tool_name in self.tool_filter


def is_named_validator(validator: Any) -> bool:
    """Check if a validator is a NamedValidator."""
    return isinstance(validator, NamedValidator)


def normalize_validator(
    validator: Union[Validator, NamedValidator],
    index: int,
) -> NamedValidator:
    """Normalize a plain validator callable to NamedValidator format."""
    if isinstance(validator, NamedValidator):
        return validator
    if not callable(validator):
        raise TypeError(f"Validator must be callable, got {type(validator).__name__}")
    return NamedValidator(
        name=f"validator-{index}",
        validate=validator,
        priority=DEFAULT_PRIORITY,
    )
