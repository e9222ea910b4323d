"""
Core tool type definitions.

Tool calls, tool results and executable tools shared by the interceptor
and the Toolgate facade.
"""

from typing import Any, Awaitable, Callable, Optional, Sequence, Union
from dataclasses import dataclass


# Handler invoked with the (possibly modified) tool arguments
ToolHandler = Callable[[dict[str, Any]], Union[Any, Awaitable[Any]]]


@dataclass(frozen=True)
class ToolCall:
    """A tool call made by an AI agent, captured before execution."""

    name: str
    arguments: dict[str, Any]
    # Generated by the interceptor when empty
    id: Optional[str] = None
    # Raw JSON string of arguments, for providers that send one
    raw_arguments: Optional[str] = None


@dataclass
class ToolResult:
    """Result of executing (or refusing to execute) a tool call."""

    tool_call_id: str
    tool_name: str
    content: Any
    is_error: bool = False


@dataclass
class ExecutableTool:
    """A tool definition paired with its execution handler."""

    name: str
    handler: ToolHandler
    description: Optional[str] = None
    input_schema: Optional[dict[str, Any]] = None


def is_executable_tool(tool: Any) -> bool:
    """Check whether a tool-like object carries a callable handler."""
    return callable(getattr(tool, "handler", None))


def find_tool_by_name(tools: Sequence[Any], name: str) -> Optional[Any]:
    """Find a tool by name in a sequence of tool-like objects."""
    for tool in tools:
        if getattr(tool, "name", None) == name:
            return tool
    return None
