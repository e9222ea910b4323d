"""
ID generation utilities.
"""

import uuid


def generate_id(prefix: str = "toolgate") -> str:
    """
    Generate a random ID.

    Example:
        >>> generate_id("call")
        'call_a1b2c3d4e5f6'
    """
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def generate_tool_call_id() -> str:
    """Generate a tool call ID in the format expected by providers."""
    return generate_id("call")
