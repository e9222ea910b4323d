"""
Type definitions for rules and the decision service wire format.

Rules describe restrictions on tools and agent behavior. They are loaded
from YAML documents (or added programmatically), indexed by tool name, and
shipped to the external decision service together with the tool call
context.
"""

from typing import Any, Literal, Mapping, Optional
from dataclasses import dataclass, field
from types import MappingProxyType


ConditionOperator = Literal[
    "equals",
    "not_equals",
    "contains",
    "not_contains",
    "starts_with",
    "ends_with",
    "matches",  # regex match
    "greater_than",
    "less_than",
    "in",
    "not_in",
]

RuleAction = Literal["block", "warn", "log", "allow"]

RuleSeverity = Literal["critical", "high", "medium", "low", "info"]

FailMode = Literal["open", "closed"]

CONDITION_OPERATORS: tuple[str, ...] = (
    "equals",
    "not_equals",
    "contains",
    "not_contains",
    "starts_with",
    "ends_with",
    "matches",
    "greater_than",
    "less_than",
    "in",
    "not_in",
)
RULE_ACTIONS: tuple[str, ...] = ("block", "warn", "log", "allow")
RULE_SEVERITIES: tuple[str, ...] = ("critical", "high", "medium", "low", "info")


@dataclass(frozen=True)
class RuleCondition:
    """A single condition within a rule."""

    # Dot notation is supported, e.g. "arguments.path"
    field: str
    operator: ConditionOperator
    value: Any

    def to_dict(self) -> dict[str, Any]:
        return {"field": self.field, "operator": self.operator, "value": self.value}


@dataclass(frozen=True)
class Rule:
    """A single rule definition."""

    id: str
    name: str
    description: Optional[str] = None
    enabled: bool = True
    severity: RuleSeverity = "medium"
    action: RuleAction = "block"
    # Tools this rule applies to (None or empty applies to all tools)
    tools: Optional[list[str]] = None
    # All conditions must match (AND)
    conditions: Optional[list[RuleCondition]] = None
    # Any group may match (OR between groups, AND within a group)
    condition_groups: Optional[list[list[RuleCondition]]] = None
    tags: Optional[list[str]] = None
    metadata: Optional[dict[str, Any]] = None

    @property
    def is_global(self) -> bool:
        return not self.tools

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Rule":
        """Build a rule from an already schema-validated mapping."""
        conditions = data.get("conditions")
        groups = data.get("condition_groups")
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            description=data.get("description"),
            enabled=data.get("enabled", True) is not False,
            severity=data.get("severity") or "medium",
            action=data.get("action") or "block",
            tools=list(data["tools"]) if data.get("tools") is not None else None,
            conditions=(
                [_condition(c) for c in conditions] if conditions is not None else None
            ),
            condition_groups=(
                [[_condition(c) for c in group] for group in groups]
                if groups is not None
                else None
            ),
            tags=list(data["tags"]) if data.get("tags") is not None else None,
            metadata=dict(data["metadata"]) if data.get("metadata") is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the decision service, omitting unset fields."""
        payload: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "enabled": self.enabled,
            "severity": self.severity,
            "action": self.action,
        }
        if self.description is not None:
            payload["description"] = self.description
        if self.tools is not None:
            payload["tools"] = list(self.tools)
        if self.conditions is not None:
            payload["conditions"] = [c.to_dict() for c in self.conditions]
        if self.condition_groups is not None:
            payload["condition_groups"] = [
                [c.to_dict() for c in group] for group in self.condition_groups
            ]
        if self.tags is not None:
            payload["tags"] = list(self.tags)
        if self.metadata is not None:
            payload["metadata"] = dict(self.metadata)
        return payload


def _condition(data: Any) -> RuleCondition:
    if isinstance(data, RuleCondition):
        return data
    return RuleCondition(field=data["field"], operator=data["operator"], value=data.get("value"))


@dataclass(frozen=True)
class RuleSetSettings:
    """Settings shared by the rules of a rule set."""

    default_action: Optional[RuleAction] = None
    fail_mode: Optional[FailMode] = None
    # Tags applied to every rule in the set
    global_tags: Optional[list[str]] = None


@dataclass(frozen=True)
class RuleSet:
    """A named group of rules loaded from one source."""

    name: str
    rules: list[Rule]
    version: str = "1.0"
    description: Optional[str] = None
    settings: Optional[RuleSetSettings] = None


@dataclass(frozen=True)
class RuleIndex:
    """
    Lookup structure over loaded rules.

    Rebuilt from scratch on every load; never mutated in place. Disabled
    rules are kept in ``all_rules`` but left out of the lookup tables.
    """

    all_rules: tuple[Rule, ...] = ()
    global_rules: tuple[Rule, ...] = ()
    rules_by_tool: Mapping[str, tuple[Rule, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )

    @classmethod
    def build(cls, rule_sets: list[RuleSet]) -> "RuleIndex":
        all_rules: list[Rule] = []
        global_rules: list[Rule] = []
        by_tool: dict[str, list[Rule]] = {}

        for rule_set in rule_sets:
            for rule in rule_set.rules:
                all_rules.append(rule)
                if not rule.enabled:
                    continue
                if rule.is_global:
                    global_rules.append(rule)
                    continue
                # dict.fromkeys drops duplicate tool names, keeping order
                for tool_name in dict.fromkeys(rule.tools or []):
                    by_tool.setdefault(tool_name, []).append(rule)

        return cls(
            all_rules=tuple(all_rules),
            global_rules=tuple(global_rules),
            rules_by_tool=MappingProxyType(
                {name: tuple(rules) for name, rules in by_tool.items()}
            ),
        )

    def lookup(self, tool_name: str) -> list[Rule]:
        """Rules for a tool: global rules first, then tool-specific ones."""
        return [*self.global_rules, *self.rules_by_tool.get(tool_name, ())]


@dataclass(frozen=True)
class ToolCallHistorySummary:
    """Summary of a previous tool call sent as decision context."""

    tool_name: str
    allowed: bool
    timestamp: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool_name": self.tool_name,
            "allowed": self.allowed,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class ToolCallContext:
    """Context sent to the decision service."""

    call_id: str
    tool_name: str
    arguments: dict[str, Any]
    # RFC 3339
    timestamp: str
    session_id: Optional[str] = None
    agent_id: Optional[str] = None
    call_history: Optional[list[ToolCallHistorySummary]] = None
    custom: Optional[dict[str, Any]] = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "call_id": self.call_id,
            "tool_name": self.tool_name,
            "arguments": self.arguments,
            "timestamp": self.timestamp,
        }
        if self.session_id is not None:
            payload["session_id"] = self.session_id
        if self.agent_id is not None:
            payload["agent_id"] = self.agent_id
        if self.call_history is not None:
            payload["call_history"] = [h.to_dict() for h in self.call_history]
        if self.custom is not None:
            payload["custom"] = self.custom
        return payload


@dataclass(frozen=True)
class DecisionRequest:
    """Request payload sent to the decision service."""

    context: ToolCallContext
    rules: list[Rule]

    def to_dict(self) -> dict[str, Any]:
        return {
            "context": self.context.to_dict(),
            "rules": [rule.to_dict() for rule in self.rules],
        }


@dataclass(frozen=True)
class DecisionResponse:
    """Response from the decision service (or a fail-mode fallback)."""

    should_pass_weight: float
    should_block_weight: float
    decision: Literal["pass", "block"]
    reasoning: str
    matched_rules: Optional[list[str]] = None
    metadata: Optional[dict[str, Any]] = None
    # Set only by the client when every attempt failed
    fallback: bool = False

    @property
    def is_fallback(self) -> bool:
        """True when this response was synthesized after the service failed."""
        return self.fallback
