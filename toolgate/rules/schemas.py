"""
JSON Schemas for rule documents and decision service responses.
"""

from toolgate.rules.types import CONDITION_OPERATORS, RULE_ACTIONS, RULE_SEVERITIES


_STRING_LIST = {"type": "array", "items": {"type": "string"}}

_CONDITION = {
    "type": "object",
    "required": ["field", "operator"],
    "properties": {
        "field": {"type": "string", "minLength": 1},
        "operator": {"enum": list(CONDITION_OPERATORS)},
        "value": {},
    },
}

RULE_SCHEMA = {
    "type": "object",
    "required": ["id", "name"],
    "properties": {
        "id": {"type": "string", "minLength": 1},
        "name": {"type": "string", "minLength": 1},
        "description": {"type": ["string", "null"]},
        "enabled": {"type": "boolean"},
        "severity": {"enum": list(RULE_SEVERITIES)},
        "action": {"enum": list(RULE_ACTIONS)},
        "tools": {"type": ["array", "null"], "items": {"type": "string"}},
        "conditions": {"type": ["array", "null"], "items": _CONDITION},
        "condition_groups": {
            "type": ["array", "null"],
            "items": {"type": "array", "items": _CONDITION},
        },
        "tags": {"type": ["array", "null"], "items": {"type": "string"}},
        "metadata": {"type": ["object", "null"]},
    },
}

RULE_SET_SCHEMA = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["rules"],
    "properties": {
        "version": {"type": ["string", "number"]},
        "name": {"type": "string"},
        "description": {"type": ["string", "null"]},
        "rules": {"type": "array", "items": RULE_SCHEMA},
        "settings": {
            "type": ["object", "null"],
            "properties": {
                "default_action": {"enum": list(RULE_ACTIONS)},
                "fail_mode": {"enum": ["open", "closed"]},
                "global_tags": _STRING_LIST,
            },
        },
    },
}

DECISION_RESPONSE_SCHEMA = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["should_pass_weight", "should_block_weight", "decision", "reasoning"],
    "properties": {
        "should_pass_weight": {"type": "number", "minimum": 0, "maximum": 1},
        "should_block_weight": {"type": "number", "minimum": 0, "maximum": 1},
        "decision": {"enum": ["pass", "block"]},
        "reasoning": {"type": "string"},
        "matched_rules": {"type": ["array", "null"], "items": {"type": "string"}},
        "metadata": {"type": ["object", "null"]},
    },
}
