"""
Rules module for Toolgate.

Provides rule types, rule loading and indexing, schema validation and the
decision service client.
"""

from toolgate.rules.types import (
    Rule,
    RuleCondition,
    RuleSet,
    RuleSetSettings,
    RuleIndex,
    ToolCallContext,
    ToolCallHistorySummary,
    DecisionRequest,
    DecisionResponse,
)
from toolgate.rules.loader import (
    RuleLoader,
    RuleLoaderOptions,
    RuleLoadError,
    RuleParserNotConfiguredError,
    parse_rule_set,
)
from toolgate.rules.schema_validator import (
    RuleSchemaError,
    SchemaViolation,
    validate_rule_set,
    validate_decision_response,
)
from toolgate.rules.decision_client import (
    DecisionClient,
    DecisionServiceClient,
    DecisionServiceConfig,
    DecisionServiceError,
)
from toolgate.rules.rule_validator import (
    RuleValidator,
    RuleValidatorConfig,
    create_rule_validator,
)

__all__ = [
    "Rule",
    "RuleCondition",
    "RuleSet",
    "RuleSetSettings",
    "RuleIndex",
    "ToolCallContext",
    "ToolCallHistorySummary",
    "DecisionRequest",
    "DecisionResponse",
    "RuleLoader",
    "RuleLoaderOptions",
    "RuleLoadError",
    "RuleParserNotConfiguredError",
    "parse_rule_set",
    "RuleSchemaError",
    "SchemaViolation",
    "validate_rule_set",
    "validate_decision_response",
    "DecisionClient",
    "DecisionServiceClient",
    "DecisionServiceConfig",
    "DecisionServiceError",
    "RuleValidator",
    "RuleValidatorConfig",
    "create_rule_validator",
]
