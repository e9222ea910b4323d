"""
Rule-based validator.

Finds the rules that apply to a tool call and asks the decision service
whether the call should pass. The service's answer becomes a regular
``ValidationResult`` so the validator can sit in the validation chain like
any other.
"""

from typing import Any, Literal, Mapping, Optional, Sequence, Union
from dataclasses import dataclass

from toolgate.types.config import (
    NamedValidator,
    ToolCallHistoryEntry,
    ValidationContext,
    ValidationResult,
)
from toolgate.rules.types import (
    DecisionResponse,
    FailMode,
    Rule,
    RuleSet,
    ToolCallContext,
    ToolCallHistorySummary,
)
from toolgate.rules.loader import RuleLoader, RuleLoaderOptions, RuleParser
from toolgate.rules.decision_client import (
    DecisionClient,
    DecisionServiceClient,
    DecisionServiceConfig,
)
from toolgate.utils.clock import to_rfc3339
from toolgate.utils.logger import Logger


# Operating mode: "strict" blocks, "log" only logs would-be blocks
ValidationMode = Literal["strict", "log"]

RULE_VALIDATOR_NAME = "rule-validator"
RULE_VALIDATOR_PRIORITY = 50
HISTORY_SUMMARY_SIZE = 10


@dataclass
class RuleValidatorConfig:
    """Configuration for the rule-based validator."""

    # Decision service settings (not needed when a client is injected)
    api: Optional[DecisionServiceConfig] = None
    # Directory containing rule YAML files
    rules_dir: Optional[str] = None
    # Parser for rule documents, e.g. yaml.safe_load
    parser: Optional[RuleParser] = None
    # Whether to search subdirectories for rules
    recursive: bool = True
    # Behavior when the decision service is unavailable
    fail_mode: FailMode = "closed"
    session_id: Optional[str] = None
    agent_id: Optional[str] = None
    mode: ValidationMode = "strict"


class RuleValidator:
    """
    Rule-based validator backed by the decision service.

    For each tool call it:
    1. Looks up the rules applicable to the tool
    2. Sends the call context and those rules to the decision service
    3. Maps ``pass`` to allow and ``block`` to deny

    Example:
        >>> import yaml
        >>> validator = RuleValidator(
        ...     RuleValidatorConfig(
        ...         api=DecisionServiceConfig(base_url="http://localhost:8080"),
        ...         rules_dir="./toolgate/rules",
        ...         parser=yaml.safe_load,
        ...     ),
        ...     logger,
        ... )
        >>> validator.initialize()
        >>> engine.add_validator(validator.to_named_validator())
    """

    def __init__(
        self,
        config: RuleValidatorConfig,
        logger: Logger,
        decision_client: Optional[DecisionClient] = None,
    ):
        self._config = config
        self._logger = logger
        self._mode: ValidationMode = config.mode
        self._initialized = False

        self._rule_loader = RuleLoader(
            RuleLoaderOptions(logger=logger, parser=config.parser)
        )

        if decision_client is None:
            if config.api is None:
                raise ValueError(
                    "RuleValidatorConfig.api is required when no decision client is given"
                )
            decision_client = DecisionServiceClient(
                config.api, logger, fail_mode=config.fail_mode
            )
        self._decision_client = decision_client

        self._logger.info(
            "Rule validator created",
            {
                "rules_dir": config.rules_dir,
                "mode": self._mode,
                "decision_url": getattr(decision_client, "url", None),
            },
        )

    @property
    def mode(self) -> ValidationMode:
        return self._mode

    def initialize(self) -> None:
        """
        Load rules from the configured directory. Runs once.

        Without a parser the directory is skipped with a single warning and
        the validator starts with no file rules.
        """
        if self._initialized:
            return

        if self._config.rules_dir:
            if not self._rule_loader.has_parser:
                self._logger.warn(
                    "Rules directory specified but no rule parser provided. "
                    "Call set_parser() before initialize() or use add_rules().",
                    {"rules_dir": self._config.rules_dir},
                )
            else:
                self._rule_loader.load_from_directory(
                    self._config.rules_dir, self._config.recursive
                )

        self._initialized = True
        self._logger.info(
            "Rule validator initialized",
            {"total_rules": len(self._rule_loader.get_rules().all_rules)},
        )

    def set_parser(self, parser: RuleParser) -> None:
        self._rule_loader.set_parser(parser)

    def add_rules(
        self,
        rules: Sequence[Union[Rule, Mapping[str, Any]]],
        set_name: str = "programmatic",
    ) -> RuleSet:
        return self._rule_loader.add_rules(rules, set_name)

    def load_rules_from_string(
        self, content: str, source_name: str = "inline"
    ) -> Optional[RuleSet]:
        return self._rule_loader.load_from_string(content, source_name)

    def get_rule_loader(self) -> RuleLoader:
        return self._rule_loader

    def get_decision_client(self) -> DecisionClient:
        return self._decision_client

    async def validate(self, context: ValidationContext) -> ValidationResult:
        """
        Validate a tool call against the applicable rules.

        Args:
            context: Validation context from the engine

        Returns:
            allow when the service passes the call (or no rule applies),
            deny when it blocks the call in strict mode
        """
        if not self._initialized:
            self.initialize()

        rules = self._rule_loader.get_rules_for_tool(context.tool_name)

        self._logger.debug(
            "Validating tool call with rules",
            {
                "tool_name": context.tool_name,
                "call_id": context.call_id,
                "applicable_rules": len(rules),
            },
        )

        if not rules:
            self._logger.debug(
                "No rules applicable, allowing by default",
                {"tool_name": context.tool_name},
            )
            return ValidationResult(decision="allow")

        response = await self._decision_client.evaluate(
            self._build_tool_call_context(context), rules
        )
        metadata = _response_metadata(response)

        if response.decision == "pass":
            self._logger.info(
                "Tool call allowed by decision service",
                {
                    "tool_name": context.tool_name,
                    "call_id": context.call_id,
                    "pass_weight": response.should_pass_weight,
                    "reasoning": response.reasoning,
                },
            )
            return ValidationResult(
                decision="allow",
                reason=response.reasoning,
                metadata=metadata,
            )

        if self._mode == "log":
            # Log mode: log the block but allow the call
            self._logger.warn(
                "Tool call would be blocked (log mode)",
                {
                    "tool_name": context.tool_name,
                    "call_id": context.call_id,
                    "reasoning": response.reasoning,
                    "matched_rules": response.matched_rules,
                },
            )
            return ValidationResult(
                decision="allow",
                reason=f"[LOG MODE] Would block: {response.reasoning}",
                metadata={**metadata, "blocked_in_strict_mode": True},
            )

        self._logger.warn(
            "Tool call blocked by decision service",
            {
                "tool_name": context.tool_name,
                "call_id": context.call_id,
                "block_weight": response.should_block_weight,
                "reasoning": response.reasoning,
                "matched_rules": response.matched_rules,
            },
        )
        return ValidationResult(
            decision="deny",
            reason=response.reasoning,
            metadata=metadata,
        )

    def to_named_validator(self) -> NamedValidator:
        """Create a named validator for the validation engine."""

        async def validate(context: ValidationContext) -> ValidationResult:
            return await self.validate(context)

        return NamedValidator(
            name=RULE_VALIDATOR_NAME,
            description="Validates tool calls using rules and the decision service",
            priority=RULE_VALIDATOR_PRIORITY,
            validate=validate,
        )

    def _build_tool_call_context(self, context: ValidationContext) -> ToolCallContext:
        return ToolCallContext(
            call_id=context.call_id,
            tool_name=context.tool_name,
            arguments=context.arguments,
            timestamp=to_rfc3339(context.timestamp),
            session_id=self._config.session_id,
            agent_id=self._config.agent_id,
            call_history=build_history_summary(context.call_history),
            custom=context.custom,
        )


def build_history_summary(
    history: Sequence[ToolCallHistoryEntry],
) -> list[ToolCallHistorySummary]:
    """Summarize the most recent history entries for the decision service."""
    return [
        ToolCallHistorySummary(
            tool_name=entry.tool_name,
            allowed=entry.validation_result.decision != "deny",
            timestamp=to_rfc3339(entry.timestamp),
        )
        for entry in list(history)[-HISTORY_SUMMARY_SIZE:]
    ]


def _response_metadata(response: DecisionResponse) -> dict[str, Any]:
    # Weights and the fallback flag take precedence over service metadata
    metadata: dict[str, Any] = dict(response.metadata or {})
    metadata["should_pass_weight"] = response.should_pass_weight
    metadata["should_block_weight"] = response.should_block_weight
    if response.matched_rules is not None:
        metadata["matched_rules"] = list(response.matched_rules)
    if response.fallback:
        metadata["api_error"] = True
    else:
        metadata.pop("api_error", None)
    return metadata


def create_rule_validator(
    config: RuleValidatorConfig,
    logger: Logger,
    decision_client: Optional[DecisionClient] = None,
) -> RuleValidator:
    """Create a rule-based validator."""
    return RuleValidator(config, logger, decision_client)
