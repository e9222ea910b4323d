"""
Main Toolgate guardrail class.

This is the primary entry point for using Toolgate. It wraps tools with
validation that runs local validators and resolves rules through the
external decision service.
"""

from typing import (
    Any,
    Awaitable,
    Callable,
    Literal,
    Optional,
    Protocol,
    Sequence,
    TypeVar,
    Union,
    runtime_checkable,
)
from dataclasses import dataclass
import copy
import inspect
import os

import yaml

from toolgate.types.tool import ToolCall, ToolResult
from toolgate.types.config import LogLevel, NamedValidator, Validator
from toolgate.utils.logger import Logger, create_logger
from toolgate.utils.id import generate_tool_call_id
from toolgate.core.validator import ValidationEngine, ValidationEngineOptions
from toolgate.core.history import HistoryTracker, HistoryTrackerOptions, HistoryStats
from toolgate.core.interceptor import (
    DEFAULT_HISTORY_WINDOW,
    AfterValidationHook,
    BeforeValidationHook,
    Interceptor,
    InterceptorOptions,
    InterceptionResult,
    ToolCallDeniedError,
    ValidationHooks,
)
from toolgate.rules.types import FailMode, Rule, RuleIndex
from toolgate.rules.decision_client import DecisionClient, DecisionServiceConfig
from toolgate.rules.rule_validator import RuleValidator, RuleValidatorConfig


# Toolgate operating mode
ToolgateMode = Literal["strict", "log"]

# Wrapped handler function type
WrappedHandler = Callable[[dict[str, Any]], Awaitable[Any]]

DEFAULT_API_URL = "http://localhost:8080"
DEFAULT_HISTORY_SIZE = 100

_LOG_LEVELS = ("debug", "info", "warn", "error", "silent")

# Attributes probed, in order, for a tool's callable entry point
_HANDLER_KEYS = ("handler", "func", "run", "execute")


@dataclass
class ToolgateOptions:
    """Options for creating a Toolgate instance."""

    # Decision service base URL (can also use TOOLGATE_API_URL env var)
    api_url: Optional[str] = None
    # API key sent as a bearer token (can also use TOOLGATE_API_KEY env var)
    api_key: Optional[str] = None
    endpoint: Optional[str] = None
    # API timeout in milliseconds
    timeout: Optional[int] = None
    # Number of retries for API calls
    retries: Optional[int] = None
    # Delay between retries in milliseconds
    retry_delay: Optional[int] = None
    # Behavior when the decision service is unavailable
    fail_mode: FailMode = "closed"
    # Operating mode: "strict" blocks denied calls, "log" only logs
    mode: Optional[ToolgateMode] = None
    # Log level (can also use TOOLGATE_LOG_LEVEL env var)
    log_level: Optional[LogLevel] = None
    session_id: Optional[str] = None
    agent_id: Optional[str] = None
    # Directory of YAML rule files
    rules_dir: Optional[str] = None
    recursive_rules: bool = True
    # Additional validators to run alongside rule-based validation
    validators: Optional[list[Union[Validator, NamedValidator]]] = None
    custom_context: Optional[dict[str, Any]] = None
    history_max_size: int = DEFAULT_HISTORY_SIZE
    history_window: int = DEFAULT_HISTORY_WINDOW
    hooks: Optional[ValidationHooks] = None
    on_before_validation: Optional[BeforeValidationHook] = None
    on_after_validation: Optional[AfterValidationHook] = None
    on_denied: Optional[AfterValidationHook] = None
    # Use this instead of the HTTP decision service client
    decision_client: Optional[DecisionClient] = None


@runtime_checkable
class ToolLike(Protocol):
    """Protocol for tool-like objects."""

    name: str


T = TypeVar("T", bound=ToolLike)


class Toolgate:
    """
    Toolgate - A guardrail system for AI agent tool calls.

    Toolgate wraps your tools and validates every call against your
    validators and the rules resolved by the decision service.

    Example:
        >>> from toolgate import Toolgate, ToolgateOptions
        >>>
        >>> gate = await Toolgate.init(ToolgateOptions(rules_dir="./toolgate/rules"))
        >>>
        >>> # Wrap your tools, validation is automatic
        >>> wrapped_tools = gate.wrap_tools(my_tools)
        >>>
        >>> # Or validate calls yourself
        >>> result = await gate.validate_tool_call(ToolCall(name="read_file", arguments={}))
    """

    def __init__(
        self,
        options: ToolgateOptions,
        logger: Logger,
        rule_validator: RuleValidator,
    ):
        self._logger = logger
        self._mode: ToolgateMode = options.mode or "strict"
        self._rule_validator = rule_validator
        self._registered_tools: dict[str, Any] = {}

        self._logger.info(
            "Toolgate configuration loaded",
            {
                "mode": self._mode,
                "rules_loaded": len(self.get_loaded_rules()),
            },
        )

        # Initialize validation engine
        self._validation_engine = ValidationEngine(
            ValidationEngineOptions(logger=self._logger, default_decision="allow")
        )
        self._validation_engine.add_validator(rule_validator.to_named_validator())

        if options.validators:
            self._validation_engine.add_validators(options.validators)

        # Initialize history tracker
        self._history_tracker = HistoryTracker(
            HistoryTrackerOptions(max_size=options.history_max_size, logger=self._logger)
        )

        # Initialize interceptor
        self._interceptor = Interceptor(
            InterceptorOptions(
                logger=self._logger,
                validation_engine=self._validation_engine,
                history_tracker=self._history_tracker,
                custom_context=options.custom_context,
                history_window=options.history_window,
                hooks=options.hooks,
                on_before_validation=options.on_before_validation,
                on_after_validation=options.on_after_validation,
                on_denied=options.on_denied,
            )
        )

        self._logger.info("Toolgate initialized successfully")

    @classmethod
    async def init(cls, options: Optional[ToolgateOptions] = None) -> "Toolgate":
        """
        Initialize Toolgate.

        Unset options fall back to the ``TOOLGATE_*`` environment variables.

        Args:
            options: Initialization options

        Returns:
            Initialized Toolgate instance

        Example:
            >>> gate = await Toolgate.init()
            >>> gate = await Toolgate.init(ToolgateOptions(api_url="https://decide.internal"))
        """
        options = options or ToolgateOptions()

        env_log_level = os.environ.get("TOOLGATE_LOG_LEVEL")
        log_level: LogLevel = (
            options.log_level
            or (env_log_level if env_log_level in _LOG_LEVELS else None)  # type: ignore[assignment]
            or "info"
        )
        logger = create_logger(log_level)

        api_config = DecisionServiceConfig(
            base_url=options.api_url or os.environ.get("TOOLGATE_API_URL", DEFAULT_API_URL),
            api_key=options.api_key or os.environ.get("TOOLGATE_API_KEY"),
        )
        if options.endpoint is not None:
            api_config.endpoint = options.endpoint
        if options.timeout is not None:
            api_config.timeout = options.timeout
        if options.retries is not None:
            api_config.retries = options.retries
        if options.retry_delay is not None:
            api_config.retry_delay = options.retry_delay

        rule_validator = RuleValidator(
            RuleValidatorConfig(
                api=api_config,
                rules_dir=options.rules_dir,
                parser=yaml.safe_load,
                recursive=options.recursive_rules,
                fail_mode=options.fail_mode,
                session_id=options.session_id or os.environ.get("TOOLGATE_SESSION_ID"),
                agent_id=options.agent_id or os.environ.get("TOOLGATE_AGENT_ID"),
                mode=options.mode or "strict",
            ),
            logger,
            decision_client=options.decision_client,
        )
        rule_validator.initialize()

        return cls(options, logger, rule_validator)

    @property
    def mode(self) -> ToolgateMode:
        return self._mode

    def wrap_tools(self, tools: Sequence[T]) -> list[T]:
        """
        Wrap tools with validation.

        Tools with a callable handler get a copy whose handler validates
        each call first, raises ``ToolCallDeniedError`` on denial and runs
        the original handler with the final (possibly modified) arguments.
        Other tools are registered and returned unchanged.

        Example:
            >>> tools = [ExecutableTool(name="read_file", handler=read_file)]
            >>> wrapped = gate.wrap_tools(tools)
            >>> await wrapped[0].handler({"path": "/etc/passwd"})  # raises if blocked
        """
        wrapped_tools = []
        for tool in tools:
            self._registered_tools[tool.name] = tool
            wrapped_tools.append(self.wrap_tool(tool))

        self._logger.info(
            "Tools wrapped",
            {"count": len(tools), "names": [t.name for t in tools]},
        )
        return wrapped_tools

    def wrap_tool(self, tool: T) -> T:
        """Wrap a single tool. Returns the tool as-is when it has no handler."""
        tool_name = tool.name

        for key in _HANDLER_KEYS:
            original = getattr(tool, key, None)
            if not callable(original):
                continue

            wrapped = copy.copy(tool)
            object.__setattr__(wrapped, key, self._create_wrapper(tool_name, original))
            self._registered_tools.setdefault(tool_name, tool)
            self._logger.debug("Tool wrapped", {"name": tool_name, "attribute": key})
            return wrapped

        self._logger.warn("No wrappable function found on tool", {"name": tool_name})
        return tool

    def _create_wrapper(self, tool_name: str, original: Callable[..., Any]) -> WrappedHandler:
        async def wrapper(arguments: dict[str, Any]) -> Any:
            result = await self.validate_tool_call(
                ToolCall(id=generate_tool_call_id(), name=tool_name, arguments=arguments)
            )

            if not result.allowed:
                raise ToolCallDeniedError(
                    tool_name,
                    result.original_call.id or "",
                    result.validation_result,
                )

            outcome = original(result.final_arguments)
            if inspect.isawaitable(outcome):
                return await outcome
            return outcome

        return wrapper

    async def validate_tool_call(
        self,
        call: ToolCall,
        custom: Optional[dict[str, Any]] = None,
    ) -> InterceptionResult:
        """Validate a tool call."""
        return await self._interceptor.intercept(call, custom)

    async def validate_tool_call_or_throw(
        self,
        call: ToolCall,
        custom: Optional[dict[str, Any]] = None,
    ) -> InterceptionResult:
        """
        Validate a tool call and raise if denied.

        Raises:
            ToolCallDeniedError: If the call is denied
        """
        return await self._interceptor.intercept_or_throw(call, custom)

    async def execute_tool_call(
        self,
        call: ToolCall,
        tools: Sequence[Any],
        custom: Optional[dict[str, Any]] = None,
    ) -> ToolResult:
        """Validate a tool call and execute the matching tool if allowed."""
        return await self._interceptor.intercept_and_execute(call, tools, custom)

    def add_validator(
        self,
        validator: Union[Validator, NamedValidator],
        priority: Optional[int] = None,
    ) -> None:
        self._validation_engine.add_validator(validator, priority)

    def remove_validator(self, name: str) -> bool:
        return self._validation_engine.remove_validator(name)

    def get_registered_tools(self) -> list[Any]:
        return list(self._registered_tools.values())

    def get_loaded_rules(self) -> tuple[Rule, ...]:
        return self._rule_validator.get_rule_loader().get_rules().all_rules

    def reload_rules(self) -> RuleIndex:
        """Re-read every rule source and rebuild the rule index."""
        return self._rule_validator.get_rule_loader().reload()

    def get_rule_validator(self) -> RuleValidator:
        return self._rule_validator

    def get_history_stats(self) -> HistoryStats:
        """Get history statistics."""
        return self._history_tracker.get_stats()

    def clear_history(self) -> None:
        """Clear call history."""
        self._history_tracker.clear()

    async def health_check(self) -> bool:
        """Check whether the decision service is reachable."""
        client = self._rule_validator.get_decision_client()
        check = getattr(client, "health_check", None)
        if check is None:
            return True
        return bool(await check())

    async def close(self) -> None:
        """Release the decision service connection."""
        client = self._rule_validator.get_decision_client()
        close = getattr(client, "close", None)
        if close is not None:
            await close()


# Re-export error class
__all__ = [
    "Toolgate",
    "ToolgateOptions",
    "ToolgateMode",
    "ToolCallDeniedError",
    "WrappedHandler",
]
