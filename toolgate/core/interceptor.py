"""
Tool call interceptor.

Routes tool calls from the AI model through the validation pipeline:
builds the validation context, runs lifecycle hooks and the validation
engine, records the outcome in history and optionally executes the tool.
"""

from typing import (
    Any,
    Awaitable,
    Callable,
    Optional,
    Protocol,
    Sequence,
    Union,
    runtime_checkable,
)
from dataclasses import dataclass, replace
import inspect
import time

from toolgate.types.tool import ToolCall, ToolResult, find_tool_by_name
from toolgate.types.config import ValidationContext, ValidationResult
from toolgate.core.validator import ValidationEngine, AggregatedValidationResult
from toolgate.core.history import HistoryTracker
from toolgate.utils.clock import Clock, utc_now
from toolgate.utils.id import generate_tool_call_id
from toolgate.utils.logger import Logger


DEFAULT_HISTORY_WINDOW = 10

BeforeValidationHook = Callable[[ValidationContext], Union[None, Awaitable[None]]]
AfterValidationHook = Callable[
    [ValidationContext, ValidationResult], Union[None, Awaitable[None]]
]


@runtime_checkable
class ValidationHooks(Protocol):
    """Lifecycle hooks invoked around validation. Errors are logged and ignored."""

    def before_validation(self, context: ValidationContext) -> Any: ...

    def after_validation(
        self, context: ValidationContext, result: ValidationResult
    ) -> Any: ...

    def denied(self, context: ValidationContext, result: ValidationResult) -> Any: ...


@dataclass
class InterceptorOptions:
    """Options for the interceptor."""

    logger: Logger
    validation_engine: ValidationEngine
    history_tracker: Optional[HistoryTracker] = None
    # Custom context data for validators
    custom_context: Optional[dict[str, Any]] = None
    # Number of recent history entries exposed to validators
    history_window: int = DEFAULT_HISTORY_WINDOW
    hooks: Optional[ValidationHooks] = None
    on_before_validation: Optional[BeforeValidationHook] = None
    on_after_validation: Optional[AfterValidationHook] = None
    on_denied: Optional[AfterValidationHook] = None
    clock: Clock = utc_now


@dataclass(frozen=True)
class InterceptionResult:
    """Result of intercepting a tool call."""

    allowed: bool
    validation_result: ValidationResult
    aggregated_result: AggregatedValidationResult
    original_call: ToolCall
    final_arguments: dict[str, Any]


class ToolCallDeniedError(Exception):
    """Error raised when a tool call is denied."""

    def __init__(
        self,
        tool_name: str,
        call_id: str,
        validation_result: ValidationResult,
    ):
        reason = validation_result.reason or "Tool call denied"
        super().__init__(f"Tool call denied: {tool_name} - {reason}")
        self.tool_name = tool_name
        self.call_id = call_id
        self.reason = reason
        self.validation_result = validation_result


class Interceptor:
    """Tool call interceptor that routes calls through validation."""

    def __init__(self, options: InterceptorOptions):
        self._logger = options.logger
        self._validation_engine = options.validation_engine
        self._history_tracker = options.history_tracker
        self._custom_context = options.custom_context
        self._history_window = options.history_window
        self._clock = options.clock

        hooks = options.hooks
        self._on_before_validation = options.on_before_validation or (
            hooks.before_validation if hooks else None
        )
        self._on_after_validation = options.on_after_validation or (
            hooks.after_validation if hooks else None
        )
        self._on_denied = options.on_denied or (hooks.denied if hooks else None)

    async def intercept(
        self,
        call: ToolCall,
        custom: Optional[dict[str, Any]] = None,
    ) -> InterceptionResult:
        """
        Intercept and validate a tool call.

        Args:
            call: The tool call to intercept
            custom: Extra context data for this call, merged over the
                interceptor's custom context

        Returns:
            The interception result
        """
        if not call.id:
            call = replace(call, id=generate_tool_call_id())
        call_id = call.id or ""

        self._logger.info(
            "Intercepting tool call",
            {"tool_name": call.name, "call_id": call_id},
        )

        context = ValidationContext(
            tool_name=call.name,
            arguments=call.arguments,
            call_id=call_id,
            timestamp=self._clock(),
            call_history=self._history_window_entries(),
            custom=self._merge_custom(custom),
        )

        await self._run_hook("on_before_validation", self._on_before_validation, call_id, context)

        aggregated_result = await self._validation_engine.validate(context)
        validation_result = aggregated_result.final_result

        # A rewrite stays in effect when later validators allow the call
        final_arguments = (
            aggregated_result.rewritten_arguments
            if validation_result.decision != "deny"
            and aggregated_result.rewritten_arguments is not None
            else call.arguments
        )

        if self._history_tracker is not None:
            self._history_tracker.record(
                call.name,
                call.arguments,
                validation_result,
                aggregated_result.total_duration_ms,
            )

        await self._run_hook(
            "on_after_validation",
            self._on_after_validation,
            call_id,
            context,
            validation_result,
        )

        if validation_result.decision == "deny":
            await self._run_hook(
                "on_denied", self._on_denied, call_id, context, validation_result
            )
            self._logger.warn(
                "Tool call denied",
                {
                    "tool_name": call.name,
                    "call_id": call_id,
                    "reason": validation_result.reason,
                },
            )
        else:
            self._logger.info(
                "Tool call allowed",
                {
                    "tool_name": call.name,
                    "call_id": call_id,
                    "decision": validation_result.decision,
                    "was_modified": final_arguments is not call.arguments,
                },
            )

        return InterceptionResult(
            allowed=validation_result.decision != "deny",
            validation_result=validation_result,
            aggregated_result=aggregated_result,
            original_call=call,
            final_arguments=final_arguments,
        )

    async def intercept_or_throw(
        self,
        call: ToolCall,
        custom: Optional[dict[str, Any]] = None,
    ) -> InterceptionResult:
        """
        Intercept a tool call and raise if denied.

        Raises:
            ToolCallDeniedError: If the call is denied
        """
        result = await self.intercept(call, custom)
        if not result.allowed:
            raise ToolCallDeniedError(
                result.original_call.name,
                result.original_call.id or "unknown",
                result.validation_result,
            )
        return result

    async def intercept_and_execute(
        self,
        call: ToolCall,
        tools: Sequence[Any],
        custom: Optional[dict[str, Any]] = None,
    ) -> ToolResult:
        """
        Intercept a tool call and, if allowed, execute the matching tool.

        Denials, unknown tools and handler failures are returned as error
        results instead of being raised.

        Args:
            call: The tool call to execute
            tools: Available tools, matched by ``name`` and run via ``handler``
        """
        result = await self.intercept(call, custom)
        call_id = result.original_call.id or ""

        if not result.allowed:
            return ToolResult(
                tool_call_id=call_id,
                tool_name=call.name,
                content={
                    "error": "Tool call denied",
                    "reason": result.validation_result.reason,
                },
                is_error=True,
            )

        tool = find_tool_by_name(tools, call.name)
        if tool is None:
            self._logger.error(
                "Tool not found for execution",
                {
                    "tool_name": call.name,
                    "available_tools": [getattr(t, "name", None) for t in tools],
                },
            )
            return ToolResult(
                tool_call_id=call_id,
                tool_name=call.name,
                content={
                    "error": "Tool not found",
                    "message": f'No tool named "{call.name}" is registered',
                },
                is_error=True,
            )

        start = time.perf_counter()
        try:
            content = tool.handler(result.final_arguments)
            if inspect.isawaitable(content):
                content = await content
        except Exception as error:
            duration_ms = (time.perf_counter() - start) * 1000
            self._logger.error(
                "Tool execution failed",
                {"tool_name": call.name, "duration_ms": round(duration_ms, 2)},
                error,
            )
            return ToolResult(
                tool_call_id=call_id,
                tool_name=call.name,
                content={"error": "Tool execution failed", "message": str(error)},
                is_error=True,
            )

        duration_ms = (time.perf_counter() - start) * 1000
        self._logger.debug(
            "Tool executed successfully",
            {"tool_name": call.name, "duration_ms": round(duration_ms, 2)},
        )
        return ToolResult(
            tool_call_id=call_id,
            tool_name=call.name,
            content=content,
            is_error=False,
        )

    def _history_window_entries(self) -> tuple:
        if self._history_tracker is None:
            return ()
        return self._history_tracker.get_last(self._history_window)

    def _merge_custom(self, custom: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
        if not custom:
            return self._custom_context
        return {**(self._custom_context or {}), **custom}

    async def _run_hook(
        self,
        hook_name: str,
        hook: Optional[Callable[..., Any]],
        call_id: str,
        *args: Any,
    ) -> None:
        if hook is None:
            return
        try:
            outcome = hook(*args)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as error:
            self._logger.warn(
                f"{hook_name} hook threw an error",
                {"call_id": call_id, "error": str(error)},
            )
