"""
Validation engine for tool calls.

Runs an ordered chain of named validators against a tool call and
aggregates their results. Validators run in ascending priority; validators
with equal priority run in the order they were added.
"""

from typing import Any, Optional, Union
from dataclasses import dataclass, field, replace
import inspect
import threading
import time

from toolgate.types.config import (
    NamedValidator,
    ValidationContext,
    ValidationDecision,
    ValidationResult,
    Validator,
    normalize_validator,
)
from toolgate.utils.logger import Logger


@dataclass
class ValidationEngineOptions:
    """Options for the validation engine."""

    logger: Logger
    # Decision returned when no validator applies to a tool
    default_decision: ValidationDecision = "allow"


@dataclass(frozen=True)
class ValidatorRunResult:
    """Outcome of a single validator within a chain run."""

    validator_name: str
    result: ValidationResult
    duration_ms: float


@dataclass(frozen=True)
class AggregatedValidationResult:
    """Result of running all applicable validators."""

    final_result: ValidationResult
    validator_results: list[ValidatorRunResult] = field(default_factory=list)
    total_duration_ms: float = 0.0
    # Arguments after the last rewrite in the chain, None when nothing rewrote them
    rewritten_arguments: Optional[dict[str, Any]] = None


@dataclass(frozen=True)
class _RegisteredValidator:
    validator: NamedValidator
    priority: int
    sequence: int


class ValidationEngine:
    """
    Validation engine that runs multiple validators in sequence.

    The registry is an immutable tuple rebuilt on every mutation, so a run
    that started before an ``add_validator`` or ``remove_validator`` keeps
    working against the snapshot it took.

    Example:
        >>> engine = ValidationEngine(ValidationEngineOptions(logger=SilentLogger()))
        >>> engine.add_validator(create_blocklist_validator(["delete_file"]))
        >>> result = await engine.validate(context)
    """

    def __init__(self, options: ValidationEngineOptions):
        self._logger = options.logger
        self._default_decision = options.default_decision
        self._registry: tuple[_RegisteredValidator, ...] = ()
        self._sequence = 0
        self._lock = threading.Lock()

    def add_validator(
        self,
        validator: Union[Validator, NamedValidator],
        priority: Optional[int] = None,
    ) -> None:
        """
        Add a validator to the engine.

        Args:
            validator: Validator function or named validator
            priority: Overrides the validator's own priority when given
        """
        with self._lock:
            record = self._register(validator, priority, list(self._registry))
            self._publish([*self._registry, record])

        self._logger.debug(
            "Validator added",
            {
                "name": record.validator.name,
                "priority": record.priority,
                "total_validators": len(self._registry),
            },
        )

    def add_validators(self, validators: list[Union[Validator, NamedValidator]]) -> None:
        """Add multiple validators at once. Either all are added or none."""
        with self._lock:
            records = list(self._registry)
            for validator in validators:
                records.append(self._register(validator, None, records))
            self._publish(records)

        self._logger.debug(
            "Validators added",
            {"count": len(validators), "total_validators": len(self._registry)},
        )

    def remove_validator(self, name: str) -> bool:
        """
        Remove a validator by name.

        Returns:
            True if the validator was found and removed
        """
        with self._lock:
            remaining = [r for r in self._registry if r.validator.name != name]
            if len(remaining) == len(self._registry):
                return False
            self._publish(remaining)

        self._logger.debug("Validator removed", {"name": name})
        return True

    def clear_validators(self) -> None:
        with self._lock:
            self._registry = ()
        self._logger.debug("All validators cleared")

    def get_validators(self) -> tuple[NamedValidator, ...]:
        """Get an ordered snapshot of the registered validators."""
        return tuple(r.validator for r in self._registry)

    async def validate(self, context: ValidationContext) -> AggregatedValidationResult:
        """
        Run all applicable validators for a tool call.

        Validators run in priority order. A ``deny`` result stops the chain
        immediately. A ``modify`` result replaces the arguments seen by the
        validators that follow. A validator that raises is treated as a
        denial.

        Args:
            context: Validation context

        Returns:
            Aggregated validation result
        """
        start = time.perf_counter()
        registry = self._registry
        applicable = [
            r.validator for r in registry if r.validator.applies_to(context.tool_name)
        ]

        self._logger.debug(
            "Starting validation",
            {
                "tool_name": context.tool_name,
                "call_id": context.call_id,
                "validator_count": len(applicable),
            },
        )

        if not applicable:
            self._logger.debug(
                "No applicable validators, using default decision",
                {"decision": self._default_decision},
            )
            return AggregatedValidationResult(
                final_result=self._default_result(),
                validator_results=[],
                total_duration_ms=_elapsed_ms(start),
            )

        validator_results: list[ValidatorRunResult] = []
        final_result = ValidationResult(decision="allow")
        current_context = context
        rewritten_arguments: Optional[dict[str, Any]] = None

        for validator in applicable:
            validator_start = time.perf_counter()
            try:
                result = await _invoke(validator, current_context)
            except Exception as error:
                duration_ms = _elapsed_ms(validator_start)
                self._logger.error(
                    "Validator threw an error",
                    {
                        "validator_name": validator.name,
                        "tool_name": context.tool_name,
                        "call_id": context.call_id,
                    },
                    error,
                )
                validator_results.append(
                    ValidatorRunResult(
                        validator_name=validator.name,
                        result=ValidationResult(
                            decision="deny",
                            reason=f"Validator error: {error}",
                        ),
                        duration_ms=duration_ms,
                    )
                )
                final_result = ValidationResult(
                    decision="deny",
                    reason=f'Validator "{validator.name}" threw an error: {error}',
                    metadata={"validator_error": True, "validator": validator.name},
                )
                break

            duration_ms = _elapsed_ms(validator_start)
            validator_results.append(
                ValidatorRunResult(
                    validator_name=validator.name,
                    result=result,
                    duration_ms=duration_ms,
                )
            )
            self._logger.debug(
                "Validator completed",
                {
                    "validator_name": validator.name,
                    "decision": result.decision,
                    "duration_ms": round(duration_ms, 2),
                },
            )

            final_result = result
            if result.decision == "deny":
                self._logger.info(
                    "Tool call denied by validator",
                    {
                        "tool_name": context.tool_name,
                        "call_id": context.call_id,
                        "validator": validator.name,
                        "reason": result.reason,
                    },
                )
                break
            if result.decision == "modify" and result.modified_arguments is not None:
                current_context = replace(
                    current_context, arguments=result.modified_arguments
                )
                rewritten_arguments = result.modified_arguments

        total_duration_ms = _elapsed_ms(start)
        self._logger.debug(
            "Validation complete",
            {
                "tool_name": context.tool_name,
                "call_id": context.call_id,
                "final_decision": final_result.decision,
                "total_duration_ms": round(total_duration_ms, 2),
            },
        )

        return AggregatedValidationResult(
            final_result=final_result,
            validator_results=validator_results,
            total_duration_ms=total_duration_ms,
            rewritten_arguments=(
                None if final_result.decision == "deny" else rewritten_arguments
            ),
        )

    def _default_result(self) -> ValidationResult:
        if self._default_decision == "modify":
            # Nothing to rewrite, so a modify default keeps the arguments as-is
            return ValidationResult(decision="allow")
        return ValidationResult(decision=self._default_decision)

    def _register(
        self,
        validator: Union[Validator, NamedValidator],
        priority: Optional[int],
        existing: list[_RegisteredValidator],
    ) -> _RegisteredValidator:
        normalized = normalize_validator(validator, self._sequence)
        if any(r.validator.name == normalized.name for r in existing):
            raise ValueError(f'Validator "{normalized.name}" is already registered')
        record = _RegisteredValidator(
            validator=normalized,
            priority=priority if priority is not None else normalized.priority,
            sequence=self._sequence,
        )
        self._sequence += 1
        return record

    def _publish(self, records: list[_RegisteredValidator]) -> None:
        self._registry = tuple(sorted(records, key=lambda r: (r.priority, r.sequence)))


async def _invoke(validator: NamedValidator, context: ValidationContext) -> ValidationResult:
    result: Any = validator.validate(context)
    if inspect.isawaitable(result):
        result = await result
    if not isinstance(result, ValidationResult):
        raise TypeError(
            f"expected ValidationResult, got {type(result).__name__}"
        )
    return result


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


def create_passthrough_validator() -> NamedValidator:
    """Create a validator that always allows. Runs last."""
    return NamedValidator(
        name="passthrough",
        description="Allows all tool calls without validation",
        priority=1000,
        validate=lambda ctx: ValidationResult(decision="allow"),
    )


def create_blocklist_validator(
    tool_names: list[str],
    reason: str = "Tool is blocked",
) -> NamedValidator:
    """Create a validator that denies the given tools. Runs first."""
    return NamedValidator(
        name="blocklist",
        description=f"Blocks tools: {', '.join(tool_names)}",
        priority=1,
        tool_filter=list(tool_names),
        validate=lambda ctx: ValidationResult(
            decision="deny", reason=f"{reason}: {ctx.tool_name}"
        ),
    )


def create_allowlist_validator(
    tool_names: list[str],
    reason: str = "Tool is not in allowlist",
) -> NamedValidator:
    """Create a validator that only allows the given tools. Runs first."""
    allowed = frozenset(tool_names)

    def validate(ctx: ValidationContext) -> ValidationResult:
        if ctx.tool_name in allowed:
            return ValidationResult(decision="allow")
        return ValidationResult(decision="deny", reason=f"{reason}: {ctx.tool_name}")

    return NamedValidator(
        name="allowlist",
        description=f"Only allows tools: {', '.join(tool_names)}",
        priority=1,
        validate=validate,
    )
