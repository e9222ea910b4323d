"""
Schema validation for rule documents and decision service responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from jsonschema import Draft202012Validator, ValidationError as JsonSchemaError

from toolgate.rules.schemas import DECISION_RESPONSE_SCHEMA, RULE_SET_SCHEMA


@dataclass
class SchemaViolation:
    """A single validation error with location and message."""

    path: str
    message: str
    keyword: str


class RuleSchemaError(Exception):
    """Raised when a document fails schema validation."""

    def __init__(self, errors: list[SchemaViolation], subject: str = "rule document") -> None:
        summary = "\n".join(f"  - {e.path}: {e.message}" for e in errors)
        super().__init__(f"Invalid {subject}:\n{summary}")
        self.errors = errors


_validators: dict[str, Draft202012Validator] = {}


def _get_validator(name: str, schema: dict[str, Any]) -> Draft202012Validator:
    validator = _validators.get(name)
    if validator is None:
        Draft202012Validator.check_schema(schema)
        validator = Draft202012Validator(schema)
        _validators[name] = validator
    return validator


def _format_path(error: JsonSchemaError) -> str:
    parts = [str(p) for p in error.absolute_path]
    return "/" + "/".join(parts) if parts else "/"


def _violations(validator: Draft202012Validator, data: Any) -> list[SchemaViolation]:
    return [
        SchemaViolation(
            path=_format_path(e),
            message=e.message,
            keyword=str(e.validator),
        )
        for e in sorted(validator.iter_errors(data), key=lambda e: [str(p) for p in e.absolute_path])
    ]


def validate_rule_set(data: Any) -> None:
    """Validate a rule set document (a mapping with a ``rules`` list).

    Raises:
        RuleSchemaError: If validation fails, with one entry per violation.
    """
    errors = _violations(_get_validator("rule_set", RULE_SET_SCHEMA), data)
    if errors:
        raise RuleSchemaError(errors, "rule document")


def validate_decision_response(data: Any) -> None:
    """Validate a decision service response body.

    Raises:
        RuleSchemaError: If a required field is missing or has the wrong type.
    """
    errors = _violations(
        _get_validator("decision_response", DECISION_RESPONSE_SCHEMA), data
    )
    if errors:
        raise RuleSchemaError(errors, "decision response")
