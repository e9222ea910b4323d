"""
Validator chain conformance cases.

Loads YAML fixtures describing a validator chain, an input tool call and
the expected outcome, and checks the validation engine against each case.
"""

import re
from pathlib import Path
from typing import Any

import pytest
import yaml

from toolgate.core.validator import (
    ValidationEngine,
    ValidationEngineOptions,
    create_allowlist_validator,
    create_blocklist_validator,
    create_passthrough_validator,
)
from toolgate.types.config import NamedValidator, ValidationContext, ValidationResult
from toolgate.utils.logger import SilentLogger

from conftest import FIXED_TIME


FIXTURES_DIR = Path(__file__).resolve().parent / "fixtures"


def normalize_reason(reason: str) -> str:
    return re.sub(r"\s+", " ", reason).strip().lower()


def load_cases() -> list[dict[str, Any]]:
    cases = []
    for filepath in sorted(FIXTURES_DIR.glob("*.yaml")):
        with open(filepath) as f:
            cases.extend(yaml.safe_load(f)["cases"])
    return cases


def build_validator(config: dict[str, Any], index: int) -> NamedValidator:
    vtype = config["type"]
    priority = config.get("priority", 100)
    reason = config.get("custom_reason")

    if vtype == "passthrough":
        v = create_passthrough_validator()
        v.tool_filter = config.get("tool_filter")
    elif vtype == "blocklist":
        v = create_blocklist_validator(
            config.get("tools", []), config.get("reason", "Tool is blocked")
        )
    elif vtype == "allowlist":
        v = create_allowlist_validator(
            config.get("tools", []), config.get("reason", "Tool is not in allowlist")
        )
    elif vtype == "custom_allow":
        v = NamedValidator(
            name=f"custom_allow_{index}",
            validate=lambda ctx, r=reason: ValidationResult(decision="allow", reason=r),
        )
    elif vtype == "custom_deny":
        v = NamedValidator(
            name=f"custom_deny_{index}",
            validate=lambda ctx, r=reason: ValidationResult(decision="deny", reason=r),
        )
    elif vtype == "custom_modify":
        updates = config.get("set_arguments", {})
        v = NamedValidator(
            name=f"custom_modify_{index}",
            validate=lambda ctx, u=updates: ValidationResult(
                decision="modify", modified_arguments={**ctx.arguments, **u}
            ),
        )
    elif vtype == "custom_throw":

        def throw_validator(ctx: ValidationContext, msg: str = reason or "Error") -> ValidationResult:
            raise Exception(msg)

        v = NamedValidator(name=f"custom_throw_{index}", validate=throw_validator)
    else:
        raise ValueError(f"Unknown validator type: {vtype}")

    if "priority" in config:
        v.priority = priority
    if vtype.startswith("custom_"):
        v.tool_filter = config.get("tool_filter")
    return v


@pytest.mark.parametrize("case", load_cases(), ids=lambda case: case["id"])
async def test_conformance_case(case):
    engine = ValidationEngine(
        ValidationEngineOptions(
            logger=SilentLogger(),
            default_decision=case.get("default_decision", "allow"),
        )
    )
    for index, config in enumerate(case["validators"]):
        engine.add_validator(build_validator(config, index))

    input_data = case["input"]
    result = await engine.validate(
        ValidationContext(
            tool_name=input_data["tool_name"],
            arguments=input_data.get("arguments") or {},
            call_id="conformance-test",
            timestamp=FIXED_TIME,
        )
    )

    expected = case["expected"]
    final = result.final_result
    assert final.decision == expected["decision"]

    if expected.get("reason_absent"):
        assert final.reason is None
    if "reason_contains" in expected:
        assert final.reason is not None
        assert normalize_reason(expected["reason_contains"]) in normalize_reason(final.reason)
    if "validator_count" in expected:
        assert len(result.validator_results) == expected["validator_count"]
    if "validator_order" in expected:
        assert [r.validator_name for r in result.validator_results] == expected["validator_order"]
    if "modified_arguments" in expected:
        assert final.modified_arguments == expected["modified_arguments"]
    if "rewritten_arguments" in expected:
        assert result.rewritten_arguments == expected["rewritten_arguments"]
