"""
Tests for the Toolgate facade.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from toolgate import Toolgate, ToolgateOptions, ToolCallDeniedError
from toolgate.core.validator import create_blocklist_validator
from toolgate.rules.decision_client import DecisionServiceClient
from toolgate.rules.types import DecisionResponse
from toolgate.types.config import NamedValidator, ValidationResult
from toolgate.types.tool import ExecutableTool, ToolCall


RULES_YAML = """
name: file-safety
rules:
  - id: no-etc
    name: Block /etc access
    tools: [read_file]
    conditions:
      - field: arguments.path
        operator: starts_with
        value: /etc
"""

PASS = DecisionResponse(
    should_pass_weight=0.9,
    should_block_weight=0.1,
    decision="pass",
    reasoning="Allowed by mock",
)

BLOCK = DecisionResponse(
    should_pass_weight=0.0,
    should_block_weight=1.0,
    decision="block",
    reasoning="Blocked by mock",
    matched_rules=["no-etc"],
)


@pytest.fixture
def mock_decision_client():
    """Create a mock decision client that passes by default."""
    client = MagicMock()
    client.evaluate = AsyncMock(return_value=PASS)
    client.health_check = AsyncMock(return_value=True)
    client.close = AsyncMock()
    return client


@pytest.fixture
def rules_dir(tmp_path):
    (tmp_path / "rules.yaml").write_text(RULES_YAML)
    return tmp_path


async def make_gate(client, rules_dir=None, **options):
    return await Toolgate.init(
        ToolgateOptions(
            log_level="silent",
            decision_client=client,
            rules_dir=str(rules_dir) if rules_dir else None,
            **options,
        )
    )


class TestToolgateInit:
    async def test_loads_rules_directory(self, mock_decision_client, rules_dir):
        gate = await make_gate(mock_decision_client, rules_dir)

        assert [r.id for r in gate.get_loaded_rules()] == ["no-etc"]
        assert gate.mode == "strict"

    async def test_builds_http_client_from_env(self, monkeypatch):
        monkeypatch.setenv("TOOLGATE_API_URL", "http://decide.internal:9000")
        monkeypatch.setenv("TOOLGATE_API_KEY", "env-key")

        gate = await Toolgate.init(ToolgateOptions(log_level="silent", retries=0))
        client = gate.get_rule_validator().get_decision_client()

        assert isinstance(client, DecisionServiceClient)
        assert client.url == "http://decide.internal:9000/tool/call/check"
        await gate.close()

    async def test_session_and_agent_from_env(self, monkeypatch, mock_decision_client, rules_dir):
        monkeypatch.setenv("TOOLGATE_SESSION_ID", "sess-env")
        monkeypatch.setenv("TOOLGATE_AGENT_ID", "agent-env")
        gate = await make_gate(mock_decision_client, rules_dir)

        await gate.validate_tool_call(ToolCall(name="read_file", arguments={"path": "/tmp"}))

        context, _ = mock_decision_client.evaluate.await_args.args
        assert context.session_id == "sess-env"
        assert context.agent_id == "agent-env"

    async def test_invalid_env_log_level_is_ignored(self, monkeypatch, mock_decision_client):
        monkeypatch.setenv("TOOLGATE_LOG_LEVEL", "loud")

        gate = await Toolgate.init(ToolgateOptions(decision_client=mock_decision_client))

        assert gate is not None


class TestValidateToolCall:
    async def test_allowed_by_decision_service(self, mock_decision_client, rules_dir):
        gate = await make_gate(mock_decision_client, rules_dir)

        result = await gate.validate_tool_call(
            ToolCall(name="read_file", arguments={"path": "/tmp/notes"})
        )

        assert result.allowed is True
        mock_decision_client.evaluate.assert_awaited_once()

    async def test_blocked_by_decision_service(self, mock_decision_client, rules_dir):
        mock_decision_client.evaluate = AsyncMock(return_value=BLOCK)
        gate = await make_gate(mock_decision_client, rules_dir)

        result = await gate.validate_tool_call(
            ToolCall(name="read_file", arguments={"path": "/etc/passwd"})
        )

        assert result.allowed is False
        assert result.validation_result.reason == "Blocked by mock"
        assert gate.get_history_stats().denied_calls == 1

    async def test_log_mode(self, mock_decision_client, rules_dir):
        mock_decision_client.evaluate = AsyncMock(return_value=BLOCK)
        gate = await make_gate(mock_decision_client, rules_dir, mode="log")

        result = await gate.validate_tool_call(
            ToolCall(name="read_file", arguments={"path": "/etc/passwd"})
        )

        assert result.allowed is True
        assert result.validation_result.reason.startswith("[LOG MODE] Would block:")

    async def test_tool_without_rules_skips_service(self, mock_decision_client, rules_dir):
        gate = await make_gate(mock_decision_client, rules_dir)

        result = await gate.validate_tool_call(ToolCall(name="list_dir", arguments={}))

        assert result.allowed is True
        mock_decision_client.evaluate.assert_not_awaited()

    async def test_or_throw(self, mock_decision_client):
        gate = await make_gate(
            mock_decision_client, validators=[create_blocklist_validator(["rm"])]
        )

        with pytest.raises(ToolCallDeniedError) as exc_info:
            await gate.validate_tool_call_or_throw(ToolCall(name="rm", arguments={}))

        assert exc_info.value.reason == "Tool is blocked: rm"

    async def test_add_and_remove_validator(self, mock_decision_client):
        gate = await make_gate(mock_decision_client)
        calls = []

        def audit(ctx):
            calls.append(ctx.tool_name)
            return ValidationResult(decision="allow")

        gate.add_validator(NamedValidator(name="audit", validate=audit))
        await gate.validate_tool_call(ToolCall(name="read_file", arguments={}))
        assert calls == ["read_file"]

        assert gate.remove_validator("audit") is True
        await gate.validate_tool_call(ToolCall(name="read_file", arguments={}))
        assert calls == ["read_file"]

    async def test_hooks_are_forwarded(self, mock_decision_client):
        denied = MagicMock()
        gate = await make_gate(
            mock_decision_client,
            validators=[create_blocklist_validator(["rm"])],
            on_denied=denied,
        )

        await gate.validate_tool_call(ToolCall(name="rm", arguments={}))

        denied.assert_called_once()


class TestWrapTools:
    async def test_wrapped_handler_runs_when_allowed(self, mock_decision_client):
        handler = AsyncMock(return_value="success")
        gate = await make_gate(mock_decision_client)

        wrapped = gate.wrap_tools([ExecutableTool(name="search", handler=handler)])
        result = await wrapped[0].handler({"query": "weather"})

        assert result == "success"
        handler.assert_awaited_once_with({"query": "weather"})
        assert [t.name for t in gate.get_registered_tools()] == ["search"]

    async def test_wrapped_handler_raises_when_denied(self, mock_decision_client):
        handler = MagicMock()
        gate = await make_gate(
            mock_decision_client, validators=[create_blocklist_validator(["rm"])]
        )

        wrapped = gate.wrap_tools([ExecutableTool(name="rm", handler=handler)])

        with pytest.raises(ToolCallDeniedError):
            await wrapped[0].handler({"path": "/"})
        handler.assert_not_called()

    async def test_wrapped_handler_receives_modified_arguments(self, mock_decision_client):
        handler = MagicMock(return_value="ok")
        gate = await make_gate(
            mock_decision_client,
            validators=[
                NamedValidator(
                    name="clamp",
                    validate=lambda ctx: ValidationResult(
                        decision="modify",
                        modified_arguments={**ctx.arguments, "limit": 10},
                    ),
                )
            ],
        )

        wrapped = gate.wrap_tools([ExecutableTool(name="search", handler=handler)])
        await wrapped[0].handler({"query": "x", "limit": 1000})

        handler.assert_called_once_with({"query": "x", "limit": 10})

    async def test_original_tool_is_untouched(self, mock_decision_client):
        handler = MagicMock()
        tool = ExecutableTool(name="search", handler=handler)
        gate = await make_gate(mock_decision_client)

        wrapped = gate.wrap_tools([tool])

        assert tool.handler is handler
        assert wrapped[0] is not tool

    async def test_tool_without_handler_is_returned_as_is(self, mock_decision_client):
        class Definition:
            name = "describe_only"

        tool = Definition()
        gate = await make_gate(mock_decision_client)

        assert gate.wrap_tools([tool]) == [tool]


class TestExecuteToolCall:
    async def test_executes_allowed_call(self, mock_decision_client):
        gate = await make_gate(mock_decision_client)
        tools = [ExecutableTool(name="add", handler=lambda args: args["a"] + args["b"])]

        result = await gate.execute_tool_call(
            ToolCall(id="call_add", name="add", arguments={"a": 2, "b": 3}), tools
        )

        assert result.content == 5
        assert result.tool_call_id == "call_add"
        assert result.is_error is False


class TestMaintenance:
    async def test_reload_rules(self, mock_decision_client, rules_dir):
        gate = await make_gate(mock_decision_client, rules_dir)
        (rules_dir / "more.yaml").write_text("- id: extra\n  name: Extra\n")

        index = gate.reload_rules()

        assert {r.id for r in index.all_rules} == {"no-etc", "extra"}
        assert len(gate.get_loaded_rules()) == 2

    async def test_history_stats_and_clear(self, mock_decision_client):
        gate = await make_gate(mock_decision_client)
        await gate.validate_tool_call(ToolCall(name="a", arguments={}))
        await gate.validate_tool_call(ToolCall(name="a", arguments={}))

        stats = gate.get_history_stats()
        assert stats.total_calls == 2
        assert stats.calls_by_tool == {"a": 2}

        gate.clear_history()
        assert gate.get_history_stats().total_calls == 0

    async def test_health_check_and_close(self, mock_decision_client):
        gate = await make_gate(mock_decision_client)

        assert await gate.health_check() is True
        await gate.close()

        mock_decision_client.close.assert_awaited_once()
