"""
Tests for the decision service client.

Runs against a real aiohttp application served on a local port.
"""

import asyncio
import json

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer, unused_port

from toolgate.rules.decision_client import (
    DecisionClient,
    DecisionServiceClient,
    DecisionServiceConfig,
    DecisionServiceError,
    parse_decision_response,
)
from toolgate.rules.types import Rule, ToolCallContext, ToolCallHistorySummary


PASS_BODY = {
    "should_pass_weight": 0.9,
    "should_block_weight": 0.1,
    "decision": "pass",
    "reasoning": "Looks fine",
    "matched_rules": [],
}

BLOCK_BODY = {
    "should_pass_weight": 0.05,
    "should_block_weight": 0.95,
    "decision": "block",
    "reasoning": "Reads a protected path",
    "matched_rules": ["no-etc"],
    "metadata": {"model": "policy-v2"},
}

RULES = [Rule(id="no-etc", name="Block /etc", tools=["read_file"])]

CONTEXT = ToolCallContext(
    call_id="call_abc",
    tool_name="read_file",
    arguments={"path": "/etc/passwd"},
    timestamp="2026-01-15T12:00:00Z",
)


class FakeDecisionService:
    """Scripted decision service. Replies are consumed in order; the last one repeats."""

    def __init__(self):
        self.requests = []
        self.replies = [(200, PASS_BODY)]
        self.delay = 0.0
        self.health_status = 200
        self.base_url = ""

    async def handle_check(self, request):
        self.requests.append(
            {"headers": dict(request.headers), "body": await request.json()}
        )
        if self.delay:
            await asyncio.sleep(self.delay)
        status, body = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        text = body if isinstance(body, str) else json.dumps(body)
        return web.Response(status=status, text=text, content_type="application/json")

    async def handle_health(self, request):
        return web.Response(status=self.health_status, text="ok")


@pytest.fixture
async def service():
    fake = FakeDecisionService()
    app = web.Application()
    app.router.add_post("/tool/call/check", fake.handle_check)
    app.router.add_get("/health", fake.handle_health)
    server = TestServer(app)
    await server.start_server()
    fake.base_url = f"http://{server.host}:{server.port}"
    yield fake
    await server.close()


@pytest.fixture
async def make_client(logger):
    clients = []

    def factory(base_url, fail_mode="closed", **overrides):
        config = DecisionServiceConfig(
            base_url=base_url,
            retries=overrides.pop("retries", 2),
            retry_delay=overrides.pop("retry_delay", 10),
            **overrides,
        )
        client = DecisionServiceClient(config, logger, fail_mode=fail_mode)
        clients.append(client)
        return client

    yield factory
    for client in clients:
        await client.close()


class TestEvaluate:
    async def test_returns_parsed_decision(self, service, make_client):
        service.replies = [(200, BLOCK_BODY)]
        client = make_client(service.base_url)

        response = await client.evaluate(CONTEXT, RULES)

        assert response.decision == "block"
        assert response.should_block_weight == 0.95
        assert response.matched_rules == ["no-etc"]
        assert response.metadata == {"model": "policy-v2"}
        assert response.is_fallback is False

    async def test_service_metadata_does_not_mark_fallback(self, service, make_client):
        service.replies = [(200, {**PASS_BODY, "metadata": {"api_error": True}})]
        client = make_client(service.base_url)

        response = await client.evaluate(CONTEXT, RULES)

        assert response.decision == "pass"
        assert response.is_fallback is False
        assert response.fallback is False

    async def test_request_payload(self, service, make_client):
        client = make_client(service.base_url)
        context = ToolCallContext(
            call_id="call_1",
            tool_name="read_file",
            arguments={"path": "/tmp/a"},
            timestamp="2026-01-15T12:00:00Z",
            session_id="sess-1",
            call_history=[
                ToolCallHistorySummary(
                    tool_name="list_dir", allowed=True, timestamp="2026-01-15T11:59:00Z"
                )
            ],
        )

        await client.evaluate(context, RULES)

        body = service.requests[0]["body"]
        assert body["context"] == {
            "call_id": "call_1",
            "tool_name": "read_file",
            "arguments": {"path": "/tmp/a"},
            "timestamp": "2026-01-15T12:00:00Z",
            "session_id": "sess-1",
            "call_history": [
                {
                    "tool_name": "list_dir",
                    "allowed": True,
                    "timestamp": "2026-01-15T11:59:00Z",
                }
            ],
        }
        assert body["rules"] == [
            {
                "id": "no-etc",
                "name": "Block /etc",
                "enabled": True,
                "severity": "medium",
                "action": "block",
                "tools": ["read_file"],
            }
        ]

    async def test_sends_auth_and_extra_headers(self, service, make_client):
        client = make_client(
            service.base_url, api_key="secret", headers={"X-Tenant": "acme"}
        )

        await client.evaluate(CONTEXT, RULES)

        headers = service.requests[0]["headers"]
        assert headers["Authorization"] == "Bearer secret"
        assert headers["X-Tenant"] == "acme"

    async def test_custom_endpoint(self, service, make_client):
        client = make_client(service.base_url + "/", endpoint="tool/call/check")

        assert client.url == f"{service.base_url}/tool/call/check"
        assert (await client.evaluate(CONTEXT, RULES)).decision == "pass"

    async def test_retries_then_succeeds(self, service, make_client):
        service.replies = [(500, "oops"), (503, "busy"), (200, PASS_BODY)]
        client = make_client(service.base_url, retries=2)

        response = await client.evaluate(CONTEXT, RULES)

        assert response.decision == "pass"
        assert response.is_fallback is False
        assert len(service.requests) == 3

    @pytest.mark.parametrize("retries", [0, 1, 3])
    async def test_makes_retries_plus_one_attempts(self, service, make_client, retries):
        service.replies = [(500, "down")]
        client = make_client(service.base_url, retries=retries)

        response = await client.evaluate(CONTEXT, RULES)

        assert len(service.requests) == retries + 1
        assert response.metadata["attempts"] == retries + 1

    async def test_fail_closed_blocks(self, service, make_client):
        service.replies = [(500, "down")]
        client = make_client(service.base_url, fail_mode="closed", retries=1)

        response = await client.evaluate(CONTEXT, RULES)

        assert response.decision == "block"
        assert response.should_pass_weight == 0.0
        assert response.should_block_weight == 1.0
        assert response.is_fallback is True
        assert response.metadata["fail_mode"] == "closed"
        assert response.reasoning.startswith("Decision service unavailable:")
        assert response.reasoning.endswith("failing closed")
        assert "500" in response.metadata["error"]

    async def test_fail_open_passes(self, service, make_client):
        service.replies = [(502, "bad gateway")]
        client = make_client(service.base_url, fail_mode="open", retries=0)

        response = await client.evaluate(CONTEXT, RULES)

        assert response.decision == "pass"
        assert response.should_pass_weight == 1.0
        assert response.should_block_weight == 0.0
        assert response.reasoning.endswith("failing open")
        assert response.metadata["api_error"] is True

    async def test_malformed_body_is_a_failed_attempt(self, service, make_client):
        service.replies = [
            (200, "not json at all"),
            (200, {"decision": "maybe", "reasoning": "?"}),
            (200, PASS_BODY),
        ]
        client = make_client(service.base_url, retries=2)

        response = await client.evaluate(CONTEXT, RULES)

        assert response.decision == "pass"
        assert len(service.requests) == 3

    async def test_timeout_is_a_failed_attempt(self, service, make_client):
        service.delay = 0.5
        client = make_client(service.base_url, fail_mode="open", retries=1, timeout=100)

        response = await client.evaluate(CONTEXT, RULES)

        assert response.decision == "pass"
        assert response.is_fallback is True
        assert "timed out" in response.metadata["error"]
        assert len(service.requests) == 2

    async def test_unreachable_service(self, make_client):
        client = make_client(f"http://127.0.0.1:{unused_port()}", fail_mode="closed", retries=1)

        response = await client.evaluate(CONTEXT, RULES)

        assert response.decision == "block"
        assert response.metadata["attempts"] == 2
        assert "Connection error" in response.metadata["error"]

    async def test_fail_closed_after_three_network_failures(self, make_client):
        client = make_client(f"http://127.0.0.1:{unused_port()}", fail_mode="closed", retries=2)

        response = await client.evaluate(CONTEXT, RULES)

        assert response.decision == "block"
        assert response.should_block_weight == 1.0
        assert response.metadata["attempts"] == 3

    def test_negative_retries_rejected(self, logger):
        with pytest.raises(ValueError):
            DecisionServiceClient(
                DecisionServiceConfig(base_url="http://localhost", retries=-1), logger
            )

    def test_satisfies_protocol(self, logger):
        client = DecisionServiceClient(DecisionServiceConfig(base_url="http://localhost"), logger)

        assert isinstance(client, DecisionClient)


class TestHealthCheck:
    async def test_healthy(self, service, make_client):
        assert await make_client(service.base_url).health_check() is True

    async def test_unhealthy_status(self, service, make_client):
        service.health_status = 503

        assert await make_client(service.base_url).health_check() is False

    async def test_unreachable(self, make_client):
        client = make_client(f"http://127.0.0.1:{unused_port()}")

        assert await client.health_check() is False


class TestParseDecisionResponse:
    def test_valid(self):
        response = parse_decision_response(json.dumps(PASS_BODY))

        assert response.decision == "pass"
        assert response.should_pass_weight == 0.9

    @pytest.mark.parametrize(
        "body",
        [
            "{",
            json.dumps({**PASS_BODY, "should_pass_weight": 1.5}),
            json.dumps({**PASS_BODY, "decision": "allow"}),
            json.dumps({k: v for k, v in PASS_BODY.items() if k != "reasoning"}),
            json.dumps({**PASS_BODY, "matched_rules": "no-etc"}),
            json.dumps([PASS_BODY]),
        ],
    )
    def test_rejects_protocol_violations(self, body):
        with pytest.raises(DecisionServiceError):
            parse_decision_response(body)
