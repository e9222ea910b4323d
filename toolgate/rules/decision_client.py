"""
Decision service client.

Sends a tool call context together with the applicable rules to an
external decision service and turns its answer into a ``DecisionResponse``.

Failed attempts (timeouts, connection errors, non-2xx statuses and
malformed bodies) are retried with a fixed delay. When every attempt fails
the client never raises: it synthesizes a response according to its fail
mode, ``pass`` when failing open and ``block`` when failing closed.
"""

from typing import Any, Optional, Protocol, runtime_checkable
from dataclasses import dataclass
import asyncio
import json
import aiohttp

from toolgate.rules.types import (
    DecisionRequest,
    DecisionResponse,
    FailMode,
    Rule,
    ToolCallContext,
)
from toolgate.rules.schema_validator import RuleSchemaError, validate_decision_response
from toolgate.utils.logger import Logger, SilentLogger


DEFAULT_ENDPOINT = "/tool/call/check"
HEALTH_ENDPOINT = "/health"
HEALTH_CHECK_TIMEOUT = 5000  # 5 seconds in milliseconds


@runtime_checkable
class DecisionClient(Protocol):
    """Anything that can turn a tool call context and rules into a decision."""

    async def evaluate(
        self, context: ToolCallContext, rules: list[Rule]
    ) -> DecisionResponse: ...


@dataclass
class DecisionServiceConfig:
    """Configuration for the decision service client."""

    base_url: str
    endpoint: str = DEFAULT_ENDPOINT
    timeout: int = 10000  # 10 seconds in milliseconds
    headers: Optional[dict[str, str]] = None
    api_key: Optional[str] = None
    retries: int = 2
    retry_delay: int = 1000  # 1 second in milliseconds


class DecisionServiceError(Exception):
    """A failed request to the decision service."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class DecisionServiceClient:
    """
    HTTP client for the decision service.

    Example:
        >>> config = DecisionServiceConfig(base_url="http://localhost:8080")
        >>> client = DecisionServiceClient(config, logger, fail_mode="closed")
        >>> response = await client.evaluate(context, rules)
        >>> response.decision
        'pass'
    """

    def __init__(
        self,
        config: DecisionServiceConfig,
        logger: Optional[Logger] = None,
        fail_mode: FailMode = "closed",
    ):
        if config.retries < 0:
            raise ValueError("retries must not be negative")
        self._config = config
        self._logger = logger or SilentLogger()
        self._fail_mode: FailMode = fail_mode

        # Ensure base URL doesn't have trailing slash
        self._base_url = config.base_url.rstrip("/")
        endpoint = config.endpoint if config.endpoint.startswith("/") else f"/{config.endpoint}"
        self._url = f"{self._base_url}{endpoint}"

        # Shared session (lazy-initialized)
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def fail_mode(self) -> FailMode:
        return self._fail_mode

    @property
    def url(self) -> str:
        return self._url

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers=self._get_headers())
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    def _get_headers(self) -> dict[str, str]:
        """Get request headers including authentication."""
        headers = {"Content-Type": "application/json"}
        if self._config.api_key:
            headers["Authorization"] = f"Bearer {self._config.api_key}"
        if self._config.headers:
            headers.update(self._config.headers)
        return headers

    async def evaluate(
        self, context: ToolCallContext, rules: list[Rule]
    ) -> DecisionResponse:
        """
        Ask the decision service whether a tool call should pass.

        Args:
            context: The tool call context
            rules: Rules applicable to the tool

        Returns:
            The service's decision, or a fail-mode fallback when every
            attempt failed
        """
        payload = DecisionRequest(context=context, rules=rules).to_dict()
        attempts = self._config.retries + 1

        self._logger.debug(
            "Requesting decision",
            {
                "url": self._url,
                "tool_name": context.tool_name,
                "call_id": context.call_id,
                "rule_count": len(rules),
            },
        )

        last_error: Optional[Exception] = None

        for attempt in range(attempts):
            try:
                response = await self._request(payload)
                self._logger.debug(
                    "Decision received",
                    {
                        "tool_name": context.tool_name,
                        "decision": response.decision,
                        "attempt": attempt + 1,
                    },
                )
                return response

            except Exception as error:
                last_error = error

                if attempt < self._config.retries:
                    self._logger.warn(
                        "Decision request failed, retrying",
                        {"attempt": attempt + 1, "error": str(error)},
                    )
                    await asyncio.sleep(self._config.retry_delay / 1000)

        # All retries failed
        self._logger.error(
            "Decision request failed",
            {
                "tool_name": context.tool_name,
                "attempts": attempts,
                "fail_mode": self._fail_mode,
                "error": str(last_error),
            },
            last_error,
        )
        return self._fallback(str(last_error), attempts)

    async def _request(self, payload: dict[str, Any]) -> DecisionResponse:
        session = self._get_session()
        timeout = aiohttp.ClientTimeout(total=self._config.timeout / 1000)
        try:
            async with session.post(self._url, json=payload, timeout=timeout) as response:
                body = await response.text()
                if not 200 <= response.status < 300:
                    raise DecisionServiceError(
                        f"Decision service returned status {response.status}",
                        status_code=response.status,
                        response_body=body,
                    )
        except asyncio.TimeoutError as error:
            raise DecisionServiceError(
                f"Request timed out after {self._config.timeout}ms"
            ) from error
        except aiohttp.ClientError as error:
            raise DecisionServiceError(f"Connection error: {error}") from error

        return parse_decision_response(body)

    def _fallback(self, cause: str, attempts: int) -> DecisionResponse:
        metadata = {
            "api_error": True,
            "fail_mode": self._fail_mode,
            "attempts": attempts,
            "error": cause,
        }
        if self._fail_mode == "open":
            return DecisionResponse(
                should_pass_weight=1.0,
                should_block_weight=0.0,
                decision="pass",
                reasoning=f"Decision service unavailable: {cause}, failing open",
                metadata=metadata,
                fallback=True,
            )
        return DecisionResponse(
            should_pass_weight=0.0,
            should_block_weight=1.0,
            decision="block",
            reasoning=f"Decision service unavailable: {cause}, failing closed",
            metadata=metadata,
            fallback=True,
        )

    async def health_check(self) -> bool:
        """
        Check whether the decision service is reachable.

        Returns:
            True if ``GET /health`` answers with a 2xx status. Never raises.
        """
        url = f"{self._base_url}{HEALTH_ENDPOINT}"
        try:
            session = self._get_session()
            async with session.get(
                url,
                timeout=aiohttp.ClientTimeout(total=HEALTH_CHECK_TIMEOUT / 1000),
            ) as response:
                healthy = 200 <= response.status < 300
        except (aiohttp.ClientError, asyncio.TimeoutError) as error:
            self._logger.warn("Health check failed", {"url": url, "error": str(error)})
            return False

        self._logger.debug("Health check completed", {"url": url, "healthy": healthy})
        return healthy


def parse_decision_response(body: str) -> DecisionResponse:
    """
    Parse and validate a decision service response body.

    Raises:
        DecisionServiceError: If the body is not JSON or does not match the
            response schema
    """
    try:
        data = json.loads(body)
    except ValueError as error:
        raise DecisionServiceError(
            f"Invalid JSON in decision response: {error}", response_body=body
        ) from error

    try:
        validate_decision_response(data)
    except RuleSchemaError as error:
        raise DecisionServiceError(str(error), response_body=body) from error

    return DecisionResponse(
        should_pass_weight=float(data["should_pass_weight"]),
        should_block_weight=float(data["should_block_weight"]),
        decision=data["decision"],
        reasoning=data["reasoning"],
        matched_rules=(
            list(data["matched_rules"]) if data.get("matched_rules") is not None else None
        ),
        metadata=dict(data["metadata"]) if data.get("metadata") is not None else None,
    )
