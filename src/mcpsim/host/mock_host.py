"""A minimal, stateful MCP peer for in-process protocol tests.

The host sits on a :class:`~mcpsim.bus.interceptor.MessageBus` and answers
requests from its mock registry.  Well-known methods get default answers;
anything unmocked deterministically produces a ``-32601`` response.

Usage::

    async with MockHost() as host:
        await host.initialize()
        host.mock_response("tools/call", lambda req: JsonRpcResponse.success(req.id, {"content": []}))
        response = await host.call_tool("greet", {"name": "Ada"})
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, Field

from mcpsim.bus.interceptor import MessageBus, MockHandler
from mcpsim.errors import ToolCallError
from mcpsim.host.profiles import HostProfile, get_host_profile
from mcpsim.protocol.models import (
    METHOD_NOT_FOUND,
    Capabilities,
    Implementation,
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResponse,
    Message,
    parse_message,
)
from mcpsim.protocol.validator import LATEST_PROTOCOL_VERSION
from mcpsim.utils.telemetry import (
    ATTR_RPC_ERROR_CODE,
    ATTR_RPC_ID,
    ATTR_RPC_METHOD,
    ATTR_RPC_MOCKED,
    ATTR_TOOL_ATTEMPT,
    ATTR_TOOL_MAX_RETRIES,
    ATTR_TOOL_NAME,
    get_tracer,
)

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)


class MockHostConfig(BaseModel):
    """Settings for a :class:`MockHost`.

    ``host_profile`` names a built-in profile (``"Claude"``, ``"VSCode"``,
    ``"Generic"``) whose capabilities the host advertises.
    ``retry_backoff`` is the base delay in seconds between ``call_tool``
    attempts; attempt *n* waits ``retry_backoff * n``.
    """

    auto_respond: bool = True
    debug: bool = False
    host_profile: str | None = None
    protocol_version: str = LATEST_PROTOCOL_VERSION
    server_info: Implementation = Field(
        default_factory=lambda: Implementation(name="mock-mcp-server", version="0.1.0")
    )
    retry_backoff: float = Field(default=0.1, ge=0)


@dataclass(frozen=True)
class _AttemptOutcome:
    response: JsonRpcResponse | None = None
    failure: str | None = None


class MockHost:
    """Simulates the far side of an MCP exchange."""

    def __init__(self, config: MockHostConfig | None = None) -> None:
        self.config = config or MockHostConfig()
        self._bus = MessageBus(debug=self.config.debug)
        self._capabilities = Capabilities()
        self._host_profile: HostProfile | None = None
        self._initialized = False
        self._next_id = 0

        if self.config.host_profile:
            self._host_profile = get_host_profile(self.config.host_profile)
            self._capabilities = Capabilities.model_validate(self._host_profile.capabilities)

        if self.config.auto_respond:
            self._install_auto_responders()

    async def __aenter__(self) -> MockHost:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.cleanup()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def bus(self) -> MessageBus:
        return self._bus

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def capabilities(self) -> Capabilities:
        return self._capabilities.model_copy(deep=True)

    @property
    def host_profile(self) -> HostProfile | None:
        return self._host_profile

    def set_capabilities(self, capabilities: Capabilities | Mapping[str, Any]) -> None:
        """Replace the capabilities advertised by future ``initialize`` answers."""
        if isinstance(capabilities, Capabilities):
            self._capabilities = capabilities.model_copy(deep=True)
        else:
            self._capabilities = Capabilities.model_validate(dict(capabilities))

    def mock_response(self, method: str, handler: MockHandler) -> None:
        """Shortcut for ``host.bus.mock_response``."""
        self._bus.mock_response(method, handler)

    def get_recorded_messages(self) -> list[Message]:
        return self._bus.get_recorded_messages()

    def clear_recorded_messages(self) -> None:
        self._bus.clear_recorded_messages()

    async def cleanup(self) -> None:
        """Reset the bus and return the host to its freshly constructed state.

        Hooks, custom mocks and the recording log are dropped.  The default
        auto-responders are installed again when ``auto_respond`` is set, so
        the bus is not left empty.  Capabilities and the host profile are kept.
        """
        self._bus.reset()
        self._initialized = False
        self._next_id = 0
        if self.config.auto_respond:
            self._install_auto_responders()

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def send_request(
        self,
        method: str,
        params: dict[str, Any] | list[Any] | None = None,
    ) -> JsonRpcResponse:
        """Send a request through the bus and return the (intercepted) response.

        Unmocked methods answer with ``-32601 Method not found``.
        """
        self._next_id += 1
        request = JsonRpcRequest(id=self._next_id, method=method, params=params)

        with _tracer.start_as_current_span("mock_host.send_request") as span:
            span.set_attribute(ATTR_RPC_METHOD, method)
            span.set_attribute(ATTR_RPC_ID, request.id)

            intercepted = await self._bus.intercept_request(request)
            response = await self._bus.should_mock(intercepted)
            span.set_attribute(ATTR_RPC_MOCKED, response is not None)

            if response is None:
                response = JsonRpcResponse.failure(
                    intercepted.id,
                    METHOD_NOT_FOUND,
                    f"Method not found: {method}",
                )

            final = await self._bus.intercept_response(response)
            if final.error is not None:
                span.set_attribute(ATTR_RPC_ERROR_CODE, final.error.code)
            return final

    async def send_notification(
        self,
        method: str,
        params: dict[str, Any] | list[Any] | None = None,
    ) -> JsonRpcNotification:
        """Push a notification through the bus.  Nothing answers it."""
        notification = JsonRpcNotification(method=method, params=params)
        return await self._bus.intercept_notification(notification)

    async def deliver(self, message: Message | Mapping[str, Any]) -> Message:
        """Push an already-formed message from the other side through the bus.

        Raises:
            MessageParseError: If *message* is not a recognisable JSON-RPC message.
        """
        parsed = parse_message(message)
        if isinstance(parsed, JsonRpcRequest):
            return await self._bus.intercept_request(parsed)
        if isinstance(parsed, JsonRpcResponse):
            return await self._bus.intercept_response(parsed)
        return await self._bus.intercept_notification(parsed)

    async def initialize(self, client_info: Implementation | None = None) -> JsonRpcResponse:
        """Run the ``initialize`` handshake with a well-formed request."""
        info = client_info or Implementation(name="mock-client", version="0.1.0")
        return await self.send_request(
            "initialize",
            {
                "protocolVersion": self.config.protocol_version,
                "capabilities": {},
                "clientInfo": info.model_dump(),
            },
        )

    async def call_tool(
        self,
        name: str,
        arguments: dict[str, Any] | None = None,
        *,
        timeout: float = 5.0,
        retries: int = 3,
    ) -> JsonRpcResponse:
        """Call a tool, retrying error responses and timeouts.

        Makes at most ``retries + 1`` attempts with a linear backoff between
        them.

        Raises:
            ValueError: If *retries* is negative.
            ToolCallError: When every attempt failed.  Carries the last error
                message and, if there was one, the last error response.
        """
        if retries < 0:
            raise ValueError(f"retries must be >= 0, got {retries}")
        params = {"name": name, "arguments": arguments or {}}

        with _tracer.start_as_current_span("mock_host.call_tool") as span:
            span.set_attribute(ATTR_TOOL_NAME, name)
            span.set_attribute(ATTR_TOOL_MAX_RETRIES, retries)

            outcome = _AttemptOutcome(failure="no attempt made")
            for attempt in range(1, retries + 2):
                span.set_attribute(ATTR_TOOL_ATTEMPT, attempt)
                outcome = await self._attempt_tool_call(params, timeout)
                if outcome.failure is None and outcome.response is not None:
                    return outcome.response

                span.add_event("call_tool.retry", {"attempt": attempt, "error": str(outcome.failure)})
                if attempt <= retries:
                    logger.info(
                        "tools/call %s attempt %d/%d failed: %s",
                        name,
                        attempt,
                        retries + 1,
                        outcome.failure,
                    )
                    await asyncio.sleep(self.config.retry_backoff * attempt)

            span.add_event("call_tool.exhausted")
            raise ToolCallError(name, retries + 1, str(outcome.failure), outcome.response)

    async def _attempt_tool_call(self, params: dict[str, Any], timeout: float) -> _AttemptOutcome:
        try:
            response = await asyncio.wait_for(self.send_request("tools/call", params), timeout=timeout)
        except TimeoutError:
            return _AttemptOutcome(failure=f"Tool call timed out after {timeout}s")
        if response.error is not None:
            return _AttemptOutcome(response=response, failure=response.error.message)
        return _AttemptOutcome(response=response)

    # ------------------------------------------------------------------
    # Fluent helpers
    # ------------------------------------------------------------------

    async def ping(self) -> JsonRpcResponse:
        return await self.send_request("ping")

    async def list_tools(self) -> JsonRpcResponse:
        return await self.send_request("tools/list")

    async def list_resources(self) -> JsonRpcResponse:
        return await self.send_request("resources/list")

    async def read_resource(self, uri: str) -> JsonRpcResponse:
        return await self.send_request("resources/read", {"uri": uri})

    async def list_prompts(self) -> JsonRpcResponse:
        return await self.send_request("prompts/list")

    async def get_prompt(self, name: str, arguments: dict[str, Any] | None = None) -> JsonRpcResponse:
        return await self.send_request("prompts/get", {"name": name, "arguments": arguments or {}})

    def enable_protocol_logging(self) -> None:
        """Log every request and response at INFO level."""

        def log_request(request: JsonRpcRequest) -> JsonRpcRequest:
            logger.info("[MCP Request] %s", json.dumps(request.to_wire(), indent=2, default=str))
            return request

        def log_response(response: JsonRpcResponse) -> JsonRpcResponse:
            logger.info("[MCP Response] %s", json.dumps(response.to_wire(), indent=2, default=str))
            return response

        self._bus.on_request(log_request)
        self._bus.on_response(log_response)

    # ------------------------------------------------------------------
    # Default responders
    # ------------------------------------------------------------------

    def _install_auto_responders(self) -> None:
        self._bus.mock_response("initialize", self._respond_initialize)
        self._bus.mock_response("ping", lambda req: JsonRpcResponse.success(req.id, {}))
        for method, key in (
            ("tools/list", "tools"),
            ("resources/list", "resources"),
            ("prompts/list", "prompts"),
        ):
            self._bus.mock_response(method, _empty_catalog(key))

    def _respond_initialize(self, request: JsonRpcRequest) -> JsonRpcResponse:
        # Marks initialized on answering, without waiting for an acknowledgment.
        self._initialized = True
        return JsonRpcResponse.success(
            request.id,
            {
                "protocolVersion": self.config.protocol_version,
                "capabilities": copy.deepcopy(self._capabilities.to_wire()),
                "serverInfo": self.config.server_info.model_dump(),
            },
        )


def _empty_catalog(key: str) -> MockHandler:
    def respond(request: JsonRpcRequest) -> JsonRpcResponse:
        return JsonRpcResponse.success(request.id, {key: []})

    return respond
