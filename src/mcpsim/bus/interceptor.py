"""Ordered interception, mocking and recording of JSON-RPC traffic.

Every message handed to the bus is first appended to the recording log, then
folded left to right through the registered hooks::

    bus = MessageBus()
    bus.on_request(add_auth_header)
    bus.mock_response("tools/list", lambda req: JsonRpcResponse.success(req.id, {"tools": []}))

    request = await bus.intercept_request(JsonRpcRequest(id=1, method="tools/list"))
    response = await bus.should_mock(request)

Hooks may be plain functions or coroutines.  They run one at a time in
registration order; no two hooks ever run concurrently.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, TypeVar

from mcpsim.protocol.models import (
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResponse,
    Message,
)

logger = logging.getLogger(__name__)

RequestHook = Callable[[JsonRpcRequest], JsonRpcRequest | Awaitable[JsonRpcRequest]]
ResponseHook = Callable[[JsonRpcResponse], JsonRpcResponse | Awaitable[JsonRpcResponse]]
MessageHandler = Callable[[Message], Message | None | Awaitable[Message | None]]
MockHandler = Callable[
    [JsonRpcRequest],
    JsonRpcResponse | Mapping[str, Any] | Awaitable[JsonRpcResponse | Mapping[str, Any]],
]

_M = TypeVar("_M", JsonRpcRequest, JsonRpcResponse, JsonRpcNotification)


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class MessageBus:
    """Owns the hook chains, the mock registry and the recording log.

    All three are private to one bus instance and only cleared by
    :meth:`reset`.
    """

    def __init__(self, *, debug: bool = False) -> None:
        self.debug = debug
        self._request_hooks: list[RequestHook] = []
        self._response_hooks: list[ResponseHook] = []
        self._message_handlers: list[MessageHandler] = []
        self._mocks: dict[str, MockHandler] = {}
        self._recorded: list[Message] = []

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def on_request(self, hook: RequestHook) -> None:
        """Append a hook applied to every outgoing request."""
        self._request_hooks.append(hook)

    def on_response(self, hook: ResponseHook) -> None:
        """Append a hook applied to every incoming response."""
        self._response_hooks.append(hook)

    def on_message(self, handler: MessageHandler) -> None:
        """Append a handler that sees every message after the typed hooks.

        Returning ``None`` keeps the message; returning a message of the same
        kind replaces it.
        """
        self._message_handlers.append(handler)

    def mock_response(self, method: str, handler: MockHandler) -> None:
        """Register the responder for *method*, replacing any previous one."""
        self._mocks[method] = handler

    def has_mock(self, method: str) -> bool:
        return method in self._mocks

    # ------------------------------------------------------------------
    # Interception
    # ------------------------------------------------------------------

    async def intercept_request(self, request: JsonRpcRequest) -> JsonRpcRequest:
        """Record *request*, then fold it through the request hooks."""
        self._record(request, "Outgoing request")
        current = request
        for hook in self._request_hooks:
            current = await _resolve(hook(current))
        return await self._fold_handlers(current)

    async def intercept_response(self, response: JsonRpcResponse) -> JsonRpcResponse:
        """Record *response*, then fold it through the response hooks."""
        self._record(response, "Incoming response")
        current = response
        for hook in self._response_hooks:
            current = await _resolve(hook(current))
        return await self._fold_handlers(current)

    async def intercept_notification(self, notification: JsonRpcNotification) -> JsonRpcNotification:
        """Record *notification* and pass it through the generic handlers."""
        self._record(notification, "Notification")
        return await self._fold_handlers(notification)

    async def should_mock(self, request: JsonRpcRequest) -> JsonRpcResponse | None:
        """Return the mocked response for *request*, or ``None`` if unmocked.

        The caller decides what an unmocked method means.
        """
        handler = self._mocks.get(request.method)
        if handler is None:
            return None

        logger.log(self._level, "Mocking response for method: %s", request.method)
        result = await _resolve(handler(request))
        if isinstance(result, JsonRpcResponse):
            return result
        if isinstance(result, Mapping):
            return JsonRpcResponse.model_validate(dict(result))
        msg = f"Mock handler for {request.method!r} returned {type(result).__name__}, expected a response"
        raise TypeError(msg)

    # ------------------------------------------------------------------
    # Recording log
    # ------------------------------------------------------------------

    def get_recorded_messages(self) -> list[Message]:
        """Return every recorded message in call order."""
        return list(self._recorded)

    def get_recorded_requests(self) -> list[JsonRpcRequest]:
        return [m for m in self._recorded if isinstance(m, JsonRpcRequest)]

    def get_recorded_responses(self) -> list[JsonRpcResponse]:
        return [m for m in self._recorded if isinstance(m, JsonRpcResponse)]

    def get_recorded_notifications(self) -> list[JsonRpcNotification]:
        return [m for m in self._recorded if isinstance(m, JsonRpcNotification)]

    def find_requests_by_method(self, method: str) -> list[JsonRpcRequest]:
        return [r for r in self.get_recorded_requests() if r.method == method]

    def clear_recorded_messages(self) -> None:
        self._recorded = []

    def reset(self) -> None:
        """Drop all hooks, handlers, mocks and recorded messages.

        Runs without suspending, so no hook or mock can observe a
        half-cleared bus.
        """
        self._request_hooks = []
        self._response_hooks = []
        self._message_handlers = []
        self._mocks = {}
        self._recorded = []

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @property
    def _level(self) -> int:
        return logging.INFO if self.debug else logging.DEBUG

    def _record(self, message: Message, label: str) -> None:
        # Snapshot before hooks run: the log shows what was handed in.
        self._recorded.append(message.model_copy(deep=True))
        if logger.isEnabledFor(self._level):
            logger.log(self._level, "%s: %s", label, message.to_wire())

    async def _fold_handlers(self, message: _M) -> _M:
        current = message
        for handler in self._message_handlers:
            replaced = await _resolve(handler(current))
            if replaced is not None:
                if type(replaced) is not type(current):
                    msg = (
                        f"Message handler returned {type(replaced).__name__}, "
                        f"expected {type(current).__name__}"
                    )
                    raise TypeError(msg)
                current = replaced
        return current
