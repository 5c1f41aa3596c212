"""JSON-RPC 2.0 message models and the boundary parse step.

Raw JSON objects are classified into exactly one of three variants
(request, response, notification) by :func:`parse_message` before the bus or
the mock host touches them.  Ambiguous shapes are rejected there instead of
deep inside validation.

Discrimination rule::

    id + method            -> request
    id + (result | error)  -> response
    method, no id          -> notification
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError

from mcpsim.errors import MessageParseError

JSONRPC_VERSION = "2.0"

# Standard JSON-RPC 2.0 error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

# ---------------------------------------------------------------------------
# JSON-RPC 2.0 envelope
# ---------------------------------------------------------------------------


class JsonRpcError(BaseModel):
    """A JSON-RPC 2.0 error object."""

    code: int
    message: str
    data: Any = None

    def to_wire(self) -> dict[str, Any]:
        error: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            error["data"] = copy.deepcopy(self.data)
        return error


class JsonRpcRequest(BaseModel):
    """A JSON-RPC 2.0 request message (expects a response)."""

    jsonrpc: Literal["2.0"] = JSONRPC_VERSION
    id: int | str
    method: str
    params: dict[str, Any] | list[Any] | None = None

    def to_wire(self) -> dict[str, Any]:
        msg: dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id, "method": self.method}
        if self.params is not None:
            msg["params"] = copy.deepcopy(self.params)
        return msg

    def __str__(self) -> str:
        return f"Request({self.method}, id={self.id})"


class JsonRpcResponse(BaseModel):
    """A JSON-RPC 2.0 response message.

    Exactly one of ``result`` / ``error`` appears on the wire: ``error`` when
    it is set, ``result`` otherwise.
    """

    jsonrpc: Literal["2.0"] = JSONRPC_VERSION
    id: int | str | None
    result: Any = None
    error: JsonRpcError | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @classmethod
    def success(cls, id: int | str | None, result: Any = None) -> JsonRpcResponse:
        """Create a success response."""
        return cls(id=id, result=result)

    @classmethod
    def failure(
        cls,
        id: int | str | None,
        code: int,
        message: str,
        data: Any = None,
    ) -> JsonRpcResponse:
        """Create an error response."""
        return cls(id=id, error=JsonRpcError(code=code, message=message, data=data))

    def to_wire(self) -> dict[str, Any]:
        msg: dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            msg["error"] = self.error.to_wire()
        else:
            msg["result"] = copy.deepcopy(self.result)
        return msg

    def __str__(self) -> str:
        if self.error is not None:
            return f"Response(id={self.id}, error={self.error.code})"
        return f"Response(id={self.id}, success)"


class JsonRpcNotification(BaseModel):
    """A JSON-RPC 2.0 notification (no id, no response expected)."""

    jsonrpc: Literal["2.0"] = JSONRPC_VERSION
    method: str
    params: dict[str, Any] | list[Any] | None = None

    def to_wire(self) -> dict[str, Any]:
        msg: dict[str, Any] = {"jsonrpc": self.jsonrpc, "method": self.method}
        if self.params is not None:
            msg["params"] = copy.deepcopy(self.params)
        return msg

    def __str__(self) -> str:
        return f"Notification({self.method})"


Message = JsonRpcRequest | JsonRpcResponse | JsonRpcNotification


class MessageKind(str, Enum):
    """The three JSON-RPC message variants."""

    REQUEST = "request"
    RESPONSE = "response"
    NOTIFICATION = "notification"


def classify_message(data: Mapping[str, Any]) -> MessageKind | None:
    """Classify a raw mapping by field presence, or return ``None``."""
    has_id = "id" in data
    has_method = "method" in data
    if has_id and has_method:
        return MessageKind.REQUEST
    if has_id and ("result" in data or "error" in data):
        return MessageKind.RESPONSE
    if has_method and not has_id:
        return MessageKind.NOTIFICATION
    return None


def parse_message(data: Any) -> Message:
    """Parse a raw JSON object into the matching message model.

    Raises:
        MessageParseError: If the object is not a mapping, its shape is
            ambiguous, or it does not fit the chosen variant.
    """
    if isinstance(data, JsonRpcRequest | JsonRpcResponse | JsonRpcNotification):
        return data
    if not isinstance(data, Mapping):
        raise MessageParseError("message must be an object")

    kind = classify_message(data)
    if kind is None:
        raise MessageParseError("unable to determine message type")
    if kind is MessageKind.RESPONSE and "result" in data and "error" in data:
        raise MessageParseError("response carries both result and error")

    model: type[BaseModel] = {
        MessageKind.REQUEST: JsonRpcRequest,
        MessageKind.RESPONSE: JsonRpcResponse,
        MessageKind.NOTIFICATION: JsonRpcNotification,
    }[kind]
    try:
        return model.model_validate(dict(data))  # type: ignore[return-value]
    except ValidationError as exc:
        raise MessageParseError(str(exc)) from exc


def message_kind(message: Message) -> MessageKind:
    """Return the variant tag of an already-parsed message."""
    if isinstance(message, JsonRpcRequest):
        return MessageKind.REQUEST
    if isinstance(message, JsonRpcResponse):
        return MessageKind.RESPONSE
    return MessageKind.NOTIFICATION


def to_wire(message: Message | Mapping[str, Any]) -> dict[str, Any]:
    """Return a JSON-ready dict for a message model or a raw mapping (copied)."""
    if isinstance(message, JsonRpcRequest | JsonRpcResponse | JsonRpcNotification):
        return message.to_wire()
    return copy.deepcopy(dict(message))


# ---------------------------------------------------------------------------
# MCP handshake payloads
# ---------------------------------------------------------------------------


class ToolsCapability(BaseModel):
    model_config = {"populate_by_name": True, "extra": "allow"}

    list_changed: bool | None = Field(default=None, alias="listChanged")


class ResourcesCapability(BaseModel):
    model_config = {"populate_by_name": True, "extra": "allow"}

    subscribe: bool | None = None
    list_changed: bool | None = Field(default=None, alias="listChanged")


class PromptsCapability(BaseModel):
    model_config = {"populate_by_name": True, "extra": "allow"}

    list_changed: bool | None = Field(default=None, alias="listChanged")


class Capabilities(BaseModel):
    """Feature flags a peer advertises during the ``initialize`` handshake.

    Unknown feature areas (``logging``, ``experimental``...) are kept as
    extra fields so they survive a round trip.
    """

    model_config = {"extra": "allow"}

    tools: ToolsCapability | None = None
    resources: ResourcesCapability | None = None
    prompts: PromptsCapability | None = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class Implementation(BaseModel):
    """``clientInfo`` / ``serverInfo`` payload."""

    name: str
    version: str
