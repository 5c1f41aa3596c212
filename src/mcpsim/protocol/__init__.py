"""JSON-RPC 2.0 message models and conformance checks."""

from mcpsim.protocol.models import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    Capabilities,
    Implementation,
    JsonRpcError,
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResponse,
    Message,
    MessageKind,
    classify_message,
    parse_message,
    to_wire,
)
from mcpsim.protocol.validator import (
    LATEST_PROTOCOL_VERSION,
    SUPPORTED_PROTOCOL_VERSIONS,
    ProtocolValidator,
    ValidationResult,
    validate_initialize_request,
    validate_initialize_response,
    validate_notification,
    validate_request,
    validate_response,
)

__all__ = [
    "INTERNAL_ERROR",
    "INVALID_PARAMS",
    "INVALID_REQUEST",
    "LATEST_PROTOCOL_VERSION",
    "METHOD_NOT_FOUND",
    "PARSE_ERROR",
    "SUPPORTED_PROTOCOL_VERSIONS",
    "Capabilities",
    "Implementation",
    "JsonRpcError",
    "JsonRpcNotification",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "Message",
    "MessageKind",
    "ProtocolValidator",
    "ValidationResult",
    "classify_message",
    "parse_message",
    "to_wire",
    "validate_initialize_request",
    "validate_initialize_response",
    "validate_notification",
    "validate_request",
    "validate_response",
]
