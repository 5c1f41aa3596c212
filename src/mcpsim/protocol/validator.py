"""Protocol conformance checks for JSON-RPC and MCP handshake messages.

The module-level ``validate_*`` functions are pure: they never raise on
malformed traffic and always return a :class:`ValidationResult`.  They accept
raw mappings (what was actually on the wire) as well as message models.

:class:`ProtocolValidator` wraps them with an accumulator so a test can feed a
whole exchange through and ask afterwards whether anything was wrong.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, computed_field

from mcpsim.protocol.models import (
    JSONRPC_VERSION,
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResponse,
    MessageKind,
    classify_message,
)

SUPPORTED_PROTOCOL_VERSIONS = ("2024-11-05",)
LATEST_PROTOCOL_VERSION = "2024-11-05"


class ValidationResult(BaseModel):
    """Outcome of a single validation call.  Warnings never affect validity."""

    errors: list[str] = []
    warnings: list[str] = []

    @computed_field  # type: ignore[prop-decorator]
    @property
    def valid(self) -> bool:
        return not self.errors


def _as_mapping(message: Any) -> Mapping[str, Any] | None:
    if isinstance(message, JsonRpcRequest | JsonRpcResponse | JsonRpcNotification):
        return message.to_wire()
    if isinstance(message, Mapping):
        return message
    return None


def _is_string(value: Any) -> bool:
    return isinstance(value, str) and value != ""


def _check_params(msg: Mapping[str, Any], errors: list[str]) -> None:
    params = msg.get("params")
    if params is not None and not isinstance(params, dict | list):
        errors.append("params field must be an object or array if present")


def validate_request(request: Any) -> ValidationResult:
    """Validate a JSON-RPC request."""
    msg = _as_mapping(request)
    if msg is None:
        return ValidationResult(errors=["Request must be an object"])

    errors: list[str] = []
    warnings: list[str] = []

    if msg.get("jsonrpc") != JSONRPC_VERSION:
        errors.append('jsonrpc field must be "2.0"')

    if not _is_string(msg.get("method")):
        errors.append("method field is required and must be a string")

    if "id" not in msg:
        warnings.append("Request missing id field (should be a notification if intentional)")
    elif msg["id"] is None:
        errors.append("id field cannot be null in a request")
    elif isinstance(msg["id"], bool) or not isinstance(msg["id"], int | str):
        errors.append("id field must be a string or an integer")

    _check_params(msg, errors)
    return ValidationResult(errors=errors, warnings=warnings)


def validate_notification(notification: Any) -> ValidationResult:
    """Validate a JSON-RPC notification (a method call without an id)."""
    msg = _as_mapping(notification)
    if msg is None:
        return ValidationResult(errors=["Notification must be an object"])

    errors: list[str] = []
    if msg.get("jsonrpc") != JSONRPC_VERSION:
        errors.append('jsonrpc field must be "2.0"')
    if not _is_string(msg.get("method")):
        errors.append("method field is required and must be a string")
    if "id" in msg:
        errors.append("notification must not carry an id field")
    _check_params(msg, errors)
    return ValidationResult(errors=errors)


def validate_response(response: Any) -> ValidationResult:
    """Validate a JSON-RPC response."""
    msg = _as_mapping(response)
    if msg is None:
        return ValidationResult(errors=["Response must be an object"])

    errors: list[str] = []

    if msg.get("jsonrpc") != JSONRPC_VERSION:
        errors.append('jsonrpc field must be "2.0"')

    if "id" not in msg:
        errors.append("id field is required in a response")

    has_result = "result" in msg
    has_error = "error" in msg
    if not has_result and not has_error:
        errors.append("Response must have either result or error field")
    if has_result and has_error:
        errors.append("Response cannot have both result and error fields")

    if has_error:
        error = msg["error"]
        if not isinstance(error, Mapping):
            errors.append("error field must be an object")
        else:
            code = error.get("code")
            if isinstance(code, bool) or not isinstance(code, int | float):
                errors.append("error.code must be a number")
            if not isinstance(error.get("message"), str):
                errors.append("error.message must be a string")

    return ValidationResult(errors=errors)


def _check_implementation(info: Any, field: str, errors: list[str]) -> None:
    if not isinstance(info, Mapping):
        errors.append(f"{field} is required and must be an object")
        return
    if not _is_string(info.get("name")):
        errors.append(f"{field}.name is required and must be a string")
    if not _is_string(info.get("version")):
        errors.append(f"{field}.version is required and must be a string")


def validate_initialize_request(request: Any) -> ValidationResult:
    """Validate an ``initialize`` request on top of the base request rules."""
    base = validate_request(request)
    msg = _as_mapping(request)
    if msg is None:
        return base

    errors = list(base.errors)
    warnings = list(base.warnings)

    if msg.get("method") != "initialize":
        errors.append('Method must be "initialize"')

    params = msg.get("params")
    if not isinstance(params, Mapping):
        errors.append("initialize request must have params object")
        return ValidationResult(errors=errors, warnings=warnings)

    version = params.get("protocolVersion")
    if not _is_string(version):
        errors.append("protocolVersion is required and must be a string")
    elif version not in SUPPORTED_PROTOCOL_VERSIONS:
        warnings.append(f'protocolVersion "{version}" may not be supported')

    if not isinstance(params.get("capabilities"), Mapping):
        errors.append("capabilities is required and must be an object")

    _check_implementation(params.get("clientInfo"), "clientInfo", errors)
    return ValidationResult(errors=errors, warnings=warnings)


def validate_initialize_response(response: Any) -> ValidationResult:
    """Validate an ``initialize`` response.

    A response carrying only an ``error`` is acceptable: the server declined
    the handshake, which is legal protocol behaviour.
    """
    base = validate_response(response)
    msg = _as_mapping(response)
    if msg is None:
        return base

    errors = list(base.errors)
    warnings = list(base.warnings)

    result = msg.get("result")
    if result is None:
        if msg.get("error") is not None:
            return ValidationResult(errors=errors, warnings=warnings)
        errors.append("initialize response must have a result")
        return ValidationResult(errors=errors, warnings=warnings)
    if not isinstance(result, Mapping):
        errors.append("initialize result must be an object")
        return ValidationResult(errors=errors, warnings=warnings)

    version = result.get("protocolVersion")
    if not _is_string(version):
        errors.append("result.protocolVersion is required and must be a string")
    elif version not in SUPPORTED_PROTOCOL_VERSIONS:
        warnings.append(f'protocolVersion "{version}" may not be supported')

    if not isinstance(result.get("capabilities"), Mapping):
        errors.append("result.capabilities is required and must be an object")

    _check_implementation(result.get("serverInfo"), "serverInfo", errors)
    return ValidationResult(errors=errors, warnings=warnings)


class ProtocolValidator:
    """Accumulates validation findings across many messages.

    In strict mode warnings are collected into :attr:`errors` as well, so a
    strict validator fails on anything suspicious.  Per-call
    :class:`ValidationResult` objects are never altered by strict mode.
    """

    def __init__(self, *, strict: bool = False) -> None:
        self.strict = strict
        self._errors: list[str] = []
        self._warnings: list[str] = []

    @property
    def errors(self) -> list[str]:
        return list(self._errors)

    @property
    def warnings(self) -> list[str]:
        return list(self._warnings)

    def has_errors(self) -> bool:
        return bool(self._errors)

    def has_warnings(self) -> bool:
        return bool(self._warnings)

    def reset(self) -> None:
        self._errors = []
        self._warnings = []

    def validate_message(self, message: Any) -> ValidationResult:
        """Classify *message* and validate it as that kind."""
        msg = _as_mapping(message)
        if msg is None:
            return self._collect(ValidationResult(errors=["Message must be an object"]))

        kind = classify_message(msg)
        if kind is MessageKind.REQUEST:
            return self.validate_request(msg)
        if kind is MessageKind.RESPONSE:
            return self.validate_response(msg)
        if kind is MessageKind.NOTIFICATION:
            return self._collect(validate_notification(msg))
        return self._collect(ValidationResult(errors=["Unable to determine message type"]))

    def validate_request(self, request: Any) -> ValidationResult:
        return self._collect(validate_request(request))

    def validate_response(self, response: Any) -> ValidationResult:
        return self._collect(validate_response(response))

    def validate_initialize_request(self, request: Any) -> ValidationResult:
        return self._collect(validate_initialize_request(request))

    def validate_initialize_response(self, response: Any) -> ValidationResult:
        return self._collect(validate_initialize_response(response))

    def _collect(self, result: ValidationResult) -> ValidationResult:
        self._errors.extend(result.errors)
        if self.strict:
            self._errors.extend(result.warnings)
        else:
            self._warnings.extend(result.warnings)
        return result
