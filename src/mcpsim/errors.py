"""Shared error types for misuse of the simulator.

Protocol-level problems are reported as data (validation results, error
responses).  The exceptions below signal a broken contract on the caller's
side.
"""

from __future__ import annotations

from typing import Any


class SimulatorError(Exception):
    """Base error for all simulator failures."""


class MessageParseError(SimulatorError):
    """A raw mapping could not be classified as a JSON-RPC message."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__("Cannot parse JSON-RPC message" + (f": {detail}" if detail else ""))


class RecorderStateError(SimulatorError):
    """A recorder operation was called in the wrong recording state."""


class SessionFormatError(SimulatorError):
    """A session document is malformed."""


class ToolCallError(SimulatorError):
    """Every attempt of a ``tools/call`` failed."""

    def __init__(self, name: str, attempts: int, last_error: str, response: Any = None) -> None:
        self.name = name
        self.attempts = attempts
        self.last_error = last_error
        self.response = response
        super().__init__(f"Tool call failed after {attempts} attempts: {last_error}")
