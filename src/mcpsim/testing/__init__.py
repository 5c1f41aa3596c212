"""Assertion helpers for tests written against a MockHost."""

from mcpsim.testing.assertions import (
    expect_capability,
    expect_message_sequence,
    expect_no_capability,
    expect_no_errors,
    expect_no_request,
    expect_request,
    expect_tool_call,
)

__all__ = [
    "expect_capability",
    "expect_message_sequence",
    "expect_no_capability",
    "expect_no_errors",
    "expect_no_request",
    "expect_request",
    "expect_tool_call",
]
