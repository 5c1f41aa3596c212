"""Capability presets for simulated MCP hosts.

These are simulated profiles for unit tests.  They describe what a typical
host advertises during the handshake; they do not talk to a real host.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, Field

from mcpsim.protocol.validator import LATEST_PROTOCOL_VERSION
from mcpsim.session.models import ComparisonResult, SessionConstraints


class HostProfile(BaseModel):
    """Capability summary of a host, built-in or extracted from a session."""

    model_config = {"populate_by_name": True}

    name: str
    protocol_version: str = Field(default=LATEST_PROTOCOL_VERSION, alias="protocolVersion")
    capabilities: dict[str, Any] = {}
    constraints: SessionConstraints | None = None
    server_info: dict[str, Any] | None = Field(default=None, alias="serverInfo")


CLAUDE_PROFILE = HostProfile(
    name="Claude",
    capabilities={
        "tools": {"listChanged": True},
        "resources": {"subscribe": True, "listChanged": True},
        "prompts": {"listChanged": True},
    },
    constraints=SessionConstraints(
        max_viewport_width=1920,
        max_viewport_height=1080,
        allowed_protocols=["http", "https", "data"],
    ),
)

VSCODE_PROFILE = HostProfile(
    name="VS Code",
    capabilities={
        "tools": {"listChanged": True},
        "resources": {"subscribe": False, "listChanged": True},
        "prompts": {"listChanged": False},
    },
    constraints=SessionConstraints(
        max_viewport_width=1600,
        max_viewport_height=900,
        allowed_protocols=["http", "https", "vscode", "data"],
    ),
)

GENERIC_PROFILE = HostProfile(
    name="Generic",
    capabilities={
        "tools": {"listChanged": True},
        "resources": {"subscribe": True, "listChanged": True},
        "prompts": {"listChanged": True},
    },
)

HOST_PROFILES: dict[str, HostProfile] = {
    "Claude": CLAUDE_PROFILE,
    "VSCode": VSCODE_PROFILE,
    "Generic": GENERIC_PROFILE,
}


def get_host_profile(name: str) -> HostProfile:
    """Return a copy of the built-in profile registered as *name*.

    Raises:
        KeyError: If no profile is registered under *name*.
    """
    try:
        return HOST_PROFILES[name].model_copy(deep=True)
    except KeyError:
        known = ", ".join(sorted(HOST_PROFILES))
        raise KeyError(f"Unknown host profile {name!r} (known: {known})") from None


def _canonical(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=str)


def compare_host_profiles(first: HostProfile, second: HostProfile) -> ComparisonResult:
    """List the fields on which two profiles differ."""
    differences: list[str] = []

    if first.name != second.name:
        differences.append(f"Name differs: {first.name} vs {second.name}")

    if first.protocol_version != second.protocol_version:
        differences.append(
            f"Protocol version differs: {first.protocol_version} vs {second.protocol_version}"
        )

    if _canonical(first.capabilities) != _canonical(second.capabilities):
        differences.append("Capabilities differ")

    constraints_a = first.constraints.model_dump(exclude_none=True) if first.constraints else {}
    constraints_b = second.constraints.model_dump(exclude_none=True) if second.constraints else {}
    if _canonical(constraints_a) != _canonical(constraints_b):
        differences.append("Constraints differ")

    return ComparisonResult(differences=differences)
