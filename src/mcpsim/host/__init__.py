"""Mock MCP host and simulated host profiles."""

from mcpsim.host.mock_host import MockHost, MockHostConfig
from mcpsim.host.profiles import (
    CLAUDE_PROFILE,
    GENERIC_PROFILE,
    HOST_PROFILES,
    VSCODE_PROFILE,
    HostProfile,
    compare_host_profiles,
    get_host_profile,
)

__all__ = [
    "CLAUDE_PROFILE",
    "GENERIC_PROFILE",
    "HOST_PROFILES",
    "VSCODE_PROFILE",
    "HostProfile",
    "MockHost",
    "MockHostConfig",
    "compare_host_profiles",
    "get_host_profile",
]
