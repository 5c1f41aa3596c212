"""In-process simulation, validation and replay of MCP traffic."""

from __future__ import annotations

from typing import TYPE_CHECKING

__version__ = "0.1.0"

if TYPE_CHECKING:
    from mcpsim.bus.interceptor import MessageBus as MessageBus
    from mcpsim.host.mock_host import MockHost as MockHost
    from mcpsim.host.mock_host import MockHostConfig as MockHostConfig
    from mcpsim.protocol.validator import ProtocolValidator as ProtocolValidator
    from mcpsim.session.player import SessionPlayer as SessionPlayer
    from mcpsim.session.recorder import SessionRecorder as SessionRecorder

_EXPORTS = {
    "MessageBus": "mcpsim.bus.interceptor",
    "MockHost": "mcpsim.host.mock_host",
    "MockHostConfig": "mcpsim.host.mock_host",
    "ProtocolValidator": "mcpsim.protocol.validator",
    "SessionPlayer": "mcpsim.session.player",
    "SessionRecorder": "mcpsim.session.recorder",
}


def __getattr__(name: str) -> object:
    module_path = _EXPORTS.get(name)
    if module_path is not None:
        import importlib

        mod = importlib.import_module(module_path)
        return getattr(mod, name)
    raise AttributeError(f"module 'mcpsim' has no attribute {name!r}")
