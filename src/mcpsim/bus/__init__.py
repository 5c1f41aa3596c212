"""Message bus: interception hooks, mock registry and the recording log."""

from mcpsim.bus.interceptor import (
    MessageBus,
    MessageHandler,
    MockHandler,
    RequestHook,
    ResponseHook,
)

__all__ = [
    "MessageBus",
    "MessageHandler",
    "MockHandler",
    "RequestHook",
    "ResponseHook",
]
