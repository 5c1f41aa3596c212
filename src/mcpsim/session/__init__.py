"""Session recording and replay."""

from __future__ import annotations

from typing import TYPE_CHECKING

from mcpsim.session.models import (
    ComparisonResult,
    Direction,
    PlaybackOptions,
    PlaybackResult,
    RecordedSession,
    SessionConstraints,
    SessionMessage,
    SessionMetadata,
)
from mcpsim.session.recorder import SessionRecorder, load_session, load_session_from_file

if TYPE_CHECKING:
    from mcpsim.session.player import SessionPlayer as SessionPlayer

__all__ = [
    "ComparisonResult",
    "Direction",
    "PlaybackOptions",
    "PlaybackResult",
    "RecordedSession",
    "SessionConstraints",
    "SessionMessage",
    "SessionMetadata",
    "SessionPlayer",
    "SessionRecorder",
    "load_session",
    "load_session_from_file",
]


# The player depends on mcpsim.host, which itself imports the session models.
def __getattr__(name: str) -> object:
    if name == "SessionPlayer":
        from mcpsim.session.player import SessionPlayer

        return SessionPlayer
    raise AttributeError(f"module 'mcpsim.session' has no attribute {name!r}")
