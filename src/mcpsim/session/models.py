"""Session data models: the portable record of a captured exchange.

Python attributes are snake_case; the JSON document uses camelCase keys
(``hostName``, ``protocolVersion``...).  Both spellings are accepted on
input.  Sessions are frozen once built.
"""

from __future__ import annotations

import copy
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, computed_field


class Direction(str, Enum):
    """Which side of the exchange sent a message."""

    CLIENT_TO_SERVER = "client-to-server"
    SERVER_TO_CLIENT = "server-to-client"


class SessionMetadata(BaseModel):
    """Descriptive header of a recorded session."""

    model_config = {"populate_by_name": True, "frozen": True}

    host_name: str = Field(default="", alias="hostName")
    protocol_version: str = Field(default="", alias="protocolVersion")
    recorded_date: str | None = Field(default=None, alias="recordedDate")
    host_version: str | None = Field(default=None, alias="hostVersion")
    description: str | None = None
    source: str | None = None


class SessionConstraints(BaseModel):
    """Host-imposed limits captured alongside a session."""

    model_config = {"populate_by_name": True, "frozen": True}

    max_viewport_width: int | None = Field(default=None, alias="maxViewportWidth")
    max_viewport_height: int | None = Field(default=None, alias="maxViewportHeight")
    allowed_protocols: list[str] | None = Field(default=None, alias="allowedProtocols")


class SessionMessage(BaseModel):
    """One captured message.

    ``message`` holds the raw JSON object exactly as it was observed, valid
    or not.  ``timestamp`` is in milliseconds relative to the recording start.
    """

    model_config = {"frozen": True}

    timestamp: int | float
    direction: Direction
    message: dict[str, Any]

    @property
    def method(self) -> str | None:
        method = self.message.get("method")
        return method if isinstance(method, str) else None

    def to_wire(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "direction": self.direction.value,
            "message": copy.deepcopy(self.message),
        }


class RecordedSession(BaseModel):
    """A complete captured session."""

    model_config = {"frozen": True}

    metadata: SessionMetadata
    messages: list[SessionMessage]
    constraints: SessionConstraints | None = None
    capabilities: dict[str, Any] | None = None

    def to_wire(self) -> dict[str, Any]:
        """Return the JSON document for this session."""
        doc: dict[str, Any] = {
            "metadata": self.metadata.model_dump(by_alias=True, exclude_none=True),
            "messages": [m.to_wire() for m in self.messages],
        }
        if self.constraints is not None:
            doc["constraints"] = self.constraints.model_dump(by_alias=True, exclude_none=True)
        if self.capabilities is not None:
            doc["capabilities"] = copy.deepcopy(self.capabilities)
        return doc


class PlaybackOptions(BaseModel):
    """Replay settings.

    ``speed`` scales the recorded gaps between messages: ``1.0`` replays in
    real time, ``0`` disables delays entirely.
    """

    speed: float = Field(default=1.0, ge=0)
    validate_messages: bool = Field(default=True, alias="validate")

    model_config = {"populate_by_name": True}


class PlaybackResult(BaseModel):
    """Outcome of :meth:`SessionPlayer.replay`."""

    messages_played: int = 0
    errors: list[str] = []

    @computed_field  # type: ignore[prop-decorator]
    @property
    def success(self) -> bool:
        return not self.errors


class ComparisonResult(BaseModel):
    """Outcome of a session or profile comparison."""

    differences: list[str] = []

    @computed_field  # type: ignore[prop-decorator]
    @property
    def identical(self) -> bool:
        return not self.differences
