"""Session recording and loading.

:class:`SessionRecorder` captures an exchange as a chronologically ordered,
direction-tagged log that can be exported to JSON and replayed later by
:class:`~mcpsim.session.player.SessionPlayer`.

Typical usage::

    recorder = SessionRecorder(SessionMetadata(host_name="VS Code", protocol_version="2024-11-05"))
    recorder.start_recording()
    recorder.record_message(Direction.CLIENT_TO_SERVER, request)
    recorder.record_message(Direction.SERVER_TO_CLIENT, response)
    recorder.stop_recording()
    recorder.save_session(Path("vscode-basic-flow.json"))
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from mcpsim.errors import RecorderStateError, SessionFormatError
from mcpsim.protocol.models import Message, to_wire
from mcpsim.protocol.validator import ProtocolValidator
from mcpsim.session.models import (
    Direction,
    RecordedSession,
    SessionConstraints,
    SessionMessage,
    SessionMetadata,
)

logger = logging.getLogger(__name__)


def _iso_now() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class SessionRecorder:
    """Captures messages while recording.

    ``clock`` returns seconds; only differences between readings are used,
    so any monotonic source works.
    """

    def __init__(
        self,
        metadata: SessionMetadata | Mapping[str, Any],
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if isinstance(metadata, SessionMetadata):
            self._metadata = metadata
        else:
            self._metadata = SessionMetadata.model_validate(dict(metadata))
        self._clock = clock
        self._recording = False
        self._start_time = 0.0
        self._messages: list[SessionMessage] = []
        self._validator = ProtocolValidator()

    @property
    def is_recording(self) -> bool:
        return self._recording

    @property
    def message_count(self) -> int:
        return len(self._messages)

    @property
    def validation_errors(self) -> list[str]:
        return self._validator.errors

    @property
    def validation_warnings(self) -> list[str]:
        return self._validator.warnings

    def start_recording(self) -> None:
        """Begin a new recording, discarding anything captured before.

        Raises:
            RecorderStateError: If already recording.
        """
        if self._recording:
            raise RecorderStateError("Already recording")
        self._recording = True
        self._start_time = self._clock()
        self._messages = []
        self._validator.reset()

    def stop_recording(self) -> None:
        """Stop recording; captured messages are kept.

        Raises:
            RecorderStateError: If not recording.
        """
        if not self._recording:
            raise RecorderStateError("Not currently recording")
        self._recording = False

    def record_message(
        self,
        direction: Direction | str,
        message: Message | Mapping[str, Any],
    ) -> None:
        """Append *message* with its offset from the recording start.

        Invalid messages are stored as-is and reported through a logged
        warning and :attr:`validation_errors`.

        Raises:
            RecorderStateError: If not recording.
        """
        if not self._recording:
            raise RecorderStateError("Not currently recording. Call start_recording() first.")

        raw = to_wire(message)
        validation = self._validator.validate_message(raw)
        if not validation.valid:
            logger.warning("Recorded invalid message: %s", "; ".join(validation.errors))

        elapsed_ms = round((self._clock() - self._start_time) * 1000)
        self._messages.append(
            SessionMessage(timestamp=elapsed_ms, direction=Direction(direction), message=raw)
        )

    def get_session(
        self,
        constraints: SessionConstraints | Mapping[str, Any] | None = None,
        capabilities: Mapping[str, Any] | None = None,
    ) -> RecordedSession:
        """Return an independent, immutable snapshot of the recording."""
        return RecordedSession(
            metadata=self._metadata.model_copy(update={"recorded_date": _iso_now()}),
            messages=[m.model_copy(deep=True) for m in self._messages],
            constraints=(
                SessionConstraints.model_validate(dict(constraints))
                if isinstance(constraints, Mapping)
                else constraints
            ),
            capabilities=dict(capabilities) if capabilities is not None else None,
        )

    def export_session(
        self,
        constraints: SessionConstraints | Mapping[str, Any] | None = None,
        capabilities: Mapping[str, Any] | None = None,
    ) -> str:
        """Render the session as indented JSON."""
        return json.dumps(self.get_session(constraints, capabilities).to_wire(), indent=2)

    def save_session(
        self,
        path: Path,
        constraints: SessionConstraints | Mapping[str, Any] | None = None,
        capabilities: Mapping[str, Any] | None = None,
    ) -> None:
        """Write the exported JSON to *path*."""
        path.write_text(self.export_session(constraints, capabilities), encoding="utf-8")

    def reset(self) -> None:
        """Return to idle and drop the working log.  Exported sessions are unaffected."""
        self._recording = False
        self._start_time = 0.0
        self._messages = []
        self._validator.reset()


def load_session(raw: str | bytes | Mapping[str, Any], *, format: str = "json") -> RecordedSession:
    """Parse a session document.

    Args:
        raw: JSON or YAML text, or an already-decoded mapping.
        format: ``"json"`` (default) or ``"yaml"``.

    Raises:
        SessionFormatError: If the document cannot be parsed, lacks
            ``metadata``/``messages``, or does not fit the session schema.
    """
    data: Any
    if isinstance(raw, Mapping):
        data = raw
    elif format == "json":
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise SessionFormatError(f"Invalid session JSON: {exc}") from exc
    elif format == "yaml":
        try:
            data = yaml.safe_load(raw)
        except yaml.YAMLError as exc:
            raise SessionFormatError(f"Invalid session YAML: {exc}") from exc
    else:
        raise ValueError(f"Unsupported session format: {format!r}")

    if not isinstance(data, Mapping):
        raise SessionFormatError("Invalid session format: document must be an object")
    if "metadata" not in data or "messages" not in data:
        raise SessionFormatError("Invalid session format: missing metadata or messages")
    if not isinstance(data["messages"], list):
        raise SessionFormatError("Invalid session format: messages must be an array")

    try:
        return RecordedSession.model_validate(dict(data))
    except ValidationError as exc:
        raise SessionFormatError(f"Invalid session format: {exc}") from exc


def load_session_from_file(path: Path) -> RecordedSession:
    """Load a session from a ``.json``, ``.yaml`` or ``.yml`` file."""
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise SessionFormatError(f"Cannot read {path}: {exc}") from exc
    fmt = "yaml" if path.suffix in (".yaml", ".yml") else "json"
    return load_session(raw, format=fmt)
