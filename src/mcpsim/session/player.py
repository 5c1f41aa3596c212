"""Session replay, comparison and profile extraction.

Usage::

    session = load_session_from_file(Path("claude-basic-flow.json"))
    player = SessionPlayer(session)

    async with MockHost() as host:
        result = await player.replay(host, PlaybackOptions(speed=0))
    assert result.success, result.errors
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import TYPE_CHECKING, Any

from mcpsim.errors import MessageParseError
from mcpsim.host.profiles import HostProfile
from mcpsim.protocol.models import MessageKind, classify_message
from mcpsim.protocol.validator import (
    ProtocolValidator,
    ValidationResult,
    validate_initialize_response,
    validate_response,
)
from mcpsim.session.models import (
    ComparisonResult,
    Direction,
    PlaybackOptions,
    PlaybackResult,
    RecordedSession,
    SessionMessage,
    SessionMetadata,
)
from mcpsim.session.recorder import load_session
from mcpsim.utils.telemetry import (
    ATTR_REPLAY_ERRORS,
    ATTR_REPLAY_SPEED,
    ATTR_SESSION_HOST,
    ATTR_SESSION_MESSAGES,
    get_tracer,
)

if TYPE_CHECKING:
    from mcpsim.host.mock_host import MockHost

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

OnMessage = Callable[[SessionMessage], None | Awaitable[None]]


def _shape(message: Mapping[str, Any]) -> str:
    if "error" in message:
        return "error"
    if "result" in message:
        return "result"
    return "none"


def _describe(entry: SessionMessage) -> str:
    method = entry.method
    if method is not None:
        return method
    return f"<{_shape(entry.message)}>"


class SessionPlayer:
    """Replays a :class:`RecordedSession` against a :class:`MockHost`."""

    def __init__(self, session: RecordedSession | Mapping[str, Any]) -> None:
        if isinstance(session, RecordedSession):
            self.session = session
        else:
            self.session = load_session(session)

    @property
    def metadata(self) -> SessionMetadata:
        return self.session.metadata

    @property
    def messages(self) -> list[SessionMessage]:
        return list(self.session.messages)

    def get_messages_by_direction(self, direction: Direction | str) -> list[SessionMessage]:
        wanted = Direction(direction)
        return [m for m in self.session.messages if m.direction is wanted]

    def get_messages_by_method(self, method: str) -> list[SessionMessage]:
        return [m for m in self.session.messages if m.method == method]

    # ------------------------------------------------------------------
    # Replay
    # ------------------------------------------------------------------

    async def replay(
        self,
        host: MockHost,
        options: PlaybackOptions | None = None,
        *,
        on_message: OnMessage | None = None,
    ) -> PlaybackResult:
        """Drive every recorded message through *host*, strictly in stored order.

        Client-to-server requests are re-sent through ``host.send_request``
        (fresh ids are assigned by the host), client notifications through
        ``host.send_notification``.  Everything else is delivered as recorded.
        Validation problems are collected into the result and never abort the
        replay.
        """
        opts = options or PlaybackOptions()
        errors: list[str] = []
        expected = self._recorded_responses()
        seen_request_ids: set[Any] = set()
        played = 0
        previous: SessionMessage | None = None

        with _tracer.start_as_current_span("session.replay") as span:
            span.set_attribute(ATTR_SESSION_HOST, self.metadata.host_name)
            span.set_attribute(ATTR_SESSION_MESSAGES, len(self.session.messages))
            span.set_attribute(ATTR_REPLAY_SPEED, opts.speed)

            for index, entry in enumerate(self.session.messages):
                if opts.speed > 0 and previous is not None:
                    gap_ms = max(entry.timestamp - previous.timestamp, 0)
                    await asyncio.sleep(opts.speed * gap_ms / 1000)
                previous = entry

                if on_message is not None:
                    result = on_message(entry)
                    if inspect.isawaitable(result):
                        await result

                step_errors = await self._play_entry(
                    host, entry, expected, seen_request_ids, validate=opts.validate_messages
                )
                for error in step_errors:
                    message = f"Message {index} ({_describe(entry)}): {error}"
                    logger.warning("Replay error: %s", message)
                    span.add_event("replay.error", {"index": index, "error": error})
                    errors.append(message)
                played += 1

            span.set_attribute(ATTR_REPLAY_ERRORS, len(errors))

        return PlaybackResult(messages_played=played, errors=errors)

    async def _play_entry(
        self,
        host: MockHost,
        entry: SessionMessage,
        expected: dict[Any, Mapping[str, Any]],
        seen_request_ids: set[Any],
        *,
        validate: bool,
    ) -> list[str]:
        errors: list[str] = []
        raw = entry.message
        kind = classify_message(raw)

        if validate:
            errors.extend(ProtocolValidator().validate_message(raw).errors)
        reported = bool(errors)

        if kind is MessageKind.REQUEST:
            seen_request_ids.add(raw.get("id"))

        if entry.direction is Direction.CLIENT_TO_SERVER and kind is MessageKind.REQUEST:
            method = raw.get("method")
            params = raw.get("params")
            if not isinstance(method, str):
                if not reported:
                    errors.append("method must be a string; request not replayed")
                return errors
            if params is not None and not isinstance(params, dict | list):
                errors.append("params must be an object or array; request not replayed")
                return errors
            response = await host.send_request(method, params)
            if validate:
                produced = response.to_wire()
                check = (
                    validate_initialize_response(produced)
                    if method == "initialize"
                    else validate_response(produced)
                )
                errors.extend(f"produced response: {e}" for e in check.errors)
                recorded = expected.get(raw.get("id"))
                if recorded is not None and _shape(recorded) != _shape(produced):
                    errors.append(
                        f"expected {_shape(recorded)} response, host produced {_shape(produced)}"
                    )
            return errors

        if entry.direction is Direction.CLIENT_TO_SERVER and kind is MessageKind.NOTIFICATION:
            method = raw.get("method")
            params = raw.get("params")
            if not isinstance(method, str) or (
                params is not None and not isinstance(params, dict | list)
            ):
                if not reported:
                    errors.append("malformed notification; not replayed")
                return errors
            await host.send_notification(method, params)
            return errors

        if validate and kind is MessageKind.RESPONSE and raw.get("id") not in seen_request_ids:
            errors.append(f"response id {raw.get('id')!r} does not answer any earlier request")

        try:
            await host.deliver(raw)
        except MessageParseError as exc:
            # The validator accepts some shapes the parser rejects (e.g. a float error code).
            if not reported:
                errors.append(f"{exc}; message not delivered")
        return errors

    def _recorded_responses(self) -> dict[Any, Mapping[str, Any]]:
        """Map client request ids to the server's recorded responses."""
        responses: dict[Any, Mapping[str, Any]] = {}
        for entry in self.session.messages:
            if entry.direction is not Direction.SERVER_TO_CLIENT:
                continue
            if classify_message(entry.message) is MessageKind.RESPONSE:
                responses.setdefault(entry.message.get("id"), entry.message)
        return responses

    # ------------------------------------------------------------------
    # Integrity
    # ------------------------------------------------------------------

    def validate_session(self) -> ValidationResult:
        """Check metadata, timestamp order and every recorded message."""
        errors: list[str] = []
        warnings: list[str] = []

        if not self.metadata.host_name:
            errors.append("metadata.hostName is required")
        if not self.metadata.protocol_version:
            errors.append("metadata.protocolVersion is required")
        if not self.session.messages:
            warnings.append("Session contains no messages")

        validator = ProtocolValidator()
        previous_ts: int | float | None = None
        for index, entry in enumerate(self.session.messages):
            if entry.timestamp < 0:
                errors.append(f"Message {index}: timestamp must not be negative")
            if previous_ts is not None and entry.timestamp < previous_ts:
                errors.append(f"Message {index}: timestamp {entry.timestamp} is earlier than {previous_ts}")
            previous_ts = entry.timestamp

            result = validator.validate_message(entry.message)
            errors.extend(f"Message {index}: {e}" for e in result.errors)
            warnings.extend(f"Message {index}: {w}" for w in result.warnings)

        return ValidationResult(errors=errors, warnings=warnings)

    # ------------------------------------------------------------------
    # Comparison & extraction
    # ------------------------------------------------------------------

    @staticmethod
    def compare_sessions(first: RecordedSession, second: RecordedSession) -> ComparisonResult:
        """Compare two sessions position by position.

        Checks message count, then for each index the direction and the
        method (or, for responses, whether they carry a result or an error).
        """
        differences: list[str] = []
        a, b = first.messages, second.messages

        if len(a) != len(b):
            differences.append(f"Message count differs: {len(a)} vs {len(b)}")

        for index in range(max(len(a), len(b))):
            if index >= len(a):
                differences.append(f"Message {index}: missing in first session")
                continue
            if index >= len(b):
                differences.append(f"Message {index}: missing in second session")
                continue

            left, right = a[index], b[index]
            if left.direction is not right.direction:
                differences.append(
                    f"Message {index}: direction differs: {left.direction.value} vs {right.direction.value}"
                )
            if left.method != right.method:
                differences.append(
                    f"Message {index}: method differs: {left.method} vs {right.method}"
                )
            elif left.method is None and _shape(left.message) != _shape(right.message):
                differences.append(
                    f"Message {index}: response shape differs: "
                    f"{_shape(left.message)} vs {_shape(right.message)}"
                )

        return ComparisonResult(differences=differences)

    @staticmethod
    def extract_host_profile(session: RecordedSession) -> HostProfile:
        """Summarise the host seen in *session* from its ``initialize`` response.

        Falls back to the session-level capabilities and metadata when the
        session holds no successful ``initialize`` exchange.
        """
        init_ids = {
            m.message.get("id")
            for m in session.messages
            if m.method == "initialize" and "id" in m.message
        }
        result: Mapping[str, Any] = {}
        for entry in session.messages:
            msg = entry.message
            if (
                classify_message(msg) is MessageKind.RESPONSE
                and msg.get("id") in init_ids
                and isinstance(msg.get("result"), Mapping)
            ):
                result = msg["result"]
                break

        capabilities = result.get("capabilities")
        if not isinstance(capabilities, Mapping):
            capabilities = session.capabilities or {}
        server_info = result.get("serverInfo")

        return HostProfile(
            name=session.metadata.host_name,
            protocol_version=result.get("protocolVersion") or session.metadata.protocol_version,
            capabilities=dict(capabilities),
            constraints=session.constraints,
            server_info=dict(server_info) if isinstance(server_info, Mapping) else None,
        )
