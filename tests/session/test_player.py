"""Tests for SessionPlayer replay, integrity checks and comparison."""

import logging
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest

from mcpsim.errors import SessionFormatError
from mcpsim.host.mock_host import MockHost
from mcpsim.protocol.models import JsonRpcResponse
from mcpsim.session.models import Direction, PlaybackOptions, RecordedSession, SessionMessage
from mcpsim.session.player import SessionPlayer
from mcpsim.session.recorder import SessionRecorder

_META = {"recordedDate": "2024-01-01T00:00:00.000Z", "hostName": "Test", "protocolVersion": "2024-11-05"}

_INIT_REQUEST = {
    "jsonrpc": "2.0",
    "id": 1,
    "method": "initialize",
    "params": {
        "protocolVersion": "2024-11-05",
        "capabilities": {},
        "clientInfo": {"name": "test", "version": "1.0.0"},
    },
}

_INIT_RESPONSE = {
    "jsonrpc": "2.0",
    "id": 1,
    "result": {
        "protocolVersion": "2024-11-05",
        "capabilities": {"tools": {"listChanged": True}},
        "serverInfo": {"name": "recorded-server", "version": "2.0.0"},
    },
}


def _entry(timestamp: int, direction: str, message: dict[str, Any]) -> dict[str, Any]:
    return {"timestamp": timestamp, "direction": direction, "message": message}


def _session(*entries: dict[str, Any], **extra: Any) -> dict[str, Any]:
    return {"metadata": dict(_META), "messages": list(entries), **extra}


def _basic_flow() -> dict[str, Any]:
    return _session(
        _entry(0, "client-to-server", _INIT_REQUEST),
        _entry(12, "server-to-client", _INIT_RESPONSE),
        _entry(15, "client-to-server", {"jsonrpc": "2.0", "method": "notifications/initialized"}),
        _entry(20, "client-to-server", {"jsonrpc": "2.0", "id": 2, "method": "tools/list"}),
        _entry(31, "server-to-client", {"jsonrpc": "2.0", "id": 2, "result": {"tools": []}}),
    )


_FAST = PlaybackOptions(speed=0)


class TestConstruction:
    def test_from_mapping(self) -> None:
        player = SessionPlayer(_session())
        assert player.metadata.host_name == "Test"
        assert player.messages == []

    def test_from_model(self) -> None:
        session = RecordedSession.model_validate(_basic_flow())
        assert SessionPlayer(session).session is session

    def test_invalid_mapping(self) -> None:
        with pytest.raises(SessionFormatError):
            SessionPlayer({"metadata": {}})

    def test_messages_returns_copy(self) -> None:
        player = SessionPlayer(_basic_flow())
        player.messages.clear()
        assert len(player.messages) == 5


class TestFilters:
    def test_by_direction(self) -> None:
        player = SessionPlayer(_basic_flow())
        assert len(player.get_messages_by_direction("client-to-server")) == 3
        assert len(player.get_messages_by_direction(Direction.SERVER_TO_CLIENT)) == 2

    def test_by_method(self) -> None:
        player = SessionPlayer(_basic_flow())
        found = player.get_messages_by_method("initialize")
        assert len(found) == 1
        assert found[0].message["method"] == "initialize"


class TestReplay:
    async def test_single_initialize(self) -> None:
        player = SessionPlayer(_session(_entry(0, "client-to-server", _INIT_REQUEST)))

        async with MockHost() as host:
            result = await player.replay(host, PlaybackOptions(speed=0, validate=True))
            assert host.is_initialized

        assert result.messages_played == 1
        assert result.success

    async def test_basic_flow(self) -> None:
        player = SessionPlayer(_basic_flow())
        host = MockHost()

        result = await player.replay(host, _FAST)

        assert result.success, result.errors
        assert result.messages_played == 5
        assert [r.method for r in host.bus.get_recorded_requests()] == ["initialize", "tools/list"]
        assert len(host.bus.get_recorded_responses()) == 4
        assert [n.method for n in host.bus.get_recorded_notifications()] == ["notifications/initialized"]

    async def test_shape_mismatch_is_reported(self) -> None:
        player = SessionPlayer(
            _session(
                _entry(0, "client-to-server", {"jsonrpc": "2.0", "id": 1, "method": "tools/call"}),
                _entry(5, "server-to-client", {"jsonrpc": "2.0", "id": 1, "result": {"content": []}}),
            )
        )

        result = await player.replay(MockHost(), _FAST)

        assert not result.success
        assert result.messages_played == 2
        assert result.errors == ["Message 0 (tools/call): expected result response, host produced error"]

    async def test_mocked_host_matches_recording(self) -> None:
        player = SessionPlayer(
            _session(
                _entry(0, "client-to-server", {"jsonrpc": "2.0", "id": 1, "method": "tools/call"}),
                _entry(5, "server-to-client", {"jsonrpc": "2.0", "id": 1, "result": {"content": []}}),
            )
        )
        host = MockHost()
        host.mock_response("tools/call", lambda r: JsonRpcResponse.success(r.id, {"content": []}))

        assert (await player.replay(host, _FAST)).success

    async def test_invalid_recorded_message(self, caplog: pytest.LogCaptureFixture) -> None:
        player = SessionPlayer(_session(_entry(0, "server-to-client", {"jsonrpc": "2.0", "id": 1})))

        with caplog.at_level(logging.WARNING, logger="mcpsim.session.player"):
            result = await player.replay(MockHost(), _FAST)

        assert result.messages_played == 1
        assert result.errors == ["Message 0 (<none>): Unable to determine message type"]
        assert "Replay error" in caplog.text

    async def test_undeliverable_message_without_validation(self) -> None:
        player = SessionPlayer(_session(_entry(0, "server-to-client", {"jsonrpc": "2.0", "id": 1})))

        result = await player.replay(MockHost(), PlaybackOptions(speed=0, validate=False))

        assert len(result.errors) == 1
        assert "Cannot parse JSON-RPC message" in result.errors[0]

    async def test_skips_validation_when_disabled(self) -> None:
        player = SessionPlayer(
            _session(_entry(0, "client-to-server", {"jsonrpc": "2.0", "id": 1, "method": "tools/call"}))
        )
        result = await player.replay(MockHost(), PlaybackOptions(speed=0, validate=False))
        assert result.success

    async def test_request_with_scalar_params_is_reported_not_raised(self) -> None:
        recorder = SessionRecorder({"hostName": "Test", "protocolVersion": "2024-11-05"})
        recorder.start_recording()
        recorder.record_message(
            "client-to-server", {"jsonrpc": "2.0", "id": 1, "method": "ping", "params": "oops"}
        )
        recorder.record_message("client-to-server", {"jsonrpc": "2.0", "id": 2, "method": "ping"})
        recorder.stop_recording()

        host = MockHost()
        result = await SessionPlayer(recorder.get_session()).replay(host, _FAST)

        assert result.messages_played == 2
        assert not result.success
        assert any("request not replayed" in e for e in result.errors)
        assert all(e.startswith("Message 0") for e in result.errors)
        assert len(host.bus.find_requests_by_method("ping")) == 1

    async def test_scalar_params_without_validation(self) -> None:
        player = SessionPlayer(
            _session(_entry(0, "client-to-server", {"jsonrpc": "2.0", "id": 1, "method": "ping", "params": 3}))
        )
        result = await player.replay(MockHost(), PlaybackOptions(speed=0, validate=False))
        assert result.errors == ["Message 0 (ping): params must be an object or array; request not replayed"]

    async def test_undeliverable_message_is_reported_when_validating(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        player = SessionPlayer(
            _session(
                _entry(0, "client-to-server", {"jsonrpc": "2.0", "id": 1, "method": "ping"}),
                _entry(
                    5,
                    "server-to-client",
                    {"jsonrpc": "2.0", "id": 1, "error": {"code": 1.5, "message": "x"}},
                ),
            )
        )
        host = MockHost()
        host.mock_response("ping", lambda r: JsonRpcResponse.failure(r.id, -32000, "down"))

        with caplog.at_level(logging.WARNING, logger="mcpsim.session.player"):
            result = await player.replay(host, _FAST)

        assert result.messages_played == 2
        assert len(result.errors) == 1
        assert result.errors[0].startswith("Message 1 (<error>): Cannot parse JSON-RPC message")
        assert "message not delivered" in result.errors[0]
        assert "message not delivered" in caplog.text

    async def test_orphan_response(self) -> None:
        player = SessionPlayer(
            _session(_entry(0, "server-to-client", {"jsonrpc": "2.0", "id": 99, "result": {}}))
        )
        result = await player.replay(MockHost(), _FAST)
        assert result.errors == ["Message 0 (<result>): response id 99 does not answer any earlier request"]

    async def test_errors_do_not_stop_replay(self) -> None:
        player = SessionPlayer(
            _session(
                _entry(0, "server-to-client", {"jsonrpc": "2.0"}),
                _entry(1, "client-to-server", {"jsonrpc": "2.0", "id": 2, "method": "ping"}),
            )
        )
        host = MockHost()
        result = await player.replay(host, _FAST)

        assert result.messages_played == 2
        assert len(result.errors) == 1
        assert host.bus.find_requests_by_method("ping")

    async def test_on_message_sees_entries_in_order(self) -> None:
        player = SessionPlayer(_basic_flow())
        seen: list[int | float] = []

        await player.replay(MockHost(), _FAST, on_message=lambda m: seen.append(m.timestamp))
        assert seen == [0, 12, 15, 20, 31]

    async def test_async_on_message(self) -> None:
        player = SessionPlayer(_basic_flow())
        seen: list[SessionMessage] = []

        async def collect(message: SessionMessage) -> None:
            seen.append(message)

        await player.replay(MockHost(), _FAST, on_message=collect)
        assert len(seen) == 5

    async def test_speed_scales_recorded_gaps(self) -> None:
        player = SessionPlayer(
            _session(
                _entry(0, "client-to-server", {"jsonrpc": "2.0", "id": 1, "method": "ping"}),
                _entry(20, "client-to-server", {"jsonrpc": "2.0", "id": 2, "method": "ping"}),
            )
        )
        with patch("mcpsim.session.player.asyncio.sleep", new_callable=AsyncMock) as sleep:
            await player.replay(MockHost(), PlaybackOptions(speed=0.5))

        assert [c.args[0] for c in sleep.await_args_list] == [pytest.approx(0.01)]

    async def test_speed_zero_never_sleeps(self) -> None:
        with patch("mcpsim.session.player.asyncio.sleep", new_callable=AsyncMock) as sleep:
            await SessionPlayer(_basic_flow()).replay(MockHost(), _FAST)
        sleep.assert_not_awaited()


class TestValidateSession:
    def test_valid(self) -> None:
        result = SessionPlayer(_basic_flow()).validate_session()
        assert result.valid, result.errors

    def test_missing_metadata_fields(self) -> None:
        session = _basic_flow()
        session["metadata"] = {"recordedDate": "2024-01-01T00:00:00.000Z"}
        result = SessionPlayer(session).validate_session()
        assert "metadata.hostName is required" in result.errors
        assert "metadata.protocolVersion is required" in result.errors

    def test_empty_session_warns(self) -> None:
        result = SessionPlayer(_session()).validate_session()
        assert result.valid
        assert result.warnings == ["Session contains no messages"]

    def test_out_of_order_timestamps(self) -> None:
        session = _session(
            _entry(10, "client-to-server", {"jsonrpc": "2.0", "id": 1, "method": "ping"}),
            _entry(5, "server-to-client", {"jsonrpc": "2.0", "id": 1, "result": {}}),
        )
        result = SessionPlayer(session).validate_session()
        assert result.errors == ["Message 1: timestamp 5 is earlier than 10"]

    def test_negative_timestamp(self) -> None:
        session = _session(_entry(-1, "client-to-server", {"jsonrpc": "2.0", "id": 1, "method": "ping"}))
        assert "Message 0: timestamp must not be negative" in SessionPlayer(session).validate_session().errors

    def test_invalid_message_is_prefixed(self) -> None:
        session = _session(_entry(0, "client-to-server", {"jsonrpc": "1.0", "id": 1, "method": "ping"}))
        result = SessionPlayer(session).validate_session()
        assert result.errors == ['Message 0: jsonrpc field must be "2.0"']


class TestCompareSessions:
    def test_identical(self) -> None:
        a = RecordedSession.model_validate(_basic_flow())
        b = RecordedSession.model_validate(_basic_flow())
        assert SessionPlayer.compare_sessions(a, b).identical

    def test_timestamps_are_ignored(self) -> None:
        first = _session(_entry(0, "client-to-server", {"jsonrpc": "2.0", "id": 1, "method": "ping"}))
        second = _session(_entry(900, "client-to-server", {"jsonrpc": "2.0", "id": 7, "method": "ping"}))
        result = SessionPlayer.compare_sessions(
            RecordedSession.model_validate(first), RecordedSession.model_validate(second)
        )
        assert result.identical

    def test_count_difference(self) -> None:
        full = RecordedSession.model_validate(_basic_flow())
        short = RecordedSession.model_validate(_session(*_basic_flow()["messages"][:3]))

        result = SessionPlayer.compare_sessions(full, short)
        assert result.differences[0] == "Message count differs: 5 vs 3"
        assert "Message 3: missing in second session" in result.differences
        assert "Message 4: missing in second session" in result.differences

    def test_method_and_direction(self) -> None:
        first = _session(_entry(0, "client-to-server", {"jsonrpc": "2.0", "id": 1, "method": "ping"}))
        second = _session(_entry(0, "server-to-client", {"jsonrpc": "2.0", "id": 1, "method": "tools/list"}))
        result = SessionPlayer.compare_sessions(
            RecordedSession.model_validate(first), RecordedSession.model_validate(second)
        )
        assert result.differences == [
            "Message 0: direction differs: client-to-server vs server-to-client",
            "Message 0: method differs: ping vs tools/list",
        ]

    def test_response_shape(self) -> None:
        first = _session(_entry(0, "server-to-client", {"jsonrpc": "2.0", "id": 1, "result": {}}))
        second = _session(
            _entry(0, "server-to-client", {"jsonrpc": "2.0", "id": 1, "error": {"code": -1, "message": "x"}})
        )
        result = SessionPlayer.compare_sessions(
            RecordedSession.model_validate(first), RecordedSession.model_validate(second)
        )
        assert result.differences == ["Message 0: response shape differs: result vs error"]

    def test_single_method_difference(self) -> None:
        first = RecordedSession.model_validate(_basic_flow())
        changed = _basic_flow()
        changed["messages"][3]["message"] = {"jsonrpc": "2.0", "id": 2, "method": "prompts/list"}
        second = RecordedSession.model_validate(changed)

        result = SessionPlayer.compare_sessions(first, second)
        assert not result.identical
        assert result.differences == ["Message 3: method differs: tools/list vs prompts/list"]
        assert SessionPlayer.compare_sessions(first, first).differences == []


class TestExtractHostProfile:
    def test_from_initialize_response(self) -> None:
        session = RecordedSession.model_validate(
            _basic_flow() | {"constraints": {"maxViewportWidth": 1024}}
        )
        profile = SessionPlayer.extract_host_profile(session)

        assert profile.name == "Test"
        assert profile.protocol_version == "2024-11-05"
        assert profile.capabilities == {"tools": {"listChanged": True}}
        assert profile.server_info == {"name": "recorded-server", "version": "2.0.0"}
        assert profile.constraints is not None
        assert profile.constraints.max_viewport_width == 1024

    def test_falls_back_to_session_capabilities(self) -> None:
        session = RecordedSession.model_validate(
            _session(capabilities={"resources": {"subscribe": True}})
        )
        profile = SessionPlayer.extract_host_profile(session)

        assert profile.capabilities == {"resources": {"subscribe": True}}
        assert profile.server_info is None
        assert profile.protocol_version == "2024-11-05"
