"""Tests for the relay session controller."""

import pytest

from conftest import FakeStreamClient, FakeWebSocket
from relay_module.config import RelayConfig
from relay_module.errors import TransportError
from relay_module.frames import WebSocketChannel
from relay_module.memory import Role
from relay_module.service import (
    CLOSE_INVALID_PAYLOAD,
    CLOSE_NORMAL,
    RelayService,
    RelaySession,
    SessionState,
)


def _session(inbound, replies, config: RelayConfig, **ws_kwargs):
    websocket = FakeWebSocket(inbound, **ws_kwargs)
    client = FakeStreamClient(replies)
    session = RelaySession(WebSocketChannel(websocket), client, config)
    return session, websocket, client


@pytest.mark.asyncio
async def test_fragments_forwarded_then_terminal(relay_config: RelayConfig) -> None:
    session, websocket, _ = _session(['{"message": "Test Message"}'], [["Hello ", "World"]], relay_config)

    await session.run()

    assert websocket.sent == [
        {"chunk": "Hello ", "done": False},
        {"chunk": "World", "done": False},
        {"chunk": "", "done": True},
    ]
    assert [(t.role, t.content) for t in session.memory.turns] == [
        (Role.USER, "Test Message"),
        (Role.ASSISTANT, "Hello World"),
    ]
    assert session.state == SessionState.CLOSED
    assert session.close_code == CLOSE_NORMAL


@pytest.mark.asyncio
async def test_one_terminal_frame_per_message(relay_config: RelayConfig) -> None:
    inbound = [f'{{"message": "m{i}"}}' for i in range(4)]
    replies = [["a"], [], ["b", "c"], ["d"]]
    session, websocket, _ = _session(inbound, replies, relay_config)

    await session.run()

    terminal = [frame for frame in websocket.sent if frame["done"]]
    assert len(terminal) == 4
    assert all(frame["chunk"] for frame in websocket.sent if not frame["done"])
    assert websocket.sent[-1] == {"chunk": "", "done": True}
    assert session.cycles == 4
    assert len(session.memory) == 8


@pytest.mark.asyncio
async def test_empty_reply_still_stores_assistant_turn(relay_config: RelayConfig) -> None:
    session, websocket, _ = _session(['{"message": "hi"}'], [[]], relay_config)

    await session.run()

    assert websocket.sent == [{"chunk": "", "done": True}]
    assert session.memory.turns[-1].role == Role.ASSISTANT
    assert session.memory.turns[-1].content == ""


@pytest.mark.asyncio
async def test_transport_error_sends_single_diagnostic_and_keeps_session(relay_config: RelayConfig) -> None:
    inbound = ['{"message": "first"}', '{"message": "second"}']
    replies = [TransportError("connection refused"), ["recovered"]]
    session, websocket, _ = _session(inbound, replies, relay_config)

    await session.run()

    assert websocket.sent == [
        {"chunk": "Error: connection refused", "done": True},
        {"chunk": "recovered", "done": False},
        {"chunk": "", "done": True},
    ]
    assert [t.content for t in session.memory.turns] == ["first", "second", "recovered"]


@pytest.mark.asyncio
async def test_upstream_view_is_windowed() -> None:
    config = RelayConfig(window_size=2, system_prompt="Sys")
    inbound = [f'{{"message": "m{i}"}}' for i in range(3)]
    session, _, client = _session(inbound, [["r0"], ["r1"], ["r2"]], config)

    await session.run()

    assert client.requests[0] == [
        {"role": "system", "content": "Sys"},
        {"role": "user", "content": "m0"},
    ]
    assert client.requests[2] == [
        {"role": "system", "content": "Sys"},
        {"role": "assistant", "content": "r1"},
        {"role": "user", "content": "m2"},
    ]
    assert len(session.memory) == 6


@pytest.mark.asyncio
async def test_disconnect_during_stream_stops_upstream(relay_config: RelayConfig) -> None:
    session, websocket, client = _session(
        ['{"message": "hi"}'],
        [["a", "b", "c", "d"]],
        relay_config,
        fail_send_after=1,
    )

    await session.run()

    assert websocket.sent == [{"chunk": "a", "done": False}]
    assert client.closed == 1
    assert client.produced < 4
    assert session.state == SessionState.CLOSED
    assert [t.role for t in session.memory.turns] == [Role.USER]


@pytest.mark.asyncio
@pytest.mark.parametrize("raw", ["not json", "[1, 2]", '{"text": "hi"}', '{"message": null}'])
async def test_protocol_error_ends_session(relay_config: RelayConfig, raw: str) -> None:
    session, websocket, client = _session([raw, '{"message": "never read"}'], [], relay_config)

    await session.run()

    assert websocket.sent == []
    assert client.requests == []
    assert session.close_code == CLOSE_INVALID_PAYLOAD
    assert session.state == SessionState.CLOSED


@pytest.mark.asyncio
async def test_binary_frames_are_accepted(relay_config: RelayConfig) -> None:
    session, websocket, _ = _session([b'{"message": "bytes"}'], [["ok"]], relay_config)

    await session.run()

    assert websocket.sent[-1] == {"chunk": "", "done": True}
    assert session.memory.turns[0].content == "bytes"


@pytest.mark.asyncio
async def test_disconnect_while_waiting_closes_quietly(relay_config: RelayConfig) -> None:
    session, websocket, _ = _session([], [], relay_config)

    await session.run()

    assert websocket.sent == []
    assert session.state == SessionState.CLOSED
    assert session.close_code == CLOSE_NORMAL
    assert len(session.memory) == 0


def test_service_opens_isolated_sessions(relay_config: RelayConfig) -> None:
    service = RelayService(relay_config, client=FakeStreamClient([]))

    first = service.open_session(WebSocketChannel(FakeWebSocket([])))
    second = service.open_session(WebSocketChannel(FakeWebSocket([])))

    assert first.memory is not second.memory
    assert first.client is second.client
    assert first.state == SessionState.AWAITING_INPUT
