"""Tests for client-side event dispatch and clock probing."""
import asyncio
import json

import pytest

from shared.config import SyncSettings
from client.clock_client import ClockClient
from client.connection import SyncConnection


class FakeClock:
    def __init__(self, t: int):
        self.t = t

    def __call__(self) -> int:
        return self.t


def make_connection(clock=None):
    received = {"states": [], "events": []}

    async def on_state(state):
        received["states"].append(state)

    async def on_event(msg_type, data):
        received["events"].append(msg_type)

    conn = SyncConnection("ws://localhost:5174/ws", on_state=on_state, on_event=on_event,
                          settings=SyncSettings(probe_batch_size=1), clock=clock or FakeClock(0))
    return conn, received


STATE_MSG = json.dumps({
    "type": "STATE", "serverTimeEpochMs": 5,
    "state": {"scene": "2", "cueIndex": 1, "playbackRate": 1.0, "isPaused": False,
              "anchor": {"serverTimeEpochMs": 5, "mediaTimeSec": 0}},
})


def test_state_goes_to_handler():
    conn, received = make_connection()
    asyncio.run(conn.handle_message(STATE_MSG))
    assert len(received["states"]) == 1
    assert received["states"][0].scene == "2"
    assert conn.state.cue_index == 1


def test_malformed_state_is_ignored():
    conn, received = make_connection()
    asyncio.run(conn.handle_message('{"type": "STATE", "state": {"scene": "1"}}'))
    asyncio.run(conn.handle_message('{"type": "STATE"}'))
    assert received["states"] == []
    assert conn.state is None


def test_granular_events_go_to_event_handler():
    conn, received = make_connection()
    for t in ("SCENE_LOAD", "CUE", "PAUSE"):
        asyncio.run(conn.handle_message(json.dumps({"type": t, "serverTimeEpochMs": 1})))
    assert received["events"] == ["SCENE_LOAD", "CUE", "PAUSE"]


def test_hello_heartbeat_and_garbage_not_forwarded():
    conn, received = make_connection()
    for raw in ('{"type": "HELLO", "serverTimeEpochMs": 1}', '{"type": "HEARTBEAT"}', "junk", "[]"):
        asyncio.run(conn.handle_message(raw))
    assert received == {"states": [], "events": []}


def test_ping_and_pong_feed_clock():
    clock = FakeClock(1040)
    conn, received = make_connection(clock)
    asyncio.run(conn.handle_message(json.dumps({"type": "PING", "serverTimeEpochMs": 1520, "t0": 1000})))
    assert conn.offset_ms == 500
    asyncio.run(conn.handle_message(json.dumps({"type": "PONG", "serverTimeEpochMs": 1320, "t0": 1000})))
    assert conn.offset_ms == 300
    assert received["events"] == []


def test_send_when_disconnected_is_dropped():
    conn, _ = make_connection()
    assert not conn.connected
    asyncio.run(conn.send({"type": "PING"}))


def test_clock_client_ignores_reply_without_server_time():
    client = ClockClient(None, batch_size=1, clock=FakeClock(0))
    client.handle_reply({"type": "PING"})
    assert client.estimator.sample_count == 0
    assert not client.estimator.is_calibrated


def test_clock_client_probe_loop_sends_pings():
    async def scenario():
        sent = []

        async def send(event):
            sent.append(event)

        client = ClockClient(send, interval_ms=10, clock=FakeClock(777))
        client.start()
        assert client.running
        await asyncio.sleep(0.05)
        client.stop()
        assert not client.running
        return sent

    sent = asyncio.run(scenario())
    assert len(sent) >= 2
    assert sent[0] == {"type": "PING", "t0": 777}


def test_clock_client_server_now():
    client = ClockClient(None, batch_size=1, clock=FakeClock(10_000))
    client.estimator.add_sample(-200)
    assert client.server_now_ms() == pytest.approx(9_800)
