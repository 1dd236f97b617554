"""Tests for command dispatch and ordered broadcast in the server hub."""
import asyncio
import json

from server.hub import ClientSession, SyncHub
from server.state_store import StateStore


class FakeClock:
    def __init__(self, t: int = 1_000_000):
        self.t = t

    def __call__(self) -> int:
        return self.t


def make_sink():
    sent = []

    async def send_text(text):
        sent.append(text)

    return sent, send_text


def drain(session: ClientSession, sent: list) -> list[dict]:
    """Close the session and run its writer to completion."""
    session.close()
    asyncio.run(session.run_writer())
    return [json.loads(raw) for raw in sent]


def make_hub(t: int = 1_000_000):
    clock = FakeClock(t)
    return SyncHub(StateStore(clock)), clock


def types(events):
    return [e["type"] for e in events]


def test_connect_sends_hello_then_state():
    hub, clock = make_hub()
    sent, send = make_sink()
    session = hub.connect(send)
    events = drain(session, sent)
    assert types(events) == ["HELLO", "STATE"]
    assert events[0]["serverTimeEpochMs"] == clock.t
    assert events[1]["state"]["isPaused"] is True
    assert events[1]["state"]["anchor"]["mediaTimeSec"] == 0.0


def test_cue_with_scene_change():
    hub, clock = make_hub(10_000)
    sent, send = make_sink()
    session = hub.connect(send)
    hub.handle_message(session, json.dumps({
        "type": "CUE", "scene": "2", "cueIndex": 4, "playbackRate": 1.25,
        "anchor": {"mediaTimeSec": 0, "serverTimeEpochMs": 10_250},
    }))
    events = drain(session, sent)[2:]
    assert types(events) == ["SCENE_LOAD", "CUE", "STATE"]
    assert events[0]["scene"] == "2"
    assert events[1]["cueIndex"] == 4
    state = events[2]["state"]
    assert state == {
        "scene": "2", "cueIndex": 4, "playbackRate": 1.25, "isPaused": False,
        "anchor": {"serverTimeEpochMs": 10_250, "mediaTimeSec": 0.0},
    }


def test_cue_from_idle_without_timestamp():
    hub, clock = make_hub(50_000)
    sent, send = make_sink()
    session = hub.connect(send)
    hub.handle_message(session, json.dumps({
        "type": "CUE", "cueIndex": 5, "scene": "2", "anchor": {"mediaTimeSec": 12.0},
    }))
    events = drain(session, sent)[2:]
    assert types(events) == ["SCENE_LOAD", "CUE", "STATE"]
    state = hub.store.get()
    assert (state.scene, state.cue_index, state.is_paused) == ("2", 5, False)
    assert state.anchor.media_time_sec == 12.0
    assert state.anchor.server_time_epoch_ms == 50_000


def test_cue_same_scene_has_no_scene_load():
    hub, clock = make_hub()
    sent, send = make_sink()
    session = hub.connect(send)
    hub.handle_message(session, json.dumps({
        "type": "CUE", "scene": "1", "cueIndex": 1, "anchor": {"mediaTimeSec": 0},
    }))
    events = drain(session, sent)[2:]
    assert types(events) == ["CUE", "STATE"]
    # No timestamp supplied: stamped with server now
    assert events[1]["state"]["anchor"]["serverTimeEpochMs"] == clock.t


def test_pause_then_resume_without_anchor_keeps_position():
    hub, clock = make_hub(1000)
    sent, send = make_sink()
    session = hub.connect(send)
    hub.handle_message(session, json.dumps({"type": "PAUSE", "mediaTimeSec": 30.2}))
    clock.t = 60_000
    hub.handle_message(session, json.dumps({"type": "RESUME"}))
    events = drain(session, sent)[2:]
    assert types(events) == ["PAUSE", "STATE", "RESUME", "STATE"]
    paused = events[1]["state"]
    assert paused["isPaused"] is True
    assert paused["anchor"] == {"serverTimeEpochMs": 1000, "mediaTimeSec": 30.2}
    resumed = events[3]["state"]
    assert resumed["isPaused"] is False
    assert resumed["anchor"] == {"serverTimeEpochMs": 60_000, "mediaTimeSec": 30.2}


def test_seek_and_rate():
    hub, clock = make_hub(5000)
    sent, send = make_sink()
    session = hub.connect(send)
    hub.handle_message(session, json.dumps({"type": "SEEK", "anchor": {"mediaTimeSec": 12.0}}))
    hub.handle_message(session, json.dumps({"type": "RATE", "playbackRate": 1.5,
                                            "anchor": {"mediaTimeSec": 13.0}}))
    events = drain(session, sent)[2:]
    assert types(events) == ["SEEK", "STATE", "RATE", "STATE"]
    assert events[0]["mediaTimeSec"] == 12.0
    assert events[2]["playbackRate"] == 1.5
    assert events[3]["state"]["playbackRate"] == 1.5
    assert events[3]["state"]["anchor"]["mediaTimeSec"] == 13.0


def test_rate_without_anchor_freezes_position():
    hub, clock = make_hub(5000)
    sent, send = make_sink()
    session = hub.connect(send)
    hub.handle_message(session, json.dumps({"type": "SEEK", "mediaTimeSec": 8.0}))
    clock.t = 6000
    hub.handle_message(session, json.dumps({"type": "RATE", "playbackRate": 0.5}))
    state = drain(session, sent)[-1]["state"]
    assert state["anchor"] == {"serverTimeEpochMs": 6000, "mediaTimeSec": 8.0}


def test_every_session_sees_same_order():
    hub, clock = make_hub()
    sent_a, send_a = make_sink()
    sent_b, send_b = make_sink()
    a = hub.connect(send_a)
    b = hub.connect(send_b)
    hub.handle_message(a, json.dumps({"type": "CUE", "scene": "2", "cueIndex": 0,
                                      "anchor": {"mediaTimeSec": 0}}))
    hub.handle_message(b, json.dumps({"type": "PAUSE"}))
    hub.handle_message(a, json.dumps({"type": "RESUME"}))
    events_a = drain(a, sent_a)[2:]
    events_b = drain(b, sent_b)[2:]
    assert events_a == events_b
    assert types(events_a) == ["SCENE_LOAD", "CUE", "STATE", "PAUSE", "STATE", "RESUME", "STATE"]


def test_ping_reply_goes_to_sender_only():
    hub, clock = make_hub(42_000)
    sent_a, send_a = make_sink()
    sent_b, send_b = make_sink()
    a = hub.connect(send_a)
    b = hub.connect(send_b)
    hub.handle_message(a, json.dumps({"type": "PING", "t0": 41_990}))
    events_a = drain(a, sent_a)[2:]
    events_b = drain(b, sent_b)[2:]
    assert events_a == [{"type": "PING", "serverTimeEpochMs": 42_000, "t0": 41_990}]
    assert events_b == []


def test_heartbeat_answered_to_sender():
    hub, clock = make_hub()
    sent, send = make_sink()
    session = hub.connect(send)
    hub.handle_message(session, '{"type": "HEARTBEAT"}')
    assert types(drain(session, sent)[2:]) == ["HEARTBEAT"]


def test_malformed_messages_change_nothing():
    hub, clock = make_hub()
    sent, send = make_sink()
    session = hub.connect(send)
    before = hub.store.get()
    for raw in ("garbage", '{"type": "CUE", "cueIndex": -1, "anchor": {"mediaTimeSec": 0}}',
                '{"type": "RATE", "playbackRate": 0}', '{"type": "SEEK"}', '{"type": "WHAT"}'):
        hub.handle_message(session, raw)
    assert drain(session, sent)[2:] == []
    assert hub.store.get() == before


def test_outbox_overflow_disconnects_slow_client():
    hub = SyncHub(StateStore(FakeClock()), outbox_limit=3)
    sent_fast, send_fast = make_sink()
    slow_sent, send_slow = make_sink()
    slow = hub.connect(send_slow)  # HELLO + STATE queued, never drained
    hub.broadcast([{"type": "A"}, {"type": "B"}])
    assert slow.closed
    assert slow.session_id not in hub.sessions
    fast = hub.connect(send_fast)
    hub.broadcast([{"type": "C"}])
    assert types(drain(fast, sent_fast)) == ["HELLO", "STATE", "C"]


def test_disconnect_removes_session():
    hub, clock = make_hub()
    sent, send = make_sink()
    session = hub.connect(send)
    hub.disconnect(session)
    assert hub.sessions == {}
    hub.broadcast([{"type": "X"}])
    assert types(drain(session, sent)) == ["HELLO", "STATE"]


def test_writer_stops_on_send_failure():
    async def broken(text):
        raise ConnectionError("gone")

    session = ClientSession(broken)
    session.enqueue({"type": "A"})
    asyncio.run(session.run_writer())
    assert session.closed


def test_rest_update_event_order():
    hub, clock = make_hub(2000)
    sent, send = make_sink()
    session = hub.connect(send)
    state = hub.apply_update({
        "scene": 3, "cueIndex": 2, "isPaused": False, "playbackRate": 2.0,
        "anchor": {"mediaTimeSec": 1.0},
    })
    events = drain(session, sent)[2:]
    assert types(events) == ["SCENE_LOAD", "CUE", "RESUME", "RATE", "SEEK", "STATE"]
    assert state.scene == "3"
    assert events[-1]["state"]["anchor"] == {"serverTimeEpochMs": 2000, "mediaTimeSec": 1.0}


def test_rest_update_ignores_wrong_types():
    hub, clock = make_hub()
    sent, send = make_sink()
    session = hub.connect(send)
    state = hub.apply_update({"cueIndex": "7", "isPaused": "no", "playbackRate": -3})
    assert state.cue_index == 0
    assert state.is_paused is True
    assert state.playback_rate == 1.0
    assert types(drain(session, sent)[2:]) == ["STATE"]


def test_rest_update_non_object_body():
    hub, clock = make_hub()
    sent, send = make_sink()
    session = hub.connect(send)
    hub.apply_update(None)
    hub.apply_update([1, 2])
    assert types(drain(session, sent)[2:]) == ["STATE", "STATE"]
