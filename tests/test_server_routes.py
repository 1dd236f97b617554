"""Tests for the HTTP and WebSocket routes of the server."""
import json

import pytest
from fastapi.testclient import TestClient

from shared.config import AppConfig, ServerConfig
from server.app import create_app

PLAY_DATA = {
    "playTitle": "Test Play",
    "totalScenes": 2,
    "scenes": {
        "1": {
            "title": "Opening",
            "dialogs": [
                {"cueId": "1.1", "hindi": "नमस्ते", "english": "Hello", "audioFile": "01/000.mp3", "duration": 2.5},
                {"cueId": "1.2", "english": "Bye", "audioFileHi": "01/001-hi.mp3", "audioFileEn": "01/001-en.mp3"},
            ],
        },
        "2": {"title": "Empty", "dialogs": []},
    },
}


@pytest.fixture
def app(tmp_path):
    path = tmp_path / "playData.json"
    path.write_text(json.dumps(PLAY_DATA), encoding="utf-8")
    return create_app(AppConfig(server=ServerConfig(play_data_path=str(path))))


def test_health(app):
    with TestClient(app) as client:
        assert client.get("/health").json() == {"status": "ok"}


def test_current_initial_state(app):
    with TestClient(app) as client:
        data = client.get("/current").json()
    assert data["scene"] == "1"
    assert data["cueIndex"] == 0
    assert data["isPaused"] is True
    assert data["playbackRate"] == 1.0
    assert set(data["anchor"]) == {"serverTimeEpochMs", "mediaTimeSec"}


def test_update_then_current(app):
    with TestClient(app) as client:
        r = client.post("/update", json={"cueIndex": 3, "isPaused": False, "playbackRate": 1.5})
        assert r.status_code == 200
        assert r.json() == {"ok": True}
        data = client.get("/current").json()
    assert data["cueIndex"] == 3
    assert data["isPaused"] is False
    assert data["playbackRate"] == 1.5


def test_update_invalid_json_is_empty_update(app):
    with TestClient(app) as client:
        r = client.post("/update", content=b"{not json", headers={"Content-Type": "application/json"})
        assert r.status_code == 200
        assert client.get("/current").json()["cueIndex"] == 0


def test_manifest(app):
    with TestClient(app) as client:
        r = client.get("/manifest/1")
    assert r.status_code == 200
    assert r.json() == [
        {"cueId": "1.1", "audioFileHi": "01/000.mp3", "audioFileEn": "01/000.mp3", "duration": 2.5},
        {"cueId": "1.2", "audioFileHi": "01/001-hi.mp3", "audioFileEn": "01/001-en.mp3", "duration": None},
    ]


def test_manifest_empty_scene(app):
    with TestClient(app) as client:
        r = client.get("/manifest/2")
    assert r.status_code == 200
    assert r.json() == []


def test_manifest_unknown_scene(app):
    with TestClient(app) as client:
        r = client.get("/manifest/9")
    assert r.status_code == 404
    assert r.json() == {"error": "Scene not found"}


def test_manifest_without_script_file(tmp_path):
    app = create_app(AppConfig(server=ServerConfig(play_data_path=str(tmp_path / "missing.json"))))
    with TestClient(app) as client:
        r = client.get("/manifest/1")
    assert r.status_code == 404


def test_ws_hello_and_state(app):
    with TestClient(app) as client:
        with client.websocket_connect("/ws") as ws:
            hello = ws.receive_json()
            state = ws.receive_json()
    assert hello["type"] == "HELLO"
    assert "serverTimeEpochMs" in hello
    assert state["type"] == "STATE"
    assert state["state"]["scene"] == "1"


def test_ws_ping_echo(app):
    with TestClient(app) as client:
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.receive_json()
            ws.send_text(json.dumps({"type": "PING", "t0": 123}))
            reply = ws.receive_json()
    assert reply["type"] == "PING"
    assert reply["t0"] == 123


def test_ws_cue_broadcast_to_all(app):
    with TestClient(app) as client:
        with client.websocket_connect("/ws") as a, client.websocket_connect("/ws") as b:
            for ws in (a, b):
                ws.receive_json()
                ws.receive_json()
            a.send_text(json.dumps({"type": "CUE", "scene": "2", "cueIndex": 0,
                                    "anchor": {"mediaTimeSec": 0}}))
            for ws in (a, b):
                assert [ws.receive_json()["type"] for _ in range(3)] == ["SCENE_LOAD", "CUE", "STATE"]
        assert client.get("/current").json()["scene"] == "2"


def test_rest_update_reaches_sockets(app):
    with TestClient(app) as client:
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.receive_json()
            client.post("/update", json={"isPaused": False})
            assert ws.receive_json()["type"] == "RESUME"
            state = ws.receive_json()
    assert state["type"] == "STATE"
    assert state["state"]["isPaused"] is False


def test_update_with_non_finite_numbers(app):
    headers = {"Content-Type": "application/json"}
    with TestClient(app) as client:
        r = client.post("/update", headers=headers,
                        content=b'{"anchor": {"mediaTimeSec": 1, "serverTimeEpochMs": Infinity}}')
        assert r.status_code == 200
        assert client.get("/current").json()["anchor"]["mediaTimeSec"] == 1.0
        r = client.post("/update", headers=headers, content=b'{"anchor": {"mediaTimeSec": NaN}, "cueIndex": -Infinity}')
        assert r.status_code == 200
        data = client.get("/current").json()
    assert data["anchor"]["mediaTimeSec"] == 1.0
    assert data["cueIndex"] == 0


def test_ws_survives_non_finite_ping(app):
    with TestClient(app) as client:
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.receive_json()
            ws.send_text('{"type": "PING", "t0": Infinity}')
            reply = ws.receive_json()
            assert reply["type"] == "PING"
            assert "t0" not in reply
            ws.send_text('{"type": "PING", "t0": 5}')
            assert ws.receive_json()["t0"] == 5
