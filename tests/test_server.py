import time

import pytest
from starlette.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from audiosync.errors import MalformedRequest
from audiosync.web.server import (
    WS_UNSUPPORTED_DATA,
    command_from_control,
    command_from_frame,
    create_app,
)
from audiosync.commands import MISSING, Command

from conftest import make_engine

DEFAULT = {
    "isPlaying": False,
    "volume": 0.7,
    "isMuted": False,
    "currentTime": 0,
    "duration": 180,
}


def wait_for_subscribers(client, expected, timeout=2.0):
    """Poll health until the server side has caught up with connects/disconnects."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if client.get("/api/health").json()["subscribers"] == expected:
            return True
        time.sleep(0.01)
    return False


# ── Wire parsing ─────────────────────────────────────────────────────────────

def test_control_body_parsing():
    assert command_from_control({"action": "play"}) == Command("play")
    assert command_from_control({"action": "setVolume", "value": 0.5}) == Command("setVolume", 0.5)
    assert command_from_control({"action": "setVolume", "value": None}) == Command("setVolume", MISSING)
    assert command_from_control({"action": "nope"}) is None


@pytest.mark.parametrize("body", [[], "play", {"value": 1}, {"action": 5}, {"action": "setVolume", "value": "1"}])
def test_control_body_rejects(body):
    with pytest.raises(MalformedRequest):
        command_from_control(body)


def test_frame_parsing():
    assert command_from_frame('{"type": "setPosition", "data": 12}') == Command("setPosition", 12)
    assert command_from_frame('{"type": "setVolume", "data": "x"}') == Command("setVolume", "x")
    assert command_from_frame('{"type": "dance"}') is None


@pytest.mark.parametrize("text", ["", "{", "[1, 2]", '{"data": 1}', '{"type": null}'])
def test_frame_rejects(text):
    with pytest.raises(MalformedRequest):
        command_from_frame(text)


# ── HTTP ─────────────────────────────────────────────────────────────────────

def test_get_state(client):
    r = client.get("/api/state")
    assert r.status_code == 200
    assert r.json() == DEFAULT


def test_control_play(client):
    r = client.post("/api/control", json={"action": "play"})
    assert r.status_code == 200
    assert r.json()["isPlaying"] is True
    assert client.get("/api/state").json()["isPlaying"] is True


def test_control_set_volume_zero(client):
    body = client.post("/api/control", json={"action": "setVolume", "value": 0.0}).json()
    assert body["volume"] == 0
    assert body["isMuted"] is True


def test_control_reset_is_reachable(client):
    client.post("/api/control", json={"action": "setPosition", "value": 40})
    client.post("/api/control", json={"action": "play"})
    body = client.post("/api/control", json={"action": "reset"}).json()
    assert body["isPlaying"] is False
    assert body["currentTime"] == 0


def test_control_set_position_clamps(client):
    assert client.post("/api/control", json={"action": "setPosition", "value": 500}).json()["currentTime"] == 180
    assert client.post("/api/control", json={"action": "setPosition", "value": -3}).json()["currentTime"] == 0


def test_control_unknown_action_returns_unchanged(client):
    r = client.post("/api/control", json={"action": "shuffle"})
    assert r.status_code == 200
    assert r.json() == DEFAULT


def test_control_bad_json(client):
    r = client.post("/api/control", content=b"{not json", headers={"content-type": "application/json"})
    assert r.status_code == 400
    assert "error" in r.json()


def test_control_wrong_value_type(client):
    r = client.post("/api/control", json={"action": "setVolume", "value": "loud"})
    assert r.status_code == 400
    assert client.get("/api/state").json() == DEFAULT


@pytest.mark.parametrize("action,field,expected", [
    ("setVolume", "volume", 1.0),
    ("setPosition", "currentTime", 180),
])
def test_control_oversized_number_is_clamped(client, action, field, expected):
    body = '{"action": "' + action + '", "value": 1' + "0" * 400 + "}"
    r = client.post("/api/control", content=body, headers={"content-type": "application/json"})
    assert r.status_code == 200
    assert r.json()[field] == expected


def test_control_method_not_allowed(client):
    assert client.get("/api/control").status_code == 405
    assert client.put("/api/control", json={"action": "play"}).status_code == 405


def test_health(client):
    body = client.get("/api/health").json()
    assert body["status"] == "ok"
    assert body["subscribers"] == 0


def test_static_dir_is_served(tmp_path):
    (tmp_path / "index.html").write_text("<h1>player</h1>")
    app = create_app(engine=make_engine(), static_dir=tmp_path)
    with TestClient(app) as c:
        assert "player" in c.get("/").text
        assert c.get("/api/state").json() == DEFAULT


# ── WebSocket ────────────────────────────────────────────────────────────────

def test_ws_initial_snapshot_then_commands(client):
    client.post("/api/control", json={"action": "setVolume", "value": 0.4})
    with client.websocket_connect("/ws") as ws:
        assert ws.receive_json()["volume"] == 0.4
        ws.send_json({"type": "play"})
        assert ws.receive_json()["isPlaying"] is True
        ws.send_json({"type": "setPosition", "data": 33.7})
        assert ws.receive_json()["currentTime"] == 33


def test_ws_fan_out(client):
    with client.websocket_connect("/ws") as a:
        assert a.receive_json() == DEFAULT
        with client.websocket_connect("/ws") as b:
            assert b.receive_json() == DEFAULT
            a.send_json({"type": "play"})
            assert a.receive_json()["isPlaying"] is True
            assert b.receive_json()["isPlaying"] is True


def test_ws_receives_http_commands(client):
    with client.websocket_connect("/ws") as ws:
        ws.receive_json()
        client.post("/api/control", json={"action": "toggleMute"})
        frame = ws.receive_json()
        assert frame["isMuted"] is True
        assert frame["volume"] == 0


def test_ws_unknown_type_is_ignored(client):
    with client.websocket_connect("/ws") as ws:
        ws.receive_json()
        ws.send_json({"type": "dance"})
        ws.send_json({"type": "pause"})
        # Only the pause produced a frame
        assert ws.receive_json() == DEFAULT


def test_ws_bad_payload_still_broadcasts(client):
    with client.websocket_connect("/ws") as ws:
        ws.receive_json()
        ws.send_json({"type": "setVolume", "data": "max"})
        assert ws.receive_json() == DEFAULT


def test_ws_malformed_frame_closes(client):
    with client.websocket_connect("/ws") as ws:
        ws.receive_json()
        ws.send_text("definitely not json")
        with pytest.raises(WebSocketDisconnect) as exc:
            ws.receive_json()
        assert exc.value.code == WS_UNSUPPORTED_DATA
    assert wait_for_subscribers(client, 0)


def test_ws_disconnect_deregisters(client):
    with client.websocket_connect("/ws") as ws:
        ws.receive_json()
        assert client.get("/api/health").json()["subscribers"] == 1
    assert wait_for_subscribers(client, 0)
    client.post("/api/control", json={"action": "play"})
    assert client.get("/api/health").json()["subscribers"] == 0


def test_ws_oversized_number_is_clamped(client):
    with client.websocket_connect("/ws") as ws:
        ws.receive_json()
        ws.send_text('{"type": "setPosition", "data": 1' + "0" * 400 + "}")
        assert ws.receive_json()["currentTime"] == 180
        ws.send_json({"type": "pause"})
        assert ws.receive_json()["currentTime"] == 180
