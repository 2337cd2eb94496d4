import threading

import pytest

import routers.live
import settings
from errors import NetworkError
from store import LocalSessionStore
from timer import AsyncioTicker

IDLE = {"seconds": 0, "display": "00:00", "status": "idle"}


def receive_until(ws, predicate, limit=500):
    for _ in range(limit):
        message = ws.receive_json()
        if predicate(message):
            return message
    raise AssertionError("expected message never arrived")


def count_then_pause(ws, seconds=3):
    """Run the timer for a few ticks, pause it and return the paused count."""
    ws.send_json({"action": "timer_start"})
    receive_until(ws, lambda m: m.get("timer", {}).get("seconds", 0) >= seconds)
    ws.send_json({"action": "timer_pause"})
    paused = receive_until(ws, lambda m: m.get("timer", {}).get("status") == "paused")
    return paused["timer"]["seconds"]


def session_count(n):
    return lambda m: m.get("type") == "state" and m["progress"]["total_sessions"] == n


@pytest.fixture
def held_saves(monkeypatch):
    """Device saves block until the returned event is set."""
    release = threading.Event()
    append = LocalSessionStore.append

    def held_append(self, record):
        release.wait(5)
        return append(self, record)

    monkeypatch.setattr(LocalSessionStore, "append", held_append)
    yield release
    release.set()


def test_initial_snapshot(client):
    with client.websocket_connect("/ws/app?device_id=phone-1") as ws:
        state = ws.receive_json()
    assert state["type"] == "state"
    assert state["tab"] == "home"
    assert state["user"] is None
    assert state["timer"] == IDLE
    assert state["progress"]["total_sessions"] == 0


def test_tab_selection(client):
    with client.websocket_connect("/ws/app?device_id=phone-1") as ws:
        ws.receive_json()
        ws.send_json({"action": "select_tab", "tab": "progress"})
        state = ws.receive_json()
        assert state["tab"] == "progress"
        assert "breathing" not in state

        ws.send_json({"action": "select_tab", "tab": "breathing"})
        state = ws.receive_json()
        assert state["breathing"]["phase"] == "inhale"
        assert state["breathing"]["display"] == 1


def test_bad_messages_are_reported(client):
    with client.websocket_connect("/ws/app?device_id=phone-1") as ws:
        ws.receive_json()
        ws.send_json({"action": "select_tab", "tab": "settings"})
        assert ws.receive_json() == {"type": "error", "message": "Unknown tab: 'settings'"}
        ws.send_text("not json")
        assert ws.receive_json()["type"] == "error"
        ws.send_json({"action": "dance"})
        assert ws.receive_json()["message"] == "Unknown action: 'dance'"


def test_save_needs_a_paused_timer(client):
    with client.websocket_connect("/ws/app?device_id=phone-1") as ws:
        ws.receive_json()
        ws.send_json({"action": "timer_save"})
        assert ws.receive_json()["message"] == "Pause the timer before saving the session"


def test_timer_session_is_saved_to_the_device(client, monkeypatch):
    monkeypatch.setattr(settings, "TICK_SECONDS", 0.01)
    with client.websocket_connect("/ws/app?device_id=phone-1") as ws:
        ws.receive_json()
        counted = count_then_pause(ws)

        ws.send_json({"action": "timer_save"})
        saved = receive_until(ws, session_count(1))
    assert saved["saving"] is False
    assert saved["timer"] == IDLE
    [recent] = saved["progress"]["recent_sessions"]
    assert recent["duration"] == counted
    assert recent["success"] is False

    sessions = client.get("/api/sessions", headers={"X-Device-Id": "phone-1"}).json()
    assert [s["duration"] for s in sessions] == [counted]


def test_timer_is_locked_while_a_save_is_pending(client, monkeypatch, held_saves):
    monkeypatch.setattr(settings, "TICK_SECONDS", 0.01)
    with client.websocket_connect("/ws/app?device_id=phone-1") as ws:
        ws.receive_json()
        counted = count_then_pause(ws)
        ws.send_json({"action": "timer_save"})
        receive_until(ws, lambda m: m.get("saving") is True)

        for action in ("timer_start", "timer_reset"):
            ws.send_json({"action": action})
            error = receive_until(ws, lambda m: m.get("type") == "error")
            assert error["message"] == "A save is already in progress"

        held_saves.set()
        saved = receive_until(ws, session_count(1))
    assert saved["timer"] == IDLE
    assert saved["progress"]["recent_sessions"][0]["duration"] == counted


def test_failed_save_keeps_the_paused_count(client, monkeypatch):
    monkeypatch.setattr(settings, "TICK_SECONDS", 0.01)

    def offline(self, record):
        raise NetworkError("Could not reach the store. Please try again.")

    monkeypatch.setattr(LocalSessionStore, "append", offline)
    with client.websocket_connect("/ws/app?device_id=phone-1") as ws:
        ws.receive_json()
        counted = count_then_pause(ws)
        ws.send_json({"action": "timer_save"})
        failed = receive_until(ws, lambda m: m.get("type") == "state" and m.get("error"))
    assert failed["error"] == "Could not reach the store. Please try again."
    assert failed["saving"] is False
    assert failed["timer"]["status"] == "paused"
    assert failed["timer"]["seconds"] == counted
    assert failed["progress"]["total_sessions"] == 0


def test_closing_during_a_save_still_stores_the_session(client, backend, monkeypatch, held_saves):
    monkeypatch.setattr(settings, "TICK_SECONDS", 0.01)
    with client.websocket_connect("/ws/app?device_id=phone-1") as ws:
        ws.receive_json()
        counted = count_then_pause(ws)
        ws.send_json({"action": "timer_save"})
        receive_until(ws, lambda m: m.get("saving") is True)
        threading.Timer(0.1, held_saves.set).start()
    assert len(backend.auth_events) == 0

    sessions = client.get("/api/sessions", headers={"X-Device-Id": "phone-1"}).json()
    assert [s["duration"] for s in sessions] == [counted]


def test_leaving_the_breathing_tab_stops_its_ticks(client, monkeypatch):
    handles = []

    class RecordingTicker(AsyncioTicker):
        def every(self, callback):
            handle = super().every(callback)
            handles.append(handle)
            return handle

    monkeypatch.setattr(routers.live, "AsyncioTicker", RecordingTicker)
    monkeypatch.setattr(settings, "TICK_SECONDS", 0.01)
    with client.websocket_connect("/ws/app?device_id=phone-1") as ws:
        ws.receive_json()
        ws.send_json({"action": "select_tab", "tab": "breathing"})
        receive_until(ws, lambda m: m.get("breathing", {}).get("count", 0) >= 2)

        ws.send_json({"action": "select_tab", "tab": "progress"})
        state = receive_until(ws, lambda m: m.get("tab") == "progress")
        assert "breathing" not in state
        [breathing] = handles
        assert breathing.cancelled


def test_closing_the_channel_drops_the_auth_subscription(client, backend):
    with client.websocket_connect("/ws/app?device_id=phone-1") as ws:
        ws.receive_json()
        assert len(backend.auth_events) == 1
    assert len(backend.auth_events) == 0


def test_signed_in_channel_follows_sign_out(client, signed_in):
    user, token = signed_in()
    with client.websocket_connect(f"/ws/app?token={token}&device_id=phone-1") as ws:
        state = ws.receive_json()
        assert state["user"]["email"] == "ana@example.com"

        client.post("/api/auth/signout", headers={"Authorization": f"Bearer {token}"})
        state = ws.receive_json()
        assert state["user"] is None


def test_authenticate_action(client, signed_in):
    user, token = signed_in()
    with client.websocket_connect("/ws/app?device_id=phone-1") as ws:
        ws.receive_json()
        ws.send_json({"action": "authenticate", "token": "bogus"})
        assert ws.receive_json()["message"] == "Invalid or expired session"
        ws.send_json({"action": "authenticate", "token": token})
        assert ws.receive_json()["user"]["id"] == user["id"]


def test_authenticate_with_a_malformed_token(client):
    with client.websocket_connect("/ws/app?device_id=phone-1") as ws:
        ws.receive_json()
        for token in ({"x": 1}, 42, None):
            ws.send_json({"action": "authenticate", "token": token})
            assert ws.receive_json()["message"] == "Invalid or expired session"

        ws.send_json({"action": "select_tab", "tab": "progress"})
        assert ws.receive_json()["tab"] == "progress"
