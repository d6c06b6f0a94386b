"""Tests for the FastAPI server: REST envelope and the window WebSocket."""

import time

import pytest
from fastapi.testclient import TestClient

from termpanel.exception import ConfigError
from termpanel.host import LocalSessionDirectory
from termpanel.server import create_app


@pytest.fixture
def app(tmp_path, backend_factory):
    app = create_app(tmp_path, {"panel": {"refresh_delay": 0, "default_directory": str(tmp_path)}})
    app.state.session_directory = LocalSessionDirectory(backend_factory=backend_factory, default_cwd=str(tmp_path))
    return app


def _receive_until(ws, predicate, limit=50):
    for _ in range(limit):
        message = ws.receive_json()
        if predicate(message):
            return message
    raise AssertionError("expected message not received")


def _wait_for(condition, timeout=5.0):
    deadline = time.monotonic() + timeout
    while not condition():
        if time.monotonic() > deadline:
            return False
        time.sleep(0.01)
    return True


def test_create_app_rejects_invalid_panel_config(tmp_path):
    with pytest.raises(ConfigError):
        create_app(tmp_path, {"panel": {"refresh_delay": -1}})


def test_list_sessions_envelope(app):
    with TestClient(app) as client:
        response = client.get("/api/sessions")

    assert response.status_code == 200
    assert response.json()["success"] is True
    assert response.json()["data"] == []


def test_destroy_unknown_session_returns_error_envelope(app):
    with TestClient(app) as client:
        body = client.delete("/api/sessions/term-missing").json()

    assert body["success"] is False
    assert body["error"] == {"code": "SESSION_NOT_FOUND"}


def test_tools_are_described(app):
    with TestClient(app) as client:
        body = client.get("/api/tools").json()

    names = [tool["name"] for tool in body["data"]["tools"]]
    assert names == [
        "create_terminal_session",
        "write_to_terminal",
        "close_terminal_session",
        "clear_terminal",
        "focus_terminal",
    ]


def test_window_socket_round_trip(app, backends):
    with TestClient(app) as client:
        with client.websocket_connect("/ws/window") as ws:
            hello = ws.receive_json()
            assert hello["type"] == "window"

            ready = _receive_until(
                ws, lambda m: m["type"] == "terminal_status" and m["status"] == "ready"
            )
            tab_id = ready["tab_id"]

            ws.send_json({"type": "input", "data": "ls\r"})
            echo = _receive_until(ws, lambda m: m["type"] == "terminal_output")
            assert echo == {"type": "terminal_output", "tab_id": tab_id, "data": "ls\r"}

            ws.send_json({"type": "switch_tab", "tab_id": "tab-unknown"})
            error = _receive_until(ws, lambda m: m["type"] == "error")
            assert error["code"] == "TAB_NOT_FOUND"

            sessions = client.get("/api/sessions").json()["data"]
            assert len(sessions) == 1
            record = app.state.session_directory.sessions[sessions[0]["id"]]
            assert record.owner_window_id is not None

        # The server tears the window down after the socket closes
        assert _wait_for(lambda: record.owner_window_id is None)
        assert [s["id"] for s in client.get("/api/sessions").json()["data"]] == [sessions[0]["id"]]

    assert all(backend.stopped for backend in backends.values())
