# pylint: disable=missing-module-docstring,missing-function-docstring

from typing import Any

import pytest
from fastapi.testclient import TestClient

from audio.devices import DeviceAccessError
from config import AppConfig
from orchestrator.enums.state import State
from orchestrator.tools import ToolHandler
from server.app import create_app
from server.events import EventBroadcaster
from session.callbacks import LogEntry, LogSource, SessionCallbacks, Severity
from session.gateway import SessionGateway
from spec import ERROR_DEVICE_DENIED

from fakes import FakeCaptureDevice, FakeOutputDevice, FakeTransport


def _config(**overrides: Any) -> AppConfig:
    values: dict[str, Any] = {
        "env": "test",
        "log_level": "INFO",
        "host": "127.0.0.1",
        "port": 8000,
        "gemini_api_key": "test-key",
        "live_model": "models/test",
        "live_voice": "Kore",
        "live_endpoint": "wss://live.example/ws",
        "input_device": None,
        "output_device": None,
        "enable_json_logs": True,
    }
    values.update(overrides)
    return AppConfig(**values)


class FakeStack:
    def __init__(self) -> None:
        self.transport = FakeTransport()
        self.mic = FakeCaptureDevice()
        self.speaker = FakeOutputDevice()
        self.tool_handler: ToolHandler | None = None

    def __call__(self, config: AppConfig, callbacks: SessionCallbacks, tool_handler: ToolHandler) -> SessionGateway:
        self.tool_handler = tool_handler
        return SessionGateway(
            transport=self.transport,
            capture_device=self.mic,
            output_device=self.speaker,
            tool_handler=tool_handler,
            callbacks=callbacks,
        )


@pytest.fixture(name="stack")
def fixture_stack() -> FakeStack:
    return FakeStack()


@pytest.fixture(name="client")
def fixture_client(stack: FakeStack):
    app = create_app(_config(), gateway_factory=stack)
    with TestClient(app) as client:
        yield client


# ---------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------

def test_health(client: TestClient):
    assert client.get("/health").json() == {"status": "ok"}


def test_initial_session_snapshot(client: TestClient):
    assert client.get("/session").json() == {
        "state": "DISCONNECTED",
        "muted": False,
        "voice": "Kore",
        "last_error": None,
    }


def test_connect_and_disconnect(client: TestClient, stack: FakeStack):
    connected = client.post("/session/connect").json()
    assert connected["state"] == "CONNECTED"
    assert len(stack.transport.channels) == 1

    disconnected = client.post("/session/disconnect").json()
    assert disconnected["state"] == "DISCONNECTED"
    assert stack.transport.channel.closed


def test_connect_failure_is_reported_in_snapshot(client: TestClient, stack: FakeStack):
    stack.transport.error = OSError("unreachable")

    body = client.post("/session/connect").json()

    assert body["state"] == "ERROR"
    assert body["last_error"].startswith("NETWORK FAILURE")


def test_mute_toggle(client: TestClient):
    assert client.post("/session/mute", json={"muted": True}).json()["muted"] is True
    assert client.post("/session/mute", json={"muted": False}).json()["muted"] is False


def test_mute_requires_flag(client: TestClient):
    assert client.post("/session/mute", json={}).status_code == 422


def test_voice_change(client: TestClient):
    assert client.post("/session/voice", json={"voice": "Charon"}).json()["voice"] == "Charon"


def test_unknown_voice_is_bad_request(client: TestClient):
    response = client.post("/session/voice", json={"voice": "Nobody"})

    assert response.status_code == 400
    assert "Nobody" in response.json()["detail"]


def test_default_tools_are_system_actions(client: TestClient, stack: FakeStack):
    assert stack.tool_handler is client.app.state.actions  # type: ignore[attr-defined]


# ---------------------------------------------------------------------
# /events
# ---------------------------------------------------------------------

def test_events_stream_status_and_logs(client: TestClient):
    with client.websocket_connect("/events") as ws:
        assert ws.receive_json() == {"type": "status", "state": "DISCONNECTED"}

        client.post("/session/connect")

        assert ws.receive_json() == {"type": "status", "state": "CONNECTING"}
        assert ws.receive_json() == {"type": "status", "state": "CONNECTED"}
        log = ws.receive_json()
        assert log["type"] == "log"
        assert log["message"] == "Live session online"
        assert log["severity"] == "success"
        assert log["source"] == "system"


def test_events_stream_errors(client: TestClient, stack: FakeStack):
    stack.mic.error = DeviceAccessError("mic gone")

    with client.websocket_connect("/events") as ws:
        ws.receive_json()
        client.post("/session/connect")

        messages = [ws.receive_json() for _ in range(4)]

    assert [m["type"] for m in messages] == ["status", "status", "error", "log"]
    assert messages[1] == {"type": "status", "state": "ERROR"}
    assert messages[2] == {"type": "error", "message": ERROR_DEVICE_DENIED}


# ---------------------------------------------------------------------
# Broadcaster
# ---------------------------------------------------------------------

def test_broadcaster_drops_oldest_when_full():
    broadcaster = EventBroadcaster(max_queue=2)
    queue = broadcaster.subscribe()

    for i in range(3):
        broadcaster.publish({"n": i})

    assert [queue.get_nowait()["n"] for _ in range(2)] == [1, 2]


def test_broadcaster_callbacks_shape_messages():
    broadcaster = EventBroadcaster()
    queue = broadcaster.subscribe()
    callbacks = broadcaster.callbacks()

    callbacks.on_status_change(State.CONNECTING)
    callbacks.on_audio_level(0.123456)
    callbacks.on_log(LogEntry.create(LogSource.USER, Severity.INFO, "hello"))
    callbacks.on_error("bad")

    messages = [queue.get_nowait() for _ in range(4)]
    assert messages[0] == {"type": "status", "state": "CONNECTING"}
    assert messages[1] == {"type": "level", "value": 0.1235}
    assert messages[2]["message"] == "hello"
    assert messages[2]["source"] == "user"
    assert messages[3] == {"type": "error", "message": "bad"}

    broadcaster.unsubscribe(queue)
    assert broadcaster.subscriber_count == 0
