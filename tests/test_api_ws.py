"""Tests for FastAPI WebSocket /stream endpoint.

Tests verify:
- Snapshot message format (values, thresholds, pressed, state)
- Push on change, nothing pushed for an unchanged snapshot
- Link state changes reach the stream
- Disconnect notice after POST /disconnect
"""

import pytest
from fastapi.testclient import TestClient

from api import main as api_module
from danspad_lib.transport import Transport
from fakes.fake_serial import FakePad


@pytest.fixture(autouse=True)
def reset_singletons():
    """Reset global controller before and after each test."""
    api_module._controller = None
    yield
    if api_module._controller is not None:
        api_module._controller.close()
    api_module._controller = None


@pytest.fixture
def client():
    """FastAPI test client."""
    return TestClient(api_module.app)


@pytest.fixture
def fake_pad():
    """Create a FakePad with three sensors."""
    return FakePad(values=[100, 600, 900], thresholds=[500, 500, 500])


@pytest.fixture
def monkeypatch_transport(monkeypatch, fake_pad):
    """Monkeypatch Transport.open to use FakePad."""
    def mock_open(port: str, baud: int):
        return Transport(fake_pad, port_name=port)

    monkeypatch.setattr(Transport, "open", mock_open)


@pytest.fixture
def connected(client, monkeypatch_transport):
    """Connect through the API without background polling."""
    response = client.post("/connect", params={"port": "/dev/fakepad", "poll": "false"})
    assert response.status_code == 200


# =============================================================================
# WebSocket Tests
# =============================================================================

def test_websocket_first_snapshot(client, connected):
    """Test that a new client gets the current snapshot right away."""
    with client.websocket_connect("/stream") as websocket:
        data = websocket.receive_json()

    assert data == {
        "sensor_count": 3,
        "values": [100, 600, 900],
        "thresholds": [500, 500, 500],
        "pressed": [False, True, True],
        "state": "connected",
    }


def test_websocket_pushes_new_values_after_tick(client, connected, fake_pad):
    """Test that a tick with fresh readings is pushed to the client."""
    with client.websocket_connect("/stream") as websocket:
        websocket.receive_json()

        fake_pad.values = [700, 0, 5]
        assert client.post("/tick").json() == {"state": "connected"}

        data = websocket.receive_json()

    assert data["values"] == [700, 0, 5]
    assert data["pressed"] == [True, False, False]


def test_websocket_unchanged_snapshot_not_resent(client, connected, fake_pad):
    """Test that a tick returning the same readings pushes nothing."""
    with client.websocket_connect("/stream") as websocket:
        first = websocket.receive_json()

        # Same readings: no message
        client.post("/tick")

        fake_pad.values = [1, 2, 3]
        client.post("/tick")

        # The next message is the changed one, not a repeat of the first
        data = websocket.receive_json()

    assert first["values"] == [100, 600, 900]
    assert data["values"] == [1, 2, 3]


def test_websocket_threshold_edit_pushed(client, connected):
    """Test that a threshold edit shows up in the stream."""
    with client.websocket_connect("/stream") as websocket:
        websocket.receive_json()

        assert client.put("/thresholds/0", json={"value": 50}).status_code == 200

        data = websocket.receive_json()

    assert data["thresholds"] == [50, 500, 500]
    assert data["pressed"][0] is True


def test_websocket_reports_link_state(client, connected, fake_pad):
    """Test that a link fault and the reconnect reach the stream."""
    with client.websocket_connect("/stream") as websocket:
        websocket.receive_json()

        fake_pad.unplug()
        assert client.post("/tick").json() == {"state": "disconnected"}
        assert websocket.receive_json()["state"] == "disconnected"

        fake_pad.replug()
        assert client.post("/tick").json() == {"state": "connected"}
        assert websocket.receive_json()["state"] == "connected"


def test_websocket_disconnect_notice(client, connected):
    """Test that the stream reports the pad going away and closes."""
    with client.websocket_connect("/stream") as websocket:
        websocket.receive_json()

        assert client.post("/disconnect").status_code == 200

        assert websocket.receive_json() == {"error": "Disconnected"}
