"""Tests for FastAPI REST endpoints using FakePad (no hardware).

Tests verify:
- Connection lifecycle (connect, disconnect)
- Sensor snapshots and threshold edits
- Profile save on edit and on demand
- Error mapping (IndexOutOfRange→400, not connected→409,
  ProfileError→422, SerialIOError→503)
"""

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from api import main as api_module
from danspad_lib import profile
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
        """Return Transport wrapping FakePad."""
        return Transport(fake_pad, port_name=port)

    monkeypatch.setattr(Transport, "open", mock_open)


def connect(client, **params):
    query = {"port": "/dev/fakepad", "poll": "false"}
    query.update(params)
    return client.post("/connect", params=query)


# =============================================================================
# Health & Status
# =============================================================================

def test_root_health_check(client):
    """Test GET / returns service info."""
    response = client.get("/")

    assert response.status_code == 200
    assert response.json()["status"] == "online"


def test_status_not_connected(client):
    """Test GET /status before connecting."""
    response = client.get("/status")

    assert response.status_code == 200
    data = response.json()
    assert data["connected"] is False
    assert data["state"] == "disconnected"
    assert data["sensor_count"] is None


def test_sensors_not_connected(client):
    """Test that snapshot endpoints need a connection."""
    assert client.get("/sensors").status_code == 409
    assert client.put("/thresholds/0", json={"value": 1}).status_code == 409


# =============================================================================
# Lifecycle
# =============================================================================

def test_connect_and_status(client, monkeypatch_transport):
    """Test POST /connect then GET /status."""
    response = connect(client)

    assert response.status_code == 200
    assert response.json() == {"status": "connected", "sensor_count": 3}

    data = client.get("/status").json()
    assert data["connected"] is True
    assert data["state"] == "connected"
    assert data["port"] == "/dev/fakepad"
    assert data["sensor_count"] == 3
    assert data["polling"] is False


def test_connect_twice(client, monkeypatch_transport):
    """Test that a second connect is rejected."""
    assert connect(client).status_code == 200
    assert connect(client).status_code == 400


def test_connect_pad_without_sensors(client, monkeypatch, fake_pad):
    """Test that a pad that reports nothing maps to 503."""
    fake_pad.silent = True
    monkeypatch.setattr(Transport, "open", lambda port, baud: Transport(fake_pad))

    response = connect(client)

    assert response.status_code == 503
    assert api_module._controller is None


def test_connect_with_polling(client, monkeypatch_transport):
    """Test that polling starts by default."""
    response = connect(client, poll="true")

    assert response.status_code == 200
    assert client.get("/status").json()["polling"] is True


def test_disconnect(client, monkeypatch_transport, fake_pad):
    """Test POST /disconnect closes the port."""
    connect(client)

    response = client.post("/disconnect")

    assert response.status_code == 200
    assert response.json() == {"status": "disconnected"}
    assert not fake_pad.is_open
    assert api_module._controller is None


# =============================================================================
# Sensors & Thresholds
# =============================================================================

def test_sensors_snapshot(client, monkeypatch_transport):
    """Test GET /sensors after one polling step."""
    connect(client)
    assert client.post("/tick").json() == {"state": "connected"}

    data = client.get("/sensors").json()

    assert data["sensor_count"] == 3
    assert data["values"] == [100, 600, 900]
    assert data["thresholds"] == [500, 500, 500]
    assert data["pressed"] == [False, True, True]


def test_set_threshold(client, monkeypatch_transport, fake_pad):
    """Test PUT /thresholds/{index} clamps and reaches the pad."""
    connect(client)

    response = client.put("/thresholds/1", json={"value": 5000})

    assert response.status_code == 200
    assert response.json() == {"index": 1, "value": 1023, "profile_saved": False}
    assert fake_pad.thresholds == [500, 1023, 500]
    assert client.get("/sensors").json()["thresholds"] == [500, 1023, 500]


def test_set_threshold_bad_index(client, monkeypatch_transport):
    """Test that an out-of-range index maps to 400."""
    connect(client)

    response = client.put("/thresholds/3", json={"value": 10})

    assert response.status_code == 400


def test_set_threshold_link_fault(client, monkeypatch_transport, fake_pad):
    """Test that a dropped link maps to 503 and shows as disconnected."""
    connect(client)
    fake_pad.unplug()

    response = client.put("/thresholds/0", json={"value": 10})

    assert response.status_code == 503
    assert client.get("/status").json()["state"] == "disconnected"


def test_tick_reconnects(client, monkeypatch_transport, fake_pad):
    """Test manual ticks through a disconnect and reconnect."""
    connect(client)

    fake_pad.unplug()
    assert client.post("/tick").json() == {"state": "disconnected"}

    fake_pad.replug()
    assert client.post("/tick").json() == {"state": "connected"}
    assert client.get("/status").json()["reconnects"] == 1


# =============================================================================
# Profile
# =============================================================================

def test_threshold_edit_saves_profile(client, monkeypatch_transport, tmp_path: Path):
    """Test that every edit writes the profile."""
    path = tmp_path / "pad.profile"
    connect(client, profile=str(path))

    response = client.put("/thresholds/2", json={"value": 321})

    assert response.json()["profile_saved"] is True
    assert profile.load_profile_file(path, 3) == [500, 500, 321]


def test_profile_save_without_path(client, monkeypatch_transport):
    """Test that saving needs a configured profile."""
    connect(client)

    assert client.post("/profile/save").status_code == 400
    assert client.post("/profile/load").status_code == 400


def test_profile_save_and_load(client, monkeypatch_transport, fake_pad, tmp_path: Path):
    """Test explicit save and reload of the profile."""
    path = tmp_path / "pad.profile"
    connect(client, profile=str(path))

    response = client.post("/profile/save")
    assert response.status_code == 200
    assert response.json() == {"path": str(path)}

    path.write_bytes(profile.encode_profile([1, 2, 3]))
    response = client.post("/profile/load")

    assert response.status_code == 200
    assert response.json()["thresholds"] == [1, 2, 3]
    assert fake_pad.thresholds == [1, 2, 3]


def test_profile_load_invalid(client, monkeypatch_transport, tmp_path: Path):
    """Test that a corrupt profile maps to 422."""
    path = tmp_path / "pad.profile"
    connect(client, profile=str(path))
    path.write_bytes(b"not a profile")

    response = client.post("/profile/load")

    assert response.status_code == 422


# =============================================================================
# WebSocket
# =============================================================================

def test_stream_not_connected(client):
    """Test that the stream reports an error when no pad is connected."""
    with client.websocket_connect("/stream") as websocket:
        assert websocket.receive_json() == {"error": "Not connected"}
