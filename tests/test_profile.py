"""Tests for the binary threshold profile."""

import struct
from pathlib import Path

import pytest

from danspad_lib import profile
from danspad_lib.calibration import CalibrationStore
from danspad_lib.errors import (
    ProfileIOError,
    SensorCountMismatch,
    SignatureMismatch,
    Truncated,
)


def make_store(thresholds) -> CalibrationStore:
    store = CalibrationStore(len(thresholds))
    store.set_thresholds(thresholds)
    return store


def test_save_layout() -> None:
    """Test exact byte layout: signature, LE count, LE thresholds."""
    store = make_store([1, 512, 1023])

    data = profile.save(store)

    assert data[:8] == b"danspad "
    assert data[8:12] == b"\x03\x00\x00\x00"
    assert data[12:] == struct.pack("<3I", 1, 512, 1023)
    assert len(data) == 12 + 4 * 3


def test_round_trip() -> None:
    """Test that load(save(store)) returns the store's thresholds."""
    store = make_store([0, 17, 300, 1023, 42])

    loaded = profile.load(profile.save(store), store.sensor_count)

    assert loaded == store.thresholds


def test_trailing_bytes_ignored() -> None:
    """Test that extra bytes after the thresholds do not matter."""
    data = profile.encode_profile([5, 6]) + b"junk"

    assert profile.load(data, 2) == [5, 6]


@pytest.mark.parametrize(
    "data", [b"DANSPAD \x01\x00\x00\x00\x00\x00\x00\x00", b"danspad", b"", b"danspad!\x00\x00\x00\x00"]
)
def test_signature_mismatch(data: bytes) -> None:
    """Test that anything but the exact 8-byte signature is rejected."""
    with pytest.raises(SignatureMismatch):
        profile.load(data, 1)


def test_sensor_count_mismatch() -> None:
    """Test a profile saved for 4 sensors loaded on a 3-sensor pad."""
    data = profile.encode_profile([1, 2, 3, 4])

    with pytest.raises(SensorCountMismatch):
        profile.load(data, 3)


def test_count_field_truncated() -> None:
    """Test a profile that ends inside the count field."""
    with pytest.raises(Truncated):
        profile.load(b"danspad \x03\x00", 3)


def test_thresholds_truncated() -> None:
    """Test a profile with fewer threshold bytes than declared."""
    data = profile.encode_profile([1, 2, 3])[:-2]

    with pytest.raises(Truncated):
        profile.load(data, 3)


def test_file_round_trip(tmp_path: Path) -> None:
    """Test saving and loading through the filesystem."""
    store = make_store([10, 20, 30])
    path = tmp_path / "pad.profile"

    written = profile.save_profile_file(path, store)

    assert written == path
    assert path.read_bytes() == profile.save(store)
    assert profile.load_profile_file(path, 3) == [10, 20, 30]


def test_missing_file(tmp_path: Path) -> None:
    """Test that a missing profile file raises ProfileIOError."""
    with pytest.raises(ProfileIOError):
        profile.load_profile_file(tmp_path / "missing.profile", 3)


def test_unwritable_path(tmp_path: Path) -> None:
    """Test that a profile path inside a missing directory raises ProfileIOError."""
    store = make_store([1])

    with pytest.raises(ProfileIOError):
        profile.save_profile_file(tmp_path / "nope" / "pad.profile", store)
