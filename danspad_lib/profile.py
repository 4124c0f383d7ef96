"""Binary threshold profile encoding and file helpers.

Layout (little-endian, no padding, no checksum):

    offset 0   8 bytes    signature b"danspad "
    offset 8   uint32     sensor_count
    offset 12  uint32 * sensor_count thresholds, index order
"""

import logging
import struct
from pathlib import Path
from typing import List, Sequence, Union

from danspad_lib import protocol
from danspad_lib.calibration import CalibrationStore
from danspad_lib.errors import (
    ProfileIOError,
    SensorCountMismatch,
    SignatureMismatch,
    Truncated,
)

logger = logging.getLogger(__name__)

_COUNT = struct.Struct("<I")
_HEADER_SIZE = len(protocol.PROFILE_SIGNATURE) + _COUNT.size


def encode_profile(thresholds: Sequence[int]) -> bytes:
    """Encode thresholds as a profile record."""
    count = len(thresholds)
    return (
        protocol.PROFILE_SIGNATURE
        + _COUNT.pack(count)
        + struct.pack(f"<{count}I", *(int(t) for t in thresholds))
    )


def save(store: CalibrationStore) -> bytes:
    """Encode the store's current thresholds as a profile record."""
    return encode_profile(store.thresholds)


def load(data: bytes, expected_sensor_count: int) -> List[int]:
    """Decode a profile record.

    Args:
        data: Raw profile bytes
        expected_sensor_count: Sensor count of the connected pad

    Returns:
        Exactly expected_sensor_count threshold values, unclamped

    Raises:
        SignatureMismatch: If the first 8 bytes are not the signature
        Truncated: If the count field or threshold data is cut short
        SensorCountMismatch: If the stored count differs from the pad's
    """
    sig_len = len(protocol.PROFILE_SIGNATURE)
    if data[:sig_len] != protocol.PROFILE_SIGNATURE:
        raise SignatureMismatch("Profile signature does not match")

    if len(data) < _HEADER_SIZE:
        raise Truncated("Profile ends before sensor count")
    (count,) = _COUNT.unpack_from(data, sig_len)

    if count != expected_sensor_count:
        raise SensorCountMismatch(
            f"Profile has {count} thresholds, connected pad has {expected_sensor_count}"
        )

    if len(data) < _HEADER_SIZE + _COUNT.size * count:
        raise Truncated(f"Profile ends before {count} thresholds")

    return list(struct.unpack_from(f"<{count}I", data, _HEADER_SIZE))


def save_profile_file(path: Union[str, Path], store: CalibrationStore) -> Path:
    """Write the store's thresholds to a profile file.

    Raises:
        ProfileIOError: If the file cannot be written
    """
    path = Path(path)
    try:
        path.write_bytes(save(store))
    except OSError as e:
        raise ProfileIOError(f"Failed to write profile '{path}': {e}") from e
    logger.info(f"Saved profile '{path}'")
    return path


def load_profile_file(path: Union[str, Path], expected_sensor_count: int) -> List[int]:
    """Read and decode a profile file.

    Raises:
        ProfileIOError: If the file cannot be read
        ProfileError: See load()
    """
    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError as e:
        raise ProfileIOError(f"Failed to read profile '{path}': {e}") from e
    return load(data, expected_sensor_count)
