"""Wire protocol constants and command builders for the danspad sensor pad.

The pad speaks a line-oriented ASCII protocol over serial:

- Host sends ``v\\n`` (current values), ``t\\n`` (current thresholds) or
  ``<index> <value>\\n`` (set one threshold).
- Pad answers with one ``\\n`` terminated line whose first byte tags the
  payload (``v`` or ``t``), followed by decimal integers separated by any
  non-digit byte.
"""

from typing import Final

from danspad_lib.models import ReportKind

# ============================================================================
# Line Termination
# ============================================================================

# Both directions use a bare LF
TERMINATOR: Final[bytes] = b"\n"

# ============================================================================
# Report Tags (first byte of a response line)
# ============================================================================

TAG_VALUES: Final[int] = ord("v")
TAG_THRESHOLDS: Final[int] = ord("t")

# ============================================================================
# Commands
# ============================================================================

CMD_VALUES: Final[bytes] = b"v\n"
CMD_THRESHOLDS: Final[bytes] = b"t\n"

# ============================================================================
# Pad Limits
# ============================================================================

# Hard maximum number of sensors on one pad
SENSORS_MAX: Final[int] = 64

# Sensor readings and thresholds are 10-bit ADC values
SENSOR_MIN_VALUE: Final[int] = 0
SENSOR_MAX_VALUE: Final[int] = 1023

# Largest number a report may carry (signed 32-bit int on the firmware side)
REPORT_INT_MAX: Final[int] = 2**31 - 1

# ============================================================================
# Session Timing and Buffers
# ============================================================================

# Line buffer capacity; longer lines are malformed
REPORT_BUFFER_SIZE: Final[int] = 256

# Timeout for a single underlying read attempt (seconds)
READ_TIMEOUT_S: Final[float] = 0.1

# Lines consumed per query before giving up on a matching report
MAX_REPORT_LINES: Final[int] = 16

DEFAULT_BAUD: Final[int] = 115200

# ============================================================================
# Profile File
# ============================================================================

PROFILE_SIGNATURE: Final[bytes] = b"danspad "


def clamp_value(value: int) -> int:
    """Clamp a sensor value or threshold to [0, SENSOR_MAX_VALUE]."""
    return max(SENSOR_MIN_VALUE, min(SENSOR_MAX_VALUE, int(value)))


def format_query(kind: ReportKind) -> bytes:
    """Build the query command for values or thresholds.

    Args:
        kind: ReportKind.VALUES or ReportKind.THRESHOLDS

    Returns:
        2-byte command, ``b"v\\n"`` or ``b"t\\n"``

    Raises:
        ValueError: If kind is not queryable
    """
    if kind is ReportKind.VALUES:
        return CMD_VALUES
    if kind is ReportKind.THRESHOLDS:
        return CMD_THRESHOLDS
    raise ValueError(f"Cannot query report kind {kind!r}")


def format_set_threshold(index: int, value: int) -> bytes:
    """Build a set-threshold command: ``<index> <value>\\n``.

    Value must already be clamped by the caller.

    Args:
        index: Sensor index
        value: Threshold value

    Returns:
        Command bytes in decimal ASCII
    """
    if index < 0 or value < 0:
        raise ValueError(f"index and value must be non-negative, got {index}, {value}")
    return f"{int(index)} {int(value)}".encode("ascii") + TERMINATOR
