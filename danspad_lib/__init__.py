"""
danspad_lib - Python library for the danspad serial sensor pad.

Queries sensor readings, edits per-sensor calibration thresholds and keeps
them in a binary profile, reconnecting when the pad drops off the bus.
"""

from danspad_lib.calibration import CalibrationStore
from danspad_lib.controller import PadController
from danspad_lib.errors import (
    DeviceOpenError,
    IndexOutOfRange,
    LinkFault,
    MalformedReport,
    ParseFailure,
    ProfileError,
    ProfileIOError,
    SensorCountMismatch,
    SerialIOError,
    SignatureMismatch,
    Truncated,
)
from danspad_lib.models import ConnectionState, PadSnapshot, Report, ReportKind
from danspad_lib.session import DeviceSession

__version__ = "0.1.0"

__all__ = [
    "PadController",
    "DeviceSession",
    "CalibrationStore",
    "ConnectionState",
    "PadSnapshot",
    "Report",
    "ReportKind",
    "SerialIOError",
    "LinkFault",
    "DeviceOpenError",
    "MalformedReport",
    "ParseFailure",
    "IndexOutOfRange",
    "ProfileError",
    "ProfileIOError",
    "SignatureMismatch",
    "Truncated",
    "SensorCountMismatch",
]
