"""Data models for the danspad sensor pad library."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Tuple


class ConnectionState(Enum):
    """Pad controller connection states."""

    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class ReportKind(Enum):
    """Which array a report line fills, selected by the line's first byte."""

    VALUES = "values"
    THRESHOLDS = "thresholds"
    UNRECOGNIZED = "unrecognized"


@dataclass(frozen=True)
class Report:
    """One parsed line of pad output.

    Attributes:
        kind: Payload kind taken from the line's leading tag byte.
        numbers: Parsed integers, at most the parse capacity.
        count: Number of integers seen on the line, including ones
               beyond capacity that were not stored.
    """

    kind: ReportKind
    numbers: Tuple[int, ...] = ()
    count: int = 0

    @classmethod
    def unrecognized(cls) -> "Report":
        return cls(ReportKind.UNRECOGNIZED)

    @property
    def is_recognized(self) -> bool:
        return self.kind is not ReportKind.UNRECOGNIZED


@dataclass(frozen=True)
class PadSnapshot:
    """Point-in-time copy of the calibration store.

    Attributes:
        sensor_count: Number of sensors on the pad.
        values: Latest reading for each sensor.
        thresholds: Calibration threshold for each sensor.
    """

    sensor_count: int
    values: List[int] = field(default_factory=list)
    thresholds: List[int] = field(default_factory=list)

    @property
    def pressed(self) -> List[bool]:
        """Per-sensor flag: reading is above its threshold."""
        return [v > t for v, t in zip(self.values, self.thresholds)]
