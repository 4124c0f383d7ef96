"""Thread-safe store for per-sensor readings and calibration thresholds."""

import logging
import threading
from typing import Iterable, List

from danspad_lib import protocol
from danspad_lib.errors import IndexOutOfRange
from danspad_lib.models import PadSnapshot, Report, ReportKind

logger = logging.getLogger(__name__)


class CalibrationStore:
    """Fixed-size value and threshold arrays for one pad.

    Both arrays always hold exactly sensor_count entries, clamped to
    [0, SENSOR_MAX_VALUE]. Readers on other threads should use snapshot().
    """

    def __init__(self, sensor_count: int) -> None:
        """Initialize store with all values and thresholds at zero.

        Args:
            sensor_count: Number of sensors (1..SENSORS_MAX)
        """
        if not (1 <= sensor_count <= protocol.SENSORS_MAX):
            raise ValueError(
                f"sensor_count must be 1-{protocol.SENSORS_MAX}, got {sensor_count}"
            )

        self._sensor_count = sensor_count
        self._values: List[int] = [0] * sensor_count
        self._thresholds: List[int] = [0] * sensor_count
        self._lock = threading.Lock()

    @property
    def sensor_count(self) -> int:
        return self._sensor_count

    @property
    def values(self) -> List[int]:
        """Copy of current readings."""
        with self._lock:
            return list(self._values)

    @property
    def thresholds(self) -> List[int]:
        """Copy of current thresholds."""
        with self._lock:
            return list(self._thresholds)

    def apply_report(self, report: Report) -> int:
        """Fold a parsed report into the matching array.

        Only the first min(len(numbers), sensor_count) slots are written;
        trailing slots keep their previous contents.

        Args:
            report: Parsed report; UNRECOGNIZED reports are ignored

        Returns:
            Number of slots updated
        """
        if report.kind is ReportKind.VALUES:
            target = self._values
        elif report.kind is ReportKind.THRESHOLDS:
            target = self._thresholds
        else:
            return 0

        with self._lock:
            n = min(len(report.numbers), self._sensor_count)
            for i in range(n):
                target[i] = protocol.clamp_value(report.numbers[i])

        if report.count > self._sensor_count:
            logger.debug(
                f"{report.kind.value} report has {report.count} numbers, "
                f"pad has {self._sensor_count} sensors"
            )
        return n

    def set_threshold(self, index: int, value: int) -> int:
        """Set one threshold, clamped to [0, SENSOR_MAX_VALUE].

        Returns:
            Stored value

        Raises:
            IndexOutOfRange: If index is not in [0, sensor_count)
        """
        self._check_index(index)
        value = protocol.clamp_value(value)
        with self._lock:
            self._thresholds[index] = value
        return value

    def set_thresholds(self, thresholds: Iterable[int]) -> None:
        """Set thresholds in index order, one at a time."""
        for index, value in enumerate(thresholds):
            self.set_threshold(index, value)

    def snapshot(self) -> PadSnapshot:
        """Get a consistent copy of values and thresholds (thread-safe)."""
        with self._lock:
            return PadSnapshot(
                sensor_count=self._sensor_count,
                values=list(self._values),
                thresholds=list(self._thresholds),
            )

    def _check_index(self, index: int) -> None:
        if not (0 <= index < self._sensor_count):
            raise IndexOutOfRange(
                f"Sensor index {index} out of range [0, {self._sensor_count})"
            )

    def __len__(self) -> int:
        return self._sensor_count
