"""Device session: framed report reads and request/response operations."""

import logging
from typing import Callable, Optional

from danspad_lib import parsing, protocol
from danspad_lib.errors import DeviceOpenError, IndexOutOfRange, MalformedReport
from danspad_lib.models import Report, ReportKind
from danspad_lib.transport import Transport

logger = logging.getLogger(__name__)

ReportListener = Callable[[Report], None]


class DeviceSession:
    """Request/response operations on one open pad link.

    Owns the receive line buffer. Every call is bounded by the per-read
    timeout: a silent pad yields an empty report, never a hang.

    Recognized reports that arrive when nobody asked for them (a thresholds
    line while waiting for values, the echo after a set command) are handed
    to ``on_unsolicited_report`` so the caller can still fold them into its
    state. Reports describe their own destination.
    """

    def __init__(
        self,
        transport: Transport,
        read_timeout_s: float = protocol.READ_TIMEOUT_S,
        on_unsolicited_report: Optional[ReportListener] = None,
    ) -> None:
        self._transport = transport
        self._read_timeout_s = read_timeout_s
        self._rx = bytearray()
        self._discarding = False
        self._sensor_count: Optional[int] = None
        self.on_unsolicited_report = on_unsolicited_report

    @property
    def sensor_count(self) -> Optional[int]:
        """Sensor count fixed by discover_sensor_count(), None before that."""
        return self._sensor_count

    @property
    def capacity(self) -> int:
        return self._sensor_count if self._sensor_count is not None else protocol.SENSORS_MAX

    def reset(self) -> None:
        """Drop any partially received line (after a reopen)."""
        self._rx.clear()
        self._discarding = False

    # ========================================================================
    # Framing
    # ========================================================================

    def read_report(self, timeout_s: Optional[float] = None) -> Optional[Report]:
        """Read and parse one report line.

        Bytes are accumulated until LF. A partial line left when a read
        attempt times out is discarded.

        Args:
            timeout_s: Timeout for each underlying read attempt.
                       Defaults to the session read timeout.

        Returns:
            Parsed Report (possibly UNRECOGNIZED), or None on timeout

        Raises:
            MalformedReport: If a line exceeds REPORT_BUFFER_SIZE bytes
            LinkFault: If the transport fails
        """
        if timeout_s is None:
            timeout_s = self._read_timeout_s

        while True:
            line = self._take_line()
            if line is not None:
                logger.debug(f"Report line: {line!r}")
                return parsing.parse_report(line, self.capacity)

            chunk = self._transport.read_chunk(timeout_s)
            if not chunk:
                if self._rx:
                    logger.debug(f"Discarding partial line on timeout: {bytes(self._rx)!r}")
                    self._rx.clear()
                self._discarding = False
                return None
            self._rx.extend(chunk)

    def _take_line(self) -> Optional[bytes]:
        """Pop one complete line from the receive buffer, if present."""
        while True:
            idx = self._rx.find(protocol.TERMINATOR)

            if self._discarding:
                if idx < 0:
                    self._rx.clear()
                    return None
                # Tail of an overlong line
                del self._rx[: idx + 1]
                self._discarding = False
                continue

            if idx < 0:
                if len(self._rx) > protocol.REPORT_BUFFER_SIZE:
                    self._rx.clear()
                    self._discarding = True
                    raise MalformedReport(
                        f"No line terminator within {protocol.REPORT_BUFFER_SIZE} bytes"
                    )
                return None

            if idx > protocol.REPORT_BUFFER_SIZE:
                del self._rx[: idx + 1]
                raise MalformedReport(
                    f"Report line of {idx} bytes exceeds {protocol.REPORT_BUFFER_SIZE}"
                )

            line = bytes(self._rx[: idx + 1])
            del self._rx[: idx + 1]
            return line

    def write_command(self, data: bytes) -> None:
        """Write a command and wait for it to drain.

        Raises:
            LinkFault: If the write or the drain fails
        """
        self._transport.write_bytes(data)

    # ========================================================================
    # Requests
    # ========================================================================

    def query(self, kind: ReportKind) -> Report:
        """Send a values/thresholds query and wait for the matching report.

        Unparseable and malformed lines are skipped. A timeout means the
        pad is silent: an empty report of the requested kind is returned.

        Args:
            kind: ReportKind.VALUES or ReportKind.THRESHOLDS

        Returns:
            Matching Report, or an empty one (count 0) if none arrived

        Raises:
            LinkFault: If the transport fails
        """
        self.write_command(protocol.format_query(kind))

        for _ in range(protocol.MAX_REPORT_LINES):
            try:
                report = self.read_report()
            except MalformedReport as e:
                logger.warning(f"Discarding malformed report: {e}")
                continue

            if report is None:
                logger.debug(f"No {kind.value} report before timeout, pad silent")
                return Report(kind)

            if report.kind is kind:
                return report

            if report.is_recognized:
                logger.debug(f"Out-of-order {report.kind.value} report while waiting for {kind.value}")
                self._dispatch_unsolicited(report)
            else:
                logger.warning("Discarding unrecognized report line")

        logger.warning(f"No {kind.value} report within {protocol.MAX_REPORT_LINES} lines")
        return Report(kind)

    def query_values(self) -> Report:
        """Query current sensor readings."""
        return self.query(ReportKind.VALUES)

    def query_thresholds(self) -> Report:
        """Query current sensor thresholds."""
        return self.query(ReportKind.THRESHOLDS)

    def set_threshold(self, index: int, value: int) -> int:
        """Set one threshold on the pad.

        The value is clamped before sending. One report is read afterwards
        to absorb the pad's echo; its content is not checked against the
        requested value.

        Args:
            index: Sensor index
            value: Requested threshold

        Returns:
            Clamped value that was sent

        Raises:
            IndexOutOfRange: If index is invalid (nothing is written)
            LinkFault: If the transport fails
        """
        if not (0 <= index < self.capacity):
            raise IndexOutOfRange(f"Sensor index {index} out of range [0, {self.capacity})")

        value = protocol.clamp_value(value)
        self.write_command(protocol.format_set_threshold(index, value))

        try:
            echo = self.read_report()
        except MalformedReport as e:
            logger.debug(f"Ignoring malformed echo: {e}")
            return value

        if echo is not None and echo.is_recognized:
            self._dispatch_unsolicited(echo)
        return value

    def discover_sensor_count(self) -> int:
        """Ask the pad for its values and fix the session's sensor count.

        Returns:
            Number of sensors reported by the pad

        Raises:
            DeviceOpenError: If the pad reports no sensors or too many
            LinkFault: If the transport fails
        """
        self._sensor_count = None
        report = self.query_values()

        if report.count == 0:
            raise DeviceOpenError("Failed to get response from pad")
        if report.count > protocol.SENSORS_MAX:
            raise DeviceOpenError(
                f"Pad reports {report.count} sensors, maximum is {protocol.SENSORS_MAX}"
            )

        self._sensor_count = report.count
        logger.info(f"Sensor count: {report.count}")
        return report.count

    def _dispatch_unsolicited(self, report: Report) -> None:
        if self.on_unsolicited_report is not None:
            self.on_unsolicited_report(report)
