"""Serial transport layer for danspad pad communication."""

import logging
from typing import Optional, Protocol

from danspad_lib import protocol
from danspad_lib.errors import DeviceOpenError, LinkFault, SerialIOError

logger = logging.getLogger(__name__)


class SerialLike(Protocol):
    """Protocol for serial port interface (allows test doubles)."""

    timeout: Optional[float]

    def open(self) -> None:
        """Open (or reopen) the port."""
        ...

    def write(self, data: bytes) -> int:
        """Write bytes to serial port."""
        ...

    def read(self, size: int = 1) -> bytes:
        """Read up to size bytes from serial port."""
        ...

    def flush(self) -> None:
        """Block until all written bytes are transmitted."""
        ...

    def reset_input_buffer(self) -> None:
        """Flush input buffer."""
        ...

    def close(self) -> None:
        """Close serial port."""
        ...

    @property
    def in_waiting(self) -> int:
        """Number of bytes already received and not yet read."""
        ...

    @property
    def is_open(self) -> bool:
        """Check if port is open."""
        ...


def find_usb_port() -> str:
    """Return the device name of the first USB serial port.

    Every USB port found is logged with its VID/PID, non-USB ports
    (no VID) are skipped.

    Raises:
        DeviceOpenError: If no USB serial port is present
    """
    try:
        from serial.tools import list_ports  # type: ignore
    except ImportError as e:
        raise SerialIOError("pyserial not installed. Run: pip install pyserial") from e

    chosen: Optional[str] = None
    for info in list_ports.comports():
        if info.vid is None:
            continue
        logger.info(
            f"Port {info.device}: {info.description} "
            f"[VID {info.vid:04X} PID {info.pid or 0:04X}]"
        )
        if chosen is None:
            chosen = info.device

    if chosen is None:
        raise DeviceOpenError("No USB serial devices found")
    return chosen


class Transport:
    """Wrapper around pyserial with pad-specific helpers.

    Reads return whatever bytes are available within one timeout window,
    writes block until the bytes have left the host. Any transport error
    surfaces as LinkFault so the caller can tell a dead link from silence.
    """

    def __init__(self, serial_port: SerialLike, port_name: Optional[str] = None) -> None:
        """Initialize transport with a serial port instance.

        Args:
            serial_port: Object implementing SerialLike protocol
                        (e.g., serial.Serial or FakePad for testing)
            port_name: Device name, used in log messages only
        """
        self._port = serial_port
        self._port_name = port_name

    @classmethod
    def open(
        cls,
        port: str,
        baud: int = protocol.DEFAULT_BAUD,
        timeout_s: float = protocol.READ_TIMEOUT_S,
    ) -> "Transport":
        """Open a real serial port (requires pyserial).

        Args:
            port: Serial port device name (e.g., "/dev/ttyACM0")
            baud: Baud rate. USB CDC pads ignore it.
            timeout_s: Read timeout in seconds. Default 0.1s bounds one poll tick.

        Returns:
            Transport instance wrapping opened serial port

        Raises:
            DeviceOpenError: If port cannot be opened
        """
        try:
            import serial  # type: ignore
        except ImportError as e:
            raise SerialIOError("pyserial not installed. Run: pip install pyserial") from e

        try:
            ser = serial.Serial(
                port=port,
                baudrate=baud,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=timeout_s,
                write_timeout=timeout_s * 10,
                rtscts=False,
                dsrdtr=False,
                xonxoff=False,
            )
            logger.info(f"Opened serial port {port} at {baud} baud, timeout={timeout_s}s")
            return cls(ser, port_name=port)
        except Exception as e:
            raise DeviceOpenError(f"Failed to open {port} at {baud} baud: {e}") from e

    @property
    def port_name(self) -> Optional[str]:
        return self._port_name

    @property
    def is_open(self) -> bool:
        """Check if port is currently open."""
        return self._port.is_open

    def close(self) -> None:
        """Close the serial port."""
        if self._port.is_open:
            self._port.close()
            logger.info("Closed serial port")

    def reopen(self) -> None:
        """Close and reopen the same port after a link fault.

        Raises:
            SerialIOError: If the port cannot be reopened
        """
        try:
            if self._port.is_open:
                self._port.close()
            self._port.open()
        except Exception as e:
            raise SerialIOError(f"Failed to reopen {self._port_name or 'port'}: {e}") from e
        logger.info(f"Reopened serial port {self._port_name or ''}".rstrip())

    def write_bytes(self, data: bytes) -> None:
        """Write raw bytes and drain (wait until they are transmitted).

        Args:
            data: Raw bytes to send

        Raises:
            LinkFault: If the write or the drain fails
        """
        if not self._port.is_open:
            raise LinkFault("Serial port is not open")

        try:
            sent = self._port.write(data)
        except Exception as e:
            raise LinkFault(f"Failed to write to port: {e}") from e
        if sent is not None and sent != len(data):
            raise LinkFault(f"Short write: {sent} of {len(data)} bytes")

        try:
            self._port.flush()
        except Exception as e:
            raise LinkFault(f"Failed to drain port: {e}") from e
        logger.debug(f"Sent {len(data)} bytes: {data!r}")

    def read_chunk(self, timeout_s: float = protocol.READ_TIMEOUT_S) -> bytes:
        """Read whatever arrives within one timeout window.

        Blocks for at most timeout_s waiting for the first byte, then takes
        everything else already buffered without waiting again.

        Args:
            timeout_s: Timeout for this read attempt

        Returns:
            Received bytes, or b"" if nothing arrived

        Raises:
            LinkFault: If port is closed or read fails
        """
        if not self._port.is_open:
            raise LinkFault("Serial port is not open")

        try:
            if self._port.timeout != timeout_s:
                self._port.timeout = timeout_s
            data = self._port.read(1)
            if not data:
                return b""
            pending = self._port.in_waiting
            if pending:
                data += self._port.read(pending)
        except Exception as e:
            raise LinkFault(f"Failed to read from port: {e}") from e

        logger.debug(f"Received {len(data)} bytes: {data!r}")
        return data

    def flush_input(self) -> None:
        """Discard all pending input from the pad.

        Raises:
            LinkFault: If port is closed or the flush fails
        """
        if not self._port.is_open:
            raise LinkFault("Serial port is not open")

        try:
            self._port.reset_input_buffer()
            logger.debug("Flushed input buffer")
        except Exception as e:
            raise LinkFault(f"Failed to flush input: {e}") from e
