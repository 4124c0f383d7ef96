"""Fake serial port that simulates the danspad sensor pad firmware.

Emulates the line protocol (``v``, ``t`` and ``<index> <value>`` commands,
tagged LF-terminated replies) plus the failure modes the host has to cope
with: unplugging, partial reads, silence and line noise.
"""

import logging
from typing import List, Optional, Sequence

logger = logging.getLogger(__name__)


class FakePad:
    """Deterministic simulator of the sensor pad.

    Replies are queued as soon as a complete command is written, so reads
    never block. An empty read stands in for a timeout.
    """

    def __init__(
        self,
        sensor_count: int = 4,
        values: Optional[Sequence[int]] = None,
        thresholds: Optional[Sequence[int]] = None,
        echo_on_set: bool = True,
        chunk_size: Optional[int] = None,
    ) -> None:
        """Initialize fake pad.

        Args:
            sensor_count: Number of sensors (ignored if values given)
            values: Initial sensor readings
            thresholds: Initial thresholds (default 512 each)
            echo_on_set: Reply with the threshold line after a set command
            chunk_size: If set, deliver at most this many bytes per read
                        attempt to exercise partial reads
        """
        self.values: List[int] = list(values) if values is not None else [0] * sensor_count
        self.thresholds: List[int] = (
            list(thresholds) if thresholds is not None else [512] * len(self.values)
        )
        self.echo_on_set = echo_on_set
        self.chunk_size = chunk_size

        # Behaviour switches
        self.silent = False  # Swallow commands without replying
        self.unplugged = False  # I/O fails; reopen fails until replugged

        # Port state
        self.is_open = True
        self.timeout: Optional[float] = 0.1

        # Traffic
        self.commands: List[bytes] = []
        self.open_calls = 0
        self._input_buffer = bytearray()
        self._output_buffer = bytearray()

    # ========================================================================
    # Serial Interface
    # ========================================================================

    def open(self) -> None:
        """Open (reopen) the port."""
        self.open_calls += 1
        if self.unplugged:
            raise OSError(2, "could not open port: No such file or directory")
        self.is_open = True
        logger.debug("FakePad opened")

    def close(self) -> None:
        """Close the fake serial port."""
        self.is_open = False
        logger.debug("FakePad closed")

    def write(self, data: bytes) -> int:
        """Write data to the pad (from host perspective)."""
        self._check_io()
        self._input_buffer.extend(data)
        logger.debug(f"FakePad received: {data!r}")
        self._process_input()
        return len(data)

    def read(self, size: int = 1) -> bytes:
        """Read up to size bytes of pad output, b"" when nothing is pending."""
        self._check_io()
        if self.chunk_size is not None:
            size = min(size, self.chunk_size)
        data = bytes(self._output_buffer[:size])
        del self._output_buffer[:size]
        return data

    @property
    def in_waiting(self) -> int:
        if self.chunk_size is not None:
            return min(len(self._output_buffer), max(self.chunk_size - 1, 0))
        return len(self._output_buffer)

    def flush(self) -> None:
        """Drain output (writes are immediate, only fails when unplugged)."""
        self._check_io()

    def reset_input_buffer(self) -> None:
        """Discard pending pad output."""
        self._output_buffer.clear()

    # ========================================================================
    # Test Controls
    # ========================================================================

    def unplug(self) -> None:
        """Simulate the cable being pulled."""
        self.unplugged = True

    def replug(self) -> None:
        """Simulate the pad coming back (host must reopen)."""
        self.unplugged = False

    def inject(self, data: bytes) -> None:
        """Queue raw bytes as if the pad had sent them."""
        self._output_buffer.extend(data)

    def count_commands(self, command: bytes) -> int:
        return sum(1 for c in self.commands if c == command)

    @property
    def sensor_count(self) -> int:
        return len(self.values)

    # ========================================================================
    # Internal: Input Processing
    # ========================================================================

    def _check_io(self) -> None:
        if not self.is_open:
            raise RuntimeError("Port is closed")
        if self.unplugged:
            raise OSError(5, "Input/output error")

    def _process_input(self) -> None:
        """Handle complete LF-terminated commands."""
        while b"\n" in self._input_buffer:
            idx = self._input_buffer.index(b"\n")
            cmd = bytes(self._input_buffer[: idx + 1])
            del self._input_buffer[: idx + 1]
            self.commands.append(cmd)

            if self.silent:
                continue
            self._handle_command(cmd.strip())

    def _handle_command(self, cmd: bytes) -> None:
        if cmd == b"v":
            self._send_array("v", self.values)
        elif cmd == b"t":
            self._send_array("t", self.thresholds)
        else:
            parts = cmd.split()
            if len(parts) != 2 or not all(p.isdigit() for p in parts):
                logger.debug(f"FakePad ignoring command {cmd!r}")
                return
            index, value = int(parts[0]), int(parts[1])
            if index < len(self.thresholds):
                self.thresholds[index] = min(value, 1023)
            if self.echo_on_set:
                self._send_array("t", self.thresholds)

    def _send_array(self, tag: str, numbers: Sequence[int]) -> None:
        line = tag + "".join(f" {n}" for n in numbers) + "\n"
        self._output_buffer.extend(line.encode("ascii"))
