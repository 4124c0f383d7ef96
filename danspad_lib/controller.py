"""High-level pad controller: polling, reconnection and profile handling."""

import logging
import threading
from pathlib import Path
from typing import Optional, Union

from danspad_lib import profile, protocol
from danspad_lib.calibration import CalibrationStore
from danspad_lib.errors import (
    DeviceOpenError,
    LinkFault,
    ProfileError,
    SerialIOError,
)
from danspad_lib.models import ConnectionState, PadSnapshot, Report
from danspad_lib.session import DeviceSession
from danspad_lib.transport import SerialLike, Transport, find_usb_port

logger = logging.getLogger(__name__)


class PadController:
    """Drives one pad session across link faults.

    State machine:
        CONNECTED    --LinkFault on read/write--> DISCONNECTED
        DISCONNECTED --reopen ok-->               CONNECTED (+ on_reconnect)
        DISCONNECTED --reopen failed-->           DISCONNECTED

    Each tick() does one bounded unit of work: a values query when
    connected, a single reopen attempt when not. There is no starting
    DISCONNECTED phase: connect() fails outright if the pad cannot be
    opened or reports no sensors.
    """

    def __init__(self, profile_path: Optional[Union[str, Path]] = None) -> None:
        """Initialize controller.

        Args:
            profile_path: Optional threshold profile file. Loaded on every
                          (re)connect, saved on save_profile() and close().
        """
        self._profile_path: Optional[Path] = Path(profile_path) if profile_path else None
        self._transport: Optional[Transport] = None
        self._session: Optional[DeviceSession] = None
        self._store: Optional[CalibrationStore] = None
        self._state = ConnectionState.DISCONNECTED

        # Serialises ticks with threshold edits coming from other threads
        self._io_lock = threading.RLock()

        # Background polling
        self._poll_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

        self.reconnect_count = 0

    # ========================================================================
    # Connection Management
    # ========================================================================

    def connect(
        self,
        port: Optional[str] = None,
        baud: int = protocol.DEFAULT_BAUD,
        serial_port: Optional[SerialLike] = None,
    ) -> int:
        """Open the pad, discover its sensor count and sync thresholds.

        Args:
            port: Serial port name. If neither port nor serial_port is given,
                  the first USB serial port is used.
            baud: Baud rate for a real port.
            serial_port: Pre-configured serial port object (for testing).

        Returns:
            Sensor count

        Raises:
            SerialIOError: If already connected
            DeviceOpenError: If the port cannot be opened or the pad reports
                             no sensors
            LinkFault: If the link drops during startup
        """
        with self._io_lock:
            if self._session is not None:
                raise SerialIOError(f"Already connected (state: {self._state.value})")

            if serial_port is not None:
                transport = Transport(serial_port, port_name=port)
            else:
                if port is None:
                    port = find_usb_port()
                logger.info("Attempting to open the port...")
                transport = Transport.open(port, baud)

            session = DeviceSession(transport, on_unsolicited_report=self._apply_report)
            try:
                sensor_count = session.discover_sensor_count()
            except (DeviceOpenError, LinkFault):
                transport.close()
                raise

            self._transport = transport
            self._session = session
            self._store = CalibrationStore(sensor_count)
            self._state = ConnectionState.CONNECTED

            try:
                self._resync()
            except LinkFault:
                transport.close()
                self._transport = None
                self._session = None
                self._store = None
                self._state = ConnectionState.DISCONNECTED
                raise
            return sensor_count

    def close(self) -> None:
        """Stop polling, save the profile and close the port.

        Safe to call more than once.
        """
        self.stop_polling()

        with self._io_lock:
            if self._store is not None:
                try:
                    self.save_profile()
                except ProfileError as e:
                    logger.error(f"Final profile save failed: {e}")

            if self._transport is not None:
                self._transport.close()

            self._transport = None
            self._session = None
            self._state = ConnectionState.DISCONNECTED
            logger.info("Pad controller closed")

    def __enter__(self) -> "PadController":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ========================================================================
    # Polling
    # ========================================================================

    def tick(self) -> ConnectionState:
        """Run one polling step.

        Returns:
            State after the step
        """
        with self._io_lock:
            self._ensure_session()
            assert self._session is not None

            if self._state is ConnectionState.CONNECTED:
                try:
                    report = self._session.query_values()
                except LinkFault as e:
                    self._mark_disconnected(e)
                else:
                    self._apply_report(report)
            else:
                self._try_reopen()

            return self._state

    def on_reconnect(self) -> None:
        """Resynchronise after (re)opening the link.

        Queries the pad's thresholds once, then reapplies the saved
        profile if one is configured.
        """
        with self._io_lock:
            try:
                self._resync()
            except LinkFault as e:
                self._mark_disconnected(e)

    def _resync(self) -> None:
        assert self._session is not None and self._store is not None

        report = self._session.query_thresholds()
        self._apply_report(report)

        if self._profile_path is not None:
            self._apply_profile()

    def _try_reopen(self) -> None:
        assert self._transport is not None and self._session is not None

        try:
            self._transport.reopen()
            self._transport.flush_input()
        except SerialIOError as e:
            logger.debug(f"Reopen failed, will retry next tick: {e}")
            return

        self._session.reset()
        self._state = ConnectionState.CONNECTED
        self.reconnect_count += 1
        logger.info("Pad reconnected, resynchronising thresholds")
        self.on_reconnect()

    def _mark_disconnected(self, error: Exception) -> None:
        if self._state is ConnectionState.CONNECTED:
            logger.error(f"Link fault, pad disconnected: {error}")
        self._state = ConnectionState.DISCONNECTED

    def start_polling(self, interval_s: float = 0.0) -> None:
        """Start a background thread calling tick() repeatedly.

        Args:
            interval_s: Idle time between ticks. Each tick is already bounded
                        by the read timeout, so 0 polls as fast as the pad answers.

        Raises:
            SerialIOError: If not connected or already polling
        """
        self._ensure_session()
        if self._poll_thread and self._poll_thread.is_alive():
            raise SerialIOError("Polling already running")

        self._stop_event.clear()
        self._poll_thread = threading.Thread(
            target=self._poll_loop,
            args=(interval_s,),
            name="PadPoller",
            daemon=True,
        )
        self._poll_thread.start()
        logger.debug(f"Started polling thread, interval={interval_s}s")

    def stop_polling(self) -> None:
        """Stop and join the polling thread if running."""
        if self._poll_thread and self._poll_thread.is_alive():
            self._stop_event.set()
            self._poll_thread.join(timeout=5.0)

            if self._poll_thread.is_alive():
                logger.warning("Polling thread did not stop cleanly")

        self._poll_thread = None

    def is_polling(self) -> bool:
        return self._poll_thread is not None and self._poll_thread.is_alive()

    def _poll_loop(self, interval_s: float) -> None:
        logger.info(f"Poll loop started (thread {threading.get_ident()})")

        while not self._stop_event.is_set():
            try:
                state = self.tick()
            except SerialIOError as e:
                logger.error(f"Poll loop stopping: {e}")
                break

            # Back off between reopen attempts
            wait = interval_s if state is ConnectionState.CONNECTED else max(
                interval_s, protocol.READ_TIMEOUT_S
            )
            if wait > 0 and self._stop_event.wait(timeout=wait):
                break

        logger.info("Poll loop stopped")

    # ========================================================================
    # Thresholds and Profile
    # ========================================================================

    def set_threshold(self, index: int, value: int) -> int:
        """Set a threshold in the store and on the pad.

        The store is updated first; the pad's echo is not verified, the
        next threshold query confirms it.

        Returns:
            Stored (clamped) value

        Raises:
            IndexOutOfRange: If index is invalid (nothing is written)
            LinkFault: If the link drops; the controller is then DISCONNECTED
        """
        with self._io_lock:
            self._ensure_session()
            assert self._session is not None and self._store is not None

            value = self._store.set_threshold(index, value)
            if self._state is not ConnectionState.CONNECTED:
                logger.warning(f"Pad disconnected, threshold {index}={value} kept locally")
                return value

            try:
                self._session.set_threshold(index, value)
            except LinkFault as e:
                self._mark_disconnected(e)
                raise
            logger.debug(f"Threshold {index} set to {value}")
            return value

    def save_profile(self) -> Optional[Path]:
        """Save current thresholds to the configured profile path.

        Returns:
            Path written, or None if no profile is configured

        Raises:
            ProfileIOError: If the file cannot be written
        """
        if self._profile_path is None or self._store is None:
            return None
        return profile.save_profile_file(self._profile_path, self._store)

    def load_profile(self) -> bool:
        """Reload the configured profile and push it to the pad.

        Returns:
            True if a profile was applied

        Raises:
            ProfileError: If the profile is missing or invalid
            LinkFault: If the link drops while applying
        """
        with self._io_lock:
            self._ensure_session()
            if self._profile_path is None:
                return False
            thresholds = profile.load_profile_file(
                self._profile_path, self.sensor_count
            )
            if self._state is not ConnectionState.CONNECTED:
                assert self._store is not None
                self._store.set_thresholds(thresholds)
                logger.warning("Pad disconnected, profile applied locally only")
                return True
            try:
                self._push_thresholds(thresholds)
            except LinkFault as e:
                self._mark_disconnected(e)
                raise
            return True

    def _apply_profile(self) -> None:
        assert self._profile_path is not None
        try:
            thresholds = profile.load_profile_file(self._profile_path, self.sensor_count)
        except ProfileError as e:
            logger.warning(f"Profile not applied, keeping pad thresholds: {e}")
            return

        logger.info("Setting thresholds from profile file...")
        self._push_thresholds(thresholds)

    def _push_thresholds(self, thresholds: list) -> None:
        assert self._session is not None and self._store is not None
        for index, value in enumerate(thresholds):
            value = self._store.set_threshold(index, value)
            self._session.set_threshold(index, value)

    def _apply_report(self, report: Report) -> None:
        if self._store is not None:
            self._store.apply_report(report)

    # ========================================================================
    # Accessors
    # ========================================================================

    def _ensure_session(self) -> None:
        if self._session is None:
            raise SerialIOError("Not connected")

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        return self._state

    @property
    def sensor_count(self) -> int:
        self._ensure_session()
        assert self._store is not None
        return self._store.sensor_count

    @property
    def store(self) -> CalibrationStore:
        self._ensure_session()
        assert self._store is not None
        return self._store

    @property
    def port_name(self) -> Optional[str]:
        return self._transport.port_name if self._transport else None

    @property
    def profile_path(self) -> Optional[Path]:
        return self._profile_path

    @profile_path.setter
    def profile_path(self, path: Optional[Union[str, Path]]) -> None:
        self._profile_path = Path(path) if path else None

    def is_connected(self) -> bool:
        """True if a session exists and the link is up."""
        return self._session is not None and self._state is ConnectionState.CONNECTED

    def snapshot(self) -> PadSnapshot:
        """Thread-safe copy of current values and thresholds."""
        return self.store.snapshot()
