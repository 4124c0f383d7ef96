#!/usr/bin/env python3
"""
Headless pad runner: poll the pad, keep it connected, persist thresholds.

Usage:
    python run_pad.py [device] [profile]

With no device the first USB serial port is used. With no profile,
thresholds are neither loaded nor saved.
"""

import argparse
import logging
import os
import signal
import sys
import time
from typing import List, Optional

from danspad_lib import PadController, protocol
from danspad_lib.errors import DeviceOpenError, SerialIOError
from danspad_lib.models import ConnectionState

logger = logging.getLogger("run_pad")


class _Quit(Exception):
    pass


def _raise_quit(signum, frame):
    raise _Quit()


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Poll a danspad sensor pad")
    parser.add_argument("device", nargs="?", default=None, help="Serial device (default: first USB port)")
    parser.add_argument("profile", nargs="?", default=None, help="Threshold profile file")
    parser.add_argument("--baud", type=int, default=protocol.DEFAULT_BAUD)
    parser.add_argument("--interval", type=float, default=0.0, help="Idle seconds between polls")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log wire traffic")
    args = parser.parse_args(argv)

    level = logging.DEBUG if args.verbose else os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    pad = PadController(profile_path=args.profile)

    try:
        pad.connect(port=args.device, baud=args.baud)
    except DeviceOpenError as e:
        logger.error(f"Failed to open pad: {e}")
        return 1
    except SerialIOError as e:
        logger.error(f"Pad stopped responding during startup: {e}")
        return 3

    previous_handler = signal.signal(signal.SIGTERM, _raise_quit)

    last_pressed: List[bool] = []
    last_state = pad.state

    with pad:
        try:
            while True:
                state = pad.tick()
                if state is not last_state:
                    logger.info(f"Pad {state.value}")
                    last_state = state

                if state is ConnectionState.CONNECTED:
                    pressed = pad.snapshot().pressed
                    if pressed != last_pressed:
                        active = [i for i, p in enumerate(pressed) if p]
                        logger.info(f"Pressed sensors: {active}")
                        last_pressed = pressed

                wait = args.interval
                if state is ConnectionState.DISCONNECTED:
                    # One reopen attempt per read-timeout window
                    wait = max(wait, protocol.READ_TIMEOUT_S)
                if wait > 0:
                    time.sleep(wait)
        except (KeyboardInterrupt, _Quit):
            logger.info("Quit requested")
        finally:
            signal.signal(signal.SIGTERM, previous_handler)

    return 0


if __name__ == "__main__":
    sys.exit(main())
