"""
Sensor Device Access
====================

Locates USB-serial sensor boards and reads their raw serial output.
Used by the provisioning workflow to find the board to flash and to listen
for the hardware identifier it announces after boot.
"""

import os
import serial
import serial.tools.list_ports
from serial.tools.list_ports_common import ListPortInfo
from pathlib import Path
from typing import List, Optional
import logging

from ..utils.exceptions import SerialOpenError, SerialReadError

logger = logging.getLogger(__name__)

DEFAULT_DEVICE_DIR = Path("/dev")
SERIAL_PREFIXES = ("ttyACM", "ttyUSB")
DEFAULT_BAUD_RATE = 115200


def find_first_serial_port(device_dir: Path = DEFAULT_DEVICE_DIR) -> Optional[str]:
    """Return the first USB-serial node in ``device_dir``.

    Entries are taken in directory order, which is not sorted; with several
    boards attached any of them may be returned.
    """
    try:
        with os.scandir(device_dir) as entries:
            for entry in entries:
                if entry.name.startswith(SERIAL_PREFIXES):
                    return str(Path(device_dir) / entry.name)
    except OSError as e:
        logger.warning(f"Cannot list {device_dir}: {e}")
    return None


def list_serial_ports() -> List[ListPortInfo]:
    """List attached ports whose device node looks like a USB-serial board."""
    return [
        port for port in serial.tools.list_ports.comports()
        if Path(port.device).name.startswith(SERIAL_PREFIXES)
    ]


class SerialConnection:
    """Raw, non-blocking, read-side serial connection to a sensor board."""

    def __init__(self, port: str, baud_rate: int = DEFAULT_BAUD_RATE):
        self.port = port
        self.baud_rate = baud_rate
        self.connection: Optional[serial.Serial] = None

    @property
    def is_open(self) -> bool:
        return self.connection is not None and self.connection.is_open

    def open(self) -> "SerialConnection":
        """Open the port in raw 8N1 mode without flow control.

        pyserial opens the node with ``O_NOCTTY`` and sets ``CLOCAL | CREAD``,
        so the board's line is owned locally and never becomes our controlling
        terminal.  pyserial has no read-only mode: the node is opened
        ``O_RDWR`` even though this class only ever reads from it.
        """
        try:
            self.connection = serial.Serial(
                port=self.port,
                baudrate=self.baud_rate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                xonxoff=False,
                rtscts=False,
                dsrdtr=False,
                timeout=0,
            )
        except (serial.SerialException, OSError, ValueError) as e:
            self.connection = None
            raise SerialOpenError(f"Failed to open {self.port}: {e}") from e

        logger.debug(f"Opened {self.port} at {self.baud_rate} baud")
        return self

    def close(self):
        """Close the port; safe to call more than once."""
        if self.connection is not None:
            try:
                self.connection.close()
            except (serial.SerialException, OSError) as e:
                logger.debug(f"Error closing {self.port}: {e}")
            self.connection = None
            logger.debug(f"Closed {self.port}")

    def read_byte(self, timeout: float = 0.0) -> Optional[bytes]:
        """Wait up to ``timeout`` seconds for one byte.

        Returns ``None`` when nothing arrived in time.
        """
        if not self.is_open:
            raise SerialReadError(f"{self.port} is not open")

        try:
            if self.connection.timeout != timeout:
                self.connection.timeout = timeout
            data = self.connection.read(1)
        except (serial.SerialException, OSError) as e:
            raise SerialReadError(str(e)) from e

        return data or None

    def __enter__(self) -> "SerialConnection":
        if not self.is_open:
            self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Sensor serial devices")
    parser.add_argument("--dir", type=Path, default=DEFAULT_DEVICE_DIR, help="Device directory")
    args = parser.parse_args()

    found = find_first_serial_port(args.dir)
    print(found or "No serial device found")
