"""Append-only log of inbound UDP packets.

Every datagram the gateway accepts is written as one line::

    2024-05-01 12:00:00 192.168.1.40:4210 70:55:88:11:22:33 3.20

The file is opened lazily on the first write and flushed after every line so
it can be followed with ``tail -f`` while the gateway runs.
"""

from __future__ import annotations

from datetime import datetime
import threading
from pathlib import Path
from typing import Optional, TextIO, Tuple
import logging


logger = logging.getLogger(__name__)


class PacketLog:
    """Timestamped packet log shared by the gateway receive thread."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        self._handle: Optional[TextIO] = None

    # ------------------------------------------------------------------
    def write(self, address: Tuple[str, int], payload: str) -> None:
        """Append one packet line; disk errors are logged, never raised."""

        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        line = f"{timestamp} {address[0]}:{address[1]} {payload}\n"

        with self._lock:
            try:
                if self._handle is None:
                    self.path.parent.mkdir(parents=True, exist_ok=True)
                    self._handle = self.path.open("a", encoding="utf-8")
                self._handle.write(line)
                self._handle.flush()
            except OSError:
                logger.debug("Failed to write packet log %s", self.path, exc_info=True)

    # ------------------------------------------------------------------
    def close(self) -> None:
        with self._lock:
            if self._handle:
                try:
                    self._handle.close()
                except OSError:  # pragma: no cover - close best effort
                    logger.debug("Failed to close packet log", exc_info=True)
                finally:
                    self._handle = None


__all__ = ["PacketLog"]
