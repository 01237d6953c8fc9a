"""
Device Session Registry
=======================

In-memory state the gateway keeps for every sensor it has heard from: the
last source address, a short ring of recent log lines, the current status
line and the last known state of the control pin.

All access goes through :class:`DeviceSessionRegistry`, which serialises
every operation on one lock and only ever hands out copies.
"""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Deque, Dict, List, Optional, Tuple
import logging

from ..utils.exceptions import UnknownIdentifierError
from ..utils.identifiers import normalize_identifier

logger = logging.getLogger(__name__)

Address = Tuple[str, int]

DEFAULT_CAPACITY = 32
RECENT_LINES_CAPACITY = 64
MAX_LINE_BYTES = 127
MAX_LIVE_TEXT_BYTES = 8192


class OutputState(Enum):
    """Last known state of a sensor's control pin."""
    HIGH = "high"
    LOW = "low"
    UNKNOWN = "unknown"


def truncate_utf8(text: str, limit: int) -> str:
    """Cut ``text`` to at most ``limit`` encoded bytes without splitting a character."""
    encoded = text.encode("utf-8")
    if len(encoded) <= limit:
        return text
    return encoded[:limit].decode("utf-8", errors="ignore")


@dataclass
class DeviceSession:
    """Per-device state; only mutated under the registry lock."""
    id: str
    last_address: Optional[Address] = None
    recent_lines: Deque[str] = field(default_factory=lambda: deque(maxlen=RECENT_LINES_CAPACITY))
    live_text: str = ""
    last_output_state: OutputState = OutputState.UNKNOWN

    def append_line(self, line: str):
        self.recent_lines.append(truncate_utf8(line, MAX_LINE_BYTES))
        self.live_text = truncate_utf8(line, MAX_LIVE_TEXT_BYTES)

    def snapshot(self) -> DeviceSession:
        return DeviceSession(
            id=self.id,
            last_address=self.last_address,
            recent_lines=deque(self.recent_lines, maxlen=RECENT_LINES_CAPACITY),
            live_text=self.live_text,
            last_output_state=self.last_output_state,
        )


class DeviceSessionRegistry:
    """Fixed-capacity, lock-guarded map of identifier -> :class:`DeviceSession`."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        self.capacity = capacity
        self._sessions: Dict[str, DeviceSession] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    def _get_or_create(self, identifier: str) -> Optional[DeviceSession]:
        key = normalize_identifier(identifier)
        session = self._sessions.get(key)
        if session is None:
            if len(self._sessions) >= self.capacity:
                return None
            session = DeviceSession(id=identifier)
            self._sessions[key] = session
            logger.info(f"New device session: {identifier}")
        return session

    def _require(self, identifier: str) -> DeviceSession:
        session = self._sessions.get(normalize_identifier(identifier))
        if session is None:
            raise UnknownIdentifierError(identifier)
        return session

    def _find_by_address(self, address: Address) -> Optional[DeviceSession]:
        # Devices may send from a fresh source port, so match on host only
        for session in self._sessions.values():
            if session.last_address and session.last_address[0] == address[0]:
                return session
        return None

    # ------------------------------------------------------------------
    def record_line(self, identifier: str, line: str, address: Address,
                    output_state: Optional[OutputState] = None) -> bool:
        """Attribute a log line to ``identifier``, creating its session if room.

        Returns ``False`` when the registry is full and the identifier unknown.
        """
        with self._lock:
            session = self._get_or_create(identifier)
            if session is None:
                return False
            session.last_address = address
            session.append_line(line)
            if output_state is not None:
                session.last_output_state = output_state
            return True

    def record_line_by_address(self, address: Address, line: str,
                               output_state: Optional[OutputState] = None) -> Optional[str]:
        """Attribute a log line by source address; returns the matched identifier."""
        with self._lock:
            session = self._find_by_address(address)
            if session is None:
                return None
            session.append_line(line)
            if output_state is not None:
                session.last_output_state = output_state
            return session.id

    def touch(self, identifier: str, address: Address) -> bool:
        """Record the latest source address of ``identifier``."""
        with self._lock:
            session = self._get_or_create(identifier)
            if session is None:
                return False
            session.last_address = address
            return True

    # ------------------------------------------------------------------
    def address_of(self, identifier: str) -> Optional[Address]:
        with self._lock:
            return self._require(identifier).last_address

    def recent_lines(self, identifier: str) -> List[str]:
        """Recent log lines, oldest first."""
        with self._lock:
            return list(self._require(identifier).recent_lines)

    def live_text(self, identifier: str) -> str:
        with self._lock:
            return self._require(identifier).live_text

    def output_state(self, identifier: str) -> OutputState:
        with self._lock:
            return self._require(identifier).last_output_state

    def get(self, identifier: str) -> DeviceSession:
        """Copy of the whole session."""
        with self._lock:
            return self._require(identifier).snapshot()

    def identifiers(self) -> List[str]:
        with self._lock:
            return [session.id for session in self._sessions.values()]

    def __contains__(self, identifier: object) -> bool:
        if not isinstance(identifier, str):
            return False
        with self._lock:
            return normalize_identifier(identifier) in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
