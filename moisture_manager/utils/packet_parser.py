"""Parsing of inbound sensor datagrams.

Two independent questions are asked of every payload:

* is it a telemetry reading (``"<id> <value>"`` or ``"<id>,<value>"``)?
* does it report the state of the sensor's control pin?

Each question is answered by an ordered tuple of matchers.  The first matcher
that claims the text wins, so precedence is fixed by the order of the tuple.
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from .identifiers import MAX_IDENTIFIER_LENGTH

MIN_READING = 0.0
MAX_READING = 5.0


@dataclass(frozen=True)
class Reading:
    """A validated telemetry reading."""
    identifier: str
    value: float


@dataclass(frozen=True)
class OutputReport:
    """A control pin state reported or acknowledged by a device."""
    pin: int
    high: bool


@dataclass(frozen=True)
class _TelemetryMatcher:
    name: str
    pattern: re.Pattern[str]

    def match(self, text: str) -> Optional[Reading]:
        m = self.pattern.fullmatch(text)
        if not m:
            return None

        identifier = m.group("id")
        if len(identifier) > MAX_IDENTIFIER_LENGTH:
            return None

        try:
            value = float(m.group("value"))
        except ValueError:
            return None

        if not math.isfinite(value) or not MIN_READING <= value <= MAX_READING:
            return None
        return Reading(identifier, value)


TELEMETRY_MATCHERS: Tuple[_TelemetryMatcher, ...] = (
    _TelemetryMatcher("space", re.compile(r"\s*(?P<id>[^\s,]+)\s+(?P<value>[^\s,]+)\s*")),
    _TelemetryMatcher("comma", re.compile(r"\s*(?P<id>[^\s,]+)\s*,\s*(?P<value>[^\s,]+)\s*")),
)


def _state_report(m: "re.Match[str]") -> OutputReport:
    return OutputReport(pin=int(m.group("pin")), high=m.group("state").upper() == "HIGH")


def _command_ack(m: "re.Match[str]") -> OutputReport:
    return OutputReport(pin=int(m.group("pin")), high=m.group("state") == "1")


OUTPUT_STATE_MATCHERS: Tuple[Tuple[re.Pattern[str], Callable[["re.Match[str]"], OutputReport]], ...] = (
    (re.compile(r"CONTROL_PIN \(D(?P<pin>\d+)\) state:\s*(?P<state>HIGH|LOW)\b"), _state_report),
    (re.compile(r"CMD:\s*set\s+D(?P<pin>\d+)\s*=\s*(?P<state>[01])\b"), _command_ack),
    (re.compile(r"CMD\s+D(?P<pin>\d+)\s+(?P<state>[01])\b"), _command_ack),
)


def parse_telemetry(text: str) -> Optional[Reading]:
    """Return the reading carried by ``text`` or ``None`` if it is not one.

    Out-of-range and non-numeric values are rejected.
    """
    for matcher in TELEMETRY_MATCHERS:
        reading = matcher.match(text)
        if reading is not None:
            return reading
    return None


def parse_output_state(text: str) -> Optional[OutputReport]:
    """Return the control pin state reported anywhere in ``text``."""
    for pattern, build in OUTPUT_STATE_MATCHERS:
        m = pattern.search(text)
        if m:
            return build(m)
    return None


__all__ = [
    "MAX_READING",
    "MIN_READING",
    "OutputReport",
    "Reading",
    "parse_output_state",
    "parse_telemetry",
]
