"""Hardware identifier helpers.

Sensors announce themselves with a MAC-address-shaped identifier of the form
``aa:bb:cc:dd:ee:ff``.  The helpers here find such an identifier inside free
text (serial boot banners, UDP log lines) and normalise it for lookups.
"""
from __future__ import annotations

import re
from typing import Optional

# Longest identifier token accepted in a telemetry or log line
MAX_IDENTIFIER_LENGTH = 31

_IDENTIFIER_RE = re.compile(r"[0-9A-Fa-f]{2}(?::[0-9A-Fa-f]{2}){5}")


def extract_identifier(text: str) -> Optional[str]:
    """Return the first ``xx:xx:xx:xx:xx:xx`` window in ``text``, case preserved."""
    if not text:
        return None
    match = _IDENTIFIER_RE.search(text)
    return match.group(0) if match else None


def looks_like_identifier(token: str) -> bool:
    """True when a leading log token names a device.

    Devices prefix their log lines with their identifier, which always
    contains a colon; the MAC shape itself is not enforced.
    """
    return bool(token) and ":" in token and len(token) <= MAX_IDENTIFIER_LENGTH


def normalize_identifier(identifier: str) -> str:
    return identifier.strip().lower()


__all__ = [
    "MAX_IDENTIFIER_LENGTH",
    "extract_identifier",
    "looks_like_identifier",
    "normalize_identifier",
]
