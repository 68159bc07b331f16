"""Canonical phone form: digits only, country code prefixed (62...)."""
from __future__ import annotations

import re
from typing import Optional

_NON_DIGIT = re.compile(r"\D")
_MIN_LEN = 10
_MAX_LEN = 15


def normalize_phone(raw: Optional[str], *, country_code: str = "62") -> Optional[str]:
    """Return the canonical digit string, or None when *raw* cannot be a phone number.

    ``0812...`` and ``812...`` both become ``62812...``; a leading ``+`` and any
    separators are dropped. WhatsApp suffixes such as ``@c.us`` are ignored.
    """
    if not raw:
        return None
    digits = _NON_DIGIT.sub("", str(raw).split("@", 1)[0])
    if digits.startswith("0"):
        digits = country_code + digits[1:]
    elif digits.startswith("8"):
        digits = country_code + digits
    if not (_MIN_LEN <= len(digits) <= _MAX_LEN):
        return None
    return digits


def is_valid_phone(raw: Optional[str]) -> bool:
    return normalize_phone(raw) is not None
