"""
fulfillment.config.dispatch – timing and shift rules for dispatch and the schedulers.

Env vars: OFFER_TIMEOUT_SECONDS, RETRY_INTERVAL_SECONDS, AUTO_CANCEL_INTERVAL_SECONDS,
AUTO_CANCEL_AGE_HOURS, AUTO_CANCEL_BATCH_SIZE, DRAFT_TTL_SECONDS, NOTICE_TTL_SECONDS,
DISPATCH_TIMEZONE, SHIFT_1_WINDOW, SHIFT_2_WINDOW, DEFAULT_COUNTRY_CODE.
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from datetime import time
from typing import Dict, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

_WINDOW_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*-\s*(\d{1,2}):(\d{2})\s*$")

ShiftWindow = Tuple[time, time]


def parse_window(raw: str) -> ShiftWindow:
    """Parse ``"HH:MM-HH:MM"`` into a (start, end) pair of times."""
    match = _WINDOW_RE.match(raw or "")
    if not match:
        raise ValueError(f"shift window must look like HH:MM-HH:MM, got {raw!r}")
    h1, m1, h2, m2 = (int(g) for g in match.groups())
    if not (0 <= h1 <= 23 and 0 <= h2 <= 23 and 0 <= m1 <= 59 and 0 <= m2 <= 59):
        raise ValueError(f"invalid clock time in shift window {raw!r}")
    start, end = time(h1, m1), time(h2, m2)
    if start == end:
        raise ValueError(f"shift window {raw!r} is empty")
    return start, end


def _minutes(window: ShiftWindow) -> set[int]:
    start = window[0].hour * 60 + window[0].minute
    end = window[1].hour * 60 + window[1].minute
    if start < end:
        return set(range(start, end))
    return set(range(start, 24 * 60)) | set(range(0, end))


def _default_shifts() -> Dict[int, ShiftWindow]:
    return {1: parse_window("06:00-14:00"), 2: parse_window("14:00-22:00")}


@dataclass(frozen=True)
class DispatchConfig:
    """Dispatch, retry, auto-cancel and draft-session settings."""

    offer_timeout_seconds: int = 180
    """How long a courier keeps first refusal on an offered order."""

    retry_interval_seconds: int = 60
    auto_cancel_interval_seconds: int = 1800
    auto_cancel_age_hours: int = 20
    auto_cancel_batch_size: int = 100
    """Upper bound on orders handled per scheduler pass."""

    draft_ttl_seconds: int = 3600
    notice_ttl_seconds: int = 86400
    """Lifetime of the once-per-order customer notice flags."""

    timezone: str = "Asia/Jakarta"
    shifts: Dict[int, ShiftWindow] = field(default_factory=_default_shifts)
    """shift_code -> (start, end) in local wall-clock time, end exclusive."""

    default_country_code: str = "62"

    def __post_init__(self) -> None:
        for name in (
            "offer_timeout_seconds",
            "retry_interval_seconds",
            "auto_cancel_interval_seconds",
            "auto_cancel_age_hours",
            "auto_cancel_batch_size",
            "draft_ttl_seconds",
            "notice_ttl_seconds",
        ):
            value = getattr(self, name)
            if not isinstance(value, int) or value < 1:
                raise ValueError(f"{name} must be a positive integer, got {value!r}")
        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown timezone {self.timezone!r}") from exc
        if not self.shifts:
            raise ValueError("at least one shift window is required")
        seen: set[int] = set()
        for code, window in sorted(self.shifts.items()):
            minutes = _minutes(window)
            if seen & minutes:
                raise ValueError(f"shift {code} overlaps another shift window")
            seen |= minutes
        if not self.default_country_code.isdigit():
            raise ValueError("default_country_code must contain digits only")

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @classmethod
    def from_env(cls, **overrides: object) -> DispatchConfig:
        def _int(attr: str, env_name: str, default: int) -> int:
            value = overrides.get(attr)
            if value is not None:
                return int(value)  # type: ignore[arg-type]
            return int(os.environ.get(env_name, default))

        shifts = overrides.get("shifts")
        if shifts is None:
            shifts = {
                1: parse_window(os.environ.get("SHIFT_1_WINDOW", "06:00-14:00")),
                2: parse_window(os.environ.get("SHIFT_2_WINDOW", "14:00-22:00")),
            }
        return cls(
            offer_timeout_seconds=_int("offer_timeout_seconds", "OFFER_TIMEOUT_SECONDS", 180),
            retry_interval_seconds=_int("retry_interval_seconds", "RETRY_INTERVAL_SECONDS", 60),
            auto_cancel_interval_seconds=_int("auto_cancel_interval_seconds", "AUTO_CANCEL_INTERVAL_SECONDS", 1800),
            auto_cancel_age_hours=_int("auto_cancel_age_hours", "AUTO_CANCEL_AGE_HOURS", 20),
            auto_cancel_batch_size=_int("auto_cancel_batch_size", "AUTO_CANCEL_BATCH_SIZE", 100),
            draft_ttl_seconds=_int("draft_ttl_seconds", "DRAFT_TTL_SECONDS", 3600),
            notice_ttl_seconds=_int("notice_ttl_seconds", "NOTICE_TTL_SECONDS", 86400),
            timezone=str(overrides.get("timezone") or os.environ.get("DISPATCH_TIMEZONE", "Asia/Jakarta")),
            shifts=shifts,  # type: ignore[arg-type]
            default_country_code=str(
                overrides.get("default_country_code") or os.environ.get("DEFAULT_COUNTRY_CODE", "62")
            ),
        )


def load_dispatch_config(**overrides: object) -> DispatchConfig:
    return DispatchConfig.from_env(**overrides)
