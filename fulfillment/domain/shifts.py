"""Map wall-clock time to the courier shift currently being served."""
from __future__ import annotations

from datetime import datetime, time, timezone
from typing import Mapping, Optional, Tuple
from zoneinfo import ZoneInfo

ShiftWindow = Tuple[time, time]


def in_window(moment: time, window: ShiftWindow) -> bool:
    """Half-open ``[start, end)`` check; windows with end < start wrap past midnight."""
    start, end = window
    if start < end:
        return start <= moment < end
    return moment >= start or moment < end


def current_shift(
    now: datetime,
    shifts: Mapping[int, ShiftWindow],
    tz: ZoneInfo,
) -> Optional[int]:
    """Return the shift code whose window contains *now* (local time), or None."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    local = now.astimezone(tz).time().replace(tzinfo=None)
    for code, window in sorted(shifts.items()):
        if in_window(local, window):
            return code
    return None
