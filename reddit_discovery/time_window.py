from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone

DEFAULT_WINDOW_DAYS = 7

_WINDOW_RE = re.compile(r"^(\d+)([hdw])$")


@dataclass(frozen=True)
class TimeWindow:
    """Inclusive [start, end] range of tz-aware UTC datetimes."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.start.tzinfo is None or self.end.tzinfo is None:
            raise ValueError("start and end must be timezone-aware")
        if self.end < self.start:
            raise ValueError("end must be >= start")

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end


def parse_window_days(value: str | None) -> int:
    """
    Convert a window like "24h", "7d" or "2w" into whole days.

    Hours round up to the next day. Anything unparseable falls back to 7 days.
    """
    match = _WINDOW_RE.fullmatch((value or "").strip())
    if match is None:
        return DEFAULT_WINDOW_DAYS

    amount = int(match.group(1))
    unit = match.group(2)
    if unit == "h":
        return math.ceil(amount / 24)
    if unit == "w":
        return amount * 7
    return amount


def window_for_days(days: int, *, now: datetime | None = None) -> TimeWindow:
    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)
    current = current.astimezone(timezone.utc)

    start_day = (current - timedelta(days=max(0, int(days)))).date()
    start = datetime.combine(start_day, time.min, tzinfo=timezone.utc)
    end = datetime.combine(current.date(), time.max, tzinfo=timezone.utc)
    return TimeWindow(start=start, end=end)


def time_window_for(value: str | None, *, now: datetime | None = None) -> TimeWindow:
    return window_for_days(parse_window_days(value), now=now)
