"""Daily time windows that decide when traffic may run.

A window string looks like ``"12:00-13:00, 23:00-01:00"``. A window whose end is
earlier than its start runs through midnight.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from netflood.errors import InvalidTimeSpec

MINUTES_PER_DAY = 24 * 60
DISABLED_LABEL = "全天候运行"

_DIGITS = re.compile(r"\d+", re.ASCII)


@dataclass(frozen=True)
class TimeWindow:
    start_minute: int
    end_minute: int

    @property
    def wraps(self) -> bool:
        return self.end_minute < self.start_minute

    def contains(self, minute: int) -> bool:
        if self.wraps:
            return minute >= self.start_minute or minute < self.end_minute
        return self.start_minute <= minute < self.end_minute

    def minutes_until_start(self, minute: int) -> int:
        if self.start_minute > minute:
            return self.start_minute - minute
        return MINUTES_PER_DAY - minute + self.start_minute

    def __str__(self) -> str:
        return f"{_fmt(self.start_minute)}-{_fmt(self.end_minute)}"


def _fmt(minute: int) -> str:
    return f"{minute // 60:02d}:{minute % 60:02d}"


def _parse_clock(text: str) -> int:
    parts = text.split(":")
    if len(parts) != 2:
        raise InvalidTimeSpec(f"invalid time {text!r} (expected HH:MM)")
    fields = [p.strip() for p in parts]
    if not all(_DIGITS.fullmatch(f) for f in fields):
        raise InvalidTimeSpec(f"invalid time {text!r} (expected HH:MM)")
    hour, minute = int(fields[0]), int(fields[1])
    if not 0 <= hour <= 23:
        raise InvalidTimeSpec(f"hour must be between 0 and 23: {hour}")
    if not 0 <= minute <= 59:
        raise InvalidTimeSpec(f"minute must be between 0 and 59: {minute}")
    return hour * 60 + minute


def parse_time_spec(ranges: str) -> List[TimeWindow]:
    """Parse ``HH:MM-HH:MM[,HH:MM-HH:MM...]`` into windows.

    Raises InvalidTimeSpec if any range is malformed; nothing is accepted
    partially.
    """
    windows: List[TimeWindow] = []
    for part in ranges.split(","):
        part = part.strip()
        if not part:
            continue
        bounds = part.split("-")
        if len(bounds) != 2:
            raise InvalidTimeSpec(f"invalid time range {part!r} (expected HH:MM-HH:MM)")
        start, end = bounds[0].strip(), bounds[1].strip()
        windows.append(TimeWindow(_parse_clock(start), _parse_clock(end)))

    if not windows:
        raise InvalidTimeSpec("no valid time ranges")
    return windows


def _minute_of_day(now: Optional[datetime]) -> Tuple[datetime, int]:
    now = now or datetime.now()
    return now, now.hour * 60 + now.minute


class TimeGate:
    """Set of daily windows. An empty string disables the gate."""

    def __init__(self, windows: Optional[List[TimeWindow]] = None):
        self.windows: Tuple[TimeWindow, ...] = tuple(windows or ())

    @classmethod
    def parse(cls, ranges: Optional[str]) -> "TimeGate":
        if not ranges or not ranges.strip():
            return cls()
        return cls(parse_time_spec(ranges))

    @property
    def enabled(self) -> bool:
        return bool(self.windows)

    def is_in_range(self, now: Optional[datetime] = None) -> bool:
        if not self.enabled:
            return True
        _, minute = _minute_of_day(now)
        return any(w.contains(minute) for w in self.windows)

    def wait_until_next(self, now: Optional[datetime] = None) -> int:
        """Minutes until the nearest window opens, 0 when already inside one."""
        now, minute = _minute_of_day(now)
        if self.is_in_range(now):
            return 0
        return min(w.minutes_until_start(minute) for w in self.windows)

    def next_start(self, now: Optional[datetime] = None) -> datetime:
        now = now or datetime.now()
        return now + timedelta(minutes=self.wait_until_next(now))

    def __str__(self) -> str:
        if not self.enabled:
            return DISABLED_LABEL
        return ", ".join(str(w) for w in self.windows)

    def __repr__(self) -> str:
        return f"TimeGate({str(self)!r})"
