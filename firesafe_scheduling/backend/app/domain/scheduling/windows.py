# backend/app/domain/scheduling/windows.py
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Optional

from ...config import settings
from ...errors import ValidationError

# "09:30", "9:30", "09:30:00", "9:30 AM", "9:30pm"
_TIME_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})(?::(\d{2}))?\s*([AaPp][Mm])?\s*$")


def local_tz(offset_hours: Optional[int] = None) -> timezone:
    hours = settings.schedule_utc_offset_hours if offset_hours is None else int(offset_hours)
    return timezone(timedelta(hours=hours))


def to_local(dt: datetime, offset_hours: Optional[int] = None) -> datetime:
    if dt.tzinfo is None:
        # naive values inside the service are always UTC
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(local_tz(offset_hours))


def local_today(now: datetime, offset_hours: Optional[int] = None) -> date:
    return to_local(now, offset_hours).date()


def start_of_local_day(now: datetime, offset_hours: Optional[int] = None) -> datetime:
    """Midnight of `now`'s calendar day in the scheduling offset (aware)."""
    d = local_today(now, offset_hours)
    return datetime.combine(d, time(0, 0), tzinfo=local_tz(offset_hours))


@dataclass(frozen=True, order=True)
class TimeOfDay:
    hour: int
    minute: int = 0

    def __post_init__(self) -> None:
        if not (0 <= int(self.hour) <= 23) or not (0 <= int(self.minute) <= 59):
            raise ValidationError(f"invalid time of day {self.hour}:{self.minute}")

    @classmethod
    def from_12h(cls, hour: int, minute: int, period: str) -> "TimeOfDay":
        p = (period or "").strip().upper()
        if p not in ("AM", "PM"):
            raise ValidationError(f"invalid period {period!r}; expected AM or PM")
        h = int(hour)
        if not (1 <= h <= 12):
            raise ValidationError(f"invalid 12-hour clock hour {hour}")
        if p == "AM":
            h = 0 if h == 12 else h
        else:
            h = 12 if h == 12 else h + 12
        return cls(h, int(minute))

    @classmethod
    def parse(cls, v: Any) -> "TimeOfDay":
        if isinstance(v, TimeOfDay):
            return v
        if isinstance(v, time):
            return cls(v.hour, v.minute)
        if not isinstance(v, str) or not v.strip():
            raise ValidationError("time of day is required")

        m = _TIME_RE.match(v)
        if not m:
            raise ValidationError(f"unrecognized time of day {v!r}")
        hh, mm, _ss, period = m.groups()
        if period:
            return cls.from_12h(int(hh), int(mm), period)
        return cls(int(hh), int(mm))

    def as_time(self) -> time:
        return time(self.hour, self.minute)

    def __str__(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"


@dataclass(frozen=True)
class ScheduleWindow:
    """Half-open [start, end) interval of aware datetimes."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.start.tzinfo is None or self.end.tzinfo is None:
            raise ValidationError("schedule bounds must be timezone-aware")
        if self.end <= self.start:
            raise ValidationError("End time must be after start time.")

    @property
    def local_date(self) -> date:
        # start carries the offset the window was built in
        return self.start.date()

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return start < self.end and end > self.start


def build_window(
    day: Optional[date],
    start_time: Any,
    end_time: Any,
    *,
    offset_hours: Optional[int] = None,
) -> ScheduleWindow:
    """
    Normalize a calendar date plus two local times of day into one absolute
    window in the fixed scheduling offset. This is the only place local
    wall-clock input becomes a timestamp.
    """
    if day is None or start_time in (None, "") or end_time in (None, ""):
        raise ValidationError("Please select a date, a start time and an end time.")
    if isinstance(day, datetime):
        day = day.date()

    tz = local_tz(offset_hours)
    s = TimeOfDay.parse(start_time)
    e = TimeOfDay.parse(end_time)
    return ScheduleWindow(
        start=datetime.combine(day, s.as_time(), tzinfo=tz),
        end=datetime.combine(day, e.as_time(), tzinfo=tz),
    )
