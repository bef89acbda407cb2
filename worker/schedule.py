"""
Schedule parsing for the crawl loop.

The configured interval is either a duration such as "90s", "30m" or "1h30m",
or a five-field cron expression (minute hour day-of-month month day-of-week).
Anything else falls back to a two hour interval.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import FrozenSet, List, Optional

DEFAULT_INTERVAL = timedelta(hours=2)
MAX_SCAN_MINUTES = 525600  # one year

_UNIT_SECONDS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


class ScheduleError(ValueError):
    pass


def parse_duration(value: str) -> timedelta:
    """Parse a Go-style duration string ("1h30m", "1.5h", "250ms")."""
    text = (value or "").strip()
    if not text:
        raise ScheduleError("empty duration")

    sign = 1
    if text[0] in "+-":
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    if text == "0":
        return timedelta(0)

    total = 0.0
    pos = 0
    while pos < len(text):
        match = _DURATION_PART.match(text, pos)
        if not match:
            raise ScheduleError(f"invalid duration {value!r}")
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        pos = match.end()
    if pos == 0:
        raise ScheduleError(f"invalid duration {value!r}")
    return timedelta(seconds=sign * total)


def _parse_field(expr: str, low: int, high: int) -> FrozenSet[int]:
    expr = expr.strip()
    if not expr:
        raise ScheduleError("empty field")

    values = set()
    for part in expr.split(","):
        part = part.strip()
        if not part:
            continue
        if part == "*":
            values.update(range(low, high + 1))
        elif part.startswith("*/"):
            step_text = part[2:]
            if not step_text.isdecimal() or int(step_text) <= 0:
                raise ScheduleError(f"invalid step {part}")
            values.update(range(low, high + 1, int(step_text)))
        else:
            if not part.isdecimal() or not low <= int(part) <= high:
                raise ScheduleError(f"invalid value {part}")
            values.add(int(part))
    if not values:
        raise ScheduleError("no values parsed")
    return frozenset(values)


@dataclass(frozen=True)
class CronSchedule:
    spec: str
    minutes: FrozenSet[int]
    hours: FrozenSet[int]
    days: FrozenSet[int]
    months: FrozenSet[int]
    weekdays: FrozenSet[int]  # Sunday = 0

    def matches(self, moment: datetime) -> bool:
        return (
            moment.minute in self.minutes
            and moment.hour in self.hours
            and moment.month in self.months
            and moment.day in self.days
            and (moment.weekday() + 1) % 7 in self.weekdays
        )

    def next(self, after: datetime) -> datetime:
        """First matching minute strictly after `after`, in `after`'s timezone."""
        start = after.replace(second=0, microsecond=0) + timedelta(minutes=1)
        for i in range(MAX_SCAN_MINUTES):
            candidate = start + timedelta(minutes=i)
            if self.matches(candidate):
                return candidate
        raise ScheduleError(f"no matching time found for {self.spec!r}")


def parse_cron(spec: str) -> CronSchedule:
    parts: List[str] = (spec or "").split()
    if len(parts) != 5:
        raise ScheduleError("cron spec must have 5 fields")

    bounds = [("minute", 0, 59), ("hour", 0, 23), ("day-of-month", 1, 31), ("month", 1, 12), ("day-of-week", 0, 6)]
    sets = []
    for text, (name, low, high) in zip(parts, bounds):
        try:
            sets.append(_parse_field(text, low, high))
        except ScheduleError as e:
            raise ScheduleError(f"{name}: {e}") from e

    return CronSchedule(spec.strip(), *sets)


@dataclass(frozen=True)
class Schedule:
    """Either a fixed interval or a cron schedule (exactly one is set)."""

    interval: Optional[timedelta] = None
    cron: Optional[CronSchedule] = None


def parse_schedule(value: Optional[str]) -> Schedule:
    text = (value or "").strip()
    if text:
        try:
            interval = parse_duration(text)
        except ScheduleError:
            interval = None
        if interval is not None and interval > timedelta(0):
            return Schedule(interval=interval)
        try:
            return Schedule(cron=parse_cron(text))
        except ScheduleError:
            pass
    return Schedule(interval=DEFAULT_INTERVAL)


__all__ = [
    "DEFAULT_INTERVAL",
    "MAX_SCAN_MINUTES",
    "ScheduleError",
    "CronSchedule",
    "Schedule",
    "parse_duration",
    "parse_cron",
    "parse_schedule",
]
