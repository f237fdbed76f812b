"""Half-open interval overlap in a restaurant's timezone.

Stored instants can carry different UTC offsets (DST changes, clients in
other zones), so both operands are moved into the restaurant's zone
before comparing. Comparison itself is done on absolute timestamps:
two aware datetimes sharing a tzinfo compare by wall clock in Python,
which is wrong across a DST fold.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import NamedTuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from tablebook.app.core.errors import InvalidInput


class Interval(NamedTuple):
    start: datetime
    end: datetime

    def overlaps(self, other: "Interval") -> bool:
        # [s1, e1) and [s2, e2) overlap iff s1 < e2 and s2 < e1.
        return (
            self.start.timestamp() < other.end.timestamp()
            and other.start.timestamp() < self.end.timestamp()
        )


@lru_cache(maxsize=128)
def resolve_zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidInput(f"Unknown timezone {name!r}") from exc


def to_zone(value: datetime, tz_name: str) -> datetime:
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        raise InvalidInput("datetime must include timezone information")
    return value.astimezone(resolve_zone(tz_name))


def make_interval(start: datetime, end: datetime, tz_name: str) -> Interval:
    return Interval(to_zone(start, tz_name), to_zone(end, tz_name))


def shift_by(start: datetime, minutes: int) -> datetime:
    """Add an absolute duration, keeping the result in ``start``'s zone."""
    moved = start.astimezone(timezone.utc) + timedelta(minutes=minutes)
    return moved.astimezone(start.tzinfo)


def any_overlap(candidate: Interval, intervals) -> bool:
    return any(candidate.overlaps(other) for other in intervals)
