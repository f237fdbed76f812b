from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from tablebook.app.models import Shift


def _hhmm(value: datetime) -> str:
    return value.strftime("%H:%M")


def fits_shift(start: datetime, end: datetime, shifts: Sequence[Shift]) -> bool:
    """Return True if [start, end) lies inside at least one shift.

    ``start`` and ``end`` must already be restaurant-local. An empty shift
    list means unrestricted service hours. Intervals that wrap past
    midnight never fit, and neither do shifts whose end precedes their
    start: overnight windows are not supported.
    """
    if not shifts:
        return True

    start_str = _hhmm(start)
    end_str = _hhmm(end)
    if end_str < start_str:
        return False

    return any(start_str >= shift.start and end_str <= shift.end for shift in shifts)
