"""
Time-slot conflict detection.

Intervals are half-open [start, end). Everything here is pure and works on
in-memory bookings; callers decide what to do with the result.
"""
from typing import Iterable, List, Optional

from booking_sync.models.booking import Booking


def to_minutes(value: str) -> int:
    """'HH:MM' -> minutes since midnight. Raises ValueError on bad input."""
    hours, minutes = value.split(":")
    hours, minutes = int(hours), int(minutes)
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        raise ValueError(f"Time out of range: {value}")
    return hours * 60 + minutes


def from_minutes(total: int) -> str:
    return f"{total // 60:02d}:{total % 60:02d}"


def intervals_overlap(s1: int, e1: int, s2: int, e2: int) -> bool:
    return s1 < e2 and s2 < e1


def find_conflicts(date: str, start: str, end: str, bookings: Iterable[Booking],
                   exclude_id: Optional[str] = None) -> List[Booking]:
    """
    Active bookings on `date` that overlap [start, end).
    An empty or inverted candidate overlaps nothing.
    """
    s1, e1 = to_minutes(start), to_minutes(end)
    if e1 <= s1:
        return []

    conflicts = []
    for b in bookings:
        if not b.is_active or b.date != date:
            continue
        if exclude_id is not None and b.id == exclude_id:
            continue
        try:
            s2, e2 = to_minutes(b.startTime), to_minutes(b.endTime)
        except ValueError:
            # Legacy records with unreadable times can't be compared
            continue
        if intervals_overlap(s1, e1, s2, e2):
            conflicts.append(b)
    return conflicts


def has_conflict(date: str, start: str, end: str, bookings: Iterable[Booking]) -> bool:
    return bool(find_conflicts(date, start, end, bookings))
