"""Single-day slot generation.

Everything here is a pure function of its arguments, so it can be called from
any number of request threads at once.
"""

from datetime import date, time
from typing import Iterable

from booking_engine.core.errors import InvalidParameters
from booking_engine.scheduling.types import (
    AvailabilityWindow,
    Break,
    BusyInterval,
    Slot,
    minutes_of,
    time_from_minutes,
)


def overlaps(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    """Half-open interval overlap: touching endpoints do not overlap."""
    return start_a < end_b and start_b < end_a


def _blocking_intervals(
    breaks: Iterable[Break],
    appointments: Iterable[BusyInterval],
) -> list[tuple[int, int]]:
    blocked = [
        (minutes_of(brk.start_time), minutes_of(brk.end_time))
        for brk in breaks
        if brk.is_active
    ]
    blocked.extend(
        (minutes_of(busy.start_time), minutes_of(busy.end_time))
        for busy in appointments
        if busy.is_blocking
    )
    return blocked


def generate_slots(
    slot_date: date,
    windows: Iterable[AvailabilityWindow],
    breaks: Iterable[Break],
    appointments: Iterable[BusyInterval],
    slot_duration_minutes: int,
) -> list[Slot]:
    """Free ``slot_duration_minutes`` slots for one day, sorted by start time.

    Inputs must already be narrowed to ``slot_date`` (windows and breaks to its
    day of week, appointments to the date). Each window is stepped from its own
    start; a trailing remainder shorter than one duration is not offered.
    Overlapping windows are merged by start time.
    """
    if slot_duration_minutes <= 0:
        raise InvalidParameters('Slot duration must be a positive number of minutes.')

    blocked = _blocking_intervals(breaks, appointments)
    free_by_start: dict[int, int] = {}

    for window in windows:
        if not window.is_active:
            continue

        window_end = minutes_of(window.end_time)
        slot_start = minutes_of(window.start_time)

        while slot_start + slot_duration_minutes <= window_end:
            slot_end = slot_start + slot_duration_minutes
            if not any(overlaps(slot_start, slot_end, start, end) for start, end in blocked):
                free_by_start.setdefault(slot_start, slot_end)
            slot_start = slot_end

    return [
        Slot(date=slot_date, start_time=time_from_minutes(start), end_time=time_from_minutes(end))
        for start, end in sorted(free_by_start.items())
    ]


def interval_is_blocked(
    start_time: time,
    end_time: time,
    breaks: Iterable[Break],
    appointments: Iterable[BusyInterval],
) -> bool:
    start, end = minutes_of(start_time), minutes_of(end_time)
    return any(overlaps(start, end, b_start, b_end) for b_start, b_end in _blocking_intervals(breaks, appointments))


def fits_in_window(start_time: time, end_time: time, windows: Iterable[AvailabilityWindow]) -> bool:
    return any(
        window.is_active and window.start_time <= start_time and end_time <= window.end_time
        for window in windows
    )
