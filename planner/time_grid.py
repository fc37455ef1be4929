# planner/time_grid.py

import math
from typing import List, Sequence, Union
import datetime as dt

from .models import TimeGridConfig, TimeSlot, parse_time_to_minutes

# Pixel height of one slot for each supported interval. Shared by rendering and
# by every place that turns a vertical pixel delta back into slots.
SLOT_HEIGHT_PX = {
    15: 20,
    30: 32,
    60: 48,
}


def format_slot_label(hour: int, minute: int) -> str:
    """Formats a grid point as a 12-hour label, e.g. '9:00 AM' or '1:30 PM'."""
    display_hour = hour - 12 if hour > 12 else (12 if hour == 0 else hour)
    suffix = "PM" if hour >= 12 else "AM"
    return f"{display_hour}:{minute:02d} {suffix}"


def build_slots(config: TimeGridConfig) -> List[TimeSlot]:
    """
    Enumerates every grid point from start_hour:00 through end_hour:(60 - interval).

    Args:
        config: The grid configuration.

    Returns:
        The slots in strictly increasing order, spaced `config.interval` minutes apart.
    """
    slots: List[TimeSlot] = []
    for hour in range(config.start_hour, config.end_hour + 1):
        for minute in range(0, 60, config.interval):
            slots.append(TimeSlot(
                hour=hour,
                minute=minute,
                label=format_slot_label(hour, minute),
                is_hour=minute == 0,
            ))
    return slots


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def infer_interval(slots: Sequence[TimeSlot]) -> int:
    if len(slots) > 1:
        return slots[1].minutes - slots[0].minutes
    return 60


def time_to_slot_index(time_value: Union[str, dt.time], slots: Sequence[TimeSlot]) -> int:
    """
    Maps a time of day to a slot index.

    An exact (hour, minute) match wins. Times that do not land on a grid point
    (legacy data recorded with another interval, or a 24:00 end) are placed by
    rounding their distance from the first slot in units of the inferred
    interval; a time equal to the end of the grid maps to len(slots). The
    result is always within [0, len(slots)].
    """
    if not slots:
        return 0
    minutes = parse_time_to_minutes(time_value)
    for index, slot in enumerate(slots):
        if slot.minutes == minutes:
            return index

    first_minutes = slots[0].minutes
    interval = infer_interval(slots)
    grid_end_minutes = slots[-1].minutes + interval
    if minutes == grid_end_minutes:
        return len(slots)
    index = _round_half_up((minutes - first_minutes) / interval)
    return max(0, min(index, len(slots)))


def slot_height_for_interval(interval: int) -> int:
    """Returns the pixel height used for one slot at the given interval."""
    try:
        return SLOT_HEIGHT_PX[interval]
    except KeyError:
        raise ValueError(f"Unsupported grid interval: {interval}")


def pixel_delta_to_slots(delta_px: float, interval: int) -> int:
    """Converts a vertical pixel delta into a whole number of slots (sign preserved)."""
    height = slot_height_for_interval(interval)
    slots = _round_half_up(abs(delta_px) / height)
    return slots if delta_px >= 0 else -slots


def snap_duration(duration_minutes: int, interval: int, round_up: bool = True) -> int:
    """
    Snaps a duration to a multiple of the interval, never below one interval.

    With round_up the duration is rounded up (drops); otherwise to the nearest
    multiple (resizes).
    """
    if round_up:
        units = math.ceil(max(0, duration_minutes) / interval)
    else:
        units = _round_half_up(max(0, duration_minutes) / interval)
    return max(1, units) * interval


def span_for_duration(duration_minutes: int, interval: int) -> int:
    return max(1, math.ceil(max(0, duration_minutes) / interval))


def snap_to_interval(minutes: int, interval: int) -> int:
    """Rounds a time of day (in minutes) to the nearest grid boundary."""
    return _round_half_up(minutes / interval) * interval
