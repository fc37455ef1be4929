import pytest
from pydantic import ValidationError

from planner.models import TimeGridConfig, parse_time_to_minutes, minutes_to_time_string
from planner.time_grid import (build_slots, format_slot_label, pixel_delta_to_slots,
                               slot_height_for_interval, snap_duration,
                               span_for_duration, time_to_slot_index)


def test_build_slots_covers_start_to_end_hour():
    slots = build_slots(TimeGridConfig(interval=30, start_hour=8, end_hour=20))
    assert len(slots) == 26
    assert (slots[0].hour, slots[0].minute) == (8, 0)
    assert (slots[-1].hour, slots[-1].minute) == (20, 30)
    assert slots[0].is_hour and not slots[1].is_hour


@pytest.mark.parametrize("interval", [15, 30, 60])
def test_build_slots_strictly_increasing_with_uniform_spacing(interval):
    slots = build_slots(TimeGridConfig(interval=interval, start_hour=0, end_hour=23))
    gaps = {b.minutes - a.minutes for a, b in zip(slots, slots[1:])}
    assert gaps == {interval}
    assert len(slots) == 24 * 60 // interval


def test_format_slot_label_uses_twelve_hour_clock():
    assert format_slot_label(9, 0) == "9:00 AM"
    assert format_slot_label(13, 30) == "1:30 PM"
    assert format_slot_label(12, 30) == "12:30 PM"
    assert format_slot_label(0, 15) == "12:15 AM"


def test_grid_config_rejects_bad_values():
    with pytest.raises(ValidationError):
        TimeGridConfig(interval=45)
    with pytest.raises(ValidationError):
        TimeGridConfig(interval=30, start_hour=20, end_hour=8)


def test_time_to_slot_index_exact_match():
    slots = build_slots(TimeGridConfig(interval=30, start_hour=8, end_hour=20))
    assert time_to_slot_index("09:00:00", slots) == 2
    assert time_to_slot_index("08:00", slots) == 0
    assert time_to_slot_index("20:30", slots) == 25


def test_time_to_slot_index_rounds_unaligned_times():
    slots = build_slots(TimeGridConfig(interval=30, start_hour=8, end_hour=20))
    # 09:15 is 2.5 slots after 08:00 and rounds half up
    assert time_to_slot_index("09:15", slots) == 3
    assert time_to_slot_index("09:10", slots) == 2


def test_time_to_slot_index_clamps_into_grid():
    slots = build_slots(TimeGridConfig(interval=30, start_hour=8, end_hour=20))
    assert time_to_slot_index("05:00", slots) == 0
    assert time_to_slot_index("23:59", slots) == len(slots)
    assert time_to_slot_index("21:00", slots) == len(slots)


def test_time_to_slot_index_handles_legacy_end_of_day():
    slots = build_slots(TimeGridConfig(interval=30, start_hour=6, end_hour=23))
    assert time_to_slot_index("24:00", slots) == len(slots)
    assert time_to_slot_index("24:00:00", slots) == len(slots)


def test_time_helpers():
    assert parse_time_to_minutes("9:05") == 545
    assert parse_time_to_minutes("24:00:00") == 1440
    assert minutes_to_time_string(630) == "10:30:00"
    with pytest.raises(ValueError):
        parse_time_to_minutes("25:00")
    with pytest.raises(ValueError):
        parse_time_to_minutes("noon")


def test_slot_height_for_interval():
    assert slot_height_for_interval(15) == 20
    assert slot_height_for_interval(30) == 32
    assert slot_height_for_interval(60) == 48
    with pytest.raises(ValueError):
        slot_height_for_interval(45)


def test_pixel_delta_to_slots_keeps_sign():
    assert pixel_delta_to_slots(64, 30) == 2
    assert pixel_delta_to_slots(-40, 30) == -1
    assert pixel_delta_to_slots(10, 30) == 0
    assert pixel_delta_to_slots(24, 60) == 1


def test_snap_duration():
    assert snap_duration(50, 30) == 60
    assert snap_duration(0, 30) == 30
    assert snap_duration(45, 30, round_up=False) == 60
    assert snap_duration(40, 30, round_up=False) == 30
    assert snap_duration(10, 30, round_up=False) == 30


def test_span_for_duration():
    assert span_for_duration(90, 30) == 3
    assert span_for_duration(45, 30) == 2
    assert span_for_duration(0, 30) == 1
