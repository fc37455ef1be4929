import datetime

import pytest

from planner.models import EntityRecord
from planner.timeline import DayTimeline, ScheduledItem

DAY = datetime.date(2024, 5, 1)


def make_entity(entity_id: str, start: str = None, end: str = None) -> EntityRecord:
    return EntityRecord(id=entity_id, date=DAY, start_time=start, end_time=end)


def make_item(start_hour: int, end_hour: int, entity_id: str) -> ScheduledItem:
    return ScheduledItem(start_hour * 60, end_hour * 60, make_entity(entity_id, f"{start_hour}:00", f"{end_hour}:00"))


def test_add_item_sorts_by_start_time():
    item1 = make_item(10, 11, "A")
    item2 = make_item(8, 9, "B")
    tl = DayTimeline()
    tl.add_item(item1)
    tl.add_item(item2)
    items = tl.get_all_items()
    assert items == [item2, item1]


def test_find_overlapping_items_basic():
    tl = DayTimeline()
    a = make_item(9, 10, "A")
    b = make_item(11, 12, "B")
    tl.add_item(a)
    tl.add_item(b)

    overlaps = tl.find_overlapping_items(9 * 60 + 30, 9 * 60 + 45)
    assert overlaps == [a]

    # Adjacent range should not overlap
    assert tl.find_overlapping_items(10 * 60, 11 * 60) == []

    overlaps2 = tl.find_overlapping_items(11 * 60 + 30, 11 * 60 + 45)
    assert overlaps2 == [b]


def test_find_overlapping_items_spanning_query():
    tl = DayTimeline([
        make_entity("A", "08:00", "12:00"),
        make_entity("B", "09:00", "09:30"),
        make_entity("C", "13:00", "14:00"),
    ])
    ids = [item.entity_id for item in tl.find_overlapping_items(9 * 60, 10 * 60)]
    assert ids == ["A", "B"]


def test_find_overlapping_items_invalid_range():
    tl = DayTimeline()
    with pytest.raises(ValueError):
        tl.find_overlapping_items(600, 600)


def test_scheduled_item_rejects_empty_range():
    with pytest.raises(ValueError):
        ScheduledItem(600, 540, None)


def test_add_item_rejects_other_types():
    tl = DayTimeline()
    with pytest.raises(TypeError):
        tl.add_item("not an item")


def test_timeline_skips_entities_without_times():
    tl = DayTimeline([make_entity("A"), make_entity("B", "09:00", "10:00")])
    assert len(tl) == 1
    assert tl.get_all_items()[0].entity_id == "B"


def test_overlap_minutes():
    item = make_item(9, 11, "A")
    assert item.overlap_minutes(10 * 60, 12 * 60) == 60
    assert item.overlap_minutes(11 * 60, 12 * 60) == 0
