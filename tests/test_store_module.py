import asyncio
import datetime

import pytest

from planner.models import EntityRecord, Slot
from planner.store import (EntityNotFoundError, InMemoryEntityStore,
                           detach_members, merge_members)

DAY = datetime.date(2024, 5, 1)


def make_entity(entity_id, start="09:00", end="10:00", **kwargs):
    return EntityRecord(id=entity_id, date=DAY, start_time=start, end_time=end, **kwargs)


def make_slot(slot_id, members, start="09:00", end="10:00", primary=None):
    return Slot(slot_id=slot_id, date=DAY, start_time=start, end_time=end,
                primary_entity_id=primary, member_entity_ids=members)


def test_detach_members_deletes_slots_left_with_one_member():
    slots = [make_slot("s1", ["a", "b"]), make_slot("s2", ["c", "d", "e"], primary="d")]
    changed, removed = detach_members(slots, ["a", "d"])
    assert removed == ["s1"]
    assert changed[0].member_entity_ids == ["c", "e"]
    assert changed[0].primary_entity_id == "c"


def test_merge_members_creates_slot_from_target():
    target = make_entity("t", "14:00", "15:00")
    slot, changed, removed = merge_members([], target, ["x"], slot_id_factory=lambda: "new")
    assert slot.slot_id == "new"
    assert slot.member_entity_ids == ["t", "x"]
    assert slot.primary_entity_id == "t"
    assert (slot.start_time, slot.end_time) == ("14:00:00", "15:00:00")
    assert changed == [] and removed == []


def test_merge_members_requires_placed_target():
    with pytest.raises(EntityNotFoundError):
        merge_members([], EntityRecord(id="t"), ["x"])


def test_update_entity_time_and_clear():
    store = InMemoryEntityStore([make_entity("a")])
    saved = asyncio.run(store.update_entity_time("a", DAY, "11:00", "12:30"))
    assert (saved.start_time, saved.end_time) == ("11:00:00", "12:30:00")

    cleared = asyncio.run(store.clear_entity_time("a"))
    assert cleared.date is None
    assert cleared.start_time is None and cleared.end_time is None


def test_unknown_entity_raises():
    store = InMemoryEntityStore([make_entity("a", deleted_at=datetime.datetime(2024, 4, 1))])
    with pytest.raises(EntityNotFoundError):
        asyncio.run(store.update_entity_time("missing", DAY, "09:00", "10:00"))
    with pytest.raises(EntityNotFoundError):
        asyncio.run(store.clear_entity_time("a"))
    with pytest.raises(EntityNotFoundError):
        asyncio.run(store.update_slot_time("nope", DAY, "09:00", "10:00"))


def test_update_slot_time_moves_members():
    store = InMemoryEntityStore([make_entity("a"), make_entity("b")], [make_slot("s1", ["a", "b"])])
    asyncio.run(store.update_slot_time("s1", DAY, "13:00", "14:00"))
    snapshot = asyncio.run(store.load_snapshot())
    assert {entity.start_time for entity in snapshot.entities} == {"13:00:00"}
    assert snapshot.slots[0].start_time == "13:00:00"


def test_merge_into_slot_aligns_members_and_cleans_previous_slot():
    entities = [
        make_entity("t", "14:00", "15:00", place_id="p1"),
        make_entity("x", "09:00", "10:00", place_id="p2"),
        make_entity("y", "09:00", "10:00", place_id="p3"),
    ]
    store = InMemoryEntityStore(entities, [make_slot("old", ["x", "y"])])
    result = asyncio.run(store.merge_into_slot("t", ["x"]))

    assert result.removed_slot_ids == ["old"]
    assert result.slot.member_entity_ids == ["t", "x"]
    assert [option.entity_id for option in result.slot_options] == ["t", "x"]

    snapshot = asyncio.run(store.load_snapshot())
    assert [slot.slot_id for slot in snapshot.slots] == [result.slot.slot_id]
    moved = next(entity for entity in snapshot.entities if entity.id == "x")
    assert (moved.start_time, moved.end_time) == ("14:00:00", "15:00:00")


def test_merge_into_existing_slot_appends_member():
    entities = [make_entity("t", place_id="p1"), make_entity("u", place_id="p2"), make_entity("x", "12:00", "13:00", place_id="p3")]
    store = InMemoryEntityStore(entities, [make_slot("s1", ["t", "u"])])
    result = asyncio.run(store.merge_into_slot("u", ["x"]))
    assert result.slot.slot_id == "s1"
    assert result.slot.member_entity_ids == ["t", "u", "x"]


def test_detach_from_slot_returns_deleted_slots():
    store = InMemoryEntityStore([make_entity("a"), make_entity("b")], [make_slot("s1", ["a", "b"])])
    assert asyncio.run(store.detach_from_slot(["b"])) == ["s1"]
    assert asyncio.run(store.load_snapshot()).slots == []


def test_store_copies_do_not_leak():
    entity = make_entity("a")
    store = InMemoryEntityStore([entity])
    snapshot = asyncio.run(store.load_snapshot())
    snapshot.entities[0].title = "changed"
    again = asyncio.run(store.load_snapshot())
    assert again.entities[0].title is None
